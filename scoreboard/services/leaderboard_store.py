"""
Leaderboard Store: the fast-path, in-memory top-N per category.

Each category keeps at most `size` entries sorted by score (descending),
then by the time the score was reached, then by user id. Writers take a
per-category asyncio.Lock; readers get an immutable tuple that is swapped in
atomically, so snapshot() never waits on a writer.
"""

import asyncio
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from scoreboard.config import Config
from scoreboard.data_models.leaderboard import CompetitorScore, LeaderboardChange, LeaderboardSnapshot
from scoreboard.utils.clock import utcnow

logger = logging.getLogger(__name__)


class _CategoryBoard:
    """Mutable state for one category. Only touched by LeaderboardStore."""

    __slots__ = ('entries', 'version', 'lock')

    def __init__(self):
        self.entries: Tuple[CompetitorScore, ...] = ()
        self.version = 0
        self.lock = asyncio.Lock()


class LeaderboardStore:
    """Internally synchronized top-N leaderboard, one board per category."""

    def __init__(self, size: Optional[int] = None):
        self.size = size if size is not None else Config.LEADERBOARD_SIZE
        if self.size < 1:
            raise ValueError("Leaderboard size must be at least 1")
        self._boards: Dict[str, _CategoryBoard] = {}

    def _board(self, category: str) -> _CategoryBoard:
        board = self._boards.get(category)
        if board is None:
            board = self._boards[category] = _CategoryBoard()
        return board

    def _ranked(self, entries: Iterable[CompetitorScore]) -> Tuple[CompetitorScore, ...]:
        ordered = sorted(entries, key=CompetitorScore.rank_key)
        return tuple(ordered[:self.size])

    def _snapshot_of(self, category: str, entries: Tuple[CompetitorScore, ...]) -> LeaderboardSnapshot:
        return LeaderboardSnapshot(category=category, entries=entries, taken_at=utcnow())

    def snapshot(self, category: str) -> LeaderboardSnapshot:
        """Immutable copy of a category's current top-N (empty for unknown categories)."""
        board = self._boards.get(category)
        return self._snapshot_of(category, board.entries if board else ())

    def version(self, category: str) -> int:
        """Counter bumped by every effective write to the category."""
        board = self._boards.get(category)
        return board.version if board else 0

    def categories(self) -> List[str]:
        return sorted(self._boards)

    async def upsert(self, category: str, user_id: str, score: int,
                     updated_at: Optional[datetime] = None) -> LeaderboardChange:
        """
        Insert or update a user's entry, then trim the board back to `size`.

        The updated user is evicted like anyone else if they still rank below
        the Nth entry. A score lower than the user's ranked score is treated
        as a stale, out-of-order write and ignored.

        Returns:
            Snapshots taken under the category lock right before and after
            the write.
        """
        updated_at = updated_at or utcnow()
        board = self._board(category)
        async with board.lock:
            before = self._snapshot_of(category, board.entries)
            current = next((entry for entry in board.entries if entry.user_id == user_id), None)

            if current is not None and score <= current.score:
                if score < current.score:
                    logger.debug(f"Ignoring stale upsert for {user_id} in '{category}': {score} < {current.score}")
                return LeaderboardChange(before=before, after=before)

            candidate = CompetitorScore(user_id=user_id, category=category, score=score, updated_at=updated_at)
            others = [entry for entry in board.entries if entry.user_id != user_id]
            entries = self._ranked(others + [candidate])

            if entries != board.entries:
                board.entries = entries
                board.version += 1

            after = self._snapshot_of(category, board.entries)
            return LeaderboardChange(before=before, after=after)

    async def replace(self, category: str, entries: Iterable[CompetitorScore],
                      expected_version: Optional[int] = None) -> bool:
        """
        Atomically replace a category's whole board.

        With expected_version set, the swap only happens if no write landed
        since that version was read; returns False when it was skipped.
        """
        deduplicated: Dict[str, CompetitorScore] = {}
        for entry in entries:
            if entry.category != category:
                raise ValueError(f"Entry for category '{entry.category}' passed to '{category}'")
            kept = deduplicated.get(entry.user_id)
            if kept is None or entry.rank_key() < kept.rank_key():
                deduplicated[entry.user_id] = entry
        ranked = self._ranked(deduplicated.values())

        board = self._board(category)
        async with board.lock:
            if expected_version is not None and board.version != expected_version:
                logger.debug(
                    f"Skipped replace of '{category}': version {board.version} != expected {expected_version}"
                )
                return False
            board.entries = ranked
            board.version += 1
            return True

    async def clear(self, category: str):
        await self.replace(category, ())
