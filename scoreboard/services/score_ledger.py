"""
Durable Score Ledger.

Authoritative score per (user, category) plus the append-only audit trail.
A score change and its audit row commit in one transaction. Updates for the
same (user, category) are serialized by an in-process keyed lock and by
SELECT ... FOR UPDATE in the database; on SQLite FOR UPDATE is a no-op and
the database-level write lock does the job.
"""

import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy import select

from scoreboard.config import Config
from scoreboard.data_models.leaderboard import CompetitorScore, ScoreAuditRecord
from scoreboard.database.models import CompetitorScoreRow, ScoreAuditEntry
from scoreboard.services.base import BaseService
from scoreboard.utils.clock import utcnow
from scoreboard.utils.scoreboard_exceptions import (
    NegativeScoreError, NotFoundError, ScoreCapExceededError
)

logger = logging.getLogger(__name__)


class ScoreLedger(BaseService):
    """Score persistence with per-competitor serialization and bounded retries."""

    def __init__(self, session_factory, max_score: Optional[int] = None,
                 clock: Callable = utcnow, **retry_options):
        super().__init__(session_factory, **retry_options)
        self.max_score = max_score if max_score is not None else Config.MAX_SCORE
        self._clock = clock
        self._locks: Dict[Tuple[str, str], asyncio.Lock] = defaultdict(asyncio.Lock)
        self._lock_users: Dict[Tuple[str, str], int] = defaultdict(int)

    @asynccontextmanager
    async def _competitor_lock(self, user_id: str, category: str):
        key = (user_id, category)
        self._lock_users[key] += 1
        try:
            async with self._locks[key]:
                yield
        finally:
            self._lock_users[key] -= 1
            if self._lock_users[key] == 0:
                # Nobody else holds or waits on this key
                del self._lock_users[key]
                self._locks.pop(key, None)

    @staticmethod
    def _to_score(row: CompetitorScoreRow) -> CompetitorScore:
        return CompetitorScore(
            user_id=row.user_id,
            category=row.category,
            score=row.score,
            updated_at=row.updated_at,
        )

    async def get_score(self, user_id: str, category: str) -> int:
        """Current score, 0 if the user never scored in the category."""
        async def _read():
            async with self.get_session() as session:
                result = await session.execute(
                    select(CompetitorScoreRow.score).where(
                        CompetitorScoreRow.user_id == user_id,
                        CompetitorScoreRow.category == category,
                    )
                )
                return result.scalar_one_or_none() or 0

        return await self.execute_with_retry(_read, operation="get_score")

    async def apply_delta(self, user_id: str, category: str, delta: int, token_id: str) -> CompetitorScore:
        """
        Add delta to the user's score and append an audit entry atomically.

        Raises:
            NegativeScoreError: the result would be below zero
            ScoreCapExceededError: the result would exceed max_score
            StorageUnavailableError: storage kept failing after all retries
        """
        async with self._competitor_lock(user_id, category):
            return await self.execute_with_retry(
                lambda: self._apply_delta_once(user_id, category, delta, token_id),
                operation="apply_delta",
            )

    async def _apply_delta_once(self, user_id: str, category: str, delta: int, token_id: str) -> CompetitorScore:
        async with self.get_session() as session:
            result = await session.execute(
                select(CompetitorScoreRow).where(
                    CompetitorScoreRow.user_id == user_id,
                    CompetitorScoreRow.category == category,
                ).with_for_update()
            )
            row = result.scalar_one_or_none()
            old_score = row.score if row else 0
            new_score = old_score + delta

            if new_score < 0:
                raise NegativeScoreError(user_id, category, old_score, delta)
            if new_score > self.max_score:
                raise ScoreCapExceededError(user_id, category, old_score, delta, self.max_score)

            now = self._clock()
            if row is None:
                row = CompetitorScoreRow(
                    user_id=user_id, category=category, score=new_score, updated_at=now, created_at=now
                )
                session.add(row)
            else:
                row.score = new_score
                row.updated_at = now

            session.add(ScoreAuditEntry(
                user_id=user_id,
                category=category,
                old_score=old_score,
                new_score=new_score,
                token_id=token_id,
                created_at=now,
            ))
            await session.flush()
            updated = self._to_score(row)

        logger.debug(f"Ledger: {user_id} in '{category}' {old_score} -> {new_score} (token {token_id[:8]}...)")
        return updated

    async def top_n(self, category: str, n: int) -> List[CompetitorScore]:
        """Authoritative top-N straight from storage. Slow path, synchronizer only."""
        async def _read():
            async with self.get_session() as session:
                result = await session.execute(
                    select(CompetitorScoreRow)
                    .where(CompetitorScoreRow.category == category)
                    .order_by(
                        CompetitorScoreRow.score.desc(),
                        CompetitorScoreRow.updated_at.asc(),
                        CompetitorScoreRow.user_id.asc(),
                    )
                    .limit(n)
                )
                return [self._to_score(row) for row in result.scalars().all()]

        return await self.execute_with_retry(_read, operation="top_n")

    async def categories(self) -> List[str]:
        """Every category with at least one competitor."""
        async def _read():
            async with self.get_session() as session:
                result = await session.execute(
                    select(CompetitorScoreRow.category).distinct().order_by(CompetitorScoreRow.category)
                )
                return list(result.scalars().all())

        return await self.execute_with_retry(_read, operation="categories")

    async def audit_trail(self, user_id: str, category: str, limit: int = 20) -> List[ScoreAuditRecord]:
        """Most recent audit entries for one competitor, newest first."""
        async def _read():
            async with self.get_session() as session:
                exists = await session.execute(
                    select(CompetitorScoreRow.id).where(
                        CompetitorScoreRow.user_id == user_id,
                        CompetitorScoreRow.category == category,
                    )
                )
                if exists.scalar_one_or_none() is None:
                    raise NotFoundError(f"Competitor in '{category}'")

                result = await session.execute(
                    select(ScoreAuditEntry)
                    .where(
                        ScoreAuditEntry.user_id == user_id,
                        ScoreAuditEntry.category == category,
                    )
                    .order_by(ScoreAuditEntry.created_at.desc(), ScoreAuditEntry.id.desc())
                    .limit(limit)
                )
                return [
                    ScoreAuditRecord(
                        user_id=entry.user_id,
                        category=entry.category,
                        old_score=entry.old_score,
                        new_score=entry.new_score,
                        token_id=entry.token_id,
                        created_at=entry.created_at,
                    )
                    for entry in result.scalars().all()
                ]

        return await self.execute_with_retry(_read, operation="audit_trail")
