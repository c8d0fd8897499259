"""
Leaderboard data models.

Immutable data transfer objects passed between the ledger, the in-memory
store, the fan-out hub and the Discord layer.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple

from scoreboard.utils.clock import utcnow


@dataclass(frozen=True)
class CompetitorScore:
    """One user's current score in one category."""
    user_id: str
    category: str
    score: int
    updated_at: datetime

    def rank_key(self) -> Tuple[int, datetime, str]:
        # Higher score first, then whoever reached it first, then user id
        return (-self.score, self.updated_at, self.user_id)


@dataclass(frozen=True)
class LeaderboardSnapshot:
    """Ordered top-N view of one category at one moment."""
    category: str
    entries: Tuple[CompetitorScore, ...] = ()
    taken_at: datetime = field(default_factory=utcnow)

    def __len__(self) -> int:
        return len(self.entries)

    def standings(self) -> Tuple[str, ...]:
        """Ordered user ids; membership and order without scores."""
        return tuple(entry.user_id for entry in self.entries)

    def ranking(self) -> Tuple[Tuple[str, int], ...]:
        """Ordered (user, score) pairs, used to compare against the ledger."""
        return tuple((entry.user_id, entry.score) for entry in self.entries)

    def user_ids(self) -> frozenset:
        return frozenset(entry.user_id for entry in self.entries)

    def position_of(self, user_id: str) -> Optional[int]:
        for position, entry in enumerate(self.entries, start=1):
            if entry.user_id == user_id:
                return position
        return None


@dataclass(frozen=True)
class LeaderboardChange:
    """Snapshots taken immediately before and after one store mutation."""
    before: LeaderboardSnapshot
    after: LeaderboardSnapshot

    @property
    def changed(self) -> bool:
        # A score bump that keeps the same users in the same order is not a change
        return self.before.standings() != self.after.standings()


class UpdateStage(Enum):
    RECEIVED = "received"
    TOKEN_VALIDATED = "token_validated"
    LEDGER_APPLIED = "ledger_applied"
    LEADERBOARD_RECONCILED = "leaderboard_reconciled"
    BROADCAST_DECIDED = "broadcast_decided"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class ScoreUpdateResult:
    """Outcome of one accepted score submission."""
    user_id: str
    category: str
    old_score: int
    new_score: int
    broadcast: bool
    position: Optional[int] = None


@dataclass(frozen=True)
class ScoreAuditRecord:
    """Read-only view of one audit trail row."""
    user_id: str
    category: str
    old_score: int
    new_score: int
    token_id: str
    created_at: datetime

    @property
    def delta(self) -> int:
        return self.new_score - self.old_score


@dataclass(frozen=True)
class ReconciliationReport:
    """Result of comparing one category's store contents with the ledger."""
    category: str
    added: List[str]
    removed: List[str]
    rescored: List[str]
    repaired: bool
    skipped: bool = False

    @property
    def drifted(self) -> bool:
        return bool(self.added or self.removed or self.rescored)
