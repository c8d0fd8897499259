"""
Synchronizer between the Durable Score Ledger and the Leaderboard Store.

The two stores are an eventually consistent pair: the coordinator writes the
ledger first and the store second, with no distributed transaction. This
module rebuilds the store from the ledger at startup and periodically
repairs drift (missed upserts, crashes between the two writes, phantom
entries).
"""

import logging
from typing import List, Optional

from scoreboard.data_models.leaderboard import ReconciliationReport

logger = logging.getLogger(__name__)


class Synchronizer:
    """Rebuilds and reconciles the in-memory top-N from authoritative storage."""

    def __init__(self, ledger, leaderboard_store, broadcaster=None, size: Optional[int] = None):
        self.ledger = ledger
        self.leaderboard_store = leaderboard_store
        self.broadcaster = broadcaster
        self.size = size if size is not None else leaderboard_store.size
        self.last_reports: List[ReconciliationReport] = []

    async def rebuild_all(self) -> int:
        """Load every ledger category into the store. Run before accepting submissions."""
        categories = await self.ledger.categories()
        for category in categories:
            entries = await self.ledger.top_n(category, self.size)
            await self.leaderboard_store.replace(category, entries)
            logger.debug(f"Rebuilt '{category}' with {len(entries)} entries")
        logger.info(f"Leaderboard store rebuilt for {len(categories)} categories")
        return len(categories)

    async def reconcile_category(self, category: str) -> ReconciliationReport:
        """
        Compare one category's store contents with the ledger and repair drift.

        The store version is read before the slow ledger query; if an upsert
        lands in between, the repair is skipped rather than overwriting a
        fresher write, and the next pass picks the category up again.
        """
        version = self.leaderboard_store.version(category)
        authoritative = await self.ledger.top_n(category, self.size)
        current = self.leaderboard_store.snapshot(category)

        expected_users = {entry.user_id for entry in authoritative}
        current_users = current.user_ids()
        added = sorted(expected_users - current_users)
        removed = sorted(current_users - expected_users)

        current_scores = {entry.user_id: entry.score for entry in current.entries}
        rescored = sorted(
            entry.user_id for entry in authoritative
            if entry.user_id in current_scores and current_scores[entry.user_id] != entry.score
        )

        expected_ranking = tuple((entry.user_id, entry.score) for entry in authoritative)
        if not (added or removed or rescored) and expected_ranking == current.ranking():
            return ReconciliationReport(category, [], [], [], repaired=False)

        replaced = await self.leaderboard_store.replace(category, authoritative, expected_version=version)
        if not replaced:
            logger.info(f"Reconciliation of '{category}' skipped: board changed during the pass")
            return ReconciliationReport(category, added, removed, rescored, repaired=False, skipped=True)

        logger.warning(
            f"Leaderboard drift repaired in '{category}': "
            f"{len(added)} added, {len(removed)} removed, {len(rescored)} rescored"
        )
        if self.broadcaster is not None:
            self.broadcaster.publish(category, self.leaderboard_store.snapshot(category))
        return ReconciliationReport(category, added, removed, rescored, repaired=True)

    async def reconcile_all(self) -> List[ReconciliationReport]:
        """One reconciliation pass over every category known to either store."""
        categories = set(await self.ledger.categories())
        categories.update(self.leaderboard_store.categories())

        reports = []
        for category in sorted(categories):
            try:
                reports.append(await self.reconcile_category(category))
            except Exception as e:
                logger.error(f"Reconciliation failed for '{category}': {e}", exc_info=True)

        repaired = sum(1 for report in reports if report.repaired)
        logger.info(f"Reconciliation pass complete: {len(reports)} categories checked, {repaired} repaired")
        self.last_reports = reports
        return reports
