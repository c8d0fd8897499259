"""
Clock helpers shared by the ledger and the leaderboard store.

Timestamps are naive UTC everywhere so values read back from SQLite compare
equal to the ones written by the application.
"""

import time
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def epoch_seconds() -> int:
    return int(time.time())
