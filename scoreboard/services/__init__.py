"""
Services package for the scoreboard.

Core leaderboard state machine and synchronization protocol.
"""

from .base import BaseService
from .action_tokens import ActionTokenService, MemoryTokenStore, RedisTokenStore, TokenStore
from .leaderboard_store import LeaderboardStore
from .score_ledger import ScoreLedger
from .broadcast import BroadcastHub, Subscription
from .synchronizer import Synchronizer
from .update_coordinator import UpdateCoordinator

__all__ = [
    'BaseService', 'ActionTokenService', 'MemoryTokenStore', 'RedisTokenStore', 'TokenStore',
    'LeaderboardStore', 'ScoreLedger', 'BroadcastHub', 'Subscription', 'Synchronizer',
    'UpdateCoordinator',
]
