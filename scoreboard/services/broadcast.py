"""
Broadcast Fan-out for leaderboard snapshots.

Each subscription owns a small bounded queue. publish() only ever calls
put_nowait, so the update path never waits on a subscriber; when a slow
subscriber's queue is full its oldest pending snapshot is dropped, since
only the newest board matters.
"""

import asyncio
import itertools
import logging
from typing import Dict, Optional

from scoreboard.config import Config
from scoreboard.data_models.leaderboard import LeaderboardSnapshot

logger = logging.getLogger(__name__)


class Subscription:
    """Handle for one subscriber of one category. Iterate it to receive snapshots."""

    def __init__(self, subscription_id: int, category: str, queue_size: int):
        self.id = subscription_id
        self.category = category
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max(1, queue_size))
        self.dropped = 0
        self.closed = False

    def offer(self, snapshot: LeaderboardSnapshot):
        if self.closed:
            return
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
        self._queue.put_nowait(snapshot)

    def pending(self) -> int:
        return self._queue.qsize()

    async def get(self) -> Optional[LeaderboardSnapshot]:
        """Next snapshot, or None once the subscription is closed."""
        if self.closed and self._queue.empty():
            return None
        snapshot = await self._queue.get()
        return snapshot

    def get_nowait(self) -> Optional[LeaderboardSnapshot]:
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def close(self):
        if self.closed:
            return
        self.closed = True
        # Wake a consumer blocked in get()
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self) -> LeaderboardSnapshot:
        snapshot = await self.get()
        if snapshot is None:
            raise StopAsyncIteration
        return snapshot

    def __repr__(self):
        return f"<Subscription(id={self.id}, category='{self.category}', pending={self.pending()})>"


class BroadcastHub:
    """Category-scoped publish/subscribe for leaderboard snapshots."""

    def __init__(self, leaderboard_store, queue_size: Optional[int] = None):
        self.leaderboard_store = leaderboard_store
        self.queue_size = queue_size if queue_size is not None else Config.BROADCAST_QUEUE_SIZE
        self._subscriptions: Dict[str, Dict[int, Subscription]] = {}
        self._ids = itertools.count(1)

    def subscribe(self, category: str) -> Subscription:
        """Register a subscriber; it immediately receives the current snapshot once."""
        subscription = Subscription(next(self._ids), category, self.queue_size)
        self._subscriptions.setdefault(category, {})[subscription.id] = subscription
        subscription.offer(self.leaderboard_store.snapshot(category))
        logger.debug(f"Subscription {subscription.id} added for '{category}'")
        return subscription

    def unsubscribe(self, subscription: Subscription):
        subscribers = self._subscriptions.get(subscription.category)
        if subscribers is not None:
            subscribers.pop(subscription.id, None)
            if not subscribers:
                del self._subscriptions[subscription.category]
        subscription.close()
        logger.debug(f"Subscription {subscription.id} removed from '{subscription.category}'")

    def publish(self, category: str, snapshot: LeaderboardSnapshot) -> int:
        """Deliver a snapshot to every current subscriber of category. Never blocks."""
        subscribers = list(self._subscriptions.get(category, {}).values())
        delivered = 0
        for subscription in subscribers:
            try:
                subscription.offer(snapshot)
                delivered += 1
            except Exception as e:
                logger.warning(f"Failed to queue snapshot for subscription {subscription.id}: {e}")
        if subscribers:
            logger.debug(f"Published '{category}' snapshot to {delivered}/{len(subscribers)} subscribers")
        return delivered

    def subscriber_count(self, category: str) -> int:
        return len(self._subscriptions.get(category, {}))

    def close(self):
        for subscribers in list(self._subscriptions.values()):
            for subscription in list(subscribers.values()):
                self.unsubscribe(subscription)
