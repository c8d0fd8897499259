"""
Update Coordinator: the per-submission state machine.

RECEIVED -> TOKEN_VALIDATED -> LEDGER_APPLIED -> LEADERBOARD_RECONCILED
-> BROADCAST_DECIDED -> DONE, with FAILED reachable from every step.

The token is spent before any durable write, so a rejected token never
touches the ledger. A token spent on a submission the ledger then refuses
(cap, negative result, storage outage) is not refunded. Once the ledger has
committed the update is final: store and broadcast failures are logged and
left to the synchronizer.
"""

import logging
from typing import Optional

from scoreboard.config import Config
from scoreboard.constants import is_valid_category
from scoreboard.data_models.leaderboard import ScoreUpdateResult, UpdateStage
from scoreboard.utils.scoreboard_exceptions import InvalidRequestError, ScoreboardException

logger = logging.getLogger(__name__)


class UpdateCoordinator:
    """Orchestrates token consumption, ledger write, store upsert and fan-out."""

    def __init__(self, token_service, ledger, leaderboard_store, broadcaster,
                 max_delta: Optional[int] = None, default_increment: Optional[int] = None):
        self.token_service = token_service
        self.ledger = ledger
        self.leaderboard_store = leaderboard_store
        self.broadcaster = broadcaster
        self.max_delta = max_delta if max_delta is not None else Config.MAX_SCORE_DELTA
        self.default_increment = default_increment if default_increment is not None else Config.DEFAULT_SCORE_INCREMENT

    def _validate(self, user_id, category, token, delta) -> int:
        if not isinstance(user_id, str) or not user_id:
            raise InvalidRequestError("A user id is required.")
        if not is_valid_category(category):
            raise InvalidRequestError("Category names are 1-64 letters, digits, '.', '_' or '-'.")
        if not isinstance(token, str) or not token:
            raise InvalidRequestError("An action token is required.")
        if delta is None:
            delta = self.default_increment
        if isinstance(delta, bool) or not isinstance(delta, int):
            raise InvalidRequestError("Score delta must be a whole number.")
        if delta < 1 or delta > self.max_delta:
            raise InvalidRequestError(f"Score delta must be between 1 and {self.max_delta:,}.")
        return delta

    def _transition(self, stage: UpdateStage, user_id: str, category: str):
        logger.debug(f"Update {user_id}/'{category}': {stage.value}")

    async def submit(self, user_id: str, category: str, token: str, delta: Optional[int] = None) -> ScoreUpdateResult:
        """
        Apply one token-authorized score increment.

        Args:
            user_id: Submitting user
            category: Leaderboard category
            token: Encoded action token issued for (user_id, category)
            delta: Positive increment; None applies the configured fixed increment

        Returns:
            ScoreUpdateResult with the new score

        Raises:
            InvalidRequestError: malformed input or out-of-bound delta
            ForbiddenError: token invalid, expired, reused or mismatched
            ScoreConflictError: result would be negative or exceed the cap
            StorageUnavailableError: ledger or token store kept failing after retries

        Raised errors carry `stage`, the last UpdateStage the submission
        completed before failing.
        """
        stage = UpdateStage.RECEIVED
        self._transition(stage, user_id, category)
        try:
            delta = self._validate(user_id, category, token, delta)

            # InvalidTokenError is a ForbiddenError
            action_token = await self.token_service.consume(token, user_id, category)
            stage = UpdateStage.TOKEN_VALIDATED
            self._transition(stage, user_id, category)

            updated = await self.ledger.apply_delta(user_id, category, delta, action_token.token_id)
            old_score = updated.score - delta
            stage = UpdateStage.LEDGER_APPLIED
            self._transition(stage, user_id, category)
        except ScoreboardException as e:
            e.stage = stage
            logger.info(
                f"Update {user_id}/'{category}' failed after {stage.value}: "
                f"{e.kind.value} ({e})"
            )
            self._transition(UpdateStage.FAILED, user_id, category)
            raise

        change = None
        try:
            change = await self.leaderboard_store.upsert(category, user_id, updated.score, updated.updated_at)
            stage = UpdateStage.LEADERBOARD_RECONCILED
            self._transition(stage, user_id, category)
        except Exception as e:
            # Ledger already committed; the synchronizer will repair the board
            logger.error(f"Leaderboard upsert failed for {user_id} in '{category}': {e}", exc_info=True)

        broadcast = False
        if change is not None and change.changed:
            try:
                self.broadcaster.publish(category, change.after)
                broadcast = True
            except Exception as e:
                logger.warning(f"Broadcast failed for '{category}': {e}")
        stage = UpdateStage.BROADCAST_DECIDED
        self._transition(stage, user_id, category)

        position = change.after.position_of(user_id) if change is not None else None
        self._transition(UpdateStage.DONE, user_id, category)
        logger.info(f"Score update: {user_id} in '{category}' {old_score} -> {updated.score}"
                    f"{' (board changed)' if broadcast else ''}")
        return ScoreUpdateResult(
            user_id=user_id,
            category=category,
            old_score=old_score,
            new_score=updated.score,
            broadcast=broadcast,
            position=position,
        )
