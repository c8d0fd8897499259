"""
Action Token Service.

Issues short-lived HMAC-signed tokens that authorize exactly one score
submission, and consumes them with an atomic pending -> consumed transition
so a copied token can never be spent twice.

Token state lives in a TokenStore: Redis when configured (shared between
bot instances, native key expiry), process memory otherwise.
"""

import asyncio
import binascii
import hashlib
import hmac
import logging
import secrets
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Dict, Optional, Tuple, TypeVar

from redis.exceptions import RedisError

from scoreboard.config import Config
from scoreboard.constants import TokenConstants
from scoreboard.data_models.tokens import ActionToken, b64decode, b64encode
from scoreboard.utils.clock import epoch_seconds
from scoreboard.utils.scoreboard_exceptions import InvalidTokenError, StorageUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar('T')

TOKEN_STORE_ERRORS = (RedisError, ConnectionError, asyncio.TimeoutError)


class TokenStore(ABC):
    """Server-side token state keyed by token id (the nonce)."""

    @abstractmethod
    async def add_pending(self, token_id: str, ttl_seconds: int) -> bool:
        """Record a freshly issued token; False if the id is already known."""

    @abstractmethod
    async def consume(self, token_id: str, retention_seconds: int) -> bool:
        """Atomically flip pending -> consumed. True for exactly one caller."""

    @abstractmethod
    async def purge_expired(self) -> int:
        """Drop entries past their expiry; returns how many were removed."""

    async def close(self):
        pass


class MemoryTokenStore(TokenStore):
    """In-process token store for single-instance deployments and tests.

    Entries are swept by purge_expired(), which the housekeeping loop calls
    periodically; expired entries are ignored before that.
    """

    def __init__(self, clock: Callable[[], int] = epoch_seconds):
        self._clock = clock
        self._entries: Dict[str, Tuple[str, int]] = {}  # token_id -> (state, expires_at)
        self._lock = asyncio.Lock()

    async def add_pending(self, token_id: str, ttl_seconds: int) -> bool:
        async with self._lock:
            now = self._clock()
            existing = self._entries.get(token_id)
            if existing and existing[1] > now:
                return False
            self._entries[token_id] = (TokenConstants.PENDING, now + ttl_seconds)
            return True

    async def consume(self, token_id: str, retention_seconds: int) -> bool:
        async with self._lock:
            now = self._clock()
            entry = self._entries.get(token_id)
            if entry is None:
                return False
            state, expires_at = entry
            if state != TokenConstants.PENDING or expires_at <= now:
                return False
            self._entries[token_id] = (TokenConstants.CONSUMED, now + retention_seconds)
            return True

    async def purge_expired(self) -> int:
        async with self._lock:
            now = self._clock()
            expired = [token_id for token_id, (_, expires_at) in self._entries.items() if expires_at <= now]
            for token_id in expired:
                del self._entries[token_id]
            return len(expired)

    def __len__(self) -> int:
        return len(self._entries)


# GET == pending then SET consumed with a fresh expiry, in one server-side step
_CONSUME_SCRIPT = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    redis.call('SET', KEYS[1], ARGV[2], 'EX', ARGV[3])
    return 1
end
return 0
"""


class RedisTokenStore(TokenStore):
    """Token store backed by Redis keys with native expiry."""

    def __init__(self, redis_client, key_prefix: str = TokenConstants.REDIS_KEY_PREFIX):
        self.redis_client = redis_client
        self.key_prefix = key_prefix
        self._consume_script = redis_client.register_script(_CONSUME_SCRIPT)

    def _key(self, token_id: str) -> str:
        return f"{self.key_prefix}{token_id}"

    async def add_pending(self, token_id: str, ttl_seconds: int) -> bool:
        created = await self.redis_client.set(
            self._key(token_id), TokenConstants.PENDING, ex=max(1, ttl_seconds), nx=True
        )
        return bool(created)

    async def consume(self, token_id: str, retention_seconds: int) -> bool:
        result = await self._consume_script(
            keys=[self._key(token_id)],
            args=[TokenConstants.PENDING, TokenConstants.CONSUMED, max(1, retention_seconds)],
        )
        return int(result) == 1

    async def purge_expired(self) -> int:
        # Redis expires keys on its own
        return 0

    async def close(self):
        await self.redis_client.aclose()


class ActionTokenService:
    """Issues and single-use-validates signed action tokens."""

    def __init__(
        self,
        store: TokenStore,
        secret: str,
        ttl_seconds: Optional[int] = None,
        consumed_retention_seconds: Optional[int] = None,
        clock: Callable[[], int] = epoch_seconds,
        max_retries: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
    ):
        if not secret:
            raise ValueError("An action token secret is required")
        self.store = store
        self._key = secret.encode('utf-8')
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else Config.TOKEN_TTL_SECONDS
        self.consumed_retention_seconds = (
            consumed_retention_seconds if consumed_retention_seconds is not None
            else Config.TOKEN_CONSUMED_RETENTION_SECONDS
        )
        self._clock = clock
        self.max_retries = max_retries if max_retries is not None else Config.TOKEN_STORE_MAX_RETRIES
        self.retry_base_delay = retry_base_delay if retry_base_delay is not None else Config.LEDGER_RETRY_BASE_DELAY

    async def _call_store(self, func: Callable[[], Awaitable[T]], operation: str) -> T:
        """Run one token store call, retrying connection failures with exponential backoff.

        A consume whose reply was lost and is retried sees the token as
        consumed and rejects it; a lost reply never lets a token be spent twice.
        """
        attempts = max(1, self.max_retries)
        for attempt in range(attempts):
            try:
                return await func()
            except TOKEN_STORE_ERRORS as e:
                if attempt == attempts - 1:
                    logger.error(f"Token store {operation} failed after {attempts} attempts: {e}")
                    raise StorageUnavailableError(f"token {operation}", attempts, str(e)) from e
                delay = self.retry_base_delay * (2 ** attempt)
                logger.warning(f"Retry attempt {attempt + 1} for token {operation} in {delay:.2f}s: {e}")
                await asyncio.sleep(delay)

    def _sign(self, payload: bytes) -> bytes:
        return hmac.new(self._key, payload, hashlib.sha256).digest()

    def encode(self, token: ActionToken) -> str:
        payload = token.payload_bytes()
        return f"{b64encode(payload)}.{b64encode(self._sign(payload))}"

    def decode(self, encoded: str) -> ActionToken:
        """Verify the signature and return the payload. Does not touch token state."""
        if not isinstance(encoded, str) or encoded.count('.') != 1:
            raise InvalidTokenError("malformed")
        payload_part, signature_part = encoded.split('.')
        try:
            payload = b64decode(payload_part)
            signature = b64decode(signature_part)
        except (binascii.Error, ValueError):
            raise InvalidTokenError("malformed encoding")

        if not hmac.compare_digest(signature, self._sign(payload)):
            raise InvalidTokenError("bad signature")

        try:
            return ActionToken.from_payload_bytes(payload)
        except (ValueError, KeyError, UnicodeDecodeError):
            raise InvalidTokenError("malformed payload")

    async def issue(self, user_id: str, category: str) -> str:
        """Issue a token authorizing one submission by user_id in category."""
        while True:
            token = ActionToken(
                user_id=user_id,
                category=category,
                expires_at=self._clock() + self.ttl_seconds,
                nonce=secrets.token_urlsafe(TokenConstants.NONCE_BYTES),
            )
            created = await self._call_store(
                lambda: self.store.add_pending(token.token_id, self.ttl_seconds), "issue"
            )
            if created:
                break
            logger.warning("Nonce collision while issuing action token, regenerating")

        logger.debug(f"Issued action token {token.token_id[:8]}... for {user_id} in '{category}'")
        return self.encode(token)

    async def consume(self, encoded: str, expected_user: str, expected_category: str) -> ActionToken:
        """Validate and spend a token. Raises InvalidTokenError for every failure reason."""
        token = self.decode(encoded)

        if not hmac.compare_digest(token.user_id.encode('utf-8'), str(expected_user).encode('utf-8')):
            raise self._reject(token, "user mismatch")
        if token.category != expected_category:
            raise self._reject(token, "category mismatch")

        now = self._clock()
        if token.is_expired(now):
            raise self._reject(token, "expired")

        # Keep the consumed marker past the embedded expiry to block replay
        retention = (token.expires_at - now) + self.consumed_retention_seconds
        consumed = await self._call_store(lambda: self.store.consume(token.token_id, retention), "consume")
        if not consumed:
            raise self._reject(token, "unknown or already consumed")

        logger.debug(f"Consumed action token {token.token_id[:8]}... for {token.user_id}")
        return token

    def _reject(self, token: ActionToken, reason: str) -> InvalidTokenError:
        logger.debug(f"Rejected action token {token.token_id[:8]}...: {reason}")
        return InvalidTokenError(reason)

    async def purge_expired(self) -> int:
        return await self._call_store(self.store.purge_expired, "purge")

    async def close(self):
        await self.store.close()


def create_token_store(redis_client=None) -> TokenStore:
    """Pick the Redis store when a client is available, memory otherwise."""
    if redis_client is not None:
        logger.info("Using Redis action token store")
        return RedisTokenStore(redis_client)
    logger.warning("Using in-memory action token store; tokens are not shared between instances")
    return MemoryTokenStore()
