"""
Base service class for scoreboard services.

Provides async database session management and bounded retry with
exponential backoff for storage operations.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from scoreboard.config import Config
from scoreboard.utils.scoreboard_exceptions import StorageUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar('T')

# IntegrityError covers two writers racing to create the same first row;
# the retry then finds the row and updates it.
TRANSIENT_ERRORS = (OperationalError, IntegrityError, ConnectionError, asyncio.TimeoutError)


def is_transient(error: BaseException) -> bool:
    if isinstance(error, TRANSIENT_ERRORS):
        return True
    return isinstance(error, DBAPIError) and error.connection_invalidated


class BaseService:
    """Base class for all services with async database session management."""

    def __init__(self, session_factory, max_retries: Optional[int] = None,
                 retry_base_delay: Optional[float] = None):
        """
        Initialize base service with session factory.

        Args:
            session_factory: Async session factory from the Database class
            max_retries: Attempts per storage operation before giving up
            retry_base_delay: First backoff delay in seconds, doubled per attempt
        """
        self.session_factory = session_factory
        self.max_retries = max_retries if max_retries is not None else Config.LEDGER_MAX_RETRIES
        self.retry_base_delay = retry_base_delay if retry_base_delay is not None else Config.LEDGER_RETRY_BASE_DELAY

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide a transactional scope for async database operations."""
        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def execute_with_retry(self, func: Callable[[], Awaitable[T]], operation: str = None) -> T:
        """Execute a storage operation, retrying transient failures with exponential backoff.

        Domain errors propagate immediately. When every attempt fails with a
        transient error, StorageUnavailableError is raised.
        """
        operation = operation or getattr(func, '__name__', 'storage operation')
        attempts = max(1, self.max_retries)
        for attempt in range(attempts):
            try:
                return await func()
            except Exception as e:
                if not is_transient(e):
                    raise
                if attempt == attempts - 1:
                    logger.error(f"{operation} failed after {attempts} attempts: {e}")
                    raise StorageUnavailableError(operation, attempts, str(e)) from e
                delay = self.retry_base_delay * (2 ** attempt)
                logger.warning(f"Retry attempt {attempt + 1} for {operation} in {delay:.2f}s: {e}")
                await asyncio.sleep(delay)
