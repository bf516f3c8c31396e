import logging
from contextlib import asynccontextmanager
from typing import Optional, Tuple, Type, AsyncIterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gatekeeper.utils.ids import parse_application_id
from .cache import OpenApplicationsCache
from .types import ReviewInputError, ReviewStorageError

logger = logging.getLogger('Gatekeeper')

class ReviewComponent:
    """Shared plumbing: one transaction per operation, cache invalidation after commit"""

    def __init__(self, session_factory: async_sessionmaker,
                 cache: Optional[OpenApplicationsCache] = None):
        self.session_factory = session_factory
        self.cache = cache

    @staticmethod
    def require_application_id(value) -> str:
        application_id = parse_application_id(value)
        if application_id is None:
            raise ReviewInputError(f"'{value}' is not a valid application id")
        return application_id

    @staticmethod
    def require_reason(reason: Optional[str], action: str) -> str:
        cleaned = (reason or '').strip()
        if not cleaned:
            raise ReviewInputError(f"A reason is required to {action} an application")
        return cleaned

    @asynccontextmanager
    async def transaction(self, operation: str, application_id: Optional[str] = None,
                          guild_id: Optional[str] = None, actor_id: Optional[str] = None,
                          passthrough: Tuple[Type[BaseException], ...] = ()) -> AsyncIterator[AsyncSession]:
        """Run the body in one committed transaction.

        Database errors other than those in passthrough are logged with the
        request context and re-raised as ReviewStorageError.
        """
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    yield session
        except passthrough:
            raise
        except SQLAlchemyError as e:
            logger.error(
                f"Storage failure during {operation} "
                f"(application={application_id}, guild={guild_id}, actor={actor_id}): {e}",
                exc_info=True
            )
            raise ReviewStorageError(
                f"Storage failure during {operation}", operation, application_id
            ) from e

    async def invalidate(self, guild_id: str) -> None:
        if self.cache is not None:
            await self.cache.invalidate(guild_id)
