"""Append-only review audit log"""

import logging
from datetime import datetime
from typing import Optional, List, Dict, Any, Union

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.exc import SQLAlchemyError

from gatekeeper.db.models import Application, ReviewAction, utcnow
from gatekeeper.utils.constants import REVIEW_SETTINGS
from .types import ReviewActionType, ReviewStorageError

logger = logging.getLogger('Gatekeeper')

class AuditLog:
    """Writes happen inside the caller's transaction; reads open their own session.

    Rows are never updated or deleted.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    @staticmethod
    async def record(session: AsyncSession,
                     application_id: str,
                     actor_id: str,
                     action: Union[ReviewActionType, str],
                     reason: Optional[str] = None,
                     meta: Optional[Dict[str, Any]] = None,
                     at: Optional[datetime] = None) -> ReviewAction:
        """Add one audit row to the open transaction and return it with its id"""
        row = ReviewAction(
            application_id=application_id,
            actor_id=actor_id,
            action=ReviewActionType(action).value,
            reason=reason,
            meta=meta,
            created_at=at or utcnow()
        )
        session.add(row)
        await session.flush()
        return row

    async def history(self, application_id: str,
                      limit: int = REVIEW_SETTINGS['HISTORY_LIMIT']) -> List[ReviewAction]:
        """Recent actions on an application, newest first"""
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(ReviewAction)
                    .where(ReviewAction.application_id == application_id)
                    .order_by(ReviewAction.created_at.desc(), ReviewAction.id.desc())
                    .limit(limit)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving history for {application_id}: {e}", exc_info=True)
            raise ReviewStorageError("Could not read review history", "history", application_id) from e

    async def for_actor(self, guild_id: str, actor_id: str,
                        limit: int = REVIEW_SETTINGS['ACTOR_HISTORY_LIMIT']) -> List[ReviewAction]:
        """Recent actions by one moderator within a guild, newest first"""
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(ReviewAction)
                    .join(Application, Application.id == ReviewAction.application_id)
                    .where(Application.guild_id == guild_id, ReviewAction.actor_id == actor_id)
                    .order_by(ReviewAction.created_at.desc(), ReviewAction.id.desc())
                    .limit(limit)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving actions by {actor_id} in {guild_id}: {e}", exc_info=True)
            raise ReviewStorageError("Could not read moderator history", "for_actor") from e

    async def count(self, application_id: str,
                    action: Optional[Union[ReviewActionType, str]] = None) -> int:
        try:
            async with self.session_factory() as session:
                query = select(func.count(ReviewAction.id)).where(
                    ReviewAction.application_id == application_id
                )
                if action is not None:
                    query = query.where(ReviewAction.action == ReviewActionType(action).value)
                result = await session.execute(query)
                return int(result.scalar() or 0)
        except SQLAlchemyError as e:
            logger.error(f"Error counting actions for {application_id}: {e}", exc_info=True)
            raise ReviewStorageError("Could not count review actions", "count", application_id) from e
