"""Entry point the cogs talk to.

ReviewService resolves what a moderator typed (UUID or short code) to an
application inside the current guild and hands it to the component that
owns the operation.
"""

import logging
from datetime import datetime
from typing import Optional, List, Union
import uuid

import redis.asyncio as redis
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from gatekeeper.db.models import Application, ensure_utc
from gatekeeper.db.repository import ApplicationRepository
from gatekeeper.utils.constants import CACHE_SETTINGS, REVIEW_SETTINGS
from gatekeeper.utils.ids import normalize_code, parse_application_id
from .audit import AuditLog
from .cache import OpenApplicationsCache
from .claims import ClaimManager
from .decisions import DecisionEngine
from .events import StatusNotifier
from .intake import Intake
from .reapply import ReapplicationPolicy
from .types import DraftResult, OpenApplication, ReapplyVerdict, ReviewInputError, ReviewStorageError

logger = logging.getLogger('Gatekeeper')

def _iso(value: Optional[datetime]) -> Optional[str]:
    return ensure_utc(value).isoformat() if value else None

class ReviewService:
    def __init__(self, session_factory: async_sessionmaker,
                 redis_client: Optional[redis.Redis] = None,
                 cooldown_hours: float = REVIEW_SETTINGS['REAPPLY_COOLDOWN_HOURS'],
                 cache_ttl: int = CACHE_SETTINGS['OPEN_APPS_TTL'],
                 notifier: Optional[StatusNotifier] = None):
        self.session_factory = session_factory
        self.cooldown_hours = cooldown_hours
        self.notifier = notifier or StatusNotifier()
        self.cache = OpenApplicationsCache(redis_client, ttl=cache_ttl)

        self.audit = AuditLog(session_factory)
        self.claims = ClaimManager(session_factory, self.cache)
        self.decisions = DecisionEngine(session_factory, self.cache, self.notifier)
        self.reapply = ReapplicationPolicy(session_factory)
        self.intake = Intake(session_factory, self.cache, self.notifier)

    async def resolve(self, guild_id: str, ref: Union[str, uuid.UUID]) -> Optional[Application]:
        """Find an application in guild_id by UUID or short code.

        Raises ReviewInputError when ref is neither. Returns None when it is
        well formed but matches nothing in this guild.
        """
        application_id = parse_application_id(ref)
        code = None if application_id else normalize_code(ref)
        if not application_id and not code:
            raise ReviewInputError(f"'{ref}' is not an application code or id")

        try:
            async with self.session_factory() as session:
                applications = ApplicationRepository(session)
                if application_id:
                    return await applications.load(application_id, guild_id)
                return await applications.find_by_short_code(guild_id, code)
        except SQLAlchemyError as e:
            logger.error(f"Error resolving '{ref}' in guild {guild_id}: {e}", exc_info=True)
            raise ReviewStorageError("Could not resolve application", "resolve") from e

    async def resolve_id(self, guild_id: str, ref: Union[str, uuid.UUID]) -> Optional[str]:
        app = await self.resolve(guild_id, ref)
        return app.id if app else None

    async def find_pending_by_user(self, guild_id: str, user_id: str) -> Optional[Application]:
        """The applicant's submitted or needs_info application, if any"""
        try:
            async with self.session_factory() as session:
                return await ApplicationRepository(session).find_pending_by_user(guild_id, user_id)
        except SQLAlchemyError as e:
            raise ReviewStorageError("Could not look up pending application", "find_pending_by_user") from e

    async def list_open(self, guild_id: str, reviewer_id: Optional[str] = None) -> List[OpenApplication]:
        """Open applications in a guild, oldest first; reviewer_id narrows to that reviewer's claims"""
        rows = await self.cache.get_or_load(guild_id, lambda: self._load_open(guild_id))
        if reviewer_id is not None:
            rows = [row for row in rows if row.reviewer_id == reviewer_id]
        return rows

    async def _load_open(self, guild_id: str) -> List[OpenApplication]:
        try:
            async with self.session_factory() as session:
                rows = await ApplicationRepository(session).list_open(guild_id)
        except SQLAlchemyError as e:
            raise ReviewStorageError("Could not list open applications", "list_open") from e

        return [
            OpenApplication(
                application_id=app.id,
                short_code=app.short_code,
                user_id=app.user_id,
                status=app.status,
                created_at=_iso(app.created_at),
                submitted_at=_iso(app.submitted_at),
                reviewer_id=claim.reviewer_id if claim else None,
                claimed_at=_iso(claim.claimed_at) if claim else None
            )
            for app, claim in rows
        ]

    async def can_reapply(self, guild_id: str, user_id: str,
                          now: Optional[datetime] = None) -> ReapplyVerdict:
        return await self.reapply.can_reapply(guild_id, user_id, self.cooldown_hours, now)

    async def open_draft(self, guild_id: str, user_id: str) -> DraftResult:
        return await self.intake.open_draft(guild_id, user_id, self.cooldown_hours)
