import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from gatekeeper.db.models import Application, ensure_utc, utcnow
from gatekeeper.db.repository import ApplicationRepository
from .types import ApplicationStatus, ReapplyBlock, ReapplyVerdict, ReviewStorageError

logger = logging.getLogger('Gatekeeper')

class ReapplicationPolicy:
    """Decides whether a user may open a new application in a guild"""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def can_reapply(self, guild_id: str, user_id: str, cooldown_hours: float,
                          now: Optional[datetime] = None) -> ReapplyVerdict:
        """Check, in order: permanent block, pending application, cooldown.

        Approved users and users without any history are allowed.
        """
        if cooldown_hours < 0:
            raise ValueError("cooldown_hours must not be negative")
        now = ensure_utc(now) if now else utcnow()

        try:
            async with self.session_factory() as session:
                return await self.evaluate(
                    ApplicationRepository(session), guild_id, user_id, cooldown_hours, now
                )
        except SQLAlchemyError as e:
            logger.error(f"Error checking reapplication for {user_id} in {guild_id}: {e}", exc_info=True)
            raise ReviewStorageError("Could not check reapplication", "can_reapply") from e

    @staticmethod
    async def evaluate(applications: ApplicationRepository, guild_id: str, user_id: str,
                       cooldown_hours: float, now: datetime) -> ReapplyVerdict:
        """Run the checks on an open session; Intake calls this inside its own transaction"""
        blocked = await applications.find_permanent_block(guild_id, user_id)
        if blocked is not None:
            return ReapplyVerdict(False, ReapplyBlock.PERMANENTLY_REJECTED, application_id=blocked.id)

        latest = await applications.latest_non_draft(guild_id, user_id)
        if latest is None:
            return ReapplyVerdict(True)

        status = ApplicationStatus(latest.status)
        if status in (ApplicationStatus.SUBMITTED, ApplicationStatus.NEEDS_INFO):
            return ReapplyVerdict(False, ReapplyBlock.PENDING_APPLICATION, application_id=latest.id)

        if status in (ApplicationStatus.REJECTED, ApplicationStatus.KICKED):
            retry_at = _cooldown_end(latest, cooldown_hours)
            if now < retry_at:
                return ReapplyVerdict(
                    False,
                    ReapplyBlock.COOLDOWN,
                    retry_at=retry_at,
                    application_id=latest.id
                )

        return ReapplyVerdict(True, application_id=latest.id)

def _cooldown_end(app: Application, cooldown_hours: float) -> datetime:
    decided = app.decided_at or app.updated_at or app.created_at
    return ensure_utc(decided) + timedelta(hours=cooldown_hours)
