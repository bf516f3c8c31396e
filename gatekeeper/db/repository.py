from datetime import datetime
from typing import Optional, List, Tuple, Dict, Any, Iterable
import logging
from sqlalchemy import select, update, delete, case
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError

from gatekeeper.utils.constants import OPEN_STATUSES, TERMINAL_STATUSES
from .models import Application, ReviewClaim, utcnow

logger = logging.getLogger('Gatekeeper')

class ApplicationRepository:
    """Point lookups and guarded writes for application rows.

    There is deliberately no generic update method. Writes go through
    update_where(), which only touches a row that still matches the
    caller's expected state and reports whether it did.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def load(self, application_id: str, guild_id: str,
                   for_update: bool = False) -> Optional[Application]:
        """Get an application by id, only if it belongs to guild_id"""
        query = select(Application).where(
            Application.id == application_id,
            Application.guild_id == guild_id
        )
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def find_by_short_code(self, guild_id: str, code: str) -> Optional[Application]:
        """Resolve a display code within one guild.

        Codes may collide; an open application wins over a decided one,
        then the newest wins.
        """
        try:
            result = await self.session.execute(
                select(Application)
                .where(Application.guild_id == guild_id, Application.short_code == code)
                .order_by(
                    case((Application.status.in_(TERMINAL_STATUSES), 1), else_=0),
                    Application.created_at.desc()
                )
                .limit(1)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Error resolving short code {code} in guild {guild_id}: {e}")
            raise

    async def find_pending_by_user(self, guild_id: str, user_id: str) -> Optional[Application]:
        """Get the applicant's current submitted or needs_info application"""
        try:
            result = await self.session.execute(
                select(Application)
                .where(
                    Application.guild_id == guild_id,
                    Application.user_id == user_id,
                    Application.status.in_(OPEN_STATUSES)
                )
                .order_by(Application.created_at.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving pending application for {user_id}: {e}")
            raise

    async def find_draft(self, guild_id: str, user_id: str) -> Optional[Application]:
        result = await self.session.execute(
            select(Application)
            .where(
                Application.guild_id == guild_id,
                Application.user_id == user_id,
                Application.status == 'draft'
            )
            .order_by(Application.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def latest_non_draft(self, guild_id: str, user_id: str) -> Optional[Application]:
        """Get the user's most recent application that got past draft"""
        result = await self.session.execute(
            select(Application)
            .where(
                Application.guild_id == guild_id,
                Application.user_id == user_id,
                Application.status != 'draft'
            )
            .order_by(Application.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def find_permanent_block(self, guild_id: str, user_id: str) -> Optional[Application]:
        """Get any permanently rejected application for the user"""
        result = await self.session.execute(
            select(Application)
            .where(
                Application.guild_id == guild_id,
                Application.user_id == user_id,
                Application.permanently_rejected.is_(True)
            )
            .order_by(Application.permanent_reject_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_open(self, guild_id: str) -> List[Tuple[Application, Optional[ReviewClaim]]]:
        """Get all open applications in a guild with their claim, oldest first"""
        try:
            result = await self.session.execute(
                select(Application, ReviewClaim)
                .outerjoin(ReviewClaim, ReviewClaim.application_id == Application.id)
                .where(
                    Application.guild_id == guild_id,
                    Application.status.in_(OPEN_STATUSES)
                )
                .order_by(Application.submitted_at.asc(), Application.created_at.asc())
            )
            return [(row[0], row[1]) for row in result.all()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing open applications for guild {guild_id}: {e}")
            raise

    async def add(self, application: Application) -> Application:
        self.session.add(application)
        await self.session.flush()
        return application

    async def update_where(self, application_id: str, guild_id: str,
                           criteria: Iterable, values: Dict[str, Any]) -> bool:
        """Compare-and-swap update: apply values only if criteria still hold.

        Returns True when exactly one row changed. The caller must run this
        inside the same transaction as the audit insert it pairs with.
        """
        result = await self.session.execute(
            update(Application)
            .where(
                Application.id == application_id,
                Application.guild_id == guild_id,
                *criteria
            )
            .values(updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

class ClaimRepository:
    """Rows of the review_claims table"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, application_id: str) -> Optional[ReviewClaim]:
        try:
            result = await self.session.execute(
                select(ReviewClaim).where(ReviewClaim.application_id == application_id)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving claim for {application_id}: {e}")
            raise

    async def insert(self, application_id: str, reviewer_id: str,
                     claimed_at: datetime) -> ReviewClaim:
        """Insert a claim; raises IntegrityError if one raced in first"""
        claim = ReviewClaim(
            application_id=application_id,
            reviewer_id=reviewer_id,
            claimed_at=claimed_at
        )
        self.session.add(claim)
        await self.session.flush()
        return claim

    async def delete_owned(self, application_id: str, reviewer_id: str) -> bool:
        """Delete the claim only if reviewer_id holds it"""
        result = await self.session.execute(
            delete(ReviewClaim)
            .where(
                ReviewClaim.application_id == application_id,
                ReviewClaim.reviewer_id == reviewer_id
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def delete_any(self, application_id: str) -> bool:
        result = await self.session.execute(
            delete(ReviewClaim)
            .where(ReviewClaim.application_id == application_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
