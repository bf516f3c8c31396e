"""Claim management for review applications.

A claim tells other reviewers that someone is already working on an
application. Claiming and unclaiming are exclusive; decisions are not gated
by claims (see decisions.py).
"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from gatekeeper.db.models import ReviewClaim, ensure_utc, utcnow
from gatekeeper.db.repository import ApplicationRepository, ClaimRepository
from gatekeeper.utils.constants import CLAIMABLE_STATUSES, REVIEW_MESSAGES
from .audit import AuditLog
from .base import ReviewComponent
from .types import (
    ClaimInfo,
    ClaimOutcome,
    ClaimResult,
    ReviewActionType,
    ReviewStorageError
)

logger = logging.getLogger('Gatekeeper')

def _info(claim: Optional[ReviewClaim]) -> Optional[ClaimInfo]:
    if claim is None:
        return None
    return ClaimInfo(
        application_id=claim.application_id,
        reviewer_id=claim.reviewer_id,
        claimed_at=ensure_utc(claim.claimed_at)
    )

class ClaimManager(ReviewComponent):
    """Grants and releases exclusive claims, one transaction per call"""

    async def claim(self, guild_id: str, application_id: str, reviewer_id: str) -> ClaimResult:
        """Claim an open application for reviewer_id.

        The claim row is keyed on the application id, so when two reviewers
        race, the second insert fails on the key and reports ALREADY_CLAIMED.
        """
        application_id = self.require_application_id(application_id)

        try:
            async with self.transaction('claim', application_id, guild_id, reviewer_id,
                                        passthrough=(IntegrityError,)) as session:
                result = await self._claim(session, guild_id, application_id, reviewer_id)
        except IntegrityError:
            winner = await self.get_claim(application_id)
            logger.warning(
                f"Claim race on {application_id}: {reviewer_id} lost to "
                f"{winner.reviewer_id if winner else 'unknown'}"
            )
            return ClaimResult(ClaimOutcome.ALREADY_CLAIMED, claim=winner)

        if result.ok:
            await self.invalidate(guild_id)
            logger.info(f"Application {application_id} claimed by {reviewer_id} in guild {guild_id}")
        return result

    async def _claim(self, session, guild_id: str, application_id: str,
                     reviewer_id: str) -> ClaimResult:
        applications = ApplicationRepository(session)
        claims = ClaimRepository(session)

        app = await applications.load(application_id, guild_id, for_update=True)
        if app is None:
            logger.debug(f"Claim: application {application_id} not found in guild {guild_id}")
            return ClaimResult(ClaimOutcome.APP_NOT_FOUND)

        if app.status not in CLAIMABLE_STATUSES:
            logger.debug(f"Claim: application {application_id} is {app.status}")
            return ClaimResult(ClaimOutcome.INVALID_STATUS, status=app.status)

        existing = await claims.get(application_id)
        if existing is not None:
            return ClaimResult(ClaimOutcome.ALREADY_CLAIMED, claim=_info(existing), status=app.status)

        now = utcnow()
        claim = await claims.insert(application_id, reviewer_id, now)
        action = await AuditLog.record(session, application_id, reviewer_id, ReviewActionType.CLAIM, at=now)
        return ClaimResult(
            ClaimOutcome.OK,
            claim=_info(claim),
            status=app.status,
            review_action_id=action.id
        )

    async def unclaim(self, guild_id: str, application_id: str, reviewer_id: str) -> ClaimResult:
        """Release reviewer_id's own claim"""
        application_id = self.require_application_id(application_id)

        async with self.transaction('unclaim', application_id, guild_id, reviewer_id) as session:
            applications = ApplicationRepository(session)
            claims = ClaimRepository(session)

            app = await applications.load(application_id, guild_id, for_update=True)
            if app is None:
                return ClaimResult(ClaimOutcome.APP_NOT_FOUND)

            if await claims.delete_owned(application_id, reviewer_id):
                action = await AuditLog.record(session, application_id, reviewer_id, ReviewActionType.UNCLAIM)
                result = ClaimResult(ClaimOutcome.OK, status=app.status, review_action_id=action.id)
            else:
                existing = await claims.get(application_id)
                if existing is None:
                    result = ClaimResult(ClaimOutcome.NOT_CLAIMED, status=app.status)
                else:
                    logger.warning(
                        f"Unclaim refused on {application_id}: held by {existing.reviewer_id}, "
                        f"requested by {reviewer_id}"
                    )
                    result = ClaimResult(ClaimOutcome.NOT_OWNER, claim=_info(existing), status=app.status)

        if result.ok:
            await self.invalidate(guild_id)
            logger.info(f"Application {application_id} unclaimed by {reviewer_id}")
        return result

    async def force_unclaim(self, guild_id: str, application_id: str, actor_id: str,
                            reason: Optional[str] = None) -> ClaimResult:
        """Admin override: release whoever holds the claim"""
        application_id = self.require_application_id(application_id)

        async with self.transaction('force_unclaim', application_id, guild_id, actor_id) as session:
            applications = ApplicationRepository(session)
            claims = ClaimRepository(session)

            app = await applications.load(application_id, guild_id, for_update=True)
            if app is None:
                return ClaimResult(ClaimOutcome.APP_NOT_FOUND)

            existing = _info(await claims.get(application_id))
            if existing is None or not await claims.delete_any(application_id):
                return ClaimResult(ClaimOutcome.NOT_CLAIMED, status=app.status)

            action = await AuditLog.record(
                session,
                application_id,
                actor_id,
                ReviewActionType.FORCE_UNCLAIM,
                reason=(reason or '').strip() or None,
                meta={
                    'previous_reviewer': existing.reviewer_id,
                    'claimed_at': existing.claimed_at.isoformat()
                }
            )

        await self.invalidate(guild_id)
        logger.warning(
            f"Claim on {application_id} held by {existing.reviewer_id} force-released by {actor_id}"
        )
        return ClaimResult(ClaimOutcome.OK, claim=existing, status=app.status, review_action_id=action.id)

    async def get_claim(self, application_id: str) -> Optional[ClaimInfo]:
        """Current claim, for display only; never used to gate a decision"""
        application_id = self.require_application_id(application_id)
        try:
            async with self.session_factory() as session:
                return _info(await ClaimRepository(session).get(application_id))
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving claim for {application_id}: {e}", exc_info=True)
            raise ReviewStorageError("Could not read claim", "get_claim", application_id) from e

    @staticmethod
    def guard_against_other_owner(claim: Optional[ClaimInfo], acting_user_id: str) -> Optional[str]:
        """Warning text when someone other than acting_user_id holds the claim"""
        if claim is not None and claim.reviewer_id != acting_user_id:
            return REVIEW_MESSAGES['CLAIM_WARNING'].format(reviewer=claim.reviewer_id)
        return None
