"""Applicant side of the state machine: opening drafts and submitting them"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError

from gatekeeper.db.models import Application, utcnow
from gatekeeper.db.repository import ApplicationRepository
from gatekeeper.utils.ids import new_application_id, short_code
from .audit import AuditLog
from .base import ReviewComponent
from .cache import OpenApplicationsCache
from .events import StatusNotifier
from .reapply import ReapplicationPolicy
from .types import (
    ApplicationStatus,
    DecisionKind,
    DecisionResult,
    DraftResult,
    ReapplyBlock,
    ReviewActionType,
    StatusChange
)

logger = logging.getLogger('Gatekeeper')

class Intake(ReviewComponent):
    def __init__(self, session_factory, cache: Optional[OpenApplicationsCache] = None,
                 notifier: Optional[StatusNotifier] = None):
        super().__init__(session_factory, cache)
        self.notifier = notifier or StatusNotifier()

    async def open_draft(self, guild_id: str, user_id: str, cooldown_hours: float) -> DraftResult:
        """Return the user's draft, creating one if the reapplication policy allows it.

        A permanent block wins over an existing draft. Otherwise an existing
        draft is handed back as is. Two concurrent calls for the same user
        collide on the one-draft index; the loser returns the winner's draft.
        """
        try:
            return await self._open_draft(guild_id, user_id, cooldown_hours, (IntegrityError,))
        except IntegrityError:
            logger.info(f"Concurrent draft for {user_id} in {guild_id}, returning the existing one")
            return await self._open_draft(guild_id, user_id, cooldown_hours)

    async def _open_draft(self, guild_id: str, user_id: str, cooldown_hours: float,
                          passthrough=()) -> DraftResult:
        async with self.transaction('open_draft', guild_id=guild_id, actor_id=user_id,
                                    passthrough=passthrough) as session:
            applications = ApplicationRepository(session)
            verdict = await ReapplicationPolicy.evaluate(
                applications, guild_id, user_id, cooldown_hours, utcnow()
            )

            if verdict.reason is ReapplyBlock.PERMANENTLY_REJECTED:
                logger.info(f"Draft refused for {user_id} in {guild_id}: permanently rejected")
                return DraftResult(created=False, verdict=verdict)

            draft = await applications.find_draft(guild_id, user_id)
            if draft is not None:
                return DraftResult(
                    created=False,
                    application_id=draft.id,
                    short_code=draft.short_code,
                    verdict=verdict
                )

            if not verdict.allowed:
                logger.info(f"Draft refused for {user_id} in {guild_id}: {verdict.reason.value}")
                return DraftResult(created=False, verdict=verdict)

            application_id = new_application_id()
            app = await applications.add(Application(
                id=application_id,
                short_code=short_code(application_id),
                guild_id=guild_id,
                user_id=user_id,
                status=ApplicationStatus.DRAFT.value,
                created_at=utcnow()
            ))

        logger.info(f"Draft {app.short_code} ({app.id}) opened for {user_id} in guild {guild_id}")
        return DraftResult(created=True, application_id=app.id, short_code=app.short_code, verdict=verdict)

    async def submit(self, guild_id: str, application_id: str, user_id: str) -> DecisionResult:
        """draft -> submitted, or needs_info -> submitted (resubmit). Applicant only."""
        application_id = self.require_application_id(application_id)

        async with self.transaction('submit', application_id, guild_id, user_id) as session:
            applications = ApplicationRepository(session)

            app = await applications.load(application_id, guild_id, for_update=True)
            if app is None or app.user_id != user_id:
                return DecisionResult(DecisionKind.NOT_FOUND)

            status = ApplicationStatus(app.status)
            if status is ApplicationStatus.SUBMITTED:
                return DecisionResult(DecisionKind.ALREADY, status=status.value)
            if status not in (ApplicationStatus.DRAFT, ApplicationStatus.NEEDS_INFO):
                return DecisionResult(DecisionKind.INVALID, status=status.value)

            now = utcnow()
            values = {'status': ApplicationStatus.SUBMITTED.value}
            if status is ApplicationStatus.DRAFT:
                values['submitted_at'] = now
                action_type = ReviewActionType.SUBMIT
            else:
                action_type = ReviewActionType.RESUBMIT

            changed = await applications.update_where(
                application_id,
                guild_id,
                [Application.status == status.value, Application.user_id == user_id],
                values
            )
            if not changed:
                return DecisionResult(DecisionKind.ALREADY, status=ApplicationStatus.SUBMITTED.value)

            action = await AuditLog.record(session, application_id, user_id, action_type, at=now)
            change = StatusChange(
                application_id=application_id,
                guild_id=guild_id,
                user_id=user_id,
                status=ApplicationStatus.SUBMITTED.value,
                action=action_type.value,
                actor_id=user_id,
                reason=None,
                review_action_id=action.id,
                occurred_at=now
            )

        logger.info(f"Application {application_id} {action_type.value} by {user_id}")
        await self.invalidate(guild_id)
        await self.notifier.publish(change)
        return DecisionResult(
            DecisionKind.OK,
            status=change.status,
            review_action_id=change.review_action_id,
            change=change
        )
