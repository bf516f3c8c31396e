"""Decision transactions for application review.

Every decision is one transaction: a conditional UPDATE that only matches
while the application is still in a status the transition accepts, then
the audit insert. When two moderators decide at once, the second UPDATE
matches nothing, the re-read sees the first decision and the caller gets
ALREADY. Nothing is checked outside the transaction that writes.

Claims are advisory. A reviewer may decide an application someone else has
claimed; callers surface ClaimManager.guard_against_other_owner() as a
warning instead of refusing.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from gatekeeper.db.models import Application, utcnow
from gatekeeper.db.repository import ApplicationRepository
from gatekeeper.utils.constants import REVIEW_SETTINGS
from .audit import AuditLog
from .base import ReviewComponent
from .cache import OpenApplicationsCache
from .events import StatusNotifier
from .types import (
    ApplicationStatus,
    DecisionKind,
    DecisionResult,
    ReviewActionType,
    ReviewInputError,
    StatusChange,
    UnblockOutcome,
    UnblockResult
)

logger = logging.getLogger('Gatekeeper')

_OPEN = (ApplicationStatus.SUBMITTED.value, ApplicationStatus.NEEDS_INFO.value)

@dataclass(frozen=True)
class Transition:
    action: ReviewActionType
    from_statuses: Tuple[str, ...]
    to_status: ApplicationStatus
    terminal: bool = True

APPROVE = Transition(ReviewActionType.APPROVE, _OPEN, ApplicationStatus.APPROVED)
REJECT = Transition(ReviewActionType.REJECT, _OPEN, ApplicationStatus.REJECTED)
# Permanent rejection is allowed from any non-terminal status, draft included
PERMANENT_REJECT = Transition(
    ReviewActionType.PERMANENT_REJECT,
    (ApplicationStatus.DRAFT.value,) + _OPEN,
    ApplicationStatus.REJECTED
)
KICK = Transition(ReviewActionType.KICK, _OPEN, ApplicationStatus.KICKED)
REQUEST_INFO = Transition(
    ReviewActionType.NEEDS_INFO,
    (ApplicationStatus.SUBMITTED.value,),
    ApplicationStatus.NEEDS_INFO,
    terminal=False
)

def clean_reason(reason: Optional[str]) -> Optional[str]:
    """Strip an optional reason; blank becomes None"""
    cleaned = (reason or '').strip()
    if len(cleaned) > REVIEW_SETTINGS['REASON_MAX_LENGTH']:
        raise ReviewInputError(
            f"Reason is too long (max {REVIEW_SETTINGS['REASON_MAX_LENGTH']} characters)"
        )
    return cleaned or None

class DecisionEngine(ReviewComponent):
    """Commits approve / reject / permanent reject / kick / needs info / unblock"""

    def __init__(self, session_factory, cache: Optional[OpenApplicationsCache] = None,
                 notifier: Optional[StatusNotifier] = None):
        super().__init__(session_factory, cache)
        self.notifier = notifier or StatusNotifier()

    async def approve(self, guild_id: str, application_id: str, actor_id: str,
                      reason: Optional[str] = None) -> DecisionResult:
        return await self._decide(APPROVE, guild_id, application_id, actor_id, clean_reason(reason))

    async def reject(self, guild_id: str, application_id: str, actor_id: str,
                     reason: Optional[str], permanent: bool = False) -> DecisionResult:
        """Reject; permanent=True also blocks every future application from the user"""
        reason = clean_reason(self.require_reason(reason, 'reject'))
        transition = PERMANENT_REJECT if permanent else REJECT
        return await self._decide(transition, guild_id, application_id, actor_id, reason)

    async def kick(self, guild_id: str, application_id: str, actor_id: str,
                   reason: Optional[str] = None) -> DecisionResult:
        return await self._decide(KICK, guild_id, application_id, actor_id, clean_reason(reason))

    async def request_info(self, guild_id: str, application_id: str, actor_id: str,
                           reason: Optional[str]) -> DecisionResult:
        """Send a submitted application back to the applicant; claims are left alone"""
        reason = clean_reason(self.require_reason(reason, 'request information on'))
        return await self._decide(REQUEST_INFO, guild_id, application_id, actor_id, reason)

    async def _decide(self, transition: Transition, guild_id: str, application_id: str,
                      actor_id: str, reason: Optional[str]) -> DecisionResult:
        application_id = self.require_application_id(application_id)
        operation = transition.action.value

        async with self.transaction(operation, application_id, guild_id, actor_id) as session:
            applications = ApplicationRepository(session)
            now = utcnow()

            values = {'status': transition.to_status.value}
            if transition.terminal:
                values.update(decided_at=now, decided_by=actor_id, decision_reason=reason)
            if transition is PERMANENT_REJECT:
                values.update(permanently_rejected=True, permanent_reject_at=now)

            changed = await applications.update_where(
                application_id,
                guild_id,
                [Application.status.in_(transition.from_statuses)],
                values
            )
            app = await applications.load(application_id, guild_id)

            if not changed:
                result = self._classify_refusal(transition, app)
                logger.info(
                    f"{operation} on {application_id} by {actor_id}: {result.kind.value} "
                    f"(status={result.status})"
                )
                return result

            action = await AuditLog.record(
                session, application_id, actor_id, transition.action, reason=reason, at=now
            )
            change = StatusChange(
                application_id=application_id,
                guild_id=guild_id,
                user_id=app.user_id,
                status=transition.to_status.value,
                action=operation,
                actor_id=actor_id,
                reason=reason,
                review_action_id=action.id,
                occurred_at=now
            )

        logger.info(
            f"Application {application_id} -> {change.status} by {actor_id} "
            f"(action={operation}, review_action={change.review_action_id})"
        )
        await self.invalidate(guild_id)
        await self.notifier.publish(change)
        return DecisionResult(
            DecisionKind.OK,
            status=change.status,
            review_action_id=change.review_action_id,
            change=change
        )

    @staticmethod
    def _classify_refusal(transition: Transition, app: Optional[Application]) -> DecisionResult:
        if app is None:
            return DecisionResult(DecisionKind.NOT_FOUND)
        status = ApplicationStatus(app.status)
        if status.is_terminal or status is transition.to_status:
            return DecisionResult(DecisionKind.ALREADY, status=status.value)
        return DecisionResult(DecisionKind.INVALID, status=status.value)

    async def unblock(self, guild_id: str, application_id: str, actor_id: str,
                      reason: Optional[str] = None) -> UnblockResult:
        """Lift a permanent rejection. The status stays rejected."""
        application_id = self.require_application_id(application_id)
        reason = clean_reason(reason)

        async with self.transaction('unblock', application_id, guild_id, actor_id) as session:
            applications = ApplicationRepository(session)

            app = await applications.load(application_id, guild_id, for_update=True)
            if app is None:
                return UnblockResult(UnblockOutcome.APP_NOT_FOUND)
            if not app.permanently_rejected:
                return UnblockResult(UnblockOutcome.NOT_BLOCKED)

            blocked_at = app.permanent_reject_at
            changed = await applications.update_where(
                application_id,
                guild_id,
                [Application.permanently_rejected.is_(True)],
                {'permanently_rejected': False, 'permanent_reject_at': None}
            )
            if not changed:
                return UnblockResult(UnblockOutcome.NOT_BLOCKED)

            action = await AuditLog.record(
                session,
                application_id,
                actor_id,
                ReviewActionType.UNBLOCK,
                reason=reason,
                meta={'permanent_reject_at': blocked_at.isoformat() if blocked_at else None}
            )

        logger.info(f"Permanent rejection on {application_id} lifted by {actor_id}")
        await self.invalidate(guild_id)
        return UnblockResult(UnblockOutcome.OK, review_action_id=action.id)
