"""Outcome types shared by the review components.

Expected outcomes (already claimed, already decided, not found...) are
returned as values. Only bad input and storage faults are raised.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any

class ApplicationStatus(str, Enum):
    DRAFT = 'draft'
    SUBMITTED = 'submitted'
    NEEDS_INFO = 'needs_info'
    APPROVED = 'approved'
    REJECTED = 'rejected'
    KICKED = 'kicked'

    @property
    def is_terminal(self) -> bool:
        return self in (ApplicationStatus.APPROVED, ApplicationStatus.REJECTED, ApplicationStatus.KICKED)

class ReviewActionType(str, Enum):
    """Audit tags. Append only: existing values are never renamed or removed."""
    SUBMIT = 'submit'
    RESUBMIT = 'resubmit'
    CLAIM = 'claim'
    UNCLAIM = 'unclaim'
    FORCE_UNCLAIM = 'force_unclaim'
    APPROVE = 'approve'
    REJECT = 'reject'
    PERMANENT_REJECT = 'permanent_reject'
    KICK = 'kick'
    NEEDS_INFO = 'needs_info'
    UNBLOCK = 'unblock'

class ClaimOutcome(str, Enum):
    OK = 'ok'
    ALREADY_CLAIMED = 'already_claimed'
    NOT_CLAIMED = 'not_claimed'
    NOT_OWNER = 'not_owner'
    INVALID_STATUS = 'invalid_status'
    APP_NOT_FOUND = 'app_not_found'

class DecisionKind(str, Enum):
    OK = 'ok'
    ALREADY = 'already'
    NOT_FOUND = 'not_found'
    INVALID = 'invalid'

class UnblockOutcome(str, Enum):
    OK = 'ok'
    NOT_BLOCKED = 'not_blocked'
    APP_NOT_FOUND = 'app_not_found'

class ReapplyBlock(str, Enum):
    PERMANENTLY_REJECTED = 'permanently_rejected'
    PENDING_APPLICATION = 'pending_application'
    COOLDOWN = 'cooldown'

@dataclass(frozen=True)
class ClaimInfo:
    application_id: str
    reviewer_id: str
    claimed_at: datetime

@dataclass(frozen=True)
class StatusChange:
    """A committed transition, published for notification collaborators"""
    application_id: str
    guild_id: str
    user_id: str
    status: str
    action: str
    actor_id: str
    reason: Optional[str]
    review_action_id: int
    occurred_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            'application_id': self.application_id,
            'guild_id': self.guild_id,
            'user_id': self.user_id,
            'status': self.status,
            'action': self.action,
            'actor_id': self.actor_id,
            'reason': self.reason,
            'review_action_id': self.review_action_id,
            'occurred_at': self.occurred_at.isoformat()
        }

@dataclass(frozen=True)
class ClaimResult:
    outcome: ClaimOutcome
    # The claim after the call (OK) or the one in the way (ALREADY_CLAIMED, NOT_OWNER)
    claim: Optional[ClaimInfo] = None
    status: Optional[str] = None
    review_action_id: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.outcome is ClaimOutcome.OK

@dataclass(frozen=True)
class DecisionResult:
    kind: DecisionKind
    status: Optional[str] = None
    review_action_id: Optional[int] = None
    change: Optional[StatusChange] = None

    @property
    def ok(self) -> bool:
        return self.kind is DecisionKind.OK

@dataclass(frozen=True)
class UnblockResult:
    outcome: UnblockOutcome
    review_action_id: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.outcome is UnblockOutcome.OK

@dataclass(frozen=True)
class ReapplyVerdict:
    allowed: bool
    reason: Optional[ReapplyBlock] = None
    retry_at: Optional[datetime] = None
    application_id: Optional[str] = None

@dataclass(frozen=True)
class OpenApplication:
    """Row of the open-applications list, as cached per guild"""
    application_id: str
    short_code: str
    user_id: str
    status: str
    created_at: str
    submitted_at: Optional[str] = None
    reviewer_id: Optional[str] = None
    claimed_at: Optional[str] = None

@dataclass
class DraftResult:
    created: bool
    application_id: Optional[str] = None
    short_code: Optional[str] = None
    verdict: Optional[ReapplyVerdict] = field(default=None)

class ReviewError(Exception):
    """Base class for review failures that are raised rather than returned"""

class ReviewInputError(ReviewError, ValueError):
    """Request rejected before any transaction: blank reason, malformed id"""

class ReviewStorageError(ReviewError):
    """The database failed; the operation either fully committed or did nothing"""

    def __init__(self, message: str, operation: str, application_id: Optional[str] = None):
        self.message = message
        self.operation = operation
        self.application_id = application_id
        super().__init__(message)
