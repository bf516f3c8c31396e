"""Tests for the reply text the review cog builds from results"""

from datetime import timedelta

import pytest

from gatekeeper.cogs.review import (
    action_line,
    claim_message,
    decision_message,
    has_role,
    reapply_message,
    unblock_message,
    unclaim_message
)
from gatekeeper.db.models import ReviewAction, utcnow
from gatekeeper.utils.ids import short_code
from gatekeeper.review.types import (
    ClaimInfo,
    ClaimOutcome,
    ClaimResult,
    DecisionKind,
    DecisionResult,
    ReapplyBlock,
    ReapplyVerdict,
    UnblockOutcome,
    UnblockResult
)

class FakeRole:
    def __init__(self, name):
        self.name = name

class FakeMember:
    def __init__(self, *roles):
        self.id = 1234
        self.roles = [FakeRole(name) for name in roles]

def claim_by(reviewer_id):
    return ClaimInfo(application_id="app-1", reviewer_id=reviewer_id, claimed_at=utcnow())

class TestRoleCheck:
    def test_matching_role(self):
        assert has_role(FakeMember("@everyone", "Moderator"), ["Gatekeeper", "Moderator"])

    def test_no_matching_role(self):
        assert not has_role(FakeMember("@everyone"), ["Moderator"])

    def test_member_without_roles(self):
        assert not has_role(object(), ["Moderator"])

class TestClaimMessages:
    def test_ok(self):
        assert "ABC123" in claim_message(ClaimResult(ClaimOutcome.OK, claim=claim_by("1")), "ABC123", "1")

    def test_already_claimed_by_someone_else(self):
        message = claim_message(ClaimResult(ClaimOutcome.ALREADY_CLAIMED, claim=claim_by("9")), "ABC123", "1")
        assert "<@9>" in message

    def test_already_claimed_by_you(self):
        message = claim_message(ClaimResult(ClaimOutcome.ALREADY_CLAIMED, claim=claim_by("1")), "ABC123", "1")
        assert "already hold" in message

    def test_invalid_status(self):
        message = claim_message(ClaimResult(ClaimOutcome.INVALID_STATUS, status="approved"), "ABC123", "1")
        assert "approved" in message

    def test_unclaim_not_owner(self):
        message = unclaim_message(ClaimResult(ClaimOutcome.NOT_OWNER, claim=claim_by("9")), "ABC123")
        assert "<@9>" in message

class TestDecisionMessages:
    @pytest.mark.parametrize("action", ["approve", "reject", "permanent_reject", "kick", "needs_info"])
    def test_every_action_has_a_success_message(self, action):
        assert "ABC123" in decision_message(DecisionResult(DecisionKind.OK), "ABC123", action)

    def test_already(self):
        message = decision_message(DecisionResult(DecisionKind.ALREADY, status="rejected"), "ABC123", "approve")
        assert "already `rejected`" in message

    def test_invalid_and_not_found_differ(self):
        invalid = decision_message(DecisionResult(DecisionKind.INVALID, status="draft"), "ABC123", "approve")
        missing = decision_message(DecisionResult(DecisionKind.NOT_FOUND), "ABC123", "approve")
        assert invalid != missing
        assert "draft" in invalid

    @pytest.mark.parametrize("outcome", list(UnblockOutcome))
    def test_unblock_messages(self, outcome):
        assert unblock_message(UnblockResult(outcome), "ABC123")

class TestReapplyMessages:
    def test_allowed(self):
        assert "may submit" in reapply_message(ReapplyVerdict(True), 42)

    def test_cooldown_uses_discord_timestamp(self):
        retry_at = utcnow() + timedelta(hours=3)
        message = reapply_message(ReapplyVerdict(False, ReapplyBlock.COOLDOWN, retry_at=retry_at), 42)
        assert f"<t:{int(retry_at.timestamp())}:R>" in message

    @pytest.mark.parametrize("reason", [ReapplyBlock.PERMANENTLY_REJECTED, ReapplyBlock.PENDING_APPLICATION])
    def test_blocked(self, reason):
        assert "<@42>" in reapply_message(ReapplyVerdict(False, reason), 42)

class TestActionLines:
    def make_action(self, reason=None):
        return ReviewAction(
            application_id="00000000-0000-0000-0000-000000000000",
            actor_id="77",
            action="reject",
            reason=reason,
            created_at=utcnow()
        )

    def test_plain_line(self):
        line = action_line(self.make_action())
        assert line.startswith("<@77> <t:")
        assert "\n" not in line

    def test_reason_on_second_line(self):
        assert action_line(self.make_action("Incomplete")).endswith("\nIncomplete")

    def test_moderator_history_shows_code(self):
        line = action_line(self.make_action(), with_code=True)
        assert line.startswith(f"`{short_code('00000000-0000-0000-0000-000000000000')}` · <@77>")
