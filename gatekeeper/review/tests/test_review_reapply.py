"""Tests for ReapplicationPolicy"""

from datetime import timedelta

import pytest

from gatekeeper.db.models import utcnow
from gatekeeper.review.types import ReapplyBlock

GUILD = "guild-1"

class TestCanReapply:
    @pytest.mark.asyncio
    async def test_no_history_is_allowed(self, service):
        verdict = await service.reapply.can_reapply(GUILD, "newcomer", 24)
        assert verdict.allowed
        assert verdict.reason is None

    @pytest.mark.asyncio
    async def test_permanent_block_overrides_cooldown(self, service, make_app):
        ten_years_ago = utcnow() - timedelta(days=3650)
        await make_app(
            "rejected",
            user_id="banned",
            created_at=ten_years_ago,
            decided_at=ten_years_ago,
            permanently_rejected=True
        )

        verdict = await service.reapply.can_reapply(GUILD, "banned", 24)

        assert not verdict.allowed
        assert verdict.reason is ReapplyBlock.PERMANENTLY_REJECTED
        assert verdict.retry_at is None

    @pytest.mark.asyncio
    async def test_permanent_block_on_older_application_still_applies(self, service, make_app):
        old = utcnow() - timedelta(days=400)
        await make_app("rejected", user_id="u", created_at=old, decided_at=old, permanently_rejected=True)
        await make_app("approved", user_id="u", created_at=old + timedelta(days=1), decided_at=old + timedelta(days=1))

        verdict = await service.reapply.can_reapply(GUILD, "u", 24)

        assert verdict.reason is ReapplyBlock.PERMANENTLY_REJECTED

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["submitted", "needs_info"])
    async def test_pending_application_blocks(self, service, make_app, status):
        app = await make_app(status, user_id="waiting")

        verdict = await service.reapply.can_reapply(GUILD, "waiting", 24)

        assert not verdict.allowed
        assert verdict.reason is ReapplyBlock.PENDING_APPLICATION
        assert verdict.application_id == app.id

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["rejected", "kicked"])
    async def test_cooldown_after_rejection(self, service, make_app, status):
        decided = utcnow() - timedelta(hours=2)
        await make_app(status, user_id="u", created_at=decided - timedelta(hours=1), decided_at=decided)

        verdict = await service.reapply.can_reapply(GUILD, "u", 24)

        assert not verdict.allowed
        assert verdict.reason is ReapplyBlock.COOLDOWN
        assert verdict.retry_at == decided + timedelta(hours=24)

    @pytest.mark.asyncio
    async def test_allowed_once_cooldown_elapsed(self, service, make_app):
        decided = utcnow() - timedelta(hours=2)
        await make_app("rejected", user_id="u", created_at=decided, decided_at=decided)

        verdict = await service.reapply.can_reapply(GUILD, "u", 24, now=decided + timedelta(hours=24))

        assert verdict.allowed

    @pytest.mark.asyncio
    async def test_approved_user_is_allowed(self, service, make_app):
        await make_app("approved", user_id="u", decided_at=utcnow())
        verdict = await service.reapply.can_reapply(GUILD, "u", 24)
        assert verdict.allowed

    @pytest.mark.asyncio
    async def test_drafts_are_ignored(self, service, make_app):
        await make_app("draft", user_id="u")
        verdict = await service.reapply.can_reapply(GUILD, "u", 24)
        assert verdict.allowed

    @pytest.mark.asyncio
    async def test_other_guild_history_is_ignored(self, service, make_app):
        await make_app("rejected", guild_id="guild-2", user_id="u", decided_at=utcnow(), permanently_rejected=True)
        verdict = await service.reapply.can_reapply(GUILD, "u", 24)
        assert verdict.allowed

    @pytest.mark.asyncio
    async def test_zero_cooldown(self, service, make_app):
        await make_app("kicked", user_id="u", decided_at=utcnow() - timedelta(seconds=1))
        verdict = await service.reapply.can_reapply(GUILD, "u", 0)
        assert verdict.allowed

    @pytest.mark.asyncio
    async def test_negative_cooldown_is_an_error(self, service):
        with pytest.raises(ValueError):
            await service.reapply.can_reapply(GUILD, "u", -1)

    @pytest.mark.asyncio
    async def test_reapply_writes_nothing(self, service, make_app, fetch):
        app = await make_app("rejected", user_id="u", decided_at=utcnow())
        await service.reapply.can_reapply(GUILD, "u", 24)
        assert await fetch.actions(app.id) == []
