"""Application review commands for Gatekeeper"""

import discord
from discord import app_commands
from discord.ext import commands
from typing import Optional, List, Iterable

from gatekeeper.db.models import Application, ensure_utc
from gatekeeper.review.claims import ClaimManager
from gatekeeper.review.types import (
    ClaimOutcome,
    ClaimResult,
    DecisionKind,
    DecisionResult,
    ReapplyVerdict,
    ReviewInputError,
    ReviewStorageError,
    UnblockResult
)
from gatekeeper.utils.constants import (
    ADMIN_ROLES,
    COMMAND_HELP,
    REVIEW_MESSAGES,
    REVIEW_SETTINGS,
    REVIEWER_ROLES
)
from gatekeeper.utils.ids import short_code
from gatekeeper.utils.logger import get_logger

logger = get_logger('cogs.review')

def has_role(member, allowed: Iterable[str]) -> bool:
    """Check a member's role names against a list of allowed names"""
    member_roles = [role.name for role in getattr(member, 'roles', [])]
    return any(role in member_roles for role in allowed)

def claim_message(result: ClaimResult, code: str, actor_id: str) -> str:
    messages = REVIEW_MESSAGES['CLAIM']
    if result.outcome is ClaimOutcome.ALREADY_CLAIMED:
        if result.claim and result.claim.reviewer_id == actor_id:
            return messages['ALREADY_YOURS'].format(code=code)
        reviewer = result.claim.reviewer_id if result.claim else 'unknown'
        return messages['ALREADY_CLAIMED'].format(code=code, reviewer=reviewer)
    if result.outcome is ClaimOutcome.INVALID_STATUS:
        return messages['INVALID_STATUS'].format(code=code, status=result.status)
    if result.outcome is ClaimOutcome.APP_NOT_FOUND:
        return messages['APP_NOT_FOUND']
    return messages['OK'].format(code=code)

def unclaim_message(result: ClaimResult, code: str) -> str:
    messages = REVIEW_MESSAGES['UNCLAIM']
    if result.outcome is ClaimOutcome.NOT_OWNER:
        return messages['NOT_OWNER'].format(code=code, reviewer=result.claim.reviewer_id)
    if result.outcome is ClaimOutcome.NOT_CLAIMED:
        return messages['NOT_CLAIMED'].format(code=code)
    if result.outcome is ClaimOutcome.APP_NOT_FOUND:
        return messages['APP_NOT_FOUND']
    return messages['OK'].format(code=code)

def decision_message(result: DecisionResult, code: str, action: str) -> str:
    """action is the audit tag of the attempted decision (approve, permanent_reject...)"""
    messages = REVIEW_MESSAGES['DECISION']
    if result.kind is DecisionKind.OK:
        return messages[action].format(code=code)
    if result.kind is DecisionKind.ALREADY:
        return messages['ALREADY'].format(code=code, status=result.status)
    if result.kind is DecisionKind.INVALID:
        return messages['INVALID'].format(code=code, status=result.status)
    return messages['NOT_FOUND']

def unblock_message(result: UnblockResult, code: str) -> str:
    return REVIEW_MESSAGES['UNBLOCK'][result.outcome.name].format(code=code)

def action_line(action, with_code: bool = False) -> str:
    """One audit row as embed text, optionally prefixed with the application code"""
    at = int(ensure_utc(action.created_at).timestamp())
    line = f"<@{action.actor_id}> <t:{at}:R>"
    if with_code:
        line = f"`{short_code(action.application_id)}` · " + line
    if action.reason:
        line += f"\n{action.reason}"
    return line

def reapply_message(verdict: ReapplyVerdict, user_id) -> str:
    messages = REVIEW_MESSAGES['REAPPLY']
    if verdict.allowed:
        return messages['ALLOWED'].format(user=user_id)
    if verdict.retry_at is not None:
        return messages['COOLDOWN'].format(user=user_id, retry_at=int(verdict.retry_at.timestamp()))
    return messages[verdict.reason.name].format(user=user_id)

class Review(commands.Cog):
    """Claims, decisions and queue views for moderators"""

    def __init__(self, bot):
        self.bot = bot
        self.service = bot.review
        logger.info("Review cog initialized")

    def _reviewer_roles(self) -> List[str]:
        return getattr(self.bot, 'reviewer_roles', None) or REVIEWER_ROLES

    def _admin_roles(self) -> List[str]:
        return getattr(self.bot, 'admin_roles', None) or ADMIN_ROLES

    async def _deny(self, interaction: discord.Interaction) -> None:
        await interaction.response.send_message(REVIEW_MESSAGES['NO_PERMISSION'], ephemeral=True)

    async def _resolve(self, interaction: discord.Interaction, application: Optional[str],
                       user: Optional[discord.Member]) -> Optional[Application]:
        guild_id = str(interaction.guild_id)
        if application:
            return await self.service.resolve(guild_id, application)
        if user is not None:
            return await self.service.find_pending_by_user(guild_id, str(user.id))
        raise ReviewInputError("Give an application code or a user")

    async def _reply_error(self, interaction: discord.Interaction, command: str, error: Exception) -> None:
        """Map raised review errors to a reply; anything else is logged"""
        if isinstance(error, ReviewInputError):
            message = REVIEW_MESSAGES['BAD_REQUEST'].format(error=error)
        elif isinstance(error, ReviewStorageError):
            message = REVIEW_MESSAGES['STORAGE_ERROR']
        else:
            logger.error(f"Error in {command} command: {error}", exc_info=True)
            message = REVIEW_MESSAGES['UNEXPECTED_ERROR']
        await interaction.followup.send(message, ephemeral=True)

    @app_commands.command(name="claim")
    @app_commands.guild_only()
    @app_commands.describe(application="Application code or id", user="Applicant with a pending application")
    async def claim(self, interaction: discord.Interaction,
                    application: Optional[str] = None,
                    user: Optional[discord.Member] = None):
        """Claim an application for review"""
        if not has_role(interaction.user, self._reviewer_roles()):
            return await self._deny(interaction)

        await interaction.response.defer(ephemeral=True)
        try:
            app = await self._resolve(interaction, application, user)
            if app is None:
                return await interaction.followup.send(REVIEW_MESSAGES['CLAIM']['APP_NOT_FOUND'], ephemeral=True)

            actor_id = str(interaction.user.id)
            result = await self.service.claims.claim(str(interaction.guild_id), app.id, actor_id)
            await interaction.followup.send(claim_message(result, app.short_code, actor_id), ephemeral=True)
        except Exception as e:
            await self._reply_error(interaction, 'claim', e)

    @app_commands.command(name="unclaim")
    @app_commands.guild_only()
    @app_commands.describe(application="Application code or id", user="Applicant with a pending application")
    async def unclaim(self, interaction: discord.Interaction,
                      application: Optional[str] = None,
                      user: Optional[discord.Member] = None):
        """Release your claim on an application"""
        if not has_role(interaction.user, self._reviewer_roles()):
            return await self._deny(interaction)

        await interaction.response.defer(ephemeral=True)
        try:
            app = await self._resolve(interaction, application, user)
            if app is None:
                return await interaction.followup.send(REVIEW_MESSAGES['UNCLAIM']['APP_NOT_FOUND'], ephemeral=True)

            result = await self.service.claims.unclaim(str(interaction.guild_id), app.id, str(interaction.user.id))
            await interaction.followup.send(unclaim_message(result, app.short_code), ephemeral=True)
        except Exception as e:
            await self._reply_error(interaction, 'unclaim', e)

    @app_commands.command(name="force-unclaim")
    @app_commands.guild_only()
    @app_commands.describe(application="Application code or id", reason="Why the claim is being released")
    async def force_unclaim(self, interaction: discord.Interaction, application: str,
                            reason: Optional[str] = None):
        """Release a claim held by another reviewer"""
        if not has_role(interaction.user, self._admin_roles()):
            return await self._deny(interaction)

        await interaction.response.defer(ephemeral=True)
        try:
            app = await self._resolve(interaction, application, None)
            if app is None:
                return await interaction.followup.send(REVIEW_MESSAGES['UNCLAIM']['APP_NOT_FOUND'], ephemeral=True)

            result = await self.service.claims.force_unclaim(
                str(interaction.guild_id), app.id, str(interaction.user.id), reason
            )
            await interaction.followup.send(unclaim_message(result, app.short_code), ephemeral=True)
        except Exception as e:
            await self._reply_error(interaction, 'force-unclaim', e)

    async def _decide(self, interaction: discord.Interaction, command: str, action: str,
                      application: Optional[str], user: Optional[discord.Member], decide) -> None:
        """Shared flow for decision commands: resolve, warn about foreign claims, commit, reply"""
        if not has_role(interaction.user, self._reviewer_roles()):
            return await self._deny(interaction)

        await interaction.response.defer(ephemeral=True)
        try:
            app = await self._resolve(interaction, application, user)
            if app is None:
                return await interaction.followup.send(REVIEW_MESSAGES['DECISION']['NOT_FOUND'], ephemeral=True)

            actor_id = str(interaction.user.id)
            claim = await self.service.claims.get_claim(app.id)
            result = await decide(str(interaction.guild_id), app.id, actor_id)

            message = decision_message(result, app.short_code, action)
            warning = ClaimManager.guard_against_other_owner(claim, actor_id) if result.ok else None
            if warning:
                message = f"{message}\n{warning}"
            await interaction.followup.send(message, ephemeral=True)
        except Exception as e:
            await self._reply_error(interaction, command, e)

    @app_commands.command(name="accept")
    @app_commands.guild_only()
    @app_commands.describe(application="Application code or id", user="Applicant with a pending application",
                           reason="Optional note for the audit log")
    async def accept(self, interaction: discord.Interaction,
                     application: Optional[str] = None,
                     user: Optional[discord.Member] = None,
                     reason: Optional[str] = None):
        """Approve an application"""
        decisions = self.service.decisions
        await self._decide(
            interaction, 'accept', 'approve', application, user,
            lambda guild_id, app_id, actor_id: decisions.approve(guild_id, app_id, actor_id, reason)
        )

    @app_commands.command(name="reject")
    @app_commands.guild_only()
    @app_commands.describe(reason="Why the application is rejected",
                           application="Application code or id",
                           user="Applicant with a pending application",
                           permanent="Block the applicant from ever reapplying")
    async def reject(self, interaction: discord.Interaction, reason: str,
                     application: Optional[str] = None,
                     user: Optional[discord.Member] = None,
                     permanent: bool = False):
        """Reject an application"""
        decisions = self.service.decisions
        await self._decide(
            interaction, 'reject', 'permanent_reject' if permanent else 'reject', application, user,
            lambda guild_id, app_id, actor_id: decisions.reject(guild_id, app_id, actor_id, reason, permanent)
        )

    @app_commands.command(name="kick")
    @app_commands.guild_only()
    @app_commands.describe(application="Application code or id", user="Applicant with a pending application",
                           reason="Optional note for the audit log")
    async def kick(self, interaction: discord.Interaction,
                   application: Optional[str] = None,
                   user: Optional[discord.Member] = None,
                   reason: Optional[str] = None):
        """Mark an application as kicked"""
        decisions = self.service.decisions
        await self._decide(
            interaction, 'kick', 'kick', application, user,
            lambda guild_id, app_id, actor_id: decisions.kick(guild_id, app_id, actor_id, reason)
        )

    @app_commands.command(name="needinfo")
    @app_commands.guild_only()
    @app_commands.describe(reason="What the applicant needs to add",
                           application="Application code or id",
                           user="Applicant with a pending application")
    async def needinfo(self, interaction: discord.Interaction, reason: str,
                       application: Optional[str] = None,
                       user: Optional[discord.Member] = None):
        """Ask the applicant for more information"""
        decisions = self.service.decisions
        await self._decide(
            interaction, 'needinfo', 'needs_info', application, user,
            lambda guild_id, app_id, actor_id: decisions.request_info(guild_id, app_id, actor_id, reason)
        )

    @app_commands.command(name="unblock")
    @app_commands.guild_only()
    @app_commands.describe(application="Application code or id", reason="Optional note for the audit log")
    async def unblock(self, interaction: discord.Interaction, application: str,
                      reason: Optional[str] = None):
        """Lift a permanent rejection"""
        if not has_role(interaction.user, self._admin_roles()):
            return await self._deny(interaction)

        await interaction.response.defer(ephemeral=True)
        try:
            app = await self._resolve(interaction, application, None)
            if app is None:
                return await interaction.followup.send(REVIEW_MESSAGES['UNBLOCK']['APP_NOT_FOUND'], ephemeral=True)

            result = await self.service.decisions.unblock(
                str(interaction.guild_id), app.id, str(interaction.user.id), reason
            )
            await interaction.followup.send(unblock_message(result, app.short_code), ephemeral=True)
        except Exception as e:
            await self._reply_error(interaction, 'unblock', e)

    @app_commands.command(name="listopen")
    @app_commands.guild_only()
    @app_commands.describe(scope="Only your claims, or every open application")
    @app_commands.choices(scope=[
        app_commands.Choice(name="mine", value="mine"),
        app_commands.Choice(name="all", value="all")
    ])
    async def listopen(self, interaction: discord.Interaction, scope: str = "all"):
        """List open applications"""
        if not has_role(interaction.user, self._reviewer_roles()):
            return await self._deny(interaction)

        await interaction.response.defer(ephemeral=True)
        try:
            reviewer_id = str(interaction.user.id) if scope == "mine" else None
            rows = await self.service.list_open(str(interaction.guild_id), reviewer_id)

            embed = discord.Embed(
                title="📋 Open Applications",
                description=f"{len(rows)} open" + (" (claimed by you)" if reviewer_id else ""),
                color=discord.Color.blue()
            )
            for row in rows[:REVIEW_SETTINGS['LISTOPEN_PAGE_SIZE']]:
                owner = f"claimed by <@{row.reviewer_id}>" if row.reviewer_id else "unclaimed"
                embed.add_field(
                    name=f"`{row.short_code}` · {row.status}",
                    value=f"<@{row.user_id}> · {owner}",
                    inline=False
                )
            await interaction.followup.send(embed=embed, ephemeral=True)
        except Exception as e:
            await self._reply_error(interaction, 'listopen', e)

    @app_commands.command(name="apphistory")
    @app_commands.guild_only()
    @app_commands.describe(application="Application code or id", user="Applicant with a pending application")
    async def apphistory(self, interaction: discord.Interaction,
                         application: Optional[str] = None,
                         user: Optional[discord.Member] = None):
        """Show recent actions on an application"""
        if not has_role(interaction.user, self._reviewer_roles()):
            return await self._deny(interaction)

        await interaction.response.defer(ephemeral=True)
        try:
            app = await self._resolve(interaction, application, user)
            if app is None:
                return await interaction.followup.send(REVIEW_MESSAGES['DECISION']['NOT_FOUND'], ephemeral=True)

            actions = await self.service.audit.history(app.id)
            claim = await self.service.claims.get_claim(app.id)

            embed = discord.Embed(
                title=f"🗂️ Application {app.short_code}",
                description=f"<@{app.user_id}> · **{app.status}**"
                            + (" · ⛔ permanently rejected" if app.permanently_rejected else ""),
                color=discord.Color.blue()
            )
            if claim:
                embed.add_field(
                    name="Claim",
                    value=f"<@{claim.reviewer_id}> <t:{int(claim.claimed_at.timestamp())}:R>",
                    inline=False
                )
            for action in actions:
                embed.add_field(name=action.action, value=action_line(action), inline=False)
            if not actions:
                embed.add_field(name="History", value="No actions recorded yet", inline=False)

            await interaction.followup.send(embed=embed, ephemeral=True)
        except Exception as e:
            await self._reply_error(interaction, 'apphistory', e)

    @app_commands.command(name="modhistory")
    @app_commands.guild_only()
    @app_commands.describe(moderator="Moderator whose review actions to show")
    async def modhistory(self, interaction: discord.Interaction, moderator: discord.Member):
        """Show a moderator's recent review actions"""
        if not has_role(interaction.user, self._admin_roles()):
            return await self._deny(interaction)

        await interaction.response.defer(ephemeral=True)
        try:
            actions = await self.service.audit.for_actor(str(interaction.guild_id), str(moderator.id))

            embed = discord.Embed(
                title=f"🗂️ Review actions by {moderator.display_name}",
                color=discord.Color.blue()
            )
            for action in actions:
                embed.add_field(name=action.action, value=action_line(action, with_code=True), inline=False)
            if not actions:
                embed.add_field(name="History", value="No actions recorded yet", inline=False)

            await interaction.followup.send(embed=embed, ephemeral=True)
        except Exception as e:
            await self._reply_error(interaction, 'modhistory', e)

    @app_commands.command(name="reapply-check")
    @app_commands.guild_only()
    @app_commands.describe(user="User to check")
    async def reapply_check(self, interaction: discord.Interaction, user: discord.Member):
        """Check whether a user may reapply"""
        if not has_role(interaction.user, self._reviewer_roles()):
            return await self._deny(interaction)

        await interaction.response.defer(ephemeral=True)
        try:
            verdict = await self.service.can_reapply(str(interaction.guild_id), str(user.id))
            await interaction.followup.send(reapply_message(verdict, user.id), ephemeral=True)
        except Exception as e:
            await self._reply_error(interaction, 'reapply-check', e)

    @app_commands.command(name="gatekeeper-help")
    async def gatekeeper_help(self, interaction: discord.Interaction):
        """List the review commands available to you"""
        available = []
        if has_role(interaction.user, self._reviewer_roles()):
            available.extend(COMMAND_HELP['reviewer'])
        if has_role(interaction.user, self._admin_roles()):
            available.extend(COMMAND_HELP['admin'])

        embed = discord.Embed(title="Gatekeeper", color=discord.Color.blue())
        embed.add_field(
            name="Available Commands",
            value="\n".join(f"`{cmd}` - {desc}" for cmd, desc in available) or "None",
            inline=False
        )
        await interaction.response.send_message(embed=embed, ephemeral=True)

async def setup(bot):
    await bot.add_cog(Review(bot))
