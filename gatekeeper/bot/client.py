"""Gatekeeper Discord Bot Client"""

import discord
from discord import app_commands
from discord.ext import commands
import logging
import redis.asyncio as redis
from typing import Optional, Any, Tuple, List
from sqlalchemy.ext.asyncio import AsyncEngine

from gatekeeper.db.database import create_session_factory
from gatekeeper.review.events import RedisStatusFeed
from gatekeeper.review.service import ReviewService
from gatekeeper.utils.constants import (
    APP_VERSION,
    BOT_DESCRIPTION,
    BOT_REQUIRED_PERMISSIONS,
    BUILD_DATE,
    REVIEW_MESSAGES
)

logger = logging.getLogger('Gatekeeper')

class GatekeeperBot(commands.Bot):
    def __init__(self,
                 engine: AsyncEngine,
                 redis_client: Optional[redis.Redis],
                 settings: Optional[Any] = None,
                 *args, **kwargs):
        """Initialize the bot with the database engine and Redis connection"""
        intents = discord.Intents.default()
        intents.members = True
        intents.guilds = True

        super().__init__(
            command_prefix=getattr(settings, 'command_prefix', '!'),
            intents=intents,
            description=BOT_DESCRIPTION,
            *args,
            **kwargs
        )

        self.engine = engine
        self.redis = redis_client
        self.settings = settings
        self.session_factory = create_session_factory(engine)

        service_options = {}
        if settings is not None:
            service_options = {
                'cooldown_hours': settings.reapply_cooldown_hours,
                'cache_ttl': settings.open_apps_cache_ttl
            }
        self.review = ReviewService(self.session_factory, redis_client, **service_options)

        self.status_feed: Optional[RedisStatusFeed] = None
        if redis_client is not None:
            self.status_feed = RedisStatusFeed(redis_client)
            self.review.notifier.add_listener(self.status_feed)

        self._ready = False

        logger.info("Bot initialized")

    @property
    def reviewer_roles(self) -> List[str]:
        return list(getattr(self.settings, 'reviewer_roles', []) or [])

    @property
    def admin_roles(self) -> List[str]:
        return list(getattr(self.settings, 'admin_roles', []) or [])

    async def setup_hook(self):
        """Initial setup when bot starts"""
        logger.info("Setup hook starting...")
        try:
            self.tree.on_error = self.on_app_command_error

            cogs = [
                'gatekeeper.cogs.review',   # Claims, decisions, listing
            ]

            for cog in cogs:
                try:
                    if cog not in self.extensions:
                        await self.load_extension(cog)
                        logger.info(f"Loaded {cog}")
                    else:
                        logger.info(f"Skipped loading {cog} (already loaded)")
                except Exception as e:
                    logger.error(f"Failed to load {cog}: {e}")
                    raise

            logger.info("All cogs loaded")

            await self.tree.sync()
            logger.info("Command tree synced")

        except Exception as e:
            logger.error(f"Error in setup_hook: {e}")
            raise

    async def close(self):
        """Cleanup when bot shuts down"""
        logger.info("Bot shutting down, cleaning up...")
        try:
            if self.status_feed is not None:
                self.review.notifier.remove_listener(self.status_feed)

            await super().close()
        except Exception as e:
            logger.error(f"Error during cleanup: {e}")
            raise

    async def on_ready(self):
        """Handle bot ready event"""
        if self._ready:
            return

        logger.info(f'Gatekeeper v{APP_VERSION} ({BUILD_DATE}) has connected to Discord!')

        activity = discord.CustomActivity(name=BOT_DESCRIPTION)
        await self.change_presence(activity=activity)

        logger.info(f"Connected to {len(self.guilds)} guilds")

        self._ready = True

    async def verify_permissions(self, guild: discord.Guild) -> Tuple[bool, List[str]]:
        """Verify bot has required permissions in guild"""
        missing_perms = []
        for perm in BOT_REQUIRED_PERMISSIONS:
            if not getattr(guild.me.guild_permissions, perm):
                missing_perms.append(perm)

        return not bool(missing_perms), missing_perms

    async def on_guild_join(self, guild: discord.Guild):
        """Handle bot joining a new guild"""
        try:
            has_perms, missing = await self.verify_permissions(guild)
            if not has_perms:
                logger.warning(f"Missing permissions in {guild.name}: {', '.join(missing)}")
                try:
                    await guild.owner.send(
                        f"⚠️ Gatekeeper is missing required permissions in {guild.name}:\n"
                        + "\n".join(f"• {perm}" for perm in missing)
                    )
                except discord.HTTPException as e:
                    logger.error(f"Could not notify guild owner: {e}")

            logger.info(f"Joined guild: {guild.name} (ID: {guild.id})")
        except Exception as e:
            logger.error(f"Error handling guild join: {e}")

    async def on_guild_remove(self, guild: discord.Guild):
        """Handle bot leaving a guild"""
        try:
            logger.info(f"Left guild: {guild.name} (ID: {guild.id})")
            if self.redis is not None:
                await self.review.cache.invalidate(str(guild.id))
                logger.info(f"Cleaned up cached data for guild: {guild.id}")

        except Exception as e:
            logger.error(f"Error handling guild remove: {e}")

    async def on_app_command_error(self,
                                   interaction: discord.Interaction,
                                   error: app_commands.AppCommandError):
        """Global error handler for application commands"""
        try:
            if isinstance(error, (app_commands.errors.MissingAnyRole, app_commands.errors.CheckFailure)):
                message = REVIEW_MESSAGES['NO_PERMISSION']
            else:
                logger.error(f"Application command error: {error}", exc_info=error)
                message = REVIEW_MESSAGES['UNEXPECTED_ERROR']

            if not interaction.response.is_done():
                await interaction.response.send_message(message, ephemeral=True)
            else:
                await interaction.followup.send(message, ephemeral=True)
        except discord.HTTPException as e:
            logger.error(f"Error handling app command error: {e}")
