import asyncio
import logging
from typing import Optional, Tuple
import redis.asyncio as redis
from sqlalchemy.ext.asyncio import AsyncEngine

from gatekeeper.utils.logger import setup_logging
from gatekeeper.bot.client import GatekeeperBot
from gatekeeper.config.settings import Settings
from gatekeeper.db.database import init_db, init_redis
from gatekeeper.utils.constants import APP_VERSION

# Initialize logging first
setup_logging()
logger = logging.getLogger('Gatekeeper')

async def initialize_services(settings: Settings) -> Tuple[AsyncEngine, redis.Redis]:
    """Initialize database and Redis connections"""
    try:
        logger.info("Initializing database engine...")
        engine = await init_db(settings.sqlalchemy_url, echo=settings.debug, **settings.pool_options)
        logger.info("Database engine ready")

        logger.info("Initializing Redis connection...")
        redis_client = await init_redis(settings.redis_url)
        logger.info("Redis connection established")

        return engine, redis_client
    except Exception as e:
        logger.error(f"Failed to initialize services: {e}")
        raise

async def cleanup_services(bot: Optional[GatekeeperBot] = None,
                           engine: Optional[AsyncEngine] = None,
                           redis_client: Optional[redis.Redis] = None) -> None:
    """Cleanup function to properly close connections"""
    try:
        if bot and not bot.is_closed():
            logger.info("Closing bot connection...")
            await bot.close()

        if engine:
            logger.info("Disposing database engine...")
            await engine.dispose()

        if redis_client:
            logger.info("Closing Redis connection...")
            await redis_client.aclose()

        logger.info("All services cleaned up successfully")
    except Exception as e:
        logger.error(f"Error during cleanup: {e}")

async def main() -> None:
    """Main entry point for the Gatekeeper bot"""
    engine: Optional[AsyncEngine] = None
    redis_client: Optional[redis.Redis] = None
    bot: Optional[GatekeeperBot] = None

    try:
        logger.info(f"Starting Gatekeeper v{APP_VERSION}")

        # Settings() creates directories and validates on construction
        try:
            settings = Settings()
            logger.info("Settings loaded successfully")
        except Exception as e:
            logger.critical(f"Failed to load settings: {e}")
            raise

        try:
            engine, redis_client = await initialize_services(settings)
        except Exception as e:
            logger.critical(f"Failed to initialize services: {e}")
            raise

        bot = GatekeeperBot(engine=engine, redis_client=redis_client, settings=settings)

        async with bot:
            logger.info("Starting bot...")
            await bot.start(settings.discord_token)

    except Exception as e:
        logger.critical(f"Critical error in main: {e}")
        raise

    finally:
        logger.info("Starting cleanup process...")
        await cleanup_services(bot, engine, redis_client)

if __name__ == "__main__":
    try:
        asyncio.run(main())

    except KeyboardInterrupt:
        logger.info("Bot shutdown initiated by user")

    finally:
        logger.info("Bot shutdown complete")
