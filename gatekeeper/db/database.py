import asyncio
import logging
from typing import Optional
import redis.asyncio as redis
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from gatekeeper.utils.constants import DB_SETTINGS, CACHE_SETTINGS
from .models import Base

logger = logging.getLogger('Gatekeeper')

def _enable_sqlite_immediate_transactions(engine: AsyncEngine) -> None:
    """Make every SQLite transaction take the write lock up front.

    pysqlite defers BEGIN until the first write, so two transactions can both
    read a row before either writes it. BEGIN IMMEDIATE serialises writers,
    which is what the claim and decision transactions rely on.
    """
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Disable pysqlite's own transaction handling so the BEGIN below is ours
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

def create_engine(database_url: str, echo: Optional[bool] = None, **pool_options) -> AsyncEngine:
    """Create the SQLAlchemy async engine for PostgreSQL (asyncpg) or SQLite (aiosqlite).

    pool_options (pool_size, max_overflow, pool_timeout, pool_recycle)
    override DB_SETTINGS and are ignored for SQLite.
    """
    echo = DB_SETTINGS['ECHO'] if echo is None else echo

    if database_url.startswith('sqlite'):
        engine = create_async_engine(
            database_url,
            echo=echo,
            connect_args={'timeout': DB_SETTINGS['SQLITE_BUSY_TIMEOUT']}
        )
        _enable_sqlite_immediate_transactions(engine)
        return engine

    return create_async_engine(
        database_url,
        echo=echo,
        pool_size=pool_options.get('pool_size', DB_SETTINGS['POOL_SIZE']),
        max_overflow=pool_options.get('max_overflow', DB_SETTINGS['MAX_OVERFLOW']),
        pool_timeout=pool_options.get('pool_timeout', DB_SETTINGS['POOL_TIMEOUT']),
        pool_recycle=pool_options.get('pool_recycle', DB_SETTINGS['POOL_RECYCLE']),
        pool_pre_ping=True
    )

def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Sessions keep loaded rows usable after commit so results can be returned"""
    return async_sessionmaker(engine, expire_on_commit=False)

async def init_schema(engine: AsyncEngine) -> None:
    """Create any missing review tables"""
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        for table in Base.metadata.sorted_tables:
            logger.debug(f"Table ready: {table.name}")
        logger.info("Review schema initialized successfully")
    except Exception as e:
        logger.error(f"Error initializing review schema: {e}")
        raise

async def init_db(database_url: str, echo: Optional[bool] = None, **pool_options) -> AsyncEngine:
    """Create the engine and make sure the schema exists"""
    try:
        engine = create_engine(database_url, echo=echo, **pool_options)
        await init_schema(engine)
        logger.info("Database engine initialized successfully")
        return engine
    except Exception as e:
        logger.error(f"Error initializing database: {e}")
        raise

async def init_redis(redis_url: str) -> redis.Redis:
    """Initialize Redis connection with retry logic"""
    for attempt in range(CACHE_SETTINGS['REDIS_RETRY_COUNT']):
        try:
            redis_client = redis.Redis.from_url(
                redis_url,
                decode_responses=True,
                socket_timeout=CACHE_SETTINGS['REDIS_TIMEOUT'],
                socket_connect_timeout=CACHE_SETTINGS['REDIS_TIMEOUT'],
                retry_on_timeout=True,
                health_check_interval=30
            )

            await redis_client.ping()

            logger.info("Redis connection initialized successfully")
            return redis_client

        except redis.TimeoutError:
            logger.warning(f"Redis connection timeout (attempt {attempt + 1}/{CACHE_SETTINGS['REDIS_RETRY_COUNT']})")
            if attempt < CACHE_SETTINGS['REDIS_RETRY_COUNT'] - 1:
                await asyncio.sleep(CACHE_SETTINGS['REDIS_RETRY_DELAY'])
        except redis.ConnectionError as e:
            logger.error(f"Redis connection error (attempt {attempt + 1}): {e}")
            if attempt < CACHE_SETTINGS['REDIS_RETRY_COUNT'] - 1:
                await asyncio.sleep(CACHE_SETTINGS['REDIS_RETRY_DELAY'])
        except Exception as e:
            logger.error(f"Unexpected Redis error: {e}")
            raise

    raise ConnectionError("Failed to establish Redis connection after retries")
