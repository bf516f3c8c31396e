from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional
import urllib.parse
from pathlib import Path
import logging

logger = logging.getLogger('Gatekeeper')

class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Environment Configuration
    environment: str = "development"
    debug: bool = False
    app_version: str = "1.4.2"

    # Discord Configuration
    discord_token: str
    command_prefix: str = "!"
    reviewer_roles: List[str] = ["Gatekeeper", "Moderator", "Admin"]
    admin_roles: List[str] = ["Admin"]

    # PostgreSQL Configuration
    postgres_user: str = ""
    postgres_password: str = ""
    postgres_db: str = ""
    postgres_host: str = "localhost"
    postgres_port: int = 5432

    # Full SQLAlchemy URL, overrides the PostgreSQL parts (e.g. sqlite+aiosqlite:///data/gate.db)
    database_url: Optional[str] = None

    # Redis Configuration
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: Optional[str] = None
    redis_db: int = 0

    # Review Settings
    reapply_cooldown_hours: int = 720

    # Cache Settings
    open_apps_cache_ttl: int = 300

    # Database Pool Settings
    db_pool_size: int = 20
    db_max_overflow: int = 10
    db_pool_timeout: int = 30
    db_pool_recycle: int = 1800

    # Path Configuration
    base_dir: Path = Path(__file__).resolve().parent.parent.parent
    log_dir: Path = base_dir / "logs"
    data_dir: Path = base_dir / "data"

    @property
    def sqlalchemy_url(self) -> str:
        """Get the database URL formatted for SQLAlchemy's async engine"""
        if self.database_url:
            return self.database_url
        try:
            # URL encode the password to handle special characters
            encoded_password = urllib.parse.quote_plus(self.postgres_password)
            return (
                f"postgresql+asyncpg://{self.postgres_user}:{encoded_password}"
                f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
            )
        except Exception as e:
            logger.error(f"Error creating SQLAlchemy URL: {e}")
            raise

    @property
    def uses_sqlite(self) -> bool:
        return self.sqlalchemy_url.startswith("sqlite")

    @property
    def redis_url(self) -> str:
        """Get Redis URL"""
        try:
            if self.redis_password:
                encoded_password = urllib.parse.quote_plus(self.redis_password)
                auth = f":{encoded_password}@"
            else:
                auth = ""
            return f"redis://{auth}{self.redis_host}:{self.redis_port}/{self.redis_db}"
        except Exception as e:
            logger.error(f"Error creating Redis URL: {e}")
            raise

    @property
    def pool_options(self) -> dict:
        """Connection pool arguments for the database engine"""
        return {
            'pool_size': self.db_pool_size,
            'max_overflow': self.db_max_overflow,
            'pool_timeout': self.db_pool_timeout,
            'pool_recycle': self.db_pool_recycle
        }

    @property
    def is_production(self) -> bool:
        """Check if running in production environment"""
        return self.environment.lower() == "production"

    def ensure_directories(self) -> None:
        """Ensure required directories exist"""
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            self.data_dir.mkdir(parents=True, exist_ok=True)
            logger.info("Required directories created successfully")
        except Exception as e:
            logger.error(f"Error creating directories: {e}")
            raise

    def validate_settings(self) -> None:
        """Validate critical settings"""
        try:
            # Check token length
            if len(self.discord_token) < 50:
                raise ValueError("Invalid Discord token length")

            # A database is required, either as a full URL or as PostgreSQL parts
            if not self.database_url and not all([self.postgres_user, self.postgres_password, self.postgres_db]):
                raise ValueError("Set DATABASE_URL or POSTGRES_USER, POSTGRES_PASSWORD and POSTGRES_DB")

            # Check port ranges
            if not (1 <= self.postgres_port <= 65535):
                raise ValueError("Invalid PostgreSQL port number")
            if not (1 <= self.redis_port <= 65535):
                raise ValueError("Invalid Redis port number")

            # Check positive values
            if self.reapply_cooldown_hours < 0:
                raise ValueError("Reapply cooldown cannot be negative")
            if self.open_apps_cache_ttl <= 0:
                raise ValueError("Cache TTL must be positive")
            if not self.reviewer_roles:
                raise ValueError("At least one reviewer role is required")

            logger.info("Settings validated successfully")

        except Exception as e:
            logger.error(f"Settings validation error: {e}")
            raise ValueError(f"Invalid settings: {str(e)}")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_assignment=True
    )

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.ensure_directories()
        self.validate_settings()
        logger.info(f"Settings initialized for environment: {self.environment}")

def get_settings() -> Settings:
    """Get validated settings instance"""
    try:
        settings = Settings()
        return settings
    except Exception as e:
        logger.critical(f"Failed to load settings: {e}")
        raise
