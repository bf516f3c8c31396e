"""Tests for Settings"""

import pytest

from gatekeeper.config.settings import Settings

TOKEN = "x" * 60

@pytest.fixture
def paths(tmp_path):
    return {'log_dir': tmp_path / "logs", 'data_dir': tmp_path / "data"}

def test_database_url_override(paths):
    settings = Settings(discord_token=TOKEN, database_url="sqlite+aiosqlite:///gate.db", **paths)

    assert settings.sqlalchemy_url == "sqlite+aiosqlite:///gate.db"
    assert settings.uses_sqlite
    assert paths['log_dir'].is_dir()
    assert paths['data_dir'].is_dir()

def test_postgres_url_is_quoted(paths):
    settings = Settings(
        discord_token=TOKEN,
        postgres_user="gate",
        postgres_password="p@ss/word",
        postgres_db="gatekeeper",
        postgres_host="db",
        **paths
    )

    assert settings.sqlalchemy_url == "postgresql+asyncpg://gate:p%40ss%2Fword@db:5432/gatekeeper"
    assert not settings.uses_sqlite

def test_redis_url(paths):
    settings = Settings(discord_token=TOKEN, database_url="sqlite+aiosqlite:///gate.db",
                        redis_password="secret", redis_db=2, **paths)
    assert settings.redis_url == "redis://:secret@localhost:6379/2"

def test_pool_options(paths):
    settings = Settings(discord_token=TOKEN, database_url="sqlite+aiosqlite:///gate.db",
                        db_pool_size=5, **paths)
    assert settings.pool_options['pool_size'] == 5

@pytest.mark.parametrize("overrides", [
    {'discord_token': "short"},
    {'database_url': None},
    {'reapply_cooldown_hours': -1},
    {'open_apps_cache_ttl': 0},
    {'redis_port': 70000},
    {'reviewer_roles': []},
])
def test_invalid_settings(paths, overrides):
    values = {'discord_token': TOKEN, 'database_url': "sqlite+aiosqlite:///gate.db", **paths}
    values.update(overrides)
    with pytest.raises(ValueError):
        Settings(**values)
