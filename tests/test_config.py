from cropbid.core.config import Settings


def _settings(**overrides):
    return Settings(_env_file=None, **overrides)


def test_database_url_defaults_to_asyncpg():
    config = _settings(
        POSTGRES_USER="bidder",
        POSTGRES_PASSWORD="secret",
        POSTGRES_HOST="db",
        POSTGRES_PORT=5433,
        POSTGRES_DB="crops",
    )
    assert config.DATABASE_URL == "postgresql+asyncpg://bidder:secret@db:5433/crops"


def test_database_url_override_wins():
    config = _settings(DATABASE_URL_OVERRIDE="sqlite+aiosqlite:///./dev.db")
    assert config.DATABASE_URL == "sqlite+aiosqlite:///./dev.db"


def test_redis_url_with_password():
    config = _settings(REDIS_HOST="cache", REDIS_PORT=6380, REDIS_DB=2, REDIS_PASSWORD="pw")
    assert config.REDIS_URL == "redis://:pw@cache:6380/2"


def test_default_update_attempts_leave_room_for_contention():
    assert Settings.model_fields["BID_UPDATE_MAX_ATTEMPTS"].default >= 20
