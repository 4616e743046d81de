# Core modules
from cropbid.core.config import settings
from cropbid.core.database import Base, close_db, init_db
from cropbid.core.redis import redis_client

__all__ = [
    "settings",
    "init_db",
    "close_db",
    "Base",
    "redis_client",
]
