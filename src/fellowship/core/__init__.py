"""
Core module - Configuration, database, external clients, and utilities.
"""

from fellowship.core.config import get_settings, settings
from fellowship.core.database import Base, Database, get_database, get_db
from fellowship.core.redis import close_redis, get_redis, init_redis
from fellowship.core.security import create_access_token, decode_token

__all__ = [
    # Config
    "settings",
    "get_settings",
    # Database
    "Base",
    "Database",
    "get_database",
    "get_db",
    # Redis
    "get_redis",
    "init_redis",
    "close_redis",
    # Security
    "create_access_token",
    "decode_token",
]
