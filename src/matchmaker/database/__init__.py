"""
Módulo de base de datos.

Provee los backends key-value (Redis / memoria) y los repositorios.
"""

from matchmaker.database.redis_client import get_redis_client, create_async_redis_client
from matchmaker.database.backends import (
    KeyValueBackend,
    RedisBackend,
    InMemoryBackend,
    create_backend,
)
from matchmaker.database.repositories import ProfileRepository, MatchRepository

__all__ = [
    "get_redis_client",
    "create_async_redis_client",
    "KeyValueBackend",
    "RedisBackend",
    "InMemoryBackend",
    "create_backend",
    "ProfileRepository",
    "MatchRepository",
]
