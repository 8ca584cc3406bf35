"""
Clientes de Redis.

Singleton síncrono para los stores y fábrica asíncrona para los streams.
"""

from functools import lru_cache
from typing import Optional

import redis
import redis.asyncio as aioredis
import structlog

from matchmaker.config import get_settings

logger = structlog.get_logger()


@lru_cache
def get_redis_client() -> redis.Redis:
    """
    Obtiene el cliente de Redis (singleton cacheado).

    Raises:
        ValueError: Si REDIS_URL no está configurada
    """
    settings = get_settings()

    if not settings.redis_url:
        raise ValueError("REDIS_URL es requerida. Configura las variables de entorno.")

    client = redis.Redis.from_url(settings.redis_url, decode_responses=True)
    logger.info("Cliente de Redis inicializado", url=settings.redis_url)
    return client


def create_async_redis_client(url: Optional[str] = None) -> aioredis.Redis:
    """
    Crea un cliente asíncrono nuevo.

    No se cachea: cada event loop necesita su propio pool de conexiones.
    """
    url = url or get_settings().redis_url
    return aioredis.Redis.from_url(url, decode_responses=True)
