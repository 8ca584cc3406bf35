"""
Backends key-value con expiración.

Los repositorios sólo dependen de la capacidad KeyValueBackend
(put / get / índices explícitos); nunca enumeran claves del store.
"""

import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Callable, Optional

import redis
import structlog

from matchmaker.database.redis_client import get_redis_client
from matchmaker.errors import StorageError

logger = structlog.get_logger()


class KeyValueBackend(ABC):
    """Capacidad mínima que necesitan los repositorios."""

    @abstractmethod
    def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        """Set atómico de una clave, reemplazando el TTL."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Devuelve el valor o None si no existe / expiró."""

    @abstractmethod
    def get_many(self, keys: list[str]) -> list[Optional[str]]:
        """Igual que get, en el mismo orden que `keys`."""

    @abstractmethod
    def update(
        self, key: str, apply: Callable[[str], str], ttl_seconds: Optional[int] = None
    ) -> Optional[str]:
        """
        Read-modify-write atómico de una clave existente.

        `apply` recibe el valor actual y devuelve el nuevo. Si la clave no
        existe no se escribe nada y devuelve None.
        """

    @abstractmethod
    def index_add(
        self, index: str, member: str, ttl_seconds: Optional[int] = None
    ) -> None:
        """Agrega un miembro a un índice; si hay TTL se refresca el del índice."""

    @abstractmethod
    def index_prune(self, index: str, keys_by_member: dict[str, str]) -> list[str]:
        """
        Quita del índice los miembros cuya clave ya no existe.

        El chequeo y el borrado son atómicos: un miembro re-escrito en el
        medio se conserva. Devuelve los miembros quitados.
        """

    @abstractmethod
    def index_members(self, index: str) -> set[str]:
        ...


class RedisBackend(KeyValueBackend):
    """Backend sobre Redis: strings con EX e índices como sets."""

    def __init__(self, client: Optional[redis.Redis] = None):
        self._client = client if client is not None else get_redis_client()

    @property
    def client(self) -> redis.Redis:
        return self._client

    @contextmanager
    def _guard(self, operation: str, key: str):
        try:
            yield
        except redis.exceptions.RedisError as e:
            logger.error("Error de Redis", operation=operation, key=key, error=str(e))
            raise StorageError(f"Redis no disponible ({operation} {key}): {e}") from e

    @staticmethod
    def _decode(value) -> Optional[str]:
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        with self._guard("set", key):
            self._client.set(key, value, ex=ttl_seconds)

    def get(self, key: str) -> Optional[str]:
        with self._guard("get", key):
            return self._decode(self._client.get(key))

    def get_many(self, keys: list[str]) -> list[Optional[str]]:
        if not keys:
            return []
        with self._guard("mget", keys[0]):
            return [self._decode(v) for v in self._client.mget(keys)]

    def update(
        self, key: str, apply: Callable[[str], str], ttl_seconds: Optional[int] = None
    ) -> Optional[str]:
        # WATCH/MULTI: si otra escritura toca la clave, redis-py reintenta
        def _check_and_set(pipe) -> Optional[str]:
            current = self._decode(pipe.get(key))
            if current is None:
                return None
            new_value = apply(current)
            pipe.multi()
            pipe.set(key, new_value, ex=ttl_seconds)
            return new_value

        with self._guard("update", key):
            return self._client.transaction(_check_and_set, key, value_from_callable=True)

    def index_add(
        self, index: str, member: str, ttl_seconds: Optional[int] = None
    ) -> None:
        with self._guard("sadd", index):
            pipe = self._client.pipeline()
            pipe.sadd(index, member)
            if ttl_seconds:
                pipe.expire(index, ttl_seconds)
            pipe.execute()

    def index_prune(self, index: str, keys_by_member: dict[str, str]) -> list[str]:
        if not keys_by_member:
            return []

        def _check_and_remove(pipe) -> list[str]:
            missing = [m for m, key in keys_by_member.items() if not pipe.exists(key)]
            pipe.multi()
            if missing:
                pipe.srem(index, *missing)
            return missing

        with self._guard("srem", index):
            return self._client.transaction(
                _check_and_remove, index, *keys_by_member.values(), value_from_callable=True
            )

    def index_members(self, index: str) -> set[str]:
        with self._guard("smembers", index):
            return {self._decode(m) for m in self._client.smembers(index)}


class InMemoryBackend(KeyValueBackend):
    """
    Backend en memoria del proceso.

    Para correr sin Redis y para tests. El reloj es inyectable
    para poder simular la expiración.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._values: dict[str, tuple[str, Optional[float]]] = {}
        self._indexes: dict[str, tuple[set[str], Optional[float]]] = {}

    def _deadline(self, ttl_seconds: Optional[int]) -> Optional[float]:
        return self._clock() + ttl_seconds if ttl_seconds else None

    def _alive(self, deadline: Optional[float]) -> bool:
        return deadline is None or deadline > self._clock()

    def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        with self._lock:
            self._values[key] = (value, self._deadline(ttl_seconds))

    def _get_locked(self, key: str) -> Optional[str]:
        entry = self._values.get(key)
        if entry is None:
            return None
        value, deadline = entry
        if not self._alive(deadline):
            del self._values[key]
            return None
        return value

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._get_locked(key)

    def get_many(self, keys: list[str]) -> list[Optional[str]]:
        with self._lock:
            return [self._get_locked(key) for key in keys]

    def update(
        self, key: str, apply: Callable[[str], str], ttl_seconds: Optional[int] = None
    ) -> Optional[str]:
        with self._lock:
            current = self._get_locked(key)
            if current is None:
                return None
            new_value = apply(current)
            self._values[key] = (new_value, self._deadline(ttl_seconds))
            return new_value

    def index_add(
        self, index: str, member: str, ttl_seconds: Optional[int] = None
    ) -> None:
        with self._lock:
            members, deadline = self._indexes.get(index, (set(), None))
            if not self._alive(deadline):
                members = set()
            if ttl_seconds:
                deadline = self._deadline(ttl_seconds)
            members.add(member)
            self._indexes[index] = (members, deadline)

    def index_prune(self, index: str, keys_by_member: dict[str, str]) -> list[str]:
        with self._lock:
            entry = self._indexes.get(index)
            if entry is None:
                return []
            missing = [m for m, key in keys_by_member.items() if self._get_locked(key) is None]
            entry[0].difference_update(missing)
            return missing

    def index_members(self, index: str) -> set[str]:
        with self._lock:
            entry = self._indexes.get(index)
            if entry is None or not self._alive(entry[1]):
                self._indexes.pop(index, None)
                return set()
            return set(entry[0])


def create_backend(kind: str) -> KeyValueBackend:
    """Construye el backend configurado ('redis' o 'memory')."""
    if kind == "memory":
        logger.info("Usando backend en memoria")
        return InMemoryBackend()
    if kind == "redis":
        return RedisBackend()
    raise ValueError(f"Backend de almacenamiento no soportado: {kind}")
