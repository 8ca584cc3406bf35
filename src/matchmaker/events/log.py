"""
Event log durable.

RedisStreamEventLog usa Redis Streams con consumer group (entrega
at-least-once: un evento queda pendiente hasta el XACK).
InMemoryEventLog usa colas asyncio, para correr sin Redis y para tests.
"""

import asyncio
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass
from typing import Optional

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError, ResponseError

from matchmaker.config import Settings
from matchmaker.database import create_async_redis_client
from matchmaker.errors import EventLogError

logger = structlog.get_logger()


@dataclass
class EventRecord:
    """Un mensaje leído del log."""

    id: str
    key: str
    payload: str


class EventLog(ABC):
    """Capacidad de publicar y consumir eventos por tópico."""

    @abstractmethod
    async def publish(self, topic: str, key: str, payload: str) -> str:
        """Publica un evento y devuelve su ID en el log."""

    @abstractmethod
    async def read(self, topic: str, count: int = 10) -> list[EventRecord]:
        """Lee el próximo lote; puede devolver una lista vacía si no hay nada."""

    @abstractmethod
    async def ack(self, topic: str, record: EventRecord) -> None:
        ...

    async def close(self) -> None:
        return None


class RedisStreamEventLog(EventLog):
    """Event log sobre Redis Streams."""

    def __init__(
        self,
        client: aioredis.Redis,
        group: str,
        consumer: str,
        block_ms: Optional[int] = 5000,
    ):
        self._client = client
        self.group = group
        self.consumer = consumer
        # XREADGROUP con BLOCK 0 bloquea para siempre: 0/None = no bloquear
        self.block_ms = block_ms or None
        self._groups_ready: set[str] = set()
        # Tópicos donde ya se re-leyeron los pendientes de este consumidor
        self._backlog_drained: set[str] = set()

    @property
    def client(self) -> aioredis.Redis:
        return self._client

    async def _ensure_group(self, topic: str) -> None:
        if topic in self._groups_ready:
            return
        try:
            await self._client.xgroup_create(topic, self.group, id="0", mkstream=True)
            logger.info("Consumer group creado", topic=topic, group=self.group)
        except ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise
        self._groups_ready.add(topic)

    async def publish(self, topic: str, key: str, payload: str) -> str:
        try:
            record_id = await self._client.xadd(topic, {"key": key, "payload": payload})
        except RedisError as e:
            raise EventLogError(f"No se pudo publicar en {topic}: {e}") from e
        return record_id.decode() if isinstance(record_id, bytes) else record_id

    async def read(self, topic: str, count: int = 10) -> list[EventRecord]:
        """
        Lee con XREADGROUP.

        La primera lectura de cada tópico recupera los mensajes que este
        consumidor dejó sin ACK (ej: crash a mitad de proceso).
        """
        try:
            await self._ensure_group(topic)
            if topic not in self._backlog_drained:
                records = await self._read_group(topic, "0", count, block=None)
                if records:
                    logger.info("Reprocesando pendientes", topic=topic, pending=len(records))
                    return records
                self._backlog_drained.add(topic)
            return await self._read_group(topic, ">", count, block=self.block_ms)
        except RedisError as e:
            raise EventLogError(f"No se pudo leer de {topic}: {e}") from e

    async def _read_group(
        self, topic: str, start: str, count: int, block: Optional[int]
    ) -> list[EventRecord]:
        response = await self._client.xreadgroup(
            self.group, self.consumer, {topic: start}, count=count, block=block
        )
        if not response:
            return []

        # Formato RESP2: [[stream, [(id, fields), ...]], ...]
        records = []
        for _, entries in response:
            for record_id, fields in entries:
                if not fields:
                    # Entrada pendiente que ya fue borrada del stream
                    continue
                records.append(
                    EventRecord(
                        id=_text(record_id),
                        key=_text(fields.get("key", "")),
                        payload=_text(fields.get("payload", "")),
                    )
                )
        return records

    async def ack(self, topic: str, record: EventRecord) -> None:
        try:
            await self._client.xack(topic, self.group, record.id)
        except RedisError as e:
            raise EventLogError(f"No se pudo confirmar {record.id} en {topic}: {e}") from e

    async def close(self) -> None:
        await self._client.aclose()


def _text(value) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else str(value)


class InMemoryEventLog(EventLog):
    """
    Event log en memoria del proceso.

    Sin redelivery: un evento leído y no confirmado no vuelve a entregarse.
    Cada tópico retiene a lo sumo `max_pending` eventos sin leer (se
    descartan los más viejos) y `history_limit` publicados y confirmados.
    """

    def __init__(
        self,
        block_timeout: Optional[float] = 0.5,
        max_pending: int = 10_000,
        history_limit: int = 1_000,
    ):
        self.block_timeout = block_timeout
        self.max_pending = max_pending
        self.history_limit = history_limit
        self._queues: dict[str, asyncio.Queue] = defaultdict(
            lambda: asyncio.Queue(maxsize=self.max_pending)
        )
        self._sequence = 0
        self.published: dict[str, list[EventRecord]] = defaultdict(list)
        self.acked: dict[str, list[str]] = defaultdict(list)

    def _remember(self, history: list, item) -> None:
        history.append(item)
        if len(history) > self.history_limit:
            del history[: len(history) - self.history_limit]

    async def publish(self, topic: str, key: str, payload: str) -> str:
        self._sequence += 1
        record = EventRecord(id=f"{self._sequence}-0", key=key, payload=payload)
        self._remember(self.published[topic], record)

        queue = self._queues[topic]
        if queue.full():
            dropped = queue.get_nowait()
            logger.warning(
                "Cola en memoria llena, se descarta el evento más viejo",
                topic=topic,
                record_id=dropped.id,
            )
        queue.put_nowait(record)
        return record.id

    async def read(self, topic: str, count: int = 10) -> list[EventRecord]:
        queue = self._queues[topic]
        if queue.empty():
            if not self.block_timeout:
                return []
            try:
                first = await asyncio.wait_for(queue.get(), timeout=self.block_timeout)
            except asyncio.TimeoutError:
                return []
            records = [first]
        else:
            records = []

        while len(records) < count and not queue.empty():
            records.append(queue.get_nowait())
        return records

    async def ack(self, topic: str, record: EventRecord) -> None:
        self._remember(self.acked[topic], record.id)


def create_event_log(settings: Settings) -> EventLog:
    """Construye el event log configurado ('redis' o 'memory')."""
    if settings.event_log_backend == "memory":
        logger.info("Usando event log en memoria")
        return InMemoryEventLog()
    if settings.event_log_backend == "redis":
        return RedisStreamEventLog(
            client=create_async_redis_client(settings.redis_url),
            group=settings.consumer_group,
            consumer=settings.consumer_name,
            block_ms=settings.stream_block_ms,
        )
    raise ValueError(f"Event log no soportado: {settings.event_log_backend}")
