"""
Pipeline de recomputación de matches.

Un único consumidor secuencial: por cada evento de perfil actualizado
guarda el perfil, regenera los matches del usuario y publica un evento
"match created" por cada match nuevo.
"""

import asyncio

import structlog
from pydantic import ValidationError as PydanticValidationError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from matchmaker.config import Settings
from matchmaker.database import ProfileRepository
from matchmaker.errors import EventLogError, MatchmakerError
from matchmaker.events.log import EventLog, EventRecord
from matchmaker.matching import MatchGenerator
from matchmaker.models import Match, ProfileUpdatedEvent, UserProfile

logger = structlog.get_logger()


class ProfileUpdatePublisher:
    """Publica eventos de actualización de perfil (lado productor)."""

    def __init__(self, event_log: EventLog, topic: str):
        self.event_log = event_log
        self.topic = topic

    async def publish(self, profile: UserProfile) -> str:
        event = ProfileUpdatedEvent(user_id=profile.user_id, profile=profile)
        record_id = await self.event_log.publish(
            self.topic, key=profile.user_id, payload=event.model_dump_json()
        )
        logger.info("Evento de perfil publicado", user_id=profile.user_id, record_id=record_id)
        return record_id


class MatchPipeline:
    """
    Consumidor del stream de perfiles actualizados.

    - Errores de lectura: se loguean y se reintenta con backoff exponencial,
      sin límite de intentos.
    - Eventos que no se pueden decodificar: se descartan (ACK).
    - Eventos que fallan al procesarse: se reintentan hasta
      `max_attempts` y después se descartan como poison.
    """

    def __init__(
        self,
        event_log: EventLog,
        profile_repo: ProfileRepository,
        generator: MatchGenerator,
        inbound_topic: str = "user-updated",
        outbound_topic: str = "matches-created",
        max_attempts: int = 3,
        backoff_min: float = 1.0,
        backoff_max: float = 30.0,
    ):
        self.event_log = event_log
        self.profile_repo = profile_repo
        self.generator = generator
        self.inbound_topic = inbound_topic
        self.outbound_topic = outbound_topic
        self.max_attempts = max_attempts
        self.backoff_min = backoff_min
        self.backoff_max = backoff_max

        self._stopping = asyncio.Event()
        self.stats = {
            "events_processed": 0,
            "events_dropped": 0,
            "matches_created": 0,
            "matches_published": 0,
            "read_errors": 0,
        }

    def _wait(self):
        return wait_exponential(multiplier=self.backoff_min, min=self.backoff_min, max=self.backoff_max)

    def stop(self) -> None:
        self._stopping.set()

    @property
    def stopping(self) -> bool:
        return self._stopping.is_set()

    async def run(self) -> dict:
        """Loop principal; corre hasta que se llame a stop()."""
        logger.info(
            "Iniciando consumidor de matchmaking",
            topic=self.inbound_topic,
            outbound=self.outbound_topic,
        )
        while not self.stopping:
            await self.run_once()

        logger.info("Consumidor detenido", **self.stats)
        return self.stats

    async def run_once(self) -> int:
        """Lee un lote y lo procesa en orden. Devuelve cuántos eventos leyó."""
        try:
            records = await self._read_with_backoff()
        except EventLogError:
            # Sólo llega acá si se pidió stop() durante el backoff
            return 0

        for record in records:
            await self._handle(record)
        return len(records)

    async def _read_with_backoff(self) -> list[EventRecord]:
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(EventLogError),
            wait=self._wait(),
            stop=lambda _: self.stopping,
            before_sleep=self._log_read_retry,
            reraise=True,
        ):
            with attempt:
                return await self.event_log.read(self.inbound_topic)
        return []

    def _log_read_retry(self, retry_state: RetryCallState) -> None:
        self.stats["read_errors"] += 1
        logger.warning(
            "Error leyendo del event log, reintentando",
            topic=self.inbound_topic,
            attempt=retry_state.attempt_number,
            error=str(retry_state.outcome.exception()),
        )

    async def _handle(self, record: EventRecord) -> None:
        try:
            event = ProfileUpdatedEvent.model_validate_json(record.payload)
        except PydanticValidationError as e:
            logger.error(
                "Evento inválido, se descarta",
                record_id=record.id,
                key=record.key,
                error=str(e),
            )
            self.stats["events_dropped"] += 1
            await self._ack(record)
            return

        logger.info("Procesando actualización de perfil", user_id=event.user_id, record_id=record.id)

        try:
            matches = await self._process_with_retries(event)
        except MatchmakerError as e:
            logger.error(
                "Evento descartado tras reintentos",
                user_id=event.user_id,
                record_id=record.id,
                attempts=self.max_attempts,
                error=str(e),
            )
            self.stats["events_dropped"] += 1
            await self._ack(record)
            return
        except Exception:
            logger.exception(
                "Error inesperado procesando evento, se descarta",
                user_id=event.user_id,
                record_id=record.id,
            )
            self.stats["events_dropped"] += 1
            await self._ack(record)
            return

        self.stats["events_processed"] += 1
        self.stats["matches_created"] += len(matches)

        if matches:
            await self.publish_matches_created(matches)

        await self._ack(record)

    async def _process_with_retries(self, event: ProfileUpdatedEvent) -> list[Match]:
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(MatchmakerError),
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait(),
            reraise=True,
        ):
            with attempt:
                return self.process_event(event)
        return []

    def process_event(self, event: ProfileUpdatedEvent) -> list[Match]:
        """
        Guarda el perfil del evento y regenera sus matches.

        Es re-ejecutable: tolera entregas duplicadas del log.
        """
        profile = event.profile
        if profile.user_id != event.user_id:
            logger.warning(
                "user_id del evento y del perfil no coinciden, se usa el del evento",
                event_user_id=event.user_id,
                profile_user_id=profile.user_id,
            )
            profile = profile.model_copy(update={"user_id": event.user_id})

        self.profile_repo.put(profile)
        return self.generator.generate_for(event.user_id)

    async def publish_matches_created(self, matches: list[Match]) -> int:
        """Un evento por match, keyed por match id. Los fallos se loguean y se saltean."""
        published = 0
        for match in matches:
            try:
                await self.event_log.publish(
                    self.outbound_topic, key=match.id, payload=match.model_dump_json()
                )
                published += 1
            except EventLogError as e:
                logger.warning("No se pudo publicar match creado", match_id=match.id, error=str(e))

        self.stats["matches_published"] += published
        logger.info("Matches publicados", topic=self.outbound_topic, count=published)
        return published

    async def _ack(self, record: EventRecord) -> None:
        try:
            await self.event_log.ack(self.inbound_topic, record)
        except EventLogError as e:
            # Sin ACK el evento se re-entrega; procesarlo de nuevo es seguro
            logger.warning("No se pudo confirmar evento", record_id=record.id, error=str(e))


def build_pipeline(
    event_log: EventLog,
    profile_repo: ProfileRepository,
    generator: MatchGenerator,
    settings: Settings,
) -> MatchPipeline:
    """Arma el pipeline con los parámetros de Settings."""
    return MatchPipeline(
        event_log=event_log,
        profile_repo=profile_repo,
        generator=generator,
        inbound_topic=settings.profile_updates_stream,
        outbound_topic=settings.matches_created_stream,
        max_attempts=settings.event_max_delivery_attempts,
        backoff_min=settings.event_read_backoff_min,
        backoff_max=settings.event_read_backoff_max,
    )
