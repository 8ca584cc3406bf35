"""Tests del pipeline de eventos y de los event logs."""

import json

import fakeredis
import pytest
import pytest_asyncio

from matchmaker.config import Settings
from matchmaker.errors import EventLogError, StorageError
from matchmaker.events import (
    InMemoryEventLog,
    MatchPipeline,
    ProfileUpdatePublisher,
    RedisStreamEventLog,
    build_pipeline,
)
from matchmaker.matching import MatchGenerator
from matchmaker.models import Match, ProfileUpdatedEvent

INBOUND = "user-updated"
OUTBOUND = "matches-created"


class FailingGenerator(MatchGenerator):
    """Falla las primeras `failures` llamadas a generate_for."""

    def __init__(self, *args, failures: int, **kwargs):
        super().__init__(*args, **kwargs)
        self.failures = failures
        self.calls = 0

    def generate_for(self, user_id):
        self.calls += 1
        if self.calls <= self.failures:
            raise StorageError("redis caído")
        return super().generate_for(user_id)


class FlakyEventLog(InMemoryEventLog):
    """Falla las primeras `failures` lecturas."""

    def __init__(self, failures: int):
        super().__init__(block_timeout=None)
        self.failures = failures

    async def read(self, topic, count=10):
        if self.failures:
            self.failures -= 1
            raise EventLogError("conexión rechazada")
        return await super().read(topic, count)


class BrokenOutboundEventLog(InMemoryEventLog):
    """Falla las primeras `failures` publicaciones en un tópico."""

    def __init__(self, topic: str, failures: int):
        super().__init__(block_timeout=None)
        self.broken_topic = topic
        self.failures = failures

    async def publish(self, topic, key, payload):
        if topic == self.broken_topic and self.failures:
            self.failures -= 1
            raise EventLogError("stream no disponible")
        return await super().publish(topic, key, payload)


@pytest.fixture
def event_log():
    return InMemoryEventLog(block_timeout=None)


def _pipeline(event_log, profile_repo, generator, **kwargs) -> MatchPipeline:
    kwargs.setdefault("backoff_min", 0)
    kwargs.setdefault("backoff_max", 0)
    return MatchPipeline(
        event_log,
        profile_repo,
        generator,
        inbound_topic=INBOUND,
        outbound_topic=OUTBOUND,
        **kwargs,
    )


@pytest.fixture
def pipeline(event_log, profile_repo, generator):
    return _pipeline(event_log, profile_repo, generator)


async def _publish_event(event_log, profile) -> str:
    event = ProfileUpdatedEvent(user_id=profile.user_id, profile=profile)
    return await event_log.publish(INBOUND, profile.user_id, event.model_dump_json())


class TestMatchPipeline:
    @pytest.mark.asyncio
    async def test_event_stores_profile_and_publishes_matches(
        self, event_log, pipeline, profile_repo, make_profile
    ):
        profile_repo.put(make_profile("A"))
        record_id = await _publish_event(event_log, make_profile("B"))

        assert await pipeline.run_once() == 1

        assert profile_repo.get("B").user_id == "B"
        published = event_log.published[OUTBOUND]
        assert len(published) == 1
        match = Match.model_validate_json(published[0].payload)
        assert published[0].key == match.id
        assert (match.user_id_1, match.user_id_2) == ("B", "A")
        assert event_log.acked[INBOUND] == [record_id]
        assert pipeline.stats["events_processed"] == 1
        assert pipeline.stats["matches_created"] == 1
        assert pipeline.stats["matches_published"] == 1

    @pytest.mark.asyncio
    async def test_no_matches_publishes_nothing(self, event_log, pipeline, make_profile):
        record_id = await _publish_event(event_log, make_profile("A"))

        await pipeline.run_once()

        assert event_log.published[OUTBOUND] == []
        assert event_log.acked[INBOUND] == [record_id]

    @pytest.mark.asyncio
    async def test_empty_read(self, pipeline):
        assert await pipeline.run_once() == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        ["{not json", json.dumps({"user_id": "A"}), json.dumps({"profile": {"tags": []}})],
    )
    async def test_undecodable_event_is_dropped_and_acked(self, event_log, pipeline, payload):
        record_id = await event_log.publish(INBOUND, "A", payload)

        await pipeline.run_once()

        assert event_log.acked[INBOUND] == [record_id]
        assert pipeline.stats["events_dropped"] == 1
        assert pipeline.stats["events_processed"] == 0

    @pytest.mark.asyncio
    async def test_poison_event_dropped_after_max_attempts(
        self, event_log, profile_repo, match_repo, make_profile
    ):
        generator = FailingGenerator(profile_repo, match_repo, failures=10)
        pipeline = _pipeline(event_log, profile_repo, generator, max_attempts=3)
        record_id = await _publish_event(event_log, make_profile("A"))

        await pipeline.run_once()

        assert generator.calls == 3
        assert event_log.acked[INBOUND] == [record_id]
        assert pipeline.stats["events_dropped"] == 1

    @pytest.mark.asyncio
    async def test_transient_failure_recovers(
        self, event_log, profile_repo, match_repo, make_profile
    ):
        generator = FailingGenerator(profile_repo, match_repo, failures=1)
        pipeline = _pipeline(event_log, profile_repo, generator, max_attempts=3)
        profile_repo.put(make_profile("A"))
        await _publish_event(event_log, make_profile("B"))

        await pipeline.run_once()

        assert generator.calls == 2
        assert pipeline.stats["events_processed"] == 1
        assert len(event_log.published[OUTBOUND]) == 1

    @pytest.mark.asyncio
    async def test_read_errors_are_retried(self, profile_repo, generator, make_profile):
        event_log = FlakyEventLog(failures=2)
        pipeline = _pipeline(event_log, profile_repo, generator)
        await _publish_event(event_log, make_profile("A"))

        assert await pipeline.run_once() == 1
        assert pipeline.stats["read_errors"] == 2

    @pytest.mark.asyncio
    async def test_stopped_pipeline_gives_up_on_read_errors(self, profile_repo, generator):
        pipeline = _pipeline(FlakyEventLog(failures=5), profile_repo, generator)
        pipeline.stop()

        assert await pipeline.run_once() == 0

    @pytest.mark.asyncio
    async def test_event_user_id_wins_over_profile(
        self, event_log, pipeline, profile_repo, make_profile
    ):
        event = ProfileUpdatedEvent(user_id="real", profile=make_profile("stale"))
        await event_log.publish(INBOUND, "real", event.model_dump_json())

        await pipeline.run_once()

        assert profile_repo.get("real").user_id == "real"
        assert [p.user_id for p in profile_repo.list_all()] == ["real"]

    @pytest.mark.asyncio
    async def test_duplicate_delivery_is_safe(self, event_log, pipeline, profile_repo, make_profile):
        profile_repo.put(make_profile("A"))
        await _publish_event(event_log, make_profile("B"))
        await _publish_event(event_log, make_profile("B"))

        assert await pipeline.run_once() == 2

        assert pipeline.stats["events_processed"] == 2
        assert sorted(p.user_id for p in profile_repo.list_all()) == ["A", "B"]

    @pytest.mark.asyncio
    async def test_run_stops(self, event_log, pipeline, make_profile):
        await _publish_event(event_log, make_profile("A"))
        pipeline.stop()

        stats = await pipeline.run()

        # stop() previo a run(): el loop no llega a leer
        assert stats["events_processed"] == 0
        assert pipeline.stopping

    @pytest.mark.asyncio
    async def test_outbound_publish_failure_is_skipped(
        self, profile_repo, generator, make_profile
    ):
        event_log = BrokenOutboundEventLog(OUTBOUND, failures=1)
        pipeline = _pipeline(event_log, profile_repo, generator)
        profile_repo.put(make_profile("A"))
        profile_repo.put(make_profile("C"))
        record_id = await _publish_event(event_log, make_profile("B"))

        await pipeline.run_once()

        assert pipeline.stats["matches_created"] == 2
        assert pipeline.stats["matches_published"] == 1
        assert len(event_log.published[OUTBOUND]) == 1
        assert event_log.acked[INBOUND] == [record_id]
        assert pipeline.stats["events_processed"] == 1


class TestInMemoryEventLog:
    @pytest.mark.asyncio
    async def test_unread_topic_is_bounded(self):
        log = InMemoryEventLog(block_timeout=None, max_pending=2, history_limit=2)
        for i in range(3):
            await log.publish(OUTBOUND, f"m{i}", "{}")

        records = await log.read(OUTBOUND)

        assert [r.key for r in records] == ["m1", "m2"]
        assert [r.key for r in log.published[OUTBOUND]] == ["m1", "m2"]

    @pytest.mark.asyncio
    async def test_ack_history_is_bounded(self):
        log = InMemoryEventLog(block_timeout=None, history_limit=2)
        for _ in range(3):
            await log.publish(INBOUND, "A", "{}")
        for record in await log.read(INBOUND):
            await log.ack(INBOUND, record)

        assert log.acked[INBOUND] == ["2-0", "3-0"]


def test_build_pipeline_uses_settings(event_log, profile_repo, generator):
    settings = Settings(
        _env_file=None,
        profile_updates_stream="in",
        matches_created_stream="out",
        event_max_delivery_attempts=5,
    )

    pipeline = build_pipeline(event_log, profile_repo, generator, settings)

    assert pipeline.inbound_topic == "in"
    assert pipeline.outbound_topic == "out"
    assert pipeline.max_attempts == 5


@pytest.mark.asyncio
async def test_profile_update_publisher(event_log, make_profile):
    publisher = ProfileUpdatePublisher(event_log, INBOUND)

    record_id = await publisher.publish(make_profile("A"))

    (record,) = event_log.published[INBOUND]
    assert record.id == record_id
    assert record.key == "A"
    event = ProfileUpdatedEvent.model_validate_json(record.payload)
    assert event.user_id == "A"
    assert event.profile.tags == ["go", "backend"]


class TestRedisStreamEventLog:
    @pytest_asyncio.fixture
    async def client(self):
        client = fakeredis.FakeAsyncRedis(decode_responses=True)
        yield client
        await client.aclose()

    def _log(self, client) -> RedisStreamEventLog:
        return RedisStreamEventLog(client, group="matchmaker-group", consumer="c1", block_ms=None)

    @pytest.mark.asyncio
    async def test_publish_read_ack(self, client):
        log = self._log(client)
        await log.read(INBOUND)  # crea el consumer group

        record_id = await log.publish(INBOUND, "A", '{"x": 1}')
        records = await log.read(INBOUND)

        assert [(r.id, r.key, r.payload) for r in records] == [(record_id, "A", '{"x": 1}')]
        await log.ack(INBOUND, records[0])
        assert await log.read(INBOUND) == []

    @pytest.mark.asyncio
    async def test_group_sees_events_published_before_it_existed(self, client):
        log = self._log(client)
        await log.publish(INBOUND, "A", "early")

        records = await log.read(INBOUND)

        assert [r.payload for r in records] == ["early"]

    @pytest.mark.asyncio
    async def test_unacked_records_are_redelivered_to_new_instance(self, client):
        first = self._log(client)
        await first.publish(INBOUND, "A", "p1")
        assert len(await first.read(INBOUND)) == 1

        # Crash sin ACK: otra instancia con el mismo consumidor lo recupera
        second = self._log(client)
        records = await second.read(INBOUND)

        assert [r.payload for r in records] == ["p1"]
        await second.ack(INBOUND, records[0])
        assert await second.read(INBOUND) == []

    @pytest.mark.asyncio
    async def test_pipeline_over_redis_streams(self, client, profile_repo, generator, make_profile):
        log = self._log(client)
        pipeline = _pipeline(log, profile_repo, generator)
        profile_repo.put(make_profile("A"))
        await ProfileUpdatePublisher(log, INBOUND).publish(make_profile("B"))

        assert await pipeline.run_once() == 1

        assert await client.xlen(OUTBOUND) == 1
        pending = await client.xpending(INBOUND, "matchmaker-group")
        assert pending["pending"] == 0
