"""
Pipeline de eventos.

Consume actualizaciones de perfil desde el event log y publica
los matches creados en un tópico aparte.
"""

from matchmaker.events.log import (
    EventLog,
    EventRecord,
    RedisStreamEventLog,
    InMemoryEventLog,
    create_event_log,
)
from matchmaker.events.pipeline import MatchPipeline, ProfileUpdatePublisher, build_pipeline

__all__ = [
    # Event log
    "EventLog",
    "EventRecord",
    "RedisStreamEventLog",
    "InMemoryEventLog",
    "create_event_log",
    # Pipeline
    "MatchPipeline",
    "ProfileUpdatePublisher",
    "build_pipeline",
]
