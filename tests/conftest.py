"""
Fixtures compartidas.

Los repositorios se prueban contra los dos backends: memoria (con reloj
controlable) y Redis simulado con fakeredis.
"""

import fakeredis
import pytest

from matchmaker.config import MatchingConfig
from matchmaker.database import (
    InMemoryBackend,
    MatchRepository,
    ProfileRepository,
    RedisBackend,
)
from matchmaker.matching import MatchGenerator, SearchService, SimilarityScorer
from matchmaker.models import UserProfile
from matchmaker.service import MatchmakerService


class FakeClock:
    """Reloj monotónico que sólo avanza cuando el test lo pide."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_backend(clock):
    return InMemoryBackend(clock=clock)


@pytest.fixture
def redis_backend():
    return RedisBackend(fakeredis.FakeRedis(decode_responses=True))


@pytest.fixture(params=["memory", "redis"])
def backend(request, memory_backend, redis_backend):
    return memory_backend if request.param == "memory" else redis_backend


@pytest.fixture
def config():
    return MatchingConfig()


@pytest.fixture
def profile_repo(backend, config):
    return ProfileRepository(backend, config)


@pytest.fixture
def match_repo(backend, config):
    return MatchRepository(backend, config)


@pytest.fixture
def scorer(config):
    return SimilarityScorer(config.weights)


@pytest.fixture
def generator(profile_repo, match_repo, scorer, config):
    return MatchGenerator(profile_repo, match_repo, scorer, config)


@pytest.fixture
def search_service(profile_repo, scorer, config):
    return SearchService(profile_repo, scorer, config)


@pytest.fixture
def service(profile_repo, match_repo, generator, search_service):
    return MatchmakerService(profile_repo, match_repo, generator, search_service)


@pytest.fixture
def make_profile():
    """
    Fábrica de perfiles.

    Por defecto todos los perfiles comparten tags/industria/skills y
    ubicación, así que puntúan 1.0 entre sí.
    """

    def _make(user_id: str, **overrides) -> UserProfile:
        data = {
            "user_id": user_id,
            "tags": ["go", "backend"],
            "industries": ["tech"],
            "experience": 5,
            "skills": ["go", "pg"],
            "location": "SF",
        }
        data.update(overrides)
        return UserProfile(**data)

    return _make


@pytest.fixture
def unrelated_profile(make_profile):
    """Perfil que no comparte nada con los de make_profile (score 0.07)."""

    def _make(user_id: str) -> UserProfile:
        return make_profile(
            user_id,
            tags=["painting"],
            industries=["arts"],
            experience=30,
            skills=["watercolor"],
            location="",
        )

    return _make
