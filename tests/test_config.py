"""Tests de Settings y MatchingConfig."""

import pytest
from pydantic import ValidationError as PydanticValidationError

from matchmaker.config import DedupPolicy, MatchingConfig, ScoringWeights, Settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("MIN_MATCH_SCORE", "MAX_MATCHES", "MATCH_DEDUP_POLICY", "WEIGHT_TAGS"):
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    settings = Settings(_env_file=None)

    assert settings.profile_updates_stream == "user-updated"
    assert settings.matches_created_stream == "matches-created"
    assert settings.consumer_group == "matchmaker-group"
    assert settings.event_max_delivery_attempts == 3

    config = settings.matching_config()
    assert config == MatchingConfig()
    assert config.profile_ttl_seconds == 24 * 3600
    assert config.match_ttl_seconds == 7 * 24 * 3600
    assert config.dedup_policy == DedupPolicy.APPEND


def test_reads_environment(monkeypatch):
    monkeypatch.setenv("MIN_MATCH_SCORE", "0.5")
    monkeypatch.setenv("max_matches", "3")
    monkeypatch.setenv("MATCH_DEDUP_POLICY", "upsert_pair")
    monkeypatch.setenv("WEIGHT_TAGS", "0.6")

    config = Settings(_env_file=None).matching_config()

    assert config.min_match_score == 0.5
    assert config.max_matches == 3
    assert config.dedup_policy == DedupPolicy.UPSERT_PAIR
    assert config.weights.tags == 0.6


def test_ttl_conversion():
    config = Settings(_env_file=None, profile_ttl_hours=2, match_ttl_days=1).matching_config()

    assert config.profile_ttl_seconds == 7200
    assert config.match_ttl_seconds == 86400


@pytest.mark.parametrize(
    "overrides",
    [
        {"storage_backend": "postgres"},
        {"min_match_score": 1.5},
        {"max_matches": 0},
        {"match_dedup_policy": "merge"},
        {"weight_skills": -0.1},
    ],
)
def test_invalid_settings(overrides):
    with pytest.raises(PydanticValidationError):
        Settings(_env_file=None, **overrides)


def test_weights_total():
    assert ScoringWeights().total == pytest.approx(1.0)
    assert ScoringWeights(tags=1, industries=1, experience=0, skills=0, location=0).total == 2


def test_all_zero_weights_rejected():
    with pytest.raises(PydanticValidationError):
        ScoringWeights(tags=0, industries=0, experience=0, skills=0, location=0)


def test_all_zero_weights_from_settings_rejected():
    settings = Settings(
        _env_file=None,
        weight_tags=0,
        weight_industries=0,
        weight_experience=0,
        weight_skills=0,
        weight_location=0,
    )

    with pytest.raises(PydanticValidationError):
        settings.matching_config()
