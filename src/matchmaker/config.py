"""
Configuración centralizada del sistema.
Carga variables de entorno y define settings globales.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# config.py -> matchmaker/ -> src/ -> raíz del proyecto (donde está el .env)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


class DedupPolicy(str, Enum):
    """Qué hacer cuando el generador vuelve a producir un par ya existente."""

    APPEND = "append"  # siempre crea un Match nuevo
    UPSERT_PAIR = "upsert_pair"  # reutiliza el Match del par {user_1, user_2}


class ScoringWeights(BaseModel):
    """Pesos de cada sub-score del scorer de similitud."""

    model_config = ConfigDict(frozen=True)

    tags: float = Field(0.30, ge=0.0)
    industries: float = Field(0.25, ge=0.0)
    experience: float = Field(0.20, ge=0.0)
    skills: float = Field(0.15, ge=0.0)
    location: float = Field(0.10, ge=0.0)

    @model_validator(mode="after")
    def _check_total(self) -> "ScoringWeights":
        if self.total <= 0:
            raise ValueError("La suma de los pesos debe ser mayor a 0")
        return self

    @property
    def total(self) -> float:
        return self.tags + self.industries + self.experience + self.skills + self.location


class MatchingConfig(BaseModel):
    """
    Parámetros del motor de matching.

    Se construye a partir de Settings para que el motor no lea
    variables de entorno directamente.
    """

    model_config = ConfigDict(frozen=True)

    weights: ScoringWeights = Field(default_factory=ScoringWeights)
    min_match_score: float = Field(0.3, ge=0.0, le=1.0)
    max_matches: int = Field(10, ge=1)
    profile_ttl_seconds: int = Field(24 * 3600, ge=1)
    match_ttl_seconds: int = Field(7 * 24 * 3600, ge=1)
    dedup_policy: DedupPolicy = DedupPolicy.APPEND


class Settings(BaseSettings):
    """Configuración principal de la aplicación."""

    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Almacenamiento
    redis_url: str = Field("redis://localhost:6379/0", description="URL de conexión a Redis")
    storage_backend: Literal["redis", "memory"] = Field(
        "redis", description="Backend de perfiles y matches: 'redis' o 'memory'"
    )

    # Event log
    event_log_backend: Literal["redis", "memory"] = Field(
        "redis", description="Backend del event log: 'redis' (streams) o 'memory'"
    )
    profile_updates_stream: str = Field(
        "user-updated", description="Stream de eventos de actualización de perfil"
    )
    matches_created_stream: str = Field(
        "matches-created", description="Stream donde se publican los matches creados"
    )
    consumer_group: str = Field("matchmaker-group", description="Consumer group del pipeline")
    consumer_name: str = Field("matchmaker-1", description="Nombre de este consumidor")
    stream_block_ms: int = Field(
        5000, ge=0, description="Tiempo máximo de espera por mensaje (ms)"
    )
    event_read_backoff_min: float = Field(
        1.0, ge=0.0, description="Backoff mínimo ante errores de lectura (segundos)"
    )
    event_read_backoff_max: float = Field(
        30.0, ge=0.0, description="Backoff máximo ante errores de lectura (segundos)"
    )
    event_max_delivery_attempts: int = Field(
        3, ge=1, description="Intentos de procesamiento antes de descartar un evento"
    )

    # Scoring
    weight_tags: float = Field(0.30, ge=0.0, description="Peso de similitud de tags")
    weight_industries: float = Field(0.25, ge=0.0, description="Peso de similitud de industrias")
    weight_experience: float = Field(0.20, ge=0.0, description="Peso de compatibilidad de experiencia")
    weight_skills: float = Field(0.15, ge=0.0, description="Peso de similitud de skills")
    weight_location: float = Field(0.10, ge=0.0, description="Peso de compatibilidad de ubicación")

    # Matching
    min_match_score: float = Field(
        0.3, ge=0.0, le=1.0, description="Score mínimo (exclusivo) para persistir un match"
    )
    max_matches: int = Field(10, ge=1, description="Máximo de matches por generación")
    profile_ttl_hours: int = Field(24, ge=1, description="Retención de perfiles (horas)")
    match_ttl_days: int = Field(7, ge=1, description="Retención de matches (días)")
    match_dedup_policy: DedupPolicy = Field(
        DedupPolicy.APPEND,
        description="'append' crea un match nuevo por corrida, 'upsert_pair' reutiliza el del par",
    )

    # API
    api_host: str = Field("0.0.0.0", description="Host de escucha de la API")
    api_port: int = Field(8080, description="Puerto de la API")

    # Logging
    log_level: str = Field("INFO", description="Nivel de logging")

    def scoring_weights(self) -> ScoringWeights:
        return ScoringWeights(
            tags=self.weight_tags,
            industries=self.weight_industries,
            experience=self.weight_experience,
            skills=self.weight_skills,
            location=self.weight_location,
        )

    def matching_config(self) -> MatchingConfig:
        """Arma la configuración inmutable que consume el motor."""
        return MatchingConfig(
            weights=self.scoring_weights(),
            min_match_score=self.min_match_score,
            max_matches=self.max_matches,
            profile_ttl_seconds=self.profile_ttl_hours * 3600,
            match_ttl_seconds=self.match_ttl_days * 24 * 3600,
            dedup_policy=self.match_dedup_policy,
        )


@lru_cache
def get_settings() -> Settings:
    """Obtiene la configuración cacheada."""
    return Settings()
