"""
Modelo de Match.

Un Match es un par puntuado entre dos usuarios distintos con un
estado mutable (pending -> accepted / rejected).
"""

import uuid
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, model_validator

from matchmaker.models.profile import utc_now


class MatchStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"

    @classmethod
    def values(cls) -> list[str]:
        return [status.value for status in cls]


class Match(BaseModel):
    """Par puntuado entre dos usuarios."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id_1: str = Field(..., min_length=1, description="Usuario que disparó la generación")
    user_id_2: str = Field(..., min_length=1, description="Candidato")
    score: float = Field(..., ge=0.0, le=1.0)

    # Snapshots al momento de crear el match; no se recalculan
    common_tags: list[str] = Field(default_factory=list)
    common_skills: list[str] = Field(default_factory=list)

    status: MatchStatus = MatchStatus.PENDING

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def _distinct_users(self) -> "Match":
        if self.user_id_1 == self.user_id_2:
            raise ValueError("Un match necesita dos usuarios distintos")
        return self

    @property
    def pair_key(self) -> tuple[str, str]:
        """Clave natural del par, independiente del orden."""
        return pair_key(self.user_id_1, self.user_id_2)

    def involves(self, user_id: str) -> bool:
        return user_id in (self.user_id_1, self.user_id_2)

    def to_db_json(self) -> str:
        return self.model_dump_json()


def pair_key(user_a: str, user_b: str) -> tuple[str, str]:
    return (user_a, user_b) if user_a <= user_b else (user_b, user_a)


class MatchPage(BaseModel):
    """Página de matches de un usuario."""

    matches: list[Match] = Field(default_factory=list)
    total: int = 0
