"""
Modelo de Perfil de matching.

Un perfil por usuario; cada escritura reemplaza completamente al anterior.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class UserProfile(BaseModel):
    """
    Atributos de un usuario relevantes para el matching.

    Las listas se tratan como conjuntos case-insensitive al puntuar,
    pero se guardan tal cual llegan para conservar el casing original.
    """

    model_config = ConfigDict(from_attributes=True)

    user_id: str = Field(..., min_length=1, description="ID opaco y único del usuario")

    tags: list[str] = Field(default_factory=list, description="Tags / intereses declarados")
    industries: list[str] = Field(default_factory=list, description="Industrias de interés")
    interests: list[str] = Field(default_factory=list, description="Intereses (no puntúa)")
    skills: list[str] = Field(default_factory=list, description="Skills técnicas")

    experience: int = Field(0, ge=0, description="Años de experiencia")
    location: str = Field("", description="Ubicación libre, ej: 'San Francisco, CA'")
    bio: str = Field("", description="Bio libre (no se usa para el score)")

    # Metadatos
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("tags", "industries", "interests", "skills", mode="before")
    @classmethod
    def _none_to_empty_list(cls, value):
        # Los productores upstream serializan listas vacías como null
        return [] if value is None else value

    @field_validator("location", "bio", mode="before")
    @classmethod
    def _none_to_empty_str(cls, value):
        return "" if value is None else value

    def to_db_json(self) -> str:
        """Serializa el perfil para guardarlo en el key-value store."""
        return self.model_dump_json()


class ProfileUpdatedEvent(BaseModel):
    """Evento de actualización de perfil publicado por la API de perfiles."""

    user_id: str = Field(..., min_length=1)
    profile: UserProfile
    timestamp: datetime = Field(default_factory=utc_now)


class ProfileCreated(BaseModel):
    """Resultado de crear/refrescar un perfil."""

    profile: UserProfile
    matches_found: int = 0
    message: Optional[str] = "User profile created successfully"
