"""
Modelos de búsqueda ad hoc sobre perfiles.

MatchmakingCriteria es efímero: vive lo que dura el request.
"""

from typing import Optional

from pydantic import BaseModel, Field, model_validator


class MatchmakingCriteria(BaseModel):
    """
    Filtros hard para la búsqueda.

    Los filtros vacíos / None no filtran. `limit=0` significa sin límite;
    un `offset` negativo o mayor al total devuelve una página vacía.
    """

    user_id: str = Field(..., min_length=1, description="Usuario que busca")
    industries: list[str] = Field(default_factory=list)
    skills: list[str] = Field(default_factory=list)
    min_exp: Optional[int] = Field(None, ge=0, description="Experiencia mínima (inclusive)")
    max_exp: Optional[int] = Field(None, ge=0, description="Experiencia máxima (inclusive)")
    location: str = Field("", description="Substring de ubicación, case-insensitive")

    limit: int = Field(0, ge=0)
    offset: int = 0

    @model_validator(mode="after")
    def _check_exp_range(self) -> "MatchmakingCriteria":
        if (
            self.min_exp is not None
            and self.max_exp is not None
            and self.min_exp > self.max_exp
        ):
            raise ValueError("min_exp no puede ser mayor que max_exp")
        return self


class SearchHit(BaseModel):
    user_id: str
    score: float
    reason: str


class SearchPage(BaseModel):
    matches: list[SearchHit] = Field(default_factory=list)
    total: int = 0
