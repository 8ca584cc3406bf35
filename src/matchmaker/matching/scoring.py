"""
Scorer de similitud entre perfiles.

Score = promedio ponderado de cinco sub-scores en [0, 1]:
- Tags (Jaccard)
- Industrias (Jaccard)
- Experiencia (función escalón sobre la diferencia de años)
- Skills (Jaccard)
- Ubicación (match exacto / por segmento / neutro si falta)

Todas las funciones son puras, deterministas y conmutativas.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from matchmaker.config import ScoringWeights
from matchmaker.models import UserProfile

# (diferencia máxima de años, score); los bordes caen en el escalón más alto
EXPERIENCE_STEPS = ((2, 1.0), (5, 0.7), (10, 0.4))
EXPERIENCE_FLOOR = 0.1

LOCATION_UNKNOWN = 0.5
LOCATION_EXACT = 1.0
LOCATION_SEGMENT = 0.8
LOCATION_MISMATCH = 0.2


def _lower_set(items: Iterable[str]) -> set[str]:
    return {item.lower() for item in items}


def jaccard_similarity(items_a: Iterable[str], items_b: Iterable[str]) -> float:
    """
    |A ∩ B| / |A ∪ B| sobre los conjuntos en minúsculas.

    Ambos vacíos -> 1.0; sólo uno vacío -> 0.0.
    """
    set_a = _lower_set(items_a)
    set_b = _lower_set(items_b)

    if not set_a and not set_b:
        return 1.0
    if not set_a or not set_b:
        return 0.0

    return len(set_a & set_b) / len(set_a | set_b)


def experience_compatibility(years_a: int, years_b: int) -> float:
    diff = abs(years_a - years_b)
    for max_diff, score in EXPERIENCE_STEPS:
        if diff <= max_diff:
            return score
    return EXPERIENCE_FLOOR


def location_compatibility(location_a: str, location_b: str) -> float:
    """
    Compatibilidad de ubicación.

    Una ubicación vacía es "desconocida", no un mismatch: devuelve 0.5.
    Si algún segmento separado por coma coincide (ciudad, estado) -> 0.8.
    """
    loc_a = (location_a or "").strip().lower()
    loc_b = (location_b or "").strip().lower()

    if not loc_a or not loc_b:
        return LOCATION_UNKNOWN

    if loc_a == loc_b:
        return LOCATION_EXACT

    segments_a = {part.strip() for part in loc_a.split(",")}
    segments_b = {part.strip() for part in loc_b.split(",")}
    if segments_a & segments_b:
        return LOCATION_SEGMENT

    return LOCATION_MISMATCH


def common_items(items_a: Iterable[str], items_b: Iterable[str]) -> list[str]:
    """
    Intersección case-insensitive.

    Devuelve los elementos con el casing (y el orden) de `items_b`:
    el snapshot guarda la forma en que los escribió el candidato.
    """
    wanted = _lower_set(items_a)
    seen: set[str] = set()
    common = []
    for item in items_b:
        lowered = item.lower()
        if lowered in wanted and lowered not in seen:
            seen.add(lowered)
            common.append(item)
    return common


@dataclass(frozen=True)
class ScoreBreakdown:
    """Sub-scores de un par y su score final."""

    tags: float
    industries: float
    experience: float
    skills: float
    location: float
    score: float


class SimilarityScorer:
    """Calcula el score ponderado entre dos perfiles."""

    def __init__(self, weights: Optional[ScoringWeights] = None):
        self.weights = weights or ScoringWeights()

    def breakdown(self, profile_a: UserProfile, profile_b: UserProfile) -> ScoreBreakdown:
        w = self.weights

        tags = jaccard_similarity(profile_a.tags, profile_b.tags)
        industries = jaccard_similarity(profile_a.industries, profile_b.industries)
        experience = experience_compatibility(profile_a.experience, profile_b.experience)
        skills = jaccard_similarity(profile_a.skills, profile_b.skills)
        location = location_compatibility(profile_a.location, profile_b.location)

        weighted = (
            tags * w.tags
            + industries * w.industries
            + experience * w.experience
            + skills * w.skills
            + location * w.location
        )
        score = min(1.0, max(0.0, weighted / w.total))

        return ScoreBreakdown(
            tags=tags,
            industries=industries,
            experience=experience,
            skills=skills,
            location=location,
            score=score,
        )

    def score(self, profile_a: UserProfile, profile_b: UserProfile) -> float:
        return self.breakdown(profile_a, profile_b).score

    @staticmethod
    def common_tags(profile_a: UserProfile, profile_b: UserProfile) -> list[str]:
        return common_items(profile_a.tags, profile_b.tags)

    @staticmethod
    def common_skills(profile_a: UserProfile, profile_b: UserProfile) -> list[str]:
        return common_items(profile_a.skills, profile_b.skills)
