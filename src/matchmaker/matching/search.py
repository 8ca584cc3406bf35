"""
Búsqueda ad hoc de perfiles compatibles.

A diferencia del generador, primero aplica filtros hard y después
puntúa a los sobrevivientes. No lee ni escribe matches.
"""

from typing import Optional

import structlog

from matchmaker.config import MatchingConfig
from matchmaker.database import ProfileRepository
from matchmaker.matching.scoring import SimilarityScorer
from matchmaker.models import MatchmakingCriteria, SearchHit, SearchPage, UserProfile

logger = structlog.get_logger()

SIMILAR_EXPERIENCE_YEARS = 2
DEFAULT_REASON = "Good overall compatibility"


def _any_overlap(wanted: list[str], available: list[str]) -> bool:
    wanted_lower = {item.lower() for item in wanted}
    return any(item.lower() in wanted_lower for item in available)


def matches_criteria(profile: UserProfile, criteria: MatchmakingCriteria) -> bool:
    """Filtros hard; un filtro vacío no descarta nada."""
    if criteria.industries and not _any_overlap(criteria.industries, profile.industries):
        return False

    if criteria.min_exp is not None and profile.experience < criteria.min_exp:
        return False
    if criteria.max_exp is not None and profile.experience > criteria.max_exp:
        return False

    if criteria.skills and not _any_overlap(criteria.skills, profile.skills):
        return False

    if criteria.location and criteria.location.lower() not in profile.location.lower():
        return False

    return True


def paginate(items: list, limit: int, offset: int) -> list:
    """`limit=0` es sin límite; offset negativo o fuera de rango -> página vacía."""
    if offset < 0 or offset >= len(items):
        return []
    if limit <= 0:
        return items[offset:]
    return items[offset : offset + limit]


class SearchService:
    """Busca perfiles que cumplan un criterio y los rankea contra el solicitante."""

    def __init__(
        self,
        profile_repo: ProfileRepository,
        scorer: Optional[SimilarityScorer] = None,
        config: Optional[MatchingConfig] = None,
    ):
        self.config = config or MatchingConfig()
        self.profile_repo = profile_repo
        self.scorer = scorer or SimilarityScorer(self.config.weights)

    def search(self, criteria: MatchmakingCriteria) -> SearchPage:
        """
        Ejecuta la búsqueda.

        Returns:
            SearchPage con la página pedida; `total` cuenta todos los
            resultados sobre el threshold, antes de paginar

        Raises:
            NotFoundError: Si el solicitante no tiene perfil
        """
        requester = self.profile_repo.get(criteria.user_id)
        profiles = self.profile_repo.list_all()

        hits = []
        for profile in profiles:
            if profile.user_id == criteria.user_id:
                continue
            if not matches_criteria(profile, criteria):
                continue

            score = self.scorer.score(requester, profile)
            if score > self.config.min_match_score:
                hits.append(
                    SearchHit(
                        user_id=profile.user_id,
                        score=score,
                        reason=self.match_reason(requester, profile),
                    )
                )

        hits.sort(key=lambda h: h.score, reverse=True)
        page = paginate(hits, criteria.limit, criteria.offset)

        logger.info(
            "Búsqueda ejecutada",
            user_id=criteria.user_id,
            scanned=len(profiles),
            total=len(hits),
            returned=len(page),
        )
        return SearchPage(matches=page, total=len(hits))

    def match_reason(self, requester: UserProfile, profile: UserProfile) -> str:
        """
        Texto legible con los factores que coinciden.

        Se arma aparte del score: la ubicación sólo aparece con
        igualdad exacta aunque el score premie coincidencias parciales.
        """
        reasons = []

        common_tags = self.scorer.common_tags(requester, profile)
        if common_tags:
            reasons.append(f"Common interests: {', '.join(common_tags)}")

        common_skills = self.scorer.common_skills(requester, profile)
        if common_skills:
            reasons.append(f"Common skills: {', '.join(common_skills)}")

        if abs(requester.experience - profile.experience) <= SIMILAR_EXPERIENCE_YEARS:
            reasons.append("Similar experience level")

        if (
            requester.location
            and profile.location
            and requester.location.lower() == profile.location.lower()
        ):
            reasons.append("Same location")

        if not reasons:
            return DEFAULT_REASON
        return "; ".join(reasons)
