"""
Generador de matches.

Implementa:
- Carga del perfil del usuario y de todos los candidatos
- Score de cada par con el SimilarityScorer
- Filtro por threshold, ranking y corte al top N
- Persistencia best-effort de cada Match
"""

from dataclasses import dataclass
from typing import Optional

import structlog

from matchmaker.config import DedupPolicy, MatchingConfig
from matchmaker.database import MatchRepository, ProfileRepository
from matchmaker.errors import NotFoundError, StorageError
from matchmaker.matching.scoring import ScoreBreakdown, SimilarityScorer
from matchmaker.models import Match, MatchStatus, UserProfile

logger = structlog.get_logger()


@dataclass
class MatchCandidate:
    """Candidato puntuado antes de convertirse en Match."""

    profile: UserProfile
    breakdown: ScoreBreakdown

    @property
    def score(self) -> float:
        return self.breakdown.score


class MatchGenerator:
    """
    Orquesta la generación de matches para un usuario.

    Flujo:
    1. Obtener el perfil del usuario (NotFoundError si no existe)
    2. Obtener todos los perfiles, excluyendo al propio usuario
    3. Puntuar cada candidato y quedarse con score > threshold
    4. Ordenar por score desc (empates: orden de enumeración)
    5. Cortar al máximo configurado
    6. Crear y persistir un Match "pending" por candidato
    """

    def __init__(
        self,
        profile_repo: ProfileRepository,
        match_repo: MatchRepository,
        scorer: Optional[SimilarityScorer] = None,
        config: Optional[MatchingConfig] = None,
    ):
        self.config = config or MatchingConfig()
        self.profile_repo = profile_repo
        self.match_repo = match_repo
        self.scorer = scorer or SimilarityScorer(self.config.weights)

    def rank_candidates(self, user_id: str) -> tuple[UserProfile, list[MatchCandidate]]:
        """
        Pasos 1 a 5: devuelve el perfil del usuario y los mejores candidatos.

        No escribe nada.
        """
        subject = self.profile_repo.get(user_id)
        profiles = self.profile_repo.list_all()

        candidates = []
        for profile in profiles:
            if profile.user_id == user_id:
                continue
            breakdown = self.scorer.breakdown(subject, profile)
            if breakdown.score > self.config.min_match_score:
                candidates.append(MatchCandidate(profile=profile, breakdown=breakdown))

        above_threshold = len(candidates)
        candidates.sort(key=lambda c: c.score, reverse=True)
        candidates = candidates[: self.config.max_matches]

        logger.info(
            "Candidatos rankeados",
            user_id=user_id,
            total=len(profiles),
            above_threshold=above_threshold,
            kept=len(candidates),
        )
        return subject, candidates

    def build_match(self, subject: UserProfile, candidate: MatchCandidate) -> Match:
        return Match(
            user_id_1=subject.user_id,
            user_id_2=candidate.profile.user_id,
            score=candidate.score,
            common_tags=self.scorer.common_tags(subject, candidate.profile),
            common_skills=self.scorer.common_skills(subject, candidate.profile),
            status=MatchStatus.PENDING,
        )

    def generate_for(self, user_id: str) -> list[Match]:
        """
        Genera y persiste los matches de un usuario.

        Un fallo al persistir un match individual se loguea y se saltea;
        el resto del lote sigue.

        Args:
            user_id: ID del usuario cuyo perfil cambió

        Returns:
            Los matches efectivamente persistidos, por score desc

        Raises:
            NotFoundError: Si el usuario no tiene perfil
        """
        subject, candidates = self.rank_candidates(user_id)

        persisted = []
        for candidate in candidates:
            match = self.build_match(subject, candidate)
            try:
                if self.config.dedup_policy == DedupPolicy.UPSERT_PAIR:
                    persisted.append(self._upsert_pair(match))
                else:
                    persisted.append(self.match_repo.put(match))
            except StorageError as e:
                logger.warning(
                    "No se pudo guardar el match",
                    user_id=user_id,
                    candidate_id=candidate.profile.user_id,
                    error=str(e),
                )

        logger.info(
            "Matches generados",
            user_id=user_id,
            candidates=len(candidates),
            persisted=len(persisted),
            dedup_policy=self.config.dedup_policy.value,
        )
        return persisted

    def _upsert_pair(self, match: Match) -> Match:
        """
        Si el par ya tiene un match vivo, lo reutiliza.

        Se conservan id, estado, orden del par y created_at; se
        refrescan score y snapshots. El estado nunca se escribe desde acá.
        """
        existing = self.match_repo.find_by_pair(match.user_id_1, match.user_id_2)
        if existing is None:
            return self.match_repo.put(match)

        try:
            return self.match_repo.refresh_scores(existing.id, match)
        except NotFoundError:
            logger.info("El match del par expiró, se crea uno nuevo", match_id=existing.id)
            return self.match_repo.put(match)
