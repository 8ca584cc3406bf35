"""
Fachada del matchmaker.

Expone las operaciones que consume la capa de API: perfiles,
matches, cambio de estado y búsqueda. Valida los payloads y
traduce los errores de pydantic al ValidationError del dominio.
"""

from typing import Optional, Union

import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from matchmaker.config import Settings, get_settings
from matchmaker.database import (
    KeyValueBackend,
    MatchRepository,
    ProfileRepository,
    create_backend,
)
from matchmaker.errors import ValidationError
from matchmaker.matching import MatchGenerator, SearchService, SimilarityScorer
from matchmaker.matching.search import paginate
from matchmaker.models import (
    Match,
    MatchmakingCriteria,
    MatchPage,
    MatchStatus,
    ProfileCreated,
    SearchPage,
    UserProfile,
)

logger = structlog.get_logger()

DEFAULT_PAGE_SIZE = 10


def _parse(model: type[BaseModel], payload):
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError(f"{model.__name__} inválido: {e}") from e


def parse_status(status: Union[str, MatchStatus]) -> MatchStatus:
    try:
        return MatchStatus(status)
    except ValueError as e:
        raise ValidationError(
            f"Estado inválido '{status}', debe ser uno de: {', '.join(MatchStatus.values())}"
        ) from e


class MatchmakerService:
    """Operaciones síncronas, con alcance de request."""

    def __init__(
        self,
        profile_repo: ProfileRepository,
        match_repo: MatchRepository,
        generator: MatchGenerator,
        search_service: SearchService,
    ):
        self.profile_repo = profile_repo
        self.match_repo = match_repo
        self.generator = generator
        self.search_service = search_service

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        backend: Optional[KeyValueBackend] = None,
    ) -> "MatchmakerService":
        """Arma repositorios, scorer y servicios a partir de la configuración."""
        settings = settings or get_settings()
        config = settings.matching_config()
        if backend is None:
            backend = create_backend(settings.storage_backend)

        profile_repo = ProfileRepository(backend, config)
        match_repo = MatchRepository(backend, config)
        scorer = SimilarityScorer(config.weights)

        return cls(
            profile_repo=profile_repo,
            match_repo=match_repo,
            generator=MatchGenerator(profile_repo, match_repo, scorer, config),
            search_service=SearchService(profile_repo, scorer, config),
        )

    def create_profile(self, payload: Union[dict, UserProfile]) -> ProfileCreated:
        """
        Crea o refresca un perfil y genera sus matches en el momento.

        Returns:
            ProfileCreated con el perfil guardado y la cantidad de matches creados
        """
        profile = _parse(UserProfile, payload)
        stored = self.profile_repo.put(profile)
        matches = self.generator.generate_for(stored.user_id)
        return ProfileCreated(profile=stored, matches_found=len(matches))

    def get_profile(self, user_id: str) -> UserProfile:
        return self.profile_repo.get(user_id)

    def list_matches(
        self,
        user_id: str,
        status: Optional[str] = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> MatchPage:
        """
        Matches de un usuario, por score desc.

        El filtro de estado se aplica antes de paginar; `total` cuenta
        los matches filtrados.
        """
        if limit < 0:
            raise ValidationError("limit no puede ser negativo")

        matches = self.match_repo.list_for_user(user_id)
        if status:
            wanted = parse_status(status)
            matches = [m for m in matches if m.status == wanted]

        return MatchPage(matches=paginate(matches, limit, offset), total=len(matches))

    def get_match(self, match_id: str) -> Match:
        return self.match_repo.get(match_id)

    def update_match_status(self, match_id: str, status: Union[str, MatchStatus]) -> Match:
        return self.match_repo.update_status(match_id, parse_status(status))

    def search(self, criteria: Union[dict, MatchmakingCriteria]) -> SearchPage:
        return self.search_service.search(_parse(MatchmakingCriteria, criteria))
