"""
Repositorios de perfiles y matches.

Cada repositorio maneja una entidad y mantiene sus propios índices
explícitos; las entradas de índice cuyo valor expiró se podan al leer.
"""

from typing import Optional

import structlog
from pydantic import ValidationError as PydanticValidationError

from matchmaker.config import MatchingConfig
from matchmaker.database.backends import KeyValueBackend
from matchmaker.errors import NotFoundError, StorageError
from matchmaker.models import Match, MatchStatus, UserProfile, pair_key
from matchmaker.models.profile import utc_now

logger = structlog.get_logger()


class BaseRepository:
    """Clase base para repositorios."""

    def __init__(self, backend: KeyValueBackend, config: Optional[MatchingConfig] = None):
        self._backend = backend
        self._config = config or MatchingConfig()

    @property
    def backend(self) -> KeyValueBackend:
        return self._backend

    def _load_indexed(self, index: str, key_for, model) -> list:
        """
        Carga todas las entidades de un índice.

        No es una foto consistente: escrituras concurrentes pueden
        verse a medias. Los miembros expirados se podan del índice.
        """
        ids = sorted(self._backend.index_members(index))
        if not ids:
            return []

        raw_values = self._backend.get_many([key_for(i) for i in ids])

        items = []
        expired = []
        for entity_id, raw in zip(ids, raw_values):
            if raw is None:
                expired.append(entity_id)
                continue
            try:
                items.append(model.model_validate_json(raw))
            except PydanticValidationError as e:
                logger.warning(
                    "Payload corrupto en el store, se ignora",
                    index=index,
                    entity_id=entity_id,
                    error=str(e),
                )

        if expired:
            # Re-chequea antes de borrar: una escritura concurrente puede revivirlos
            removed = self._backend.index_prune(index, {i: key_for(i) for i in expired})
            if removed:
                logger.debug("Índice podado", index=index, removed=len(removed))

        return items


class ProfileRepository(BaseRepository):
    """Repositorio de perfiles de matching (TTL 24h por defecto)."""

    KEY_PREFIX = "user_profile"
    INDEX = "user_profile:index"

    @classmethod
    def key(cls, user_id: str) -> str:
        return f"{cls.KEY_PREFIX}:{user_id}"

    def put(self, profile: UserProfile) -> UserProfile:
        """
        Inserta o reemplaza el perfil de un usuario.

        El reemplazo es total (sin merge). Si había un perfil vivo se
        conserva su `created_at`; `updated_at` siempre se refresca.

        Returns:
            El perfil tal como quedó guardado
        """
        previous = self._backend.get(self.key(profile.user_id))
        created_at = profile.created_at
        if previous is not None:
            try:
                created_at = UserProfile.model_validate_json(previous).created_at
            except PydanticValidationError as e:
                logger.warning(
                    "Perfil previo corrupto, se reemplaza",
                    user_id=profile.user_id,
                    error=str(e),
                )

        stored = profile.model_copy(update={"created_at": created_at, "updated_at": utc_now()})
        self._backend.put(
            self.key(stored.user_id),
            stored.to_db_json(),
            self._config.profile_ttl_seconds,
        )
        self._backend.index_add(self.INDEX, stored.user_id)

        logger.info("Perfil guardado", user_id=stored.user_id)
        return stored

    def get(self, user_id: str) -> UserProfile:
        """
        Obtiene el perfil de un usuario.

        Raises:
            NotFoundError: Si no existe o expiró
            StorageError: Si el payload guardado es inválido
        """
        raw = self._backend.get(self.key(user_id))
        if raw is None:
            raise NotFoundError("profile", user_id)
        try:
            return UserProfile.model_validate_json(raw)
        except PydanticValidationError as e:
            raise StorageError(f"Perfil corrupto para {user_id}: {e}") from e

    def list_all(self) -> list[UserProfile]:
        """Todos los perfiles vivos."""
        return self._load_indexed(self.INDEX, self.key, UserProfile)


class MatchRepository(BaseRepository):
    """Repositorio de matches (TTL 7 días por defecto, independiente del estado)."""

    KEY_PREFIX = "match"
    USER_INDEX_PREFIX = "user_matches"
    PAIR_PREFIX = "match_pair"

    @classmethod
    def key(cls, match_id: str) -> str:
        return f"{cls.KEY_PREFIX}:{match_id}"

    @classmethod
    def user_index(cls, user_id: str) -> str:
        return f"{cls.USER_INDEX_PREFIX}:{user_id}"

    @classmethod
    def pair_index(cls, user_a: str, user_b: str) -> str:
        low, high = pair_key(user_a, user_b)
        return f"{cls.PAIR_PREFIX}:{low}:{high}"

    def _write_indexes(self, match: Match) -> None:
        ttl = self._config.match_ttl_seconds
        self._backend.index_add(self.user_index(match.user_id_1), match.id, ttl)
        self._backend.index_add(self.user_index(match.user_id_2), match.id, ttl)
        self._backend.put(self.pair_index(match.user_id_1, match.user_id_2), match.id, ttl)

    def put(self, match: Match) -> Match:
        """Inserta o reemplaza un match por su ID, refrescando el TTL."""
        self._backend.put(self.key(match.id), match.to_db_json(), self._config.match_ttl_seconds)
        self._write_indexes(match)
        return match

    @staticmethod
    def _parse(match_id: str, raw: str) -> Match:
        try:
            return Match.model_validate_json(raw)
        except PydanticValidationError as e:
            raise StorageError(f"Match corrupto {match_id}: {e}") from e

    def get(self, match_id: str) -> Match:
        """
        Obtiene un match por ID.

        Raises:
            NotFoundError: Si no existe o expiró
        """
        raw = self._backend.get(self.key(match_id))
        if raw is None:
            raise NotFoundError("match", match_id)
        return self._parse(match_id, raw)

    def find_by_pair(self, user_a: str, user_b: str) -> Optional[Match]:
        """Último match guardado para el par {user_a, user_b}, sin importar el orden."""
        match_id = self._backend.get(self.pair_index(user_a, user_b))
        if match_id is None:
            return None
        try:
            return self.get(match_id)
        except NotFoundError:
            return None

    def list_for_user(self, user_id: str) -> list[Match]:
        """Matches donde el usuario aparece en cualquiera de los dos lados, por score desc."""
        matches = self._load_indexed(self.user_index(user_id), self.key, Match)
        matches = [m for m in matches if m.involves(user_id)]
        matches.sort(key=lambda m: m.score, reverse=True)
        return matches

    def _modify(self, match_id: str, changes) -> tuple[Match, Match]:
        """
        Aplica `changes(match) -> dict` de forma atómica sobre el match guardado.

        Returns:
            (match anterior, match actualizado)

        Raises:
            NotFoundError: Si no existe o expiró
        """
        seen = {}

        def _apply(raw: str) -> str:
            current = self._parse(match_id, raw)
            seen["before"] = current
            update = {**changes(current), "updated_at": utc_now()}
            return current.model_copy(update=update).to_db_json()

        raw = self._backend.update(self.key(match_id), _apply, self._config.match_ttl_seconds)
        if raw is None:
            raise NotFoundError("match", match_id)

        updated = self._parse(match_id, raw)
        self._write_indexes(updated)
        return seen["before"], updated

    def update_status(self, match_id: str, status: MatchStatus) -> Match:
        """Cambia el estado de un match; el resto de los campos queda igual."""
        before, updated = self._modify(match_id, lambda _: {"status": status})
        logger.info(
            "Estado de match actualizado",
            match_id=match_id,
            old_status=before.status.value,
            new_status=status.value,
        )
        return updated

    def refresh_scores(self, match_id: str, candidate: Match) -> Match:
        """
        Actualiza score y snapshots desde un match recién calculado.

        Nunca toca el estado: se conserva el que esté guardado al escribir.
        """
        _, updated = self._modify(
            match_id,
            lambda _: {
                "score": candidate.score,
                "common_tags": candidate.common_tags,
                "common_skills": candidate.common_skills,
            },
        )
        return updated
