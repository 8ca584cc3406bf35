"""
Modelos de datos del sistema.

- UserProfile: perfil de matching (con TTL)
- Match: par puntuado con estado
- MatchmakingCriteria: filtros de búsqueda (efímero)
"""

from matchmaker.models.profile import (
    UserProfile,
    ProfileUpdatedEvent,
    ProfileCreated,
)
from matchmaker.models.match import Match, MatchStatus, MatchPage, pair_key
from matchmaker.models.search import MatchmakingCriteria, SearchHit, SearchPage

__all__ = [
    # Perfiles
    "UserProfile",
    "ProfileUpdatedEvent",
    "ProfileCreated",
    # Matches
    "Match",
    "MatchStatus",
    "MatchPage",
    "pair_key",
    # Búsqueda
    "MatchmakingCriteria",
    "SearchHit",
    "SearchPage",
]
