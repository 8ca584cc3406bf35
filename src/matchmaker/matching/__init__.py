"""
Motor de matching.

Scorer ponderado, generador de matches y búsqueda por criterios.
"""

from matchmaker.matching.scoring import ScoreBreakdown, SimilarityScorer
from matchmaker.matching.engine import MatchCandidate, MatchGenerator
from matchmaker.matching.search import SearchService

__all__ = [
    "ScoreBreakdown",
    "SimilarityScorer",
    "MatchCandidate",
    "MatchGenerator",
    "SearchService",
]
