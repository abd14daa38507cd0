"""Match engine: lexical scoring and model-backed ranking with fallback."""

from .exceptions import ModelMalformed, ModelUnavailable, RankingError
from .lexical import LexicalScorer
from .ranking import (
    CandidateScorer,
    LexicalRanker,
    ModelRanker,
    RankingOrchestrator,
    build_orchestrator,
)

__all__ = [
    "LexicalScorer",
    "CandidateScorer",
    "LexicalRanker",
    "ModelRanker",
    "RankingOrchestrator",
    "build_orchestrator",
    "RankingError",
    "ModelUnavailable",
    "ModelMalformed",
]
