"""Text canonicalization, similarity scoring and equivalence decisions."""

from .canonical import ABBREVIATIONS, STOP_WORDS, Canonicalizer, TokenSet, normalize_text
from .equivalence import (
    ROLE_FAMILIES,
    EquivalenceDecider,
    EquivalenceThresholds,
    EquivalenceVerdict,
)
from .similarity import ScoreWeights, SimilarityResult, SimilarityScorer

__all__ = [
    "ABBREVIATIONS",
    "STOP_WORDS",
    "Canonicalizer",
    "TokenSet",
    "normalize_text",
    "ROLE_FAMILIES",
    "EquivalenceDecider",
    "EquivalenceThresholds",
    "EquivalenceVerdict",
    "ScoreWeights",
    "SimilarityResult",
    "SimilarityScorer",
]
