"""Similarity metrics and confidence aggregation."""

from .confidence import CONFIDENCE_PRESETS, ConfidenceModel, ConfidenceWeights
from .scores import SimilarityScores
from .similarity import MatchingConfig, SimilarityMatcher, levenshtein, normalize_text

__all__ = [
    "SimilarityMatcher",
    "MatchingConfig",
    "SimilarityScores",
    "ConfidenceModel",
    "ConfidenceWeights",
    "CONFIDENCE_PRESETS",
    "levenshtein",
    "normalize_text",
]
