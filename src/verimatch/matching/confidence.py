"""Confidence aggregation for healing candidates.

Combines the per-metric similarity scores into one calibrated value and
applies the penalties that keep a non-distinctive match from looking
certain.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, fields, replace
from typing import TYPE_CHECKING

from ..base_exceptions import ConfigurationError
from .scores import METRICS, SimilarityScores

if TYPE_CHECKING:
    from ..healing.healing_types import SelectorCandidate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConfidenceWeights:
    """Relative weight of each similarity metric."""

    visual: float
    textual: float
    positional: float
    attribute: float
    generative: float

    def __post_init__(self) -> None:
        for f in fields(self):
            if getattr(self, f.name) < 0:
                raise ConfigurationError(f"weights.{f.name}", "must not be negative")
        if not any(getattr(self, f.name) > 0 for f in fields(self)):
            raise ConfigurationError("weights", "at least one weight must be positive")

    def get(self, metric: str) -> float:
        return float(getattr(self, metric))

    @classmethod
    def preset(cls, name: str) -> ConfidenceWeights:
        """Look up a named weight profile.

        Raises:
            ConfigurationError: If no preset has that name
        """
        try:
            return CONFIDENCE_PRESETS[name]
        except KeyError:
            raise ConfigurationError(
                "confidence_preset",
                f"unknown preset '{name}'",
                available=sorted(CONFIDENCE_PRESETS),
            ) from None

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {name: self.get(name) for name in METRICS}


CONFIDENCE_PRESETS: dict[str, ConfidenceWeights] = {
    "default": ConfidenceWeights(
        visual=0.25, textual=0.30, positional=0.15, attribute=0.30, generative=0.20
    ),
    "balanced": ConfidenceWeights(
        visual=0.20, textual=0.20, positional=0.20, attribute=0.20, generative=0.20
    ),
    # ARIA labels and roles count as text and attributes
    "accessibility": ConfidenceWeights(
        visual=0.10, textual=0.25, positional=0.10, attribute=0.55, generative=0.15
    ),
    "visual": ConfidenceWeights(
        visual=0.50, textual=0.15, positional=0.20, attribute=0.15, generative=0.10
    ),
}


class ConfidenceModel:
    """Weighted aggregation plus ambiguity and duplicate penalties.

    Args:
        weights: Metric weights (the ``default`` preset if None)
        ambiguity_margin: Candidates this close to the best are indistinct
        ambiguity_penalty: Subtracted from every indistinct candidate
        duplicate_penalty: Subtracted when an earlier strategy already saw
            the same element signature
    """

    def __init__(
        self,
        weights: ConfidenceWeights | None = None,
        ambiguity_margin: float = 0.05,
        ambiguity_penalty: float = 0.15,
        duplicate_penalty: float = 0.10,
    ) -> None:
        for key, value in (
            ("ambiguity_margin", ambiguity_margin),
            ("ambiguity_penalty", ambiguity_penalty),
            ("duplicate_penalty", duplicate_penalty),
        ):
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(key, f"must be between 0 and 1, got {value}")
        self.weights = weights or CONFIDENCE_PRESETS["default"]
        self.ambiguity_margin = ambiguity_margin
        self.ambiguity_penalty = ambiguity_penalty
        self.duplicate_penalty = duplicate_penalty

    def aggregate(self, scores: SimilarityScores, weights: ConfidenceWeights | None = None) -> float:
        """Weighted mean over the metrics that are present.

        Absent metrics and metrics with zero weight do not count. Returns
        0.0 when nothing applies.
        """
        weights = weights or self.weights
        total = 0.0
        weight_sum = 0.0
        for metric, value in scores.present().items():
            weight = weights.get(metric)
            if weight > 0:
                total += weight * value
                weight_sum += weight
        if weight_sum == 0:
            return 0.0
        return _clamp(total / weight_sum)

    def score_pass(
        self,
        candidates: Sequence[SelectorCandidate],
        seen_signatures: Iterable[tuple] = (),
    ) -> list[SelectorCandidate]:
        """Apply pass-level penalties to one strategy's candidates.

        Duplicate locators within the pass keep their best entry. When two
        or more candidates fall within ``ambiguity_margin`` of the best, all
        of them are flagged ambiguous and penalised. Candidates whose
        signature an earlier strategy produced are flagged duplicate and
        penalised.

        Returns:
            New candidates sorted by confidence, highest first
        """
        unique: dict[str, SelectorCandidate] = {}
        for candidate in candidates:
            kept = unique.get(candidate.locator)
            if kept is None or candidate.confidence > kept.confidence:
                unique[candidate.locator] = candidate

        ranked = sorted(unique.values(), key=lambda c: (-c.confidence, c.locator))
        if not ranked:
            return []

        best = ranked[0].confidence
        close = [c for c in ranked if best - c.confidence <= self.ambiguity_margin]
        ambiguous = {c.locator for c in close} if len(close) >= 2 else set()
        seen = set(seen_signatures)

        scored = []
        for candidate in ranked:
            confidence = candidate.confidence
            is_ambiguous = candidate.locator in ambiguous
            is_duplicate = candidate.signature is not None and candidate.signature in seen
            if is_ambiguous:
                confidence -= self.ambiguity_penalty
            if is_duplicate:
                confidence -= self.duplicate_penalty
            scored.append(
                replace(
                    candidate,
                    confidence=_clamp(confidence),
                    ambiguous=is_ambiguous,
                    duplicate=is_duplicate,
                )
            )

        if ambiguous:
            logger.debug(f"{len(ambiguous)} candidates within {self.ambiguity_margin} of best")

        scored.sort(key=lambda c: (-c.confidence, c.locator))
        return scored

    def is_reliable(self, candidate: SelectorCandidate, threshold: float) -> bool:
        """Verified and confident enough to act on."""
        return candidate.verified and candidate.confidence >= threshold


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, value))
