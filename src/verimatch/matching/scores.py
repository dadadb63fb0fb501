"""Per-candidate similarity scores."""

from __future__ import annotations

from dataclasses import dataclass, fields

METRICS = ("visual", "textual", "positional", "attribute", "generative")


@dataclass(frozen=True)
class SimilarityScores:
    """Named similarity metrics for one candidate.

    Each metric is a float in [0, 1], or None when it does not apply
    (no reference patch, no text on either side, no last-known box ...).
    """

    visual: float | None = None
    textual: float | None = None
    positional: float | None = None
    attribute: float | None = None
    generative: float | None = None

    def __post_init__(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if value is not None and not 0.0 <= value <= 1.0:
                raise ValueError(f"{f.name} score must be in [0, 1], got {value}")

    def present(self) -> dict[str, float]:
        """Metrics that apply to this candidate."""
        return {name: getattr(self, name) for name in METRICS if getattr(self, name) is not None}

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {name: getattr(self, name) for name in METRICS}
