"""Type definitions for locator healing.

Defines the live page elements a driver reports, what a broken locator
used to match, scored replacement candidates and the outcome of a
healing run.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..base_exceptions import ConfigurationError
from ..matching.scores import SimilarityScores
from ..matching.similarity import STABLE_ATTRIBUTES, normalize_text
from ..vision.geometry import BoundingBox, Viewport
from ..vision.pixel_image import PixelImage

# Attributes worth showing a language model for each catalog element
RELEVANT_ATTRIBUTES = (
    "id",
    "class",
    "name",
    "type",
    "value",
    "placeholder",
    "aria-label",
    "role",
    "title",
    "data-testid",
    "data-test",
    "data-cy",
    "data-qa",
)

# Attributes a CSS locator selects on: #id and [name], [name=value] ...
_ID_SELECTOR = re.compile(r"#(-?[A-Za-z_][\w-]*)")
_ATTRIBUTE_SELECTOR = re.compile(r"\[\s*([\w:-]+)\s*(?:[~|^$*]?=|\])")


class LLMMode(Enum):
    """LLM access mode for the generative strategy.

    Default is DISABLED for privacy and offline operation.
    """

    DISABLED = "disabled"
    """Default: No LLM access. The generative strategy yields nothing."""

    LOCAL = "local"
    """Local model via Ollama. No internet required after download."""

    REMOTE = "remote"
    """Remote API (OpenAI, Anthropic, Google). Requires API key and internet."""


class HealingStrategy(Enum):
    """Strategy used to find a replacement locator."""

    TEXT_MATCH = "text_match"
    """Elements whose visible text or accessible name matches."""

    ARIA_MATCH = "aria_match"
    """Elements whose role or ARIA label matches."""

    STABLE_ATTRIBUTES = "stable_attributes"
    """Elements sharing stable attributes (test ids, name, type ...)."""

    VISUAL_MATCH = "visual_match"
    """Elements that look like the reference patch."""

    POSITIONAL_MATCH = "positional_match"
    """Elements near the last known position."""

    GENERATIVE = "generative"
    """Selectors proposed by a language model."""


DEFAULT_STRATEGY_ORDER: tuple[HealingStrategy, ...] = (
    HealingStrategy.TEXT_MATCH,
    HealingStrategy.ARIA_MATCH,
    HealingStrategy.STABLE_ATTRIBUTES,
    HealingStrategy.VISUAL_MATCH,
    HealingStrategy.POSITIONAL_MATCH,
    HealingStrategy.GENERATIVE,
)


class HealingReason(str, Enum):
    """Why a healing run ended."""

    HEALED = "Healed"
    NOT_BROKEN = "NotBroken"
    ALL_STRATEGIES_EXHAUSTED = "AllStrategiesExhausted"
    CANCELLED_OR_TIMED_OUT = "CancelledOrTimedOut"


def _with_role(attributes: dict[str, str], role: str | None) -> dict[str, str]:
    if role and "role" not in attributes:
        return {**attributes, "role": role}
    return dict(attributes)


def locator_attribute_keys(locator: str) -> set[str]:
    """Attribute names a CSS locator selects on.

    Example:
        locator_attribute_keys("button#submit-btn[data-testid=go]")  # {"id", "data-testid"}
    """
    keys = {match.lower() for match in _ATTRIBUTE_SELECTOR.findall(locator)}
    if _ID_SELECTOR.search(locator):
        keys.add("id")
    return keys


@dataclass
class PageElement:
    """One live element as reported by the browser driver."""

    locator: str
    """Locator that resolves to this element (unique per snapshot)."""

    tag_name: str = ""
    text: str = ""
    accessible_name: str = ""
    role: str | None = None
    attributes: dict[str, str] = field(default_factory=dict)
    bounding_box: BoundingBox | None = None
    """Box in document coordinates."""

    visible: bool = True

    def attribute_map(self) -> dict[str, str]:
        """Attributes with the role folded in."""
        return _with_role(self.attributes, self.role)

    def signature(self) -> tuple:
        """Hashable identity used to spot the same element across strategies."""
        attributes = self.attribute_map()
        stable = tuple((key, attributes[key]) for key in STABLE_ATTRIBUTES if attributes.get(key))
        return (self.tag_name.lower(), self.role or "", stable, normalize_text(self.text))

    def relevant_attributes(self) -> dict[str, str]:
        """Attributes included in a language-model catalog."""
        attributes = self.attribute_map()
        return {
            key: value
            for key, value in attributes.items()
            if value and (key in RELEVANT_ATTRIBUTES or key.startswith("data-"))
        }

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "locator": self.locator,
            "tag_name": self.tag_name,
            "text": self.text,
            "accessible_name": self.accessible_name,
            "role": self.role,
            "attributes": dict(self.attributes),
            "bounding_box": self.bounding_box.to_dict() if self.bounding_box else None,
            "visible": self.visible,
        }


@dataclass
class ElementDescription:
    """What the broken locator used to match."""

    text: str = ""
    accessible_name: str = ""
    role: str | None = None
    tag_name: str = ""
    attributes: dict[str, str] = field(default_factory=dict)
    bounding_box: BoundingBox | None = None
    """Last known box in document coordinates."""

    reference_patch: PixelImage | None = None
    """Screenshot of the element from its last successful lookup."""

    def attribute_map(self) -> dict[str, str]:
        """Attributes with the role folded in."""
        return _with_role(self.attributes, self.role)

    @property
    def label(self) -> str:
        """Accessible name, falling back to the aria-label attribute."""
        return self.accessible_name or self.attributes.get("aria-label", "")

    def summary(self) -> str:
        """One-line human description."""
        parts = []
        if self.tag_name:
            parts.append(f"<{self.tag_name}>")
        if self.role:
            parts.append(f"role={self.role}")
        if self.text:
            parts.append(f'text="{self.text}"')
        if self.accessible_name:
            parts.append(f'name="{self.accessible_name}"')
        for key, value in self.attributes.items():
            parts.append(f'{key}="{value}"')
        return " ".join(parts) or "(no description)"


@dataclass(frozen=True)
class SelectorCandidate:
    """A proposed replacement locator with its scores."""

    locator: str
    strategy: HealingStrategy
    scores: SimilarityScores
    confidence: float
    reasoning: str = ""
    signature: tuple | None = None
    ambiguous: bool = False
    duplicate: bool = False
    verified: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "locator": self.locator,
            "strategy": self.strategy.value,
            "scores": self.scores.to_dict(),
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "ambiguous": self.ambiguous,
            "duplicate": self.duplicate,
            "verified": self.verified,
        }


@dataclass(frozen=True)
class HealingContext:
    """Input of one healing run."""

    original_locator: str
    """The locator that no longer resolves."""

    description: ElementDescription
    """What it used to match."""

    strategies: tuple[HealingStrategy, ...] = DEFAULT_STRATEGY_ORDER
    """Strategies to try, in policy order."""

    confidence_threshold: float | None = None
    """Minimum confidence to accept a candidate (configuration default if None)."""

    overall_budget_seconds: float | None = None
    """Time budget for the run (configuration default if None)."""

    strategy_budget_seconds: float | None = None
    """Time budget per strategy (configuration default if None)."""

    page_url: str | None = None

    def __post_init__(self) -> None:
        if not self.original_locator:
            raise ConfigurationError("original_locator", "must not be empty")
        if self.confidence_threshold is not None and not 0.0 <= self.confidence_threshold <= 1.0:
            raise ConfigurationError(
                "confidence_threshold", f"must be between 0 and 1, got {self.confidence_threshold}"
            )
        if not self.strategies:
            raise ConfigurationError("strategies", "at least one strategy is required")
        for key in ("overall_budget_seconds", "strategy_budget_seconds"):
            value = getattr(self, key)
            if value is not None and value <= 0:
                raise ConfigurationError(key, "must be positive")

    def scoring_attributes(self) -> dict[str, str]:
        """Described attributes minus the ones the broken locator selected on.

        Those attributes are what changed, so a replacement is not expected
        to share them.
        """
        excluded = locator_attribute_keys(self.original_locator)
        return {
            key: value
            for key, value in self.description.attribute_map().items()
            if key.lower() not in excluded
        }


@dataclass
class HealingOutcome:
    """Result of a healing run."""

    success: bool
    """Whether a verified replacement was found (or nothing was broken)."""

    reason: HealingReason
    """Why the run ended."""

    original_locator: str
    candidate: SelectorCandidate | None = None
    """Accepted candidate, or the best unverified one on failure."""

    attempts: list[tuple[HealingStrategy, str]] = field(default_factory=list)
    """List of (strategy, note) for each attempt."""

    duration_ms: float = 0.0
    """Time spent healing in milliseconds."""

    timings: dict[str, float] = field(default_factory=dict)
    """Milliseconds spent per strategy."""

    @property
    def strategy(self) -> HealingStrategy | None:
        return self.candidate.strategy if self.candidate else None

    @property
    def confidence(self) -> float:
        return self.candidate.confidence if self.candidate else 0.0

    @property
    def verified(self) -> bool:
        return self.candidate.verified if self.candidate else False

    @property
    def healed_locator(self) -> str | None:
        if self.success and self.candidate is not None:
            return self.candidate.locator
        return None

    def is_reliable(self, threshold: float) -> bool:
        """Verified and confident enough to act on."""
        return self.success and self.verified and self.confidence >= threshold

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-safe dictionary."""
        return {
            "success": self.success,
            "reason": self.reason.value,
            "original_locator": self.original_locator,
            "healed_locator": self.healed_locator,
            "strategy": self.strategy.value if self.strategy else None,
            "confidence": self.confidence,
            "verified": self.verified,
            "candidate": self.candidate.to_dict() if self.candidate else None,
            "attempts": [(strategy.value, note) for strategy, note in self.attempts],
            "duration_ms": self.duration_ms,
            "timings": dict(self.timings),
        }


__all__ = [
    "BoundingBox",
    "DEFAULT_STRATEGY_ORDER",
    "ElementDescription",
    "HealingContext",
    "HealingOutcome",
    "HealingReason",
    "HealingStrategy",
    "LLMMode",
    "PageElement",
    "SelectorCandidate",
    "SimilarityScores",
    "Viewport",
]
