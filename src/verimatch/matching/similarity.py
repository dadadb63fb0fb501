"""Similarity primitives shared by locator healing.

Every metric returns a float in [0, 1], or None when it is not applicable
to the pair, so the confidence model can renormalise over what is present.

Metrics:
- Visual: perceptual average-hash first, windowed SSIM only for ambiguous hashes
- Textual: normalized Levenshtein similarity
- Positional: exponential decay of center distance within a viewport-relative radius
- Attribute: exact-match fraction over stable, non-generated attributes
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass

import imagehash

from ..base_exceptions import ConfigurationError
from ..vision.geometry import BoundingBox, Viewport
from ..vision.metrics import mean_ssim
from ..vision.pixel_image import PixelImage

STABLE_ATTRIBUTES = (
    "role",
    "type",
    "name",
    "id",
    "data-testid",
    "data-test",
    "data-cy",
    "data-qa",
    "aria-label",
    "placeholder",
    "title",
    "href",
)

# Values that look generated by a framework or build step
VOLATILE_PATTERNS = (
    r"\d{4,}",  # long numeric runs
    r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}",  # uuid
    r"(?<![0-9a-z])(?=[0-9a-f]*\d)(?=[0-9a-f]*[a-f])[0-9a-f]{6,}(?![0-9a-z])",  # hex hashes
    r"^(ember|ext-gen|ext-comp|yui_|mui-|react-select-|headlessui-|radix-)[\w-]*\d",
    r"^:r[0-9a-z]+:$",  # React useId
    r"^css-[0-9a-z]+$",  # css-in-js class names
)


@dataclass
class MatchingConfig:
    """Tunables for SimilarityMatcher."""

    hash_size: int = 8
    hash_low: float = 0.5
    hash_high: float = 0.95
    ssim_weight: float = 0.7
    ssim_window: int = 7
    position_tolerance: float = 0.25  # fraction of the viewport diagonal
    position_decay: float = 3.0
    stable_attributes: tuple[str, ...] = STABLE_ATTRIBUTES
    volatile_patterns: tuple[str, ...] = VOLATILE_PATTERNS

    def validate(self) -> None:
        """Raise ConfigurationError if any value is out of range."""
        if self.hash_size < 2:
            raise ConfigurationError("hash_size", "must be at least 2")
        if not 0.0 <= self.hash_low <= self.hash_high <= 1.0:
            raise ConfigurationError("hash_low", "need 0 <= hash_low <= hash_high <= 1")
        if not 0.0 <= self.ssim_weight <= 1.0:
            raise ConfigurationError("ssim_weight", "must be between 0 and 1")
        if self.position_tolerance <= 0.0:
            raise ConfigurationError("position_tolerance", "must be positive")
        if self.position_decay <= 0.0:
            raise ConfigurationError("position_decay", "must be positive")


def normalize_text(value: str | None) -> str:
    """Casefold and collapse whitespace."""
    if not value:
        return ""
    return " ".join(value.casefold().split())


def levenshtein(a: str, b: str) -> int:
    """Edit distance with unit insert, delete and substitute costs."""
    if a == b:
        return 0
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + (ca != cb),
                )
            )
        previous = current
    return previous[-1]


def text_similarity(a: str, b: str) -> float:
    """``1 - levenshtein / max(len)`` on already-normalized strings."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1.0 - levenshtein(a, b) / longest


class SimilarityMatcher:
    """Computes the similarity metrics for a reference/candidate pair.

    Example:
        matcher = SimilarityMatcher()
        matcher.textual("Submit order", "Submit  Order")  # 1.0
        matcher.visual(reference_patch, None)  # None
    """

    def __init__(self, config: MatchingConfig | None = None) -> None:
        self.config = config or MatchingConfig()
        self.config.validate()
        self._volatile = [re.compile(p, re.IGNORECASE) for p in self.config.volatile_patterns]

    # Visual

    def structural_similarity(self, reference: PixelImage, candidate: PixelImage) -> float:
        """Mean SSIM, resizing the candidate to the reference size first."""
        if candidate.size != reference.size:
            candidate = candidate.resize(reference.width, reference.height)
        return mean_ssim(reference.luminance(), candidate.luminance(), self.config.ssim_window)

    def hash_similarity(self, reference: PixelImage, candidate: PixelImage) -> float:
        """Average-hash similarity, ``1 - hamming / bits``."""
        size = self.config.hash_size
        ref_hash = imagehash.average_hash(reference.to_pil(), hash_size=size)
        cand_hash = imagehash.average_hash(candidate.to_pil(), hash_size=size)
        return 1.0 - (ref_hash - cand_hash) / (size * size)

    def visual(self, reference: PixelImage | None, candidate: PixelImage | None) -> float | None:
        """Hash score, refined with SSIM when the hash is inconclusive."""
        if reference is None or candidate is None:
            return None

        hash_score = self.hash_similarity(reference, candidate)
        if not self.config.hash_low <= hash_score <= self.config.hash_high:
            return hash_score

        ssim_score = self.structural_similarity(reference, candidate)
        weight = self.config.ssim_weight
        return _clamp(weight * ssim_score + (1 - weight) * hash_score)

    # Text

    def textual(self, expected: str | None, actual: str | None) -> float | None:
        expected_norm = normalize_text(expected)
        actual_norm = normalize_text(actual)
        if not expected_norm or not actual_norm:
            return None
        return text_similarity(expected_norm, actual_norm)

    # Position

    def positional(
        self,
        last_known: BoundingBox | None,
        current: BoundingBox | None,
        viewport: Viewport,
    ) -> float | None:
        """Closeness of two boxes in document coordinates.

        Zero beyond ``position_tolerance`` times the viewport diagonal,
        otherwise ``exp(-decay * d / r)``.
        """
        if last_known is None or current is None:
            return None
        radius = self.config.position_tolerance * viewport.diagonal
        if radius <= 0:
            return None
        distance = last_known.center_distance(current)
        if distance > radius:
            return 0.0
        return math.exp(-self.config.position_decay * distance / radius)

    # Attributes

    def is_volatile_value(self, value: str) -> bool:
        """Whether an attribute value looks auto-generated."""
        return any(pattern.search(value) for pattern in self._volatile)

    def stable_keys(self, expected: Mapping[str, str]) -> list[str]:
        """Stable attribute names of ``expected`` with non-generated values."""
        return [
            key
            for key in self.config.stable_attributes
            if expected.get(key) and not self.is_volatile_value(str(expected[key]))
        ]

    def attribute(self, expected: Mapping[str, str], actual: Mapping[str, str]) -> float | None:
        """Fraction of stable expected attributes matched exactly."""
        keys = self.stable_keys(expected)
        if not keys:
            return None
        matches = sum(1 for key in keys if str(actual.get(key, "")).strip() == str(expected[key]).strip())
        return matches / len(keys)

    def fuzzy_attribute(
        self, expected: Mapping[str, str], actual: Mapping[str, str]
    ) -> float | None:
        """Like ``attribute`` but near misses earn half their text similarity."""
        keys = self.stable_keys(expected)
        if not keys:
            return None
        total = 0.0
        for key in keys:
            want = normalize_text(str(expected[key]))
            have = normalize_text(str(actual.get(key, "")))
            if have == want:
                total += 1.0
            elif have:
                total += 0.5 * text_similarity(want, have)
        return total / len(keys)


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, value))
