"""Visual comparison of baseline and actual screenshots.

This module decides whether a checkpoint screenshot still matches its
approved baseline, and if not, where and how much it changed.

Pipeline:
- Pixel Diff: per-pixel normalized RGBA distance against a tolerance
- SSIM: windowed structural similarity on luminance (only when pixels differ)
- Regions: 4-connected components of the difference mask, merged until disjoint
- Classification: identical, minor rendering noise, or a content change

Usage:
    from verimatch.vision.comparison import ComparisonEngine

    engine = ComparisonEngine()
    result = engine.compare(baseline_png, actual_png, ignore_regions=[Rect(0, 0, 200, 40)])

    if not result.passed:
        Path("diff.png").write_bytes(result.diff_image)
"""

from __future__ import annotations

import base64
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum

import cv2
import numpy as np

from ..base_exceptions import ConfigurationError
from ..logging import get_logger
from ..vision_exceptions import DimensionMismatchError, ImageDecodeError
from .geometry import Rect
from .metrics import DEFAULT_WINDOW, mean_ssim
from .pixel_image import PixelImage

logger = get_logger(__name__)

# Ignored pixels are filled with the same gray in both luminance planes
_NEUTRAL_LUMA = 128.0


class DifferenceClassification(str, Enum):
    """How a comparison's differences are judged."""

    IDENTICAL = "identical"
    MINOR_RENDERING = "minor_rendering"
    CONTENT_CHANGE = "content_change"


@dataclass
class ComparisonConfig:
    """Tunables for ComparisonEngine."""

    tolerance: float = 0.02
    min_region_pixels: int = 100
    minor_ssim_threshold: float = 0.95
    minor_difference_threshold: float = 0.05
    ssim_window: int = DEFAULT_WINDOW
    highlight_color: tuple[int, int, int] = (255, 0, 0)
    highlight_alpha: float = 0.5
    generate_diff_on_pass: bool = False

    def validate(self) -> None:
        """Raise ConfigurationError if any value is out of range."""
        _check_unit("tolerance", self.tolerance)
        _check_unit("minor_ssim_threshold", self.minor_ssim_threshold)
        _check_unit("minor_difference_threshold", self.minor_difference_threshold)
        _check_unit("highlight_alpha", self.highlight_alpha)
        if self.min_region_pixels < 0:
            raise ConfigurationError("min_region_pixels", "must not be negative")
        if self.ssim_window < 3:
            raise ConfigurationError("ssim_window", "must be at least 3")
        if len(self.highlight_color) != 3 or not all(0 <= c <= 255 for c in self.highlight_color):
            raise ConfigurationError("highlight_color", "must be an RGB triple in 0..255")


def _check_unit(key: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise ConfigurationError(key, f"must be between 0 and 1, got {value}")


@dataclass
class DifferenceRegion:
    """A disjoint rectangle containing differing pixels."""

    x: int
    y: int
    width: int
    height: int
    difference_score: float  # fraction of differing pixels inside the box
    pixel_count: int

    @property
    def area(self) -> int:
        return self.width * self.height

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "difference_score": self.difference_score,
            "pixel_count": self.pixel_count,
        }


@dataclass
class ComparisonResult:
    """Outcome of comparing an actual screenshot with its baseline."""

    passed: bool
    difference_percentage: float  # fraction 0.0 to 1.0 of compared pixels that differ
    ssim_score: float
    pixels_different: int
    total_pixels: int
    tolerance: float
    classification: DifferenceClassification
    execution_time_ms: int
    regions: list[DifferenceRegion] = field(default_factory=list)
    diff_image: bytes | None = None  # PNG
    error_message: str | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary representation (diff image as base64)."""
        return {
            "passed": self.passed,
            "difference_percentage": self.difference_percentage,
            "ssim_score": self.ssim_score,
            "pixels_different": self.pixels_different,
            "total_pixels": self.total_pixels,
            "tolerance": self.tolerance,
            "classification": self.classification.value,
            "execution_time_ms": self.execution_time_ms,
            "regions": [r.to_dict() for r in self.regions],
            "diff_image": base64.b64encode(self.diff_image).decode("ascii")
            if self.diff_image is not None
            else None,
            "error_message": self.error_message,
        }


class ComparisonEngine:
    """Pixel, structural and region comparison of two screenshots.

    Images that differ never raise: decode failures and size mismatches
    come back as a failed ComparisonResult with ``error_message`` set.
    Only invalid configuration raises ConfigurationError.

    Example:
        engine = ComparisonEngine(ComparisonConfig(tolerance=0.05))
        result = engine.compare(baseline, actual)
        print(result.classification, result.difference_percentage)
    """

    def __init__(self, config: ComparisonConfig | None = None) -> None:
        self.config = config or ComparisonConfig()
        self.config.validate()

    def compare(
        self,
        baseline: PixelImage | bytes,
        actual: PixelImage | bytes,
        tolerance: float | None = None,
        ignore_regions: Sequence[Rect] | None = None,
        region: Rect | None = None,
    ) -> ComparisonResult:
        """Compare an actual screenshot against a baseline.

        Args:
            baseline: Approved image, decoded or encoded
            actual: Image captured in this run, decoded or encoded
            tolerance: Per-pixel distance threshold (config default if None)
            ignore_regions: Rectangles excluded from every metric
            region: Optional checkpoint rectangle both images are cropped to

        Returns:
            ComparisonResult

        Raises:
            ConfigurationError: If tolerance is outside [0, 1]
        """
        start_time = time.perf_counter()

        if tolerance is None:
            tolerance = self.config.tolerance
        _check_unit("tolerance", tolerance)

        try:
            baseline_img = self._coerce(baseline)
            actual_img = self._coerce(actual)
        except ImageDecodeError as e:
            logger.warning("comparison_decode_failed", error=e.message)
            return self._failure(e.message, tolerance, start_time)

        if region is not None:
            try:
                baseline_img = baseline_img.crop(region.x, region.y, region.width, region.height)
                actual_img = actual_img.crop(region.x, region.y, region.width, region.height)
            except ValueError as e:
                return self._failure(str(e), tolerance, start_time)

        if baseline_img.size != actual_img.size:
            error = DimensionMismatchError(baseline_img.size, actual_img.size)
            logger.info("comparison_dimension_mismatch", error=error.message)
            return self._failure(error.message, tolerance, start_time)

        width, height = baseline_img.size
        valid = self._valid_mask(width, height, ignore_regions or [])

        diff_mask = self._pixel_diff_mask(baseline_img, actual_img, tolerance) & valid
        total_pixels = int(np.count_nonzero(valid))
        pixels_different = int(np.count_nonzero(diff_mask))
        difference = pixels_different / total_pixels if total_pixels > 0 else 0.0

        if pixels_different > 0:
            ssim_score = self._masked_ssim(baseline_img, actual_img, valid)
        else:
            ssim_score = 1.0

        regions = self._extract_regions(diff_mask)
        classification = self._classify(regions, ssim_score, difference)
        passed = classification != DifferenceClassification.CONTENT_CHANGE

        diff_image = None
        if not passed or self.config.generate_diff_on_pass:
            diff_image = self.generate_diff_image(baseline_img, diff_mask, regions)

        execution_time_ms = int((time.perf_counter() - start_time) * 1000)

        logger.debug(
            "comparison_complete",
            passed=passed,
            classification=classification.value,
            difference=round(difference, 6),
            ssim=round(ssim_score, 6),
            regions=len(regions),
            duration_ms=execution_time_ms,
        )

        return ComparisonResult(
            passed=passed,
            difference_percentage=difference,
            ssim_score=ssim_score,
            pixels_different=pixels_different,
            total_pixels=total_pixels,
            tolerance=tolerance,
            classification=classification,
            execution_time_ms=execution_time_ms,
            regions=regions,
            diff_image=diff_image,
        )

    def generate_diff_image(
        self,
        baseline: PixelImage,
        diff_mask: np.ndarray,
        regions: Sequence[DifferenceRegion],
    ) -> bytes:
        """Render the diff visualization as PNG bytes.

        Outside the regions the baseline is shown in grayscale. Inside each
        region differing pixels take the highlight color and the remaining
        pixels of the box are blended toward it.
        """
        gray = np.clip(np.rint(baseline.luminance()), 0, 255).astype(np.uint8)
        output = np.repeat(gray[:, :, None], 3, axis=2).astype(np.float64)
        color = np.array(self.config.highlight_color, dtype=np.float64)
        alpha = self.config.highlight_alpha

        for r in regions:
            box = output[r.y : r.y + r.height, r.x : r.x + r.width]
            box_mask = diff_mask[r.y : r.y + r.height, r.x : r.x + r.width]
            blended = box * (1 - alpha) + color * alpha
            box[:] = np.where(box_mask[:, :, None], color, blended)

        rgb = np.clip(np.rint(output), 0, 255).astype(np.uint8)
        return PixelImage.from_array(rgb).to_png_bytes()

    # Private helper methods

    def _coerce(self, image: PixelImage | bytes) -> PixelImage:
        if isinstance(image, PixelImage):
            return image
        return PixelImage.from_bytes(bytes(image))

    def _failure(self, message: str, tolerance: float, start_time: float) -> ComparisonResult:
        return ComparisonResult(
            passed=False,
            difference_percentage=1.0,
            ssim_score=0.0,
            pixels_different=0,
            total_pixels=0,
            tolerance=tolerance,
            classification=DifferenceClassification.CONTENT_CHANGE,
            execution_time_ms=int((time.perf_counter() - start_time) * 1000),
            error_message=message,
        )

    def _valid_mask(self, width: int, height: int, ignore_regions: Sequence[Rect]) -> np.ndarray:
        valid = np.ones((height, width), dtype=bool)
        for ignore in ignore_regions:
            if isinstance(ignore, dict):
                ignore = Rect.from_dict(ignore)
            clipped = ignore.clip(width, height)
            if clipped is not None:
                valid[clipped.y : clipped.y + clipped.height, clipped.x : clipped.x + clipped.width] = (
                    False
                )
        return valid

    def _pixel_diff_mask(
        self, baseline: PixelImage, actual: PixelImage, tolerance: float
    ) -> np.ndarray:
        delta = baseline.rgba.astype(np.float64) - actual.rgba.astype(np.float64)
        # sqrt(dR²+dG²+dB²+dA²) / (2 * 255) keeps the distance in [0, 1]
        distance = np.sqrt(np.sum(delta * delta, axis=2)) / (2 * 255.0)
        return distance > tolerance

    def _masked_ssim(self, baseline: PixelImage, actual: PixelImage, valid: np.ndarray) -> float:
        base_luma = baseline.luminance()
        actual_luma = actual.luminance()
        if not valid.all():
            base_luma[~valid] = _NEUTRAL_LUMA
            actual_luma[~valid] = _NEUTRAL_LUMA
        return mean_ssim(base_luma, actual_luma, self.config.ssim_window)

    def _extract_regions(self, diff_mask: np.ndarray) -> list[DifferenceRegion]:
        """Bounding boxes of 4-connected difference components.

        Components whose box is smaller than ``min_region_pixels`` are
        dropped, then overlapping boxes are merged until pairwise disjoint.
        """
        if not np.any(diff_mask):
            return []

        count, _, stats, _ = cv2.connectedComponentsWithStats(
            diff_mask.astype(np.uint8), connectivity=4
        )

        boxes = []
        for label in range(1, count):  # label 0 is the background
            x, y, w, h = (int(v) for v in stats[label, :4])
            if w * h >= self.config.min_region_pixels:
                boxes.append((x, y, x + w, y + h))

        regions = []
        for x1, y1, x2, y2 in _merge_overlapping(boxes):
            area = (x2 - x1) * (y2 - y1)
            pixel_count = int(np.count_nonzero(diff_mask[y1:y2, x1:x2]))
            regions.append(
                DifferenceRegion(
                    x=x1,
                    y=y1,
                    width=x2 - x1,
                    height=y2 - y1,
                    difference_score=pixel_count / area if area > 0 else 0.0,
                    pixel_count=pixel_count,
                )
            )

        regions.sort(key=lambda r: (r.y, r.x))
        return regions

    def _classify(
        self, regions: list[DifferenceRegion], ssim_score: float, difference: float
    ) -> DifferenceClassification:
        if not regions:
            return DifferenceClassification.IDENTICAL
        if (
            ssim_score > self.config.minor_ssim_threshold
            and difference < self.config.minor_difference_threshold
        ):
            return DifferenceClassification.MINOR_RENDERING
        return DifferenceClassification.CONTENT_CHANGE


def _merge_overlapping(
    boxes: list[tuple[int, int, int, int]],
) -> list[tuple[int, int, int, int]]:
    """Union overlapping (x1, y1, x2, y2) boxes until none overlap."""
    merged = list(boxes)
    changed = True
    while changed:
        changed = False
        for i in range(len(merged)):
            for j in range(i + 1, len(merged)):
                a, b = merged[i], merged[j]
                if a[0] < b[2] and b[0] < a[2] and a[1] < b[3] and b[1] < a[3]:
                    merged[i] = (min(a[0], b[0]), min(a[1], b[1]), max(a[2], b[2]), max(a[3], b[3]))
                    del merged[j]
                    changed = True
                    break
            if changed:
                break
    return merged
