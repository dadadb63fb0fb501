"""Tests for ComparisonEngine.

Tests cover:
- Identical, minor and content-changing comparisons
- Region extraction, filtering and merging
- Ignore regions, checkpoint regions and tolerance
- Decode failures and dimension mismatches (never raise)
- Diff image rendering and serialization
"""

import base64

import numpy as np
import pytest

from verimatch.base_exceptions import ConfigurationError
from verimatch.vision import (
    ComparisonConfig,
    ComparisonEngine,
    DifferenceClassification,
    PixelImage,
    Rect,
)

from fakes import solid_image


def with_block(image: PixelImage, x: int, y: int, w: int, h: int, color=(255, 0, 0)) -> PixelImage:
    array = np.array(image.rgba)
    array[y : y + h, x : x + w, :3] = color
    return PixelImage(array)


@pytest.fixture
def engine() -> ComparisonEngine:
    return ComparisonEngine()


class TestIdenticalImages:
    """Identical same-size images."""

    def test_identical_images_pass(self, engine, white_100):
        result = engine.compare(white_100, white_100)

        assert result.passed is True
        assert result.difference_percentage == 0.0
        assert result.ssim_score == 1.0
        assert result.regions == []
        assert result.pixels_different == 0
        assert result.total_pixels == 10_000
        assert result.classification == DifferenceClassification.IDENTICAL
        assert result.error_message is None

    def test_identical_textured_images(self, engine):
        rng = np.random.default_rng(7)
        image = PixelImage.from_array(rng.integers(0, 256, (40, 60, 3), dtype=np.uint8))

        result = engine.compare(image, image)

        assert result.passed is True
        assert result.ssim_score == 1.0

    def test_no_diff_image_on_pass_by_default(self, engine, white_100):
        assert engine.compare(white_100, white_100).diff_image is None

    def test_diff_image_on_pass_when_configured(self, white_100):
        engine = ComparisonEngine(ComparisonConfig(generate_diff_on_pass=True))
        result = engine.compare(white_100, white_100)

        assert result.diff_image is not None
        assert result.diff_image.startswith(b"\x89PNG")


class TestDifferences:
    """Images that differ."""

    def test_red_block_region(self, engine, white_100):
        actual = with_block(white_100, 20, 20, 10, 10)

        result = engine.compare(white_100, actual)

        assert result.pixels_different == 100
        assert result.difference_percentage == pytest.approx(0.01)
        assert len(result.regions) == 1
        region = result.regions[0]
        assert (region.x, region.y, region.width, region.height) == (20, 20, 10, 10)
        assert region.difference_score == pytest.approx(1.0)
        assert region.pixel_count == 100
        assert result.ssim_score < 1.0

    def test_large_change_is_content_change(self, engine, white_100):
        actual = with_block(white_100, 0, 0, 50, 100, color=(0, 0, 0))

        result = engine.compare(white_100, actual)

        assert result.passed is False
        assert result.classification == DifferenceClassification.CONTENT_CHANGE
        assert result.difference_percentage == pytest.approx(0.5)
        assert [(r.x, r.y, r.width, r.height) for r in result.regions] == [(0, 0, 50, 100)]
        assert result.diff_image is not None

    def test_diff_image_highlights_changed_pixels(self, engine, white_100):
        actual = with_block(white_100, 0, 0, 50, 100, color=(0, 0, 0))

        result = engine.compare(white_100, actual)
        diff = PixelImage.from_bytes(result.diff_image)

        assert diff.size == (100, 100)
        assert diff.pixel(10, 10) == (255, 0, 0, 255)
        # outside every region the baseline is shown in grayscale
        assert diff.pixel(80, 50) == (255, 255, 255, 255)

    def test_tiny_components_are_not_regions(self, engine, white_100):
        array = np.array(white_100.rgba)
        for x, y in [(5, 5), (30, 70), (60, 10), (90, 90), (45, 45)]:
            array[y, x, :3] = 0
        actual = PixelImage(array)

        result = engine.compare(white_100, actual)

        assert result.pixels_different == 5
        assert result.regions == []
        assert result.classification == DifferenceClassification.IDENTICAL
        assert result.passed is True

    def test_overlapping_boxes_are_merged(self, engine, white_100):
        array = np.array(white_100.rgba)
        # L shape along row 10 and column 10
        array[10, 10:40, :3] = 0
        array[10:40, 10, :3] = 0
        # separate block whose box overlaps the L's box
        array[30:42, 30:42, :3] = 0
        actual = PixelImage(array)

        result = engine.compare(white_100, actual)

        assert len(result.regions) == 1
        region = result.regions[0]
        assert (region.x, region.y, region.width, region.height) == (10, 10, 32, 32)
        assert region.pixel_count == 59 + 144

    def test_regions_are_sorted_top_to_bottom(self, engine, white_100):
        actual = with_block(white_100, 60, 70, 12, 12)
        actual = with_block(actual, 10, 10, 12, 12)
        actual = with_block(actual, 70, 10, 12, 12)

        result = engine.compare(white_100, actual)

        assert [(r.x, r.y) for r in result.regions] == [(10, 10), (70, 10), (60, 70)]

    def test_encoded_inputs(self, engine, white_100):
        actual = with_block(white_100, 20, 20, 10, 10)

        result = engine.compare(white_100.to_png_bytes(), actual.to_png_bytes())

        assert result.pixels_different == 100


class TestTolerance:
    """Per-pixel tolerance."""

    def test_small_shift_within_default_tolerance(self, engine, white_100):
        actual = solid_image(100, 100, (250, 250, 250))

        result = engine.compare(white_100, actual)

        assert result.pixels_different == 0
        assert result.passed is True

    def test_strict_tolerance_flags_small_shift(self, engine, white_100):
        actual = solid_image(100, 100, (250, 250, 250))

        result = engine.compare(white_100, actual, tolerance=0.01)

        assert result.pixels_different == 10_000
        assert result.tolerance == 0.01
        assert result.classification == DifferenceClassification.CONTENT_CHANGE

    def test_invalid_tolerance_raises(self, engine, white_100):
        with pytest.raises(ConfigurationError):
            engine.compare(white_100, white_100, tolerance=1.5)


class TestRegionsOfInterest:
    """Ignore regions and checkpoint regions."""

    def test_ignore_region_excludes_pixels(self, engine, white_100):
        actual = with_block(white_100, 20, 20, 10, 10)

        result = engine.compare(white_100, actual, ignore_regions=[Rect(15, 15, 20, 20)])

        assert result.pixels_different == 0
        assert result.total_pixels == 10_000 - 400
        assert result.passed is True
        assert result.regions == []

    def test_ignore_region_is_clipped(self, engine, white_100):
        result = engine.compare(white_100, white_100, ignore_regions=[Rect(90, 90, 50, 50)])

        assert result.total_pixels == 10_000 - 100

    def test_ignore_region_from_dict(self, engine, white_100):
        actual = with_block(white_100, 20, 20, 10, 10)

        result = engine.compare(
            white_100, actual, ignore_regions=[{"x": 20, "y": 20, "width": 10, "height": 10}]
        )

        assert result.pixels_different == 0

    def test_checkpoint_region_crops_both_images(self, engine, white_100):
        actual = with_block(white_100, 60, 60, 20, 20)

        result = engine.compare(white_100, actual, region=Rect(0, 0, 50, 50))

        assert result.total_pixels == 2_500
        assert result.pixels_different == 0

    def test_checkpoint_region_outside_image(self, engine, white_100):
        result = engine.compare(white_100, white_100, region=Rect(200, 200, 10, 10))

        assert result.passed is False
        assert result.error_message is not None


class TestFailures:
    """Inputs that cannot be compared never raise."""

    def test_dimension_mismatch(self, engine, white_100):
        wide = solid_image(200, 100)

        result = engine.compare(white_100, wide)

        assert result.passed is False
        assert result.difference_percentage == 1.0
        assert "Baseline: 100x100" in result.error_message
        assert "Actual: 200x100" in result.error_message
        assert result.regions == []
        assert result.diff_image is None

    def test_undecodable_bytes(self, engine, white_100):
        result = engine.compare(b"not an image", white_100)

        assert result.passed is False
        assert result.error_message.startswith("Image decode failed")
        assert result.regions == []

    def test_empty_bytes(self, engine, white_100):
        result = engine.compare(white_100.to_png_bytes(), b"")

        assert result.passed is False
        assert "empty image data" in result.error_message


class TestConfiguration:
    """ComparisonConfig validation."""

    def test_default_values(self):
        config = ComparisonConfig()

        assert config.tolerance == 0.02
        assert config.min_region_pixels == 100
        assert config.minor_ssim_threshold == 0.95
        assert config.minor_difference_threshold == 0.05

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"tolerance": 2.0},
            {"tolerance": -0.1},
            {"min_region_pixels": -1},
            {"ssim_window": 1},
            {"highlight_color": (300, 0, 0)},
        ],
    )
    def test_invalid_config_raises(self, kwargs):
        with pytest.raises(ConfigurationError):
            ComparisonEngine(ComparisonConfig(**kwargs))

    def test_min_region_pixels_is_configurable(self, white_100):
        engine = ComparisonEngine(ComparisonConfig(min_region_pixels=1))
        array = np.array(white_100.rgba)
        array[5, 5, :3] = 0

        result = engine.compare(white_100, PixelImage(array))

        assert len(result.regions) == 1


class TestSerialization:
    """ComparisonResult.to_dict."""

    def test_to_dict_encodes_diff_image(self, engine, white_100):
        actual = with_block(white_100, 0, 0, 50, 100, color=(0, 0, 0))

        data = engine.compare(white_100, actual).to_dict()

        assert data["classification"] == "content_change"
        assert data["passed"] is False
        assert base64.b64decode(data["diff_image"]).startswith(b"\x89PNG")
        assert data["regions"][0]["width"] == 50

    def test_to_dict_without_diff_image(self, engine, white_100):
        data = engine.compare(white_100, white_100).to_dict()

        assert data["diff_image"] is None
        assert data["classification"] == "identical"
