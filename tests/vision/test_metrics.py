"""Tests for the shared SSIM helpers."""

import numpy as np
import pytest

from verimatch.vision.metrics import fit_window, global_ssim, mean_ssim


class TestFitWindow:
    """Window size selection."""

    @pytest.mark.parametrize(
        "height,width,expected",
        [
            (100, 100, 7),
            (6, 100, 5),
            (5, 5, 5),
            (4, 40, 3),
            (2, 40, None),
        ],
    )
    def test_fit_window(self, height, width, expected):
        assert fit_window(height, width) == expected


class TestMeanSsim:
    """mean_ssim on luminance planes."""

    def test_identical_planes(self):
        rng = np.random.default_rng(3)
        plane = rng.uniform(0, 255, (32, 32))

        assert mean_ssim(plane, plane) == pytest.approx(1.0)

    def test_inverted_plane_scores_low(self):
        plane = np.zeros((20, 20))
        plane[:, :10] = 255.0

        assert mean_ssim(plane, 255.0 - plane) < 0.2

    def test_result_is_clamped(self):
        rng = np.random.default_rng(5)
        a = rng.uniform(0, 255, (16, 16))

        score = mean_ssim(a, 255.0 - a)

        assert 0.0 <= score <= 1.0

    def test_tiny_inputs_use_global_ssim(self):
        a = np.array([[10.0, 20.0], [30.0, 40.0]])

        assert mean_ssim(a, a) == pytest.approx(global_ssim(a, a))
        assert mean_ssim(a, a) == pytest.approx(1.0)

    def test_shape_mismatch_raises(self):
        with pytest.raises(ValueError):
            mean_ssim(np.zeros((4, 4)), np.zeros((4, 5)))
