"""Structural similarity shared by the comparison engine and the matcher.

Both callers go through ``mean_ssim`` so a region compared as a checkpoint
and the same patch scored as a healing candidate get the same number.
"""

import numpy as np
from skimage.metrics import structural_similarity

K1 = 0.01
K2 = 0.03
DATA_RANGE = 255.0
C1 = (K1 * DATA_RANGE) ** 2
C2 = (K2 * DATA_RANGE) ** 2

DEFAULT_WINDOW = 7


def fit_window(height: int, width: int, window: int = DEFAULT_WINDOW) -> int | None:
    """Largest odd window no bigger than ``window`` that fits the image.

    Returns:
        The window size, or None when the image is smaller than 3 pixels
        in either dimension
    """
    win = min(window, height, width)
    if win % 2 == 0:
        win -= 1
    if win < 3:
        return None
    return win


def global_ssim(a: np.ndarray, b: np.ndarray) -> float:
    """SSIM over a single window covering the whole image."""
    mu_a = float(a.mean())
    mu_b = float(b.mean())
    var_a = float(((a - mu_a) ** 2).mean())
    var_b = float(((b - mu_b) ** 2).mean())
    cov = float(((a - mu_a) * (b - mu_b)).mean())
    numerator = (2 * mu_a * mu_b + C1) * (2 * cov + C2)
    denominator = (mu_a**2 + mu_b**2 + C1) * (var_a + var_b + C2)
    return numerator / denominator


def mean_ssim(a: np.ndarray, b: np.ndarray, window: int = DEFAULT_WINDOW) -> float:
    """Mean SSIM of two equally sized luminance arrays, clamped to [0, 1].

    Uses a uniform window with the standard constants on 8-bit range.
    """
    if a.shape != b.shape:
        raise ValueError(f"SSIM inputs differ in shape: {a.shape} vs {b.shape}")

    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)

    win = fit_window(a.shape[0], a.shape[1], window)
    if win is None:
        score = global_ssim(a, b)
    else:
        score = structural_similarity(
            a,
            b,
            win_size=win,
            data_range=DATA_RANGE,
            gaussian_weights=False,
            use_sample_covariance=False,
            K1=K1,
            K2=K2,
        )
    return float(min(1.0, max(0.0, score)))
