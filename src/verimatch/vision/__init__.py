"""Visual comparison: rasters, structural similarity, checkpoint baselines."""

from .baselines import BaselineKey, BaselineLog, BaselineRecord, CheckpointVerifier
from .comparison import (
    ComparisonConfig,
    ComparisonEngine,
    ComparisonResult,
    DifferenceClassification,
    DifferenceRegion,
)
from .geometry import BoundingBox, Rect, Viewport
from .metrics import mean_ssim
from .pixel_image import PixelImage

__all__ = [
    # Rasters
    "PixelImage",
    "Rect",
    "BoundingBox",
    "Viewport",
    "mean_ssim",
    # Comparison
    "ComparisonConfig",
    "ComparisonEngine",
    "ComparisonResult",
    "DifferenceClassification",
    "DifferenceRegion",
    # Baselines
    "BaselineKey",
    "BaselineLog",
    "BaselineRecord",
    "CheckpointVerifier",
]
