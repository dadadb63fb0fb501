"""Vision-related exceptions.

Raised while decoding and comparing rasters. The comparison engine turns
these into a failed ``ComparisonResult`` instead of letting them escape.
"""

from .base_exceptions import VerimatchException


class VisionException(VerimatchException):
    """Base exception for raster errors."""

    pass


class ImageDecodeError(VisionException):
    """Raised when image bytes cannot be decoded."""

    def __init__(self, reason: str, source: str | None = None, **kwargs) -> None:
        """Initialize with decode details."""
        message = "Image decode failed"
        if source:
            message += f" for {source}"
        message += f": {reason}"

        super().__init__(
            message,
            error_code="IMAGE_DECODE_ERROR",
            context={"reason": reason, "source": source, **kwargs},
        )


class DimensionMismatchError(VisionException):
    """Raised when two compared images differ in size."""

    def __init__(
        self, baseline_size: tuple[int, int], actual_size: tuple[int, int], **kwargs
    ) -> None:
        """Initialize with both (width, height) pairs."""
        super().__init__(
            "Image dimensions do not match. "
            f"Baseline: {baseline_size[0]}x{baseline_size[1]}, "
            f"Actual: {actual_size[0]}x{actual_size[1]}",
            error_code="DIMENSION_MISMATCH",
            context={"baseline_size": baseline_size, "actual_size": actual_size, **kwargs},
        )
        self.baseline_size = baseline_size
        self.actual_size = actual_size
