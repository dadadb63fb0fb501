"""Decoded RGBA rasters.

PixelImage is the single image type the engine works with. Channel order is
always RGBA (PIL order), never OpenCV's BGR.
"""

from __future__ import annotations

import io

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError

from ..vision_exceptions import ImageDecodeError
from .geometry import Rect

# ITU-R BT.601 luma weights
_LUMA = np.array([0.299, 0.587, 0.114], dtype=np.float64)


class PixelImage:
    """Immutable RGBA raster backed by a read-only ``uint8`` array."""

    __slots__ = ("_rgba",)

    def __init__(self, rgba: np.ndarray) -> None:
        if rgba.ndim != 3 or rgba.shape[2] != 4 or rgba.dtype != np.uint8:
            raise ValueError(f"Expected uint8 array of shape (H, W, 4), got {rgba.dtype} {rgba.shape}")
        if rgba.shape[0] == 0 or rgba.shape[1] == 0:
            raise ValueError("Image must have at least one pixel")
        array = np.array(rgba, dtype=np.uint8, copy=True)
        array.setflags(write=False)
        self._rgba = array

    @classmethod
    def from_bytes(cls, data: bytes, source: str | None = None) -> PixelImage:
        """Decode PNG/JPEG (or any Pillow-readable) bytes.

        Raises:
            ImageDecodeError: If the bytes are empty or not a readable image
        """
        if not data:
            raise ImageDecodeError("empty image data", source)
        try:
            with Image.open(io.BytesIO(data)) as image:
                image.load()
                return cls.from_pil(image)
        except (UnidentifiedImageError, OSError, ValueError) as e:
            raise ImageDecodeError(str(e), source) from e

    @classmethod
    def from_pil(cls, image: Image.Image) -> PixelImage:
        return cls(np.asarray(image.convert("RGBA"), dtype=np.uint8))

    @classmethod
    def from_array(cls, array: np.ndarray) -> PixelImage:
        """Build from a gray ``(H, W)``, RGB ``(H, W, 3)`` or RGBA ``(H, W, 4)`` array."""
        array = np.asarray(array)
        if array.dtype != np.uint8:
            array = np.clip(array, 0, 255).astype(np.uint8)

        if array.ndim == 2:
            rgb = np.repeat(array[:, :, None], 3, axis=2)
            alpha = np.full(array.shape + (1,), 255, dtype=np.uint8)
            return cls(np.concatenate([rgb, alpha], axis=2))
        if array.ndim == 3 and array.shape[2] == 3:
            alpha = np.full(array.shape[:2] + (1,), 255, dtype=np.uint8)
            return cls(np.concatenate([array, alpha], axis=2))
        if array.ndim == 3 and array.shape[2] == 4:
            return cls(array)
        raise ValueError(f"Unsupported image format: {array.shape}")

    @property
    def width(self) -> int:
        return int(self._rgba.shape[1])

    @property
    def height(self) -> int:
        return int(self._rgba.shape[0])

    @property
    def size(self) -> tuple[int, int]:
        return (self.width, self.height)

    @property
    def rgba(self) -> np.ndarray:
        return self._rgba

    def pixel(self, x: int, y: int) -> tuple[int, int, int, int]:
        r, g, b, a = self._rgba[y, x]
        return (int(r), int(g), int(b), int(a))

    def luminance(self) -> np.ndarray:
        """Per-pixel luma as a float64 ``(H, W)`` array in 0..255."""
        return self._rgba[:, :, :3].astype(np.float64) @ _LUMA

    def crop(self, x: int, y: int, width: int, height: int) -> PixelImage:
        """Crop to a rectangle, clipped to the image bounds.

        Raises:
            ValueError: If the rectangle lies entirely outside the image
        """
        clipped = Rect(x, y, width, height).clip(self.width, self.height)
        if clipped is None:
            raise ValueError(
                f"Crop ({x}, {y}, {width}x{height}) is outside image {self.width}x{self.height}"
            )
        return PixelImage(
            self._rgba[clipped.y : clipped.y + clipped.height, clipped.x : clipped.x + clipped.width]
        )

    def resize(self, width: int, height: int) -> PixelImage:
        if (width, height) == self.size:
            return self
        # INTER_AREA for shrinking, INTER_LINEAR for enlarging
        shrinking = width * height < self.width * self.height
        interpolation = cv2.INTER_AREA if shrinking else cv2.INTER_LINEAR
        return PixelImage(cv2.resize(self._rgba, (width, height), interpolation=interpolation))

    def to_pil(self) -> Image.Image:
        return Image.fromarray(np.ascontiguousarray(self._rgba))

    def to_png_bytes(self) -> bytes:
        buffer = io.BytesIO()
        self.to_pil().save(buffer, format="PNG")
        return buffer.getvalue()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PixelImage):
            return NotImplemented
        return self._rgba.shape == other._rgba.shape and bool(np.array_equal(self._rgba, other._rgba))

    def __hash__(self) -> int:
        return hash((self._rgba.shape, self._rgba.tobytes()))

    def __repr__(self) -> str:
        return f"PixelImage({self.width}x{self.height})"
