"""Geometry primitives shared by comparison, matching and healing."""

from __future__ import annotations

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class Rect:
    """Integer pixel rectangle (ignore regions, crops, checkpoint regions)."""

    x: int
    y: int
    width: int
    height: int
    name: str | None = None

    def clip(self, width: int, height: int) -> Rect | None:
        """Clip to an image of the given size.

        Returns:
            The clipped rectangle, or None when nothing of it lies inside
        """
        x1 = max(0, self.x)
        y1 = max(0, self.y)
        x2 = min(width, self.x + self.width)
        y2 = min(height, self.y + self.height)
        if x2 <= x1 or y2 <= y1:
            return None
        return Rect(x1, y1, x2 - x1, y2 - y1, self.name)

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "name": self.name,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Rect:
        """Create from dictionary."""
        return cls(
            x=int(data["x"]),
            y=int(data["y"]),
            width=int(data["width"]),
            height=int(data["height"]),
            name=data.get("name"),
        )


@dataclass(frozen=True)
class BoundingBox:
    """Element box in document (page) coordinates.

    Drivers report positions including the scroll offset, so an element
    keeps its box when the page scrolls.
    """

    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> tuple[float, float]:
        return (self.x + self.width / 2, self.y + self.height / 2)

    @property
    def area(self) -> float:
        return max(0.0, self.width) * max(0.0, self.height)

    def center_distance(self, other: BoundingBox) -> float:
        """Euclidean distance between the two centers."""
        cx, cy = self.center
        ox, oy = other.center
        return math.hypot(cx - ox, cy - oy)

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass(frozen=True)
class Viewport:
    """Browser viewport size in CSS pixels."""

    width: int
    height: int

    @property
    def diagonal(self) -> float:
        return math.hypot(self.width, self.height)
