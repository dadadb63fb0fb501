"""Interfaces the healing engine needs from its host.

The engine never talks to a browser directly. Hosts (Playwright,
Selenium, a recorded page snapshot in tests) implement BrowserDriver.
"""

from abc import ABC, abstractmethod

from ..vision.geometry import BoundingBox, Viewport
from ..vision.pixel_image import PixelImage
from .healing_types import PageElement


class BrowserDriver(ABC):
    """Read-only view of the page under test.

    Implementations raise ExternalServiceError for transient failures
    (driver disconnected, page navigating); the engine retries those a
    bounded number of times.
    """

    @abstractmethod
    def list_elements(self) -> list[PageElement]:
        """Snapshot of the elements on the page, bounding boxes in document coordinates."""
        pass

    @abstractmethod
    def count_visible(self, locator: str) -> int:
        """Number of visible elements the locator resolves to (0 if invalid)."""
        pass

    @abstractmethod
    def element_screenshot(self, locator: str) -> PixelImage | None:
        """Screenshot of the element, or None if it cannot be captured."""
        pass

    @abstractmethod
    def page_screenshot(self) -> PixelImage:
        """Screenshot of the current viewport."""
        pass

    @abstractmethod
    def bounding_box(self, locator: str) -> BoundingBox | None:
        """Box of the first element the locator resolves to, if any."""
        pass

    @abstractmethod
    def viewport(self) -> Viewport:
        """Current viewport size."""
        pass
