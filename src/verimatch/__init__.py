"""verimatch - visual similarity and adaptive matching for UI tests.

Compares checkpoint screenshots against approved baselines and heals
broken element locators by scoring live page elements on text, ARIA,
attribute, visual and positional similarity.
"""

__version__ = "0.1.0"

from .base_exceptions import ConfigurationError, VerimatchException
from .config import VerimatchSettings, get_settings, reset_settings
from .healing import (
    BrowserDriver,
    CancellationToken,
    ElementDescription,
    HealingConfig,
    HealingContext,
    HealingOrchestrator,
    HealingOutcome,
    HealingStrategy,
    PageElement,
)
from .healing_exceptions import ExternalServiceError, HealingCancelledError, StrategyBudgetExceeded
from .matching import ConfidenceModel, ConfidenceWeights, SimilarityMatcher, SimilarityScores
from .vision import (
    BoundingBox,
    ComparisonConfig,
    ComparisonEngine,
    ComparisonResult,
    DifferenceClassification,
    PixelImage,
    Rect,
    Viewport,
)
from .vision_exceptions import DimensionMismatchError, ImageDecodeError

__all__ = [
    "__version__",
    # Comparison
    "ComparisonConfig",
    "ComparisonEngine",
    "ComparisonResult",
    "DifferenceClassification",
    "PixelImage",
    "Rect",
    "BoundingBox",
    "Viewport",
    # Matching
    "SimilarityMatcher",
    "SimilarityScores",
    "ConfidenceModel",
    "ConfidenceWeights",
    # Healing
    "HealingOrchestrator",
    "HealingConfig",
    "HealingContext",
    "HealingOutcome",
    "HealingStrategy",
    "ElementDescription",
    "PageElement",
    "BrowserDriver",
    "CancellationToken",
    # Configuration
    "VerimatchSettings",
    "get_settings",
    "reset_settings",
    # Errors
    "VerimatchException",
    "ConfigurationError",
    "ImageDecodeError",
    "DimensionMismatchError",
    "ExternalServiceError",
    "HealingCancelledError",
    "StrategyBudgetExceeded",
]
