"""Configuration package.

Usage:
    from verimatch.config import get_settings

    settings = get_settings()
    engine = ComparisonEngine(settings.to_comparison_config())
"""

from .settings import VerimatchSettings, get_settings, reset_settings

__all__ = [
    "VerimatchSettings",
    "get_settings",
    "reset_settings",
]
