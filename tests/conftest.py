"""Pytest configuration and fixtures."""

import os

import pytest

# Keep test output free of engine log lines
os.environ.setdefault("VERIMATCH_DISABLE_CONSOLE_LOGGING", "1")

from verimatch.config import reset_settings  # noqa: E402
from verimatch.healing import HealingConfig  # noqa: E402

from fakes import solid_image  # noqa: E402


@pytest.fixture(autouse=True)
def clean_settings():
    """Reset the settings singleton around every test."""
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def fast_config() -> HealingConfig:
    """Healing configuration without retry delays."""
    return HealingConfig(retry_delay=0.0)


@pytest.fixture
def white_100():
    """100x100 solid white image."""
    return solid_image(100, 100)
