"""Tests for VerimatchSettings."""

import pytest
from pydantic import ValidationError

from verimatch.config import VerimatchSettings, get_settings, reset_settings
from verimatch.healing import LLMMode


class TestVerimatchSettings:
    """Defaults, environment overrides and validation."""

    def test_defaults(self):
        settings = VerimatchSettings()

        assert settings.color_tolerance == 0.02
        assert settings.acceptance_threshold == 0.75
        assert settings.shortcut_threshold == 0.9
        assert settings.confidence_preset == "default"
        assert settings.llm_mode == "disabled"

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("VERIMATCH_ACCEPTANCE_THRESHOLD", "0.8")
        monkeypatch.setenv("VERIMATCH_CONFIDENCE_PRESET", "accessibility")
        reset_settings()

        settings = get_settings()

        assert settings.acceptance_threshold == 0.8
        assert settings.confidence_preset == "accessibility"

    def test_singleton(self):
        assert get_settings() is get_settings()

    def test_shortcut_below_acceptance_rejected(self):
        with pytest.raises(ValidationError):
            VerimatchSettings(acceptance_threshold=0.95, shortcut_threshold=0.9)

    def test_strategy_budget_above_overall_rejected(self):
        with pytest.raises(ValidationError):
            VerimatchSettings(overall_budget_seconds=5, strategy_budget_seconds=10)

    def test_out_of_range_tolerance_rejected(self):
        with pytest.raises(ValidationError):
            VerimatchSettings(color_tolerance=1.5)

    def test_unknown_preset_rejected(self):
        with pytest.raises(ValidationError):
            VerimatchSettings(confidence_preset="fancy")


class TestConversions:
    """Building component configurations from settings."""

    def test_comparison_config(self):
        config = VerimatchSettings(color_tolerance=0.1, min_region_pixels=25).to_comparison_config()

        assert config.tolerance == 0.1
        assert config.min_region_pixels == 25

    def test_matching_config(self):
        config = VerimatchSettings(hash_size=16, position_tolerance=0.5).to_matching_config()

        assert config.hash_size == 16
        assert config.position_tolerance == 0.5

    def test_healing_config(self):
        settings = VerimatchSettings(
            llm_mode="remote",
            llm_provider="anthropic",
            llm_api_key="sk-ant",
            retry_attempts=5,
        )

        config = settings.to_healing_config()

        assert config.llm_mode == LLMMode.REMOTE
        assert config.remote_provider == "anthropic"
        assert config.retry_attempts == 5
        config.validate()
