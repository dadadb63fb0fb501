"""Configuration management for verimatch using pydantic-settings.

Every tunable default of the engine (tolerances, thresholds, penalties,
budgets) is exposed here so deployments can override it through
environment variables or a ``.env`` file instead of code changes.
"""

from pathlib import Path
from typing import TYPE_CHECKING, Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from ..healing.healing_config import HealingConfig
    from ..matching.similarity import MatchingConfig
    from ..vision.comparison import ComparisonConfig


class VerimatchSettings(BaseSettings):
    """Main configuration settings for verimatch.

    Configure via environment variables with the VERIMATCH_ prefix, e.g.
    ``VERIMATCH_ACCEPTANCE_THRESHOLD=0.8`` or
    ``VERIMATCH_CONFIDENCE_PRESET=accessibility``.
    """

    model_config = SettingsConfigDict(
        env_prefix="VERIMATCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging
    log_level: str = Field("INFO", description="Log level for verimatch loggers")
    log_file: Path | None = Field(None, description="Optional log file path")
    structured_logs: bool = Field(True, description="Render logs as JSON")

    # Comparison
    color_tolerance: float = Field(
        0.02, ge=0.0, le=1.0, description="Normalized RGBA distance above which a pixel differs"
    )
    min_region_pixels: int = Field(
        100, ge=1, description="Minimum bounding-box area of a reported difference region"
    )
    minor_ssim_threshold: float = Field(
        0.95, ge=0.0, le=1.0, description="SSIM above which small diffs count as minor rendering"
    )
    minor_difference_threshold: float = Field(
        0.05, ge=0.0, le=1.0, description="Difference fraction below which diffs may be minor"
    )
    generate_diff_on_pass: bool = Field(False, description="Render diff images for passing checks")

    # Matching
    hash_size: int = Field(8, ge=2, description="Perceptual hash grid size")
    position_tolerance: float = Field(
        0.25, gt=0.0, le=1.0, description="Tolerance radius as a fraction of the viewport diagonal"
    )

    # Healing
    acceptance_threshold: float = Field(
        0.75, ge=0.0, le=1.0, description="Minimum confidence to accept a healed locator"
    )
    shortcut_threshold: float = Field(
        0.9, ge=0.0, le=1.0, description="Confidence that stops the strategy search early"
    )
    confidence_preset: Literal["default", "balanced", "accessibility", "visual"] = Field(
        "default", description="Named weight profile for confidence aggregation"
    )
    overall_budget_seconds: float = Field(30.0, gt=0.0, description="Total healing time budget")
    strategy_budget_seconds: float = Field(10.0, gt=0.0, description="Per-strategy time budget")
    retry_attempts: int = Field(3, ge=1, description="Total tries for a transient driver or LLM call")
    retry_delay: float = Field(0.25, ge=0.0, description="Delay between retries in seconds")
    max_workers: int = Field(4, ge=1, description="Worker threads for candidate scoring")

    # LLM
    llm_mode: Literal["disabled", "local", "remote"] = Field(
        "disabled", description="Language-model access for the generative strategy"
    )
    llm_provider: str = Field("openai", description="Remote provider: openai, anthropic or google")
    llm_api_key: str | None = Field(None, description="API key for remote providers")
    llm_model: str | None = Field(None, description="Model override")
    llm_base_url: str | None = Field(None, description="Base URL override")

    @model_validator(mode="after")
    def _check_thresholds(self) -> "VerimatchSettings":
        if self.shortcut_threshold < self.acceptance_threshold:
            raise ValueError("shortcut_threshold must not be below acceptance_threshold")
        if self.strategy_budget_seconds > self.overall_budget_seconds:
            raise ValueError("strategy_budget_seconds must not exceed overall_budget_seconds")
        return self

    def to_comparison_config(self) -> "ComparisonConfig":
        """Build the comparison engine configuration."""
        from ..vision.comparison import ComparisonConfig

        return ComparisonConfig(
            tolerance=self.color_tolerance,
            min_region_pixels=self.min_region_pixels,
            minor_ssim_threshold=self.minor_ssim_threshold,
            minor_difference_threshold=self.minor_difference_threshold,
            generate_diff_on_pass=self.generate_diff_on_pass,
        )

    def to_matching_config(self) -> "MatchingConfig":
        """Build the similarity matcher configuration."""
        from ..matching.similarity import MatchingConfig

        return MatchingConfig(hash_size=self.hash_size, position_tolerance=self.position_tolerance)

    def to_healing_config(self) -> "HealingConfig":
        """Build the healing orchestrator configuration."""
        from ..healing.healing_config import HealingConfig
        from ..healing.healing_types import LLMMode

        return HealingConfig(
            llm_mode=LLMMode(self.llm_mode),
            remote_provider=self.llm_provider,
            remote_api_key=self.llm_api_key,
            remote_model=self.llm_model,
            remote_base_url=self.llm_base_url,
            acceptance_threshold=self.acceptance_threshold,
            shortcut_threshold=self.shortcut_threshold,
            confidence_preset=self.confidence_preset,
            overall_budget_seconds=self.overall_budget_seconds,
            strategy_budget_seconds=self.strategy_budget_seconds,
            retry_attempts=self.retry_attempts,
            retry_delay=self.retry_delay,
            max_workers=self.max_workers,
        )


_settings: VerimatchSettings | None = None


def get_settings() -> VerimatchSettings:
    """Get the singleton settings instance.

    Returns:
        VerimatchSettings instance
    """
    global _settings

    if _settings is None:
        _settings = VerimatchSettings()

    return _settings


def reset_settings() -> None:
    """Reset the settings singleton (mainly for testing)."""
    global _settings
    _settings = None
