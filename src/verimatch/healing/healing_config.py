"""Configuration for locator healing.

Provides configuration options for LLM mode, model selection, thresholds,
penalties, budgets and retry behavior.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ..base_exceptions import ConfigurationError
from ..matching.confidence import ConfidenceModel, ConfidenceWeights
from .healing_types import LLMMode

if TYPE_CHECKING:
    from .llm_client import SelectorLLMClient


class HealingConfigurationError(ConfigurationError):
    """Error in healing configuration."""

    pass


@dataclass
class HealingConfig:
    """Configuration for locator healing.

    Controls whether and how an LLM is used by the generative strategy and
    how candidates are accepted. Default is DISABLED - no remote access,
    fully offline.

    Attributes:
        llm_mode: How LLM is accessed (disabled, local, remote).
        acceptance_threshold: Default minimum confidence for a healed locator.
        shortcut_threshold: Confidence that ends the search after one strategy.
        overall_budget_seconds: Time budget for one healing run.
        strategy_budget_seconds: Time budget for one strategy.
        retry_attempts: Total tries for a transient driver or LLM call.
    """

    # LLM mode - default is DISABLED (no remote calls, fully offline)
    llm_mode: LLMMode = LLMMode.DISABLED

    # Local model settings (only used if llm_mode == LOCAL)
    local_model_name: str = "llama3.1:8b"
    """Ollama model name."""

    local_base_url: str = "http://localhost:11434"
    """Base URL for Ollama API."""

    # Remote API settings (only used if llm_mode == REMOTE)
    remote_provider: str = "openai"
    """Remote provider: 'openai', 'anthropic', 'google'."""

    remote_api_key: str | None = None
    """API key. REQUIRED for remote mode. Never logged or stored."""

    remote_model: str | None = None
    """Model override. Default depends on provider."""

    remote_base_url: str | None = None
    """Optional base URL override for remote API."""

    llm_timeout_seconds: float = 30.0
    """Timeout for one LLM request."""

    # Acceptance
    acceptance_threshold: float = 0.75
    shortcut_threshold: float = 0.9
    confidence_preset: str = "default"
    """Name of the weight profile, see CONFIDENCE_PRESETS."""

    ambiguity_margin: float = 0.05
    ambiguity_penalty: float = 0.15
    duplicate_penalty: float = 0.10

    # Strategy gates
    min_text_similarity: float = 0.8
    min_attribute_similarity: float = 0.5
    min_visual_similarity: float = 0.5
    catalog_limit: int = 20
    """Maximum elements described to the language model."""

    # Budgets
    overall_budget_seconds: float = 30.0
    strategy_budget_seconds: float = 10.0
    retry_attempts: int = 3
    retry_delay: float = 0.25
    max_workers: int = 4
    top_n: int = 5
    """Candidates kept per strategy pass."""

    max_verification_attempts: int = 3
    """Pooled candidates verified once every strategy has run."""

    # Run behavior
    check_original_locator: bool = True
    """Skip healing when the original locator still resolves uniquely."""

    history_bias: int = 2
    """Maximum positions a strategy moves up on past successes."""

    history_limit: int = 50

    # Internal - created clients
    _client: "SelectorLLMClient | None" = field(default=None, repr=False)

    def validate(self) -> None:
        """Validate configuration.

        Raises:
            HealingConfigurationError: If configuration is invalid.
        """
        if self.llm_mode == LLMMode.REMOTE:
            if not self.remote_api_key:
                raise HealingConfigurationError(
                    "remote_api_key",
                    "required when llm_mode is REMOTE. "
                    "Remote LLM access must be explicitly enabled with an API key.",
                )

            valid_providers = {"openai", "anthropic", "google"}
            if self.remote_provider not in valid_providers:
                raise HealingConfigurationError(
                    "remote_provider",
                    f"must be one of {sorted(valid_providers)}, got '{self.remote_provider}'",
                )

        for key in (
            "acceptance_threshold",
            "shortcut_threshold",
            "ambiguity_margin",
            "ambiguity_penalty",
            "duplicate_penalty",
            "min_text_similarity",
            "min_attribute_similarity",
            "min_visual_similarity",
        ):
            value = getattr(self, key)
            if not 0.0 <= value <= 1.0:
                raise HealingConfigurationError(key, f"must be between 0 and 1, got {value}")

        if self.shortcut_threshold < self.acceptance_threshold:
            raise HealingConfigurationError(
                "shortcut_threshold", "must not be below acceptance_threshold"
            )

        for key in ("overall_budget_seconds", "strategy_budget_seconds", "llm_timeout_seconds"):
            if getattr(self, key) <= 0:
                raise HealingConfigurationError(key, "must be positive")

        for key in ("retry_attempts", "max_workers", "top_n", "catalog_limit"):
            if getattr(self, key) < 1:
                raise HealingConfigurationError(key, "must be at least 1")

        if self.retry_delay < 0:
            raise HealingConfigurationError("retry_delay", "must not be negative")

        if self.max_verification_attempts < 0 or self.history_bias < 0 or self.history_limit < 0:
            raise HealingConfigurationError(
                "max_verification_attempts/history_bias/history_limit", "must not be negative"
            )

        ConfidenceWeights.preset(self.confidence_preset)

    def create_confidence_model(self) -> ConfidenceModel:
        """Build the confidence model for the configured preset and penalties."""
        return ConfidenceModel(
            weights=ConfidenceWeights.preset(self.confidence_preset),
            ambiguity_margin=self.ambiguity_margin,
            ambiguity_penalty=self.ambiguity_penalty,
            duplicate_penalty=self.duplicate_penalty,
        )

    def create_client(self) -> "SelectorLLMClient":
        """Create LLM client based on configuration.

        Returns:
            Configured SelectorLLMClient instance.

        Raises:
            HealingConfigurationError: If configuration is invalid.
        """
        # Import here to avoid circular imports
        from .llm_client import (
            DisabledSelectorClient,
            LocalSelectorClient,
            RemoteSelectorClient,
        )

        self.validate()

        if self.llm_mode == LLMMode.DISABLED:
            return DisabledSelectorClient()

        elif self.llm_mode == LLMMode.LOCAL:
            return LocalSelectorClient(
                model_name=self.local_model_name,
                base_url=self.local_base_url,
                timeout_seconds=self.llm_timeout_seconds,
            )

        elif self.llm_mode == LLMMode.REMOTE:
            # API key is validated in validate() - guaranteed non-None here
            assert self.remote_api_key is not None
            return RemoteSelectorClient(
                provider=self.remote_provider,
                api_key=self.remote_api_key,
                model=self.remote_model,
                base_url=self.remote_base_url,
                timeout_seconds=self.llm_timeout_seconds,
            )

        else:
            raise HealingConfigurationError("llm_mode", f"Unknown LLM mode: {self.llm_mode}")

    def get_client(self) -> "SelectorLLMClient":
        """Get or create the LLM client.

        Caches the client instance for reuse.
        """
        if self._client is None:
            self._client = self.create_client()
        return self._client

    @classmethod
    def disabled(cls) -> "HealingConfig":
        """Create a disabled configuration (default)."""
        return cls(llm_mode=LLMMode.DISABLED)

    @classmethod
    def with_ollama(
        cls,
        model_name: str = "llama3.1:8b",
        base_url: str = "http://localhost:11434",
    ) -> "HealingConfig":
        """Create configuration for local Ollama model.

        Args:
            model_name: Ollama model name.
            base_url: Ollama API URL.
        """
        return cls(
            llm_mode=LLMMode.LOCAL,
            local_model_name=model_name,
            local_base_url=base_url,
        )

    @classmethod
    def with_openai(
        cls,
        api_key: str,
        model: str = "gpt-4o-mini",
    ) -> "HealingConfig":
        """Create configuration for OpenAI API."""
        return cls(
            llm_mode=LLMMode.REMOTE,
            remote_provider="openai",
            remote_api_key=api_key,
            remote_model=model,
        )

    @classmethod
    def with_anthropic(
        cls,
        api_key: str,
        model: str = "claude-sonnet-4-20250514",
    ) -> "HealingConfig":
        """Create configuration for Anthropic API."""
        return cls(
            llm_mode=LLMMode.REMOTE,
            remote_provider="anthropic",
            remote_api_key=api_key,
            remote_model=model,
        )
