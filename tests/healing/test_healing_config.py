"""Tests for HealingConfig."""

import pytest

from verimatch.base_exceptions import ConfigurationError
from verimatch.healing.healing_config import HealingConfig, HealingConfigurationError
from verimatch.healing.healing_types import LLMMode
from verimatch.healing.llm_client import (
    DisabledSelectorClient,
    LocalSelectorClient,
    RemoteSelectorClient,
)


class TestHealingConfig:
    """Tests for HealingConfig class."""

    def test_disabled_by_default(self):
        """Test that LLM is disabled by default."""
        config = HealingConfig()

        assert config.llm_mode == LLMMode.DISABLED

    def test_disabled_factory(self):
        """Test disabled factory method."""
        config = HealingConfig.disabled()

        assert config.llm_mode == LLMMode.DISABLED
        assert config.remote_api_key is None

    def test_with_ollama(self):
        """Test Ollama configuration."""
        config = HealingConfig.with_ollama(model_name="qwen2.5:7b")

        assert config.llm_mode == LLMMode.LOCAL
        assert config.local_model_name == "qwen2.5:7b"

    def test_with_ollama_default_model(self):
        """Test Ollama with default model."""
        config = HealingConfig.with_ollama()

        assert config.local_model_name == "llama3.1:8b"

    def test_with_openai(self):
        """Test OpenAI configuration."""
        config = HealingConfig.with_openai(api_key="sk-test-key")

        assert config.llm_mode == LLMMode.REMOTE
        assert config.remote_provider == "openai"
        assert config.remote_api_key == "sk-test-key"
        assert config.remote_model == "gpt-4o-mini"

    def test_with_anthropic(self):
        """Test Anthropic configuration."""
        config = HealingConfig.with_anthropic(api_key="sk-ant-test")

        assert config.remote_provider == "anthropic"
        assert config.remote_api_key == "sk-ant-test"

    def test_defaults(self):
        """Test acceptance and budget defaults."""
        config = HealingConfig()

        assert config.acceptance_threshold == 0.75
        assert config.shortcut_threshold == 0.9
        assert config.overall_budget_seconds == 30.0
        assert config.strategy_budget_seconds == 10.0
        assert config.retry_attempts == 3

    def test_get_client_disabled(self):
        """Test getting client for disabled mode."""
        config = HealingConfig.disabled()
        client = config.get_client()

        assert isinstance(client, DisabledSelectorClient)
        assert config.get_client() is client

    def test_get_client_local(self):
        """Test getting client for local mode."""
        config = HealingConfig.with_ollama(base_url="http://ollama:11434")
        client = config.get_client()

        assert isinstance(client, LocalSelectorClient)
        assert client.base_url == "http://ollama:11434"

    def test_get_client_remote(self):
        """Test getting client for remote mode."""
        client = HealingConfig.with_openai(api_key="sk-test").create_client()

        assert isinstance(client, RemoteSelectorClient)
        assert client.model == "gpt-4o-mini"

    def test_confidence_model_uses_preset(self):
        """Test confidence model creation."""
        config = HealingConfig(confidence_preset="accessibility", ambiguity_penalty=0.2)
        model = config.create_confidence_model()

        assert model.weights.attribute == 0.55
        assert model.ambiguity_penalty == 0.2


class TestValidation:
    """Tests for HealingConfig.validate."""

    def test_remote_requires_api_key(self):
        """Remote mode without a key is rejected."""
        config = HealingConfig(llm_mode=LLMMode.REMOTE)

        with pytest.raises(HealingConfigurationError):
            config.create_client()

    def test_unknown_provider(self):
        """Unknown remote providers are rejected."""
        config = HealingConfig(llm_mode=LLMMode.REMOTE, remote_api_key="k", remote_provider="acme")

        with pytest.raises(HealingConfigurationError):
            config.validate()

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"acceptance_threshold": 1.2},
            {"shortcut_threshold": 0.5},
            {"overall_budget_seconds": 0},
            {"strategy_budget_seconds": -1},
            {"retry_attempts": 0},
            {"retry_delay": -0.1},
            {"top_n": 0},
            {"history_bias": -1},
            {"confidence_preset": "fancy"},
        ],
    )
    def test_invalid_values(self, kwargs):
        """Out-of-range values are rejected."""
        with pytest.raises(ConfigurationError):
            HealingConfig(**kwargs).validate()


class TestLLMMode:
    """Tests for LLMMode enum."""

    def test_enum_values(self):
        """Test enum values."""
        assert LLMMode.DISABLED.value == "disabled"
        assert LLMMode.LOCAL.value == "local"
        assert LLMMode.REMOTE.value == "remote"
