"""Locator healing for UI tests.

When a locator stops resolving, the orchestrator searches the page for the
element it used to match with six strategies (text, ARIA, stable
attributes, appearance, position, language model) and only accepts a
replacement that verifies against the live page. By default, LLM healing
is DISABLED for privacy and offline operation.

Default Behavior (LLM Disabled):
    >>> from verimatch.healing import HealingOrchestrator, HealingContext, ElementDescription
    >>>
    >>> orchestrator = HealingOrchestrator(driver)
    >>> outcome = orchestrator.heal(HealingContext("#submit", ElementDescription(text="Submit")))

Enable Local LLM (Ollama):
    >>> config = HealingConfig.with_ollama(model_name="llama3.1:8b")
    >>> orchestrator = HealingOrchestrator(driver, config=config)

Enable Remote LLM (requires API key):
    >>> config = HealingConfig.with_openai(api_key=os.environ["OPENAI_API_KEY"])
    >>> orchestrator = HealingOrchestrator(driver, config=config)
"""

from .cancellation import CancellationToken
from .healing_config import HealingConfig, HealingConfigurationError
from .healing_types import (
    DEFAULT_STRATEGY_ORDER,
    ElementDescription,
    HealingContext,
    HealingOutcome,
    HealingReason,
    HealingStrategy,
    LLMMode,
    PageElement,
    SelectorCandidate,
)
from .history import (
    HealingHistoryStore,
    HealingRecord,
    InMemoryHistoryStore,
    JsonLinesHistoryStore,
    strategy_bias,
)
from .interfaces import BrowserDriver
from .llm_client import (
    DisabledSelectorClient,
    LocalSelectorClient,
    LocatorPrompt,
    LocatorProposal,
    RemoteSelectorClient,
    SelectorLLMClient,
)
from .orchestrator import HealingOrchestrator
from .retry import call_with_retry
from .strategies import CandidateStrategy, StrategyRequest, build_strategy_registry

__all__ = [
    # Orchestration
    "HealingOrchestrator",
    "HealingConfig",
    "HealingConfigurationError",
    "CancellationToken",
    "call_with_retry",
    # Types
    "DEFAULT_STRATEGY_ORDER",
    "ElementDescription",
    "HealingContext",
    "HealingOutcome",
    "HealingReason",
    "HealingStrategy",
    "LLMMode",
    "PageElement",
    "SelectorCandidate",
    # Strategies
    "CandidateStrategy",
    "StrategyRequest",
    "build_strategy_registry",
    # Collaborators
    "BrowserDriver",
    "HealingHistoryStore",
    "HealingRecord",
    "InMemoryHistoryStore",
    "JsonLinesHistoryStore",
    "strategy_bias",
    # LLM clients
    "SelectorLLMClient",
    "DisabledSelectorClient",
    "LocalSelectorClient",
    "RemoteSelectorClient",
    "LocatorPrompt",
    "LocatorProposal",
]
