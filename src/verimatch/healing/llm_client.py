"""LLM client interface and implementations for generative locator healing.

Provides abstract interface and concrete implementations for:
- Disabled (default): No LLM, returns no proposals
- Local: Ollama for local inference
- Remote: OpenAI, Anthropic, Google for cloud inference

Responses are untrusted text. They are parsed into LocatorProposal models
and anything that does not validate is dropped.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..healing_exceptions import ExternalServiceError
from .healing_types import ElementDescription, PageElement

logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


class LocatorProposal(BaseModel):
    """One selector suggested by a language model."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    selector: str = Field(min_length=1)
    strategy: str = "css"
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    reasoning: str = ""

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return min(1.0, max(0.0, float(value)))
        return value


@dataclass
class LocatorPrompt:
    """Everything the model is told about a broken locator."""

    original_locator: str
    description: ElementDescription
    catalog: list[PageElement] = field(default_factory=list)
    page_url: str | None = None


class SelectorLLMClient(ABC):
    """Abstract interface for selector-proposing LLM clients.

    Implementations must provide propose() which takes a prompt and
    returns zero or more proposals. Transport failures raise
    ExternalServiceError so the caller can retry.
    """

    @abstractmethod
    def propose(self, prompt: LocatorPrompt) -> list[LocatorProposal]:
        """Ask the LLM for replacement selectors.

        Args:
            prompt: Broken locator, element description and page catalog.

        Returns:
            Parsed proposals, possibly empty.

        Raises:
            ExternalServiceError: If the service cannot be reached.
        """
        pass

    @property
    @abstractmethod
    def is_available(self) -> bool:
        """Check if the LLM client is available and ready."""
        pass

    def _build_prompt(self, prompt: LocatorPrompt) -> str:
        """Build the instruction text for the model.

        Args:
            prompt: Locator prompt.

        Returns:
            Prompt string for LLM.
        """
        text = f"""A UI test locator no longer matches any element on the page.

Broken locator: {prompt.original_locator}
The element it used to match: {prompt.description.summary()}
"""
        if prompt.page_url:
            text += f"Page URL: {prompt.page_url}\n"

        if prompt.catalog:
            text += "\nElements currently on the page:\n"
            for index, element in enumerate(prompt.catalog, start=1):
                text += f"{index}. {self._describe_element(element)}\n"

        text += """
Suggest up to 3 selectors that match the same element. Respond with JSON only:
{"candidates": [{"selector": "...", "strategy": "css|xpath|text|role", "confidence": 0.0, "reasoning": "..."}]}

If no element matches, respond with {"candidates": []}."""

        return text

    @staticmethod
    def _describe_element(element: PageElement) -> str:
        parts = [f"locator={element.locator}"]
        if element.tag_name:
            parts.append(f"<{element.tag_name}>")
        if element.text:
            parts.append(f'text="{element.text[:80]}"')
        if element.accessible_name and element.accessible_name != element.text:
            parts.append(f'name="{element.accessible_name[:80]}"')
        for key, value in element.relevant_attributes().items():
            parts.append(f'{key}="{value[:60]}"')
        return " ".join(parts)

    def _parse_response(self, response: str) -> list[LocatorProposal]:
        """Parse LLM response into proposals.

        Accepts a ``{"candidates": [...]}`` object, a bare list, or either
        wrapped in a markdown code fence. Invalid entries are skipped.

        Args:
            response: Raw LLM response text.

        Returns:
            Valid proposals, possibly empty.
        """
        data = self._extract_json(response)
        if data is None:
            logger.warning(f"Could not parse proposals from response: {response[:100]}")
            return []

        if isinstance(data, dict):
            items = data.get("candidates", [])
        else:
            items = data

        if not isinstance(items, list):
            logger.warning("LLM response 'candidates' is not a list")
            return []

        proposals = []
        for item in items:
            try:
                proposals.append(LocatorProposal.model_validate(item))
            except ValidationError as e:
                logger.debug(f"Dropping invalid proposal {item!r}: {e.error_count()} errors")
        return proposals

    @staticmethod
    def _extract_json(response: str) -> Any:
        text = response.strip()
        fence = _CODE_FENCE.search(text)
        if fence:
            text = fence.group(1).strip()

        try:
            return json.loads(text)
        except json.JSONDecodeError:
            pass

        # Fall back to the outermost object or list embedded in prose
        for opener, closer in (("{", "}"), ("[", "]")):
            start = text.find(opener)
            end = text.rfind(closer)
            if start != -1 and end > start:
                try:
                    return json.loads(text[start : end + 1])
                except json.JSONDecodeError:
                    continue
        return None


class DisabledSelectorClient(SelectorLLMClient):
    """Default client when LLM healing is disabled.

    Always returns no proposals, so the generative strategy finds nothing.
    """

    def propose(self, prompt: LocatorPrompt) -> list[LocatorProposal]:
        """Always returns an empty list (LLM disabled)."""
        logger.debug("LLM healing disabled, returning no proposals")
        return []

    @property
    def is_available(self) -> bool:
        """Disabled client is always 'available' (does nothing)."""
        return True


class LocalSelectorClient(SelectorLLMClient):
    """Local LLM via Ollama.

    Requires Ollama to be running locally with a model installed.
    No internet required after initial model download.

    Example:
        # ollama pull llama3.1:8b
        client = LocalSelectorClient(model_name="llama3.1:8b")
        proposals = client.propose(prompt)
    """

    def __init__(
        self,
        model_name: str = "llama3.1:8b",
        base_url: str = "http://localhost:11434",
        timeout_seconds: float = 30.0,
    ) -> None:
        """Initialize local Ollama client.

        Args:
            model_name: Ollama model name.
            base_url: Ollama API base URL.
            timeout_seconds: Request timeout.
        """
        self.model_name = model_name
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds

    def propose(self, prompt: LocatorPrompt) -> list[LocatorProposal]:
        """Ask the Ollama model for selectors."""
        payload = {
            "model": self.model_name,
            "prompt": self._build_prompt(prompt),
            "format": "json",
            "stream": False,
        }

        try:
            with httpx.Client(timeout=self.timeout_seconds) as client:
                response = client.post(f"{self.base_url}/api/generate", json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            raise ExternalServiceError("ollama", str(e)) from e
        except ValueError as e:
            logger.error(f"Ollama returned non-JSON body: {e}")
            return []

        response_text = data.get("response", "") if isinstance(data, dict) else ""
        logger.debug(f"Ollama response: {response_text[:200]}")
        return self._parse_response(response_text)

    @property
    def is_available(self) -> bool:
        """Check if Ollama is running and model is available."""
        try:
            with httpx.Client(timeout=5.0) as client:
                response = client.get(f"{self.base_url}/api/tags")
                if response.status_code != 200:
                    return False

                data = response.json()
                models = [m.get("name", "") for m in data.get("models", [])]

                for model in models:
                    if model.startswith(self.model_name.split(":")[0]):
                        return True

                logger.warning(f"Model {self.model_name} not found. Available: {models}")
                return False

        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"Ollama not available: {e}")
            return False


class RemoteSelectorClient(SelectorLLMClient):
    """Remote LLM via cloud APIs.

    Supports OpenAI, Anthropic, and Google providers.
    Requires API key and internet connection.

    Example:
        client = RemoteSelectorClient(
            provider="openai",
            api_key=os.environ["OPENAI_API_KEY"],
        )
        proposals = client.propose(prompt)
    """

    # Default models per provider
    DEFAULT_MODELS = {
        "openai": "gpt-4o-mini",
        "anthropic": "claude-sonnet-4-20250514",
        "google": "gemini-1.5-flash",
    }

    MAX_TOKENS = 800

    def __init__(
        self,
        provider: str,
        api_key: str,
        model: str | None = None,
        base_url: str | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        """Initialize remote API client.

        Args:
            provider: Provider name (openai, anthropic, google).
            api_key: API key for the provider.
            model: Model name (uses default if not specified).
            base_url: Optional base URL override.
            timeout_seconds: Request timeout.
        """
        self.provider = provider.lower()
        self.api_key = api_key
        self.model = model or self.DEFAULT_MODELS.get(self.provider)
        self.base_url = base_url
        self.timeout_seconds = timeout_seconds

        if not self.model:
            raise ValueError(f"Unknown provider: {provider}")

    def propose(self, prompt: LocatorPrompt) -> list[LocatorProposal]:
        """Ask the remote model for selectors."""
        text = self._build_prompt(prompt)
        if self.provider == "openai":
            response_text = self._call_openai(text)
        elif self.provider == "anthropic":
            response_text = self._call_anthropic(text)
        elif self.provider == "google":
            response_text = self._call_google(text)
        else:
            logger.error(f"Unknown provider: {self.provider}")
            return []

        if response_text is None:
            return []
        logger.debug(f"{self.provider} response: {response_text[:200]}")
        return self._parse_response(response_text)

    def _post(self, url: str, payload: dict, headers: dict | None = None, params: dict | None = None) -> Any:
        try:
            with httpx.Client(timeout=self.timeout_seconds) as client:
                response = client.post(url, headers=headers, params=params, json=payload)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPError as e:
            raise ExternalServiceError(self.provider, str(e)) from e
        except ValueError as e:
            logger.error(f"{self.provider} returned non-JSON body: {e}")
            return None

    def _call_openai(self, prompt: str) -> str | None:
        """Call OpenAI chat completions API."""
        base_url = self.base_url or "https://api.openai.com/v1"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "response_format": {"type": "json_object"},
            "max_tokens": self.MAX_TOKENS,
        }

        data = self._post(f"{base_url}/chat/completions", payload, headers=headers)
        try:
            return data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            logger.error(f"Unexpected OpenAI response format: {e}")
            return None

    def _call_anthropic(self, prompt: str) -> str | None:
        """Call Anthropic messages API."""
        base_url = self.base_url or "https://api.anthropic.com/v1"
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": "2023-06-01",
            "Content-Type": "application/json",
        }
        payload = {
            "model": self.model,
            "max_tokens": self.MAX_TOKENS,
            "messages": [{"role": "user", "content": prompt}],
        }

        data = self._post(f"{base_url}/messages", payload, headers=headers)
        try:
            return data["content"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            logger.error(f"Unexpected Anthropic response format: {e}")
            return None

    def _call_google(self, prompt: str) -> str | None:
        """Call Google Gemini API."""
        base_url = self.base_url or "https://generativelanguage.googleapis.com/v1beta"
        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "maxOutputTokens": self.MAX_TOKENS,
                "responseMimeType": "application/json",
            },
        }

        data = self._post(
            f"{base_url}/models/{self.model}:generateContent",
            payload,
            params={"key": self.api_key},
        )
        try:
            return data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            logger.error(f"Unexpected Google response format: {e}")
            return None

    @property
    def is_available(self) -> bool:
        """Check if API key is configured (doesn't verify it works)."""
        return bool(self.api_key)
