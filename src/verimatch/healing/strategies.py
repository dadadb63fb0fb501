"""Candidate-producing strategies for locator healing.

Each strategy looks at the page from one angle (text, ARIA, attributes,
appearance, position, a language model) and returns scored candidates.
Penalties and acceptance are the orchestrator's job.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from typing import TypeVar

from ..logging import get_logger
from ..matching.confidence import ConfidenceModel
from ..matching.scores import SimilarityScores
from ..matching.similarity import SimilarityMatcher
from ..vision.geometry import Viewport
from ..vision.pixel_image import PixelImage
from .cancellation import CancellationToken
from .healing_config import HealingConfig
from .healing_types import HealingContext, HealingStrategy, PageElement, SelectorCandidate
from .interfaces import BrowserDriver
from .llm_client import LocatorPrompt, SelectorLLMClient
from .retry import call_with_retry

T = TypeVar("T")

logger = get_logger(__name__)

INTERACTIVE_TAGS = frozenset({"a", "button", "input", "select", "textarea", "option", "label", "summary"})
INTERACTIVE_ROLES = frozenset(
    {
        "button",
        "link",
        "checkbox",
        "radio",
        "tab",
        "menuitem",
        "option",
        "textbox",
        "combobox",
        "switch",
        "searchbox",
    }
)


@dataclass
class StrategyRequest:
    """Everything a strategy may use during one pass."""

    context: HealingContext
    elements: list[PageElement]
    """Visible elements of the page snapshot taken for this run."""

    viewport: Viewport
    token: CancellationToken
    driver: BrowserDriver
    matcher: SimilarityMatcher
    confidence: ConfidenceModel
    config: HealingConfig
    llm_client: SelectorLLMClient
    executor: ThreadPoolExecutor

    def with_token(self, token: CancellationToken) -> StrategyRequest:
        return replace(self, token=token)

    def call(self, fn: Callable[[], T], operation: str) -> T:
        """Call a driver or LLM function with retry and cancellation."""
        return call_with_retry(
            fn,
            attempts=self.config.retry_attempts,
            delay=self.config.retry_delay,
            token=self.token,
            operation=operation,
        )


class CandidateStrategy(ABC):
    """One way of finding replacement candidates."""

    strategy: HealingStrategy

    def applies(self, request: StrategyRequest) -> bool:
        """Whether the description carries what this strategy needs."""
        return True

    @abstractmethod
    def produce(self, request: StrategyRequest) -> list[SelectorCandidate]:
        """Scored candidates, before pass-level penalties.

        Raises:
            HealingCancelledError: If the request token is cancelled
            ExternalServiceError: If a collaborator keeps failing
        """
        pass

    def _score_elements(
        self,
        request: StrategyRequest,
        elements: Sequence[PageElement],
        score: Callable[[PageElement], tuple[SimilarityScores, str] | None],
    ) -> list[SelectorCandidate]:
        """Score elements in parallel; ``score`` returns None to reject one.

        Queued scoring jobs are cancelled as soon as the pass ends early, and
        jobs that already started check the token before doing any work.
        """

        def guarded(element: PageElement) -> tuple[SimilarityScores, str] | None:
            request.token.raise_if_cancelled()
            return score(element)

        futures = [request.executor.submit(guarded, element) for element in elements]
        candidates = []
        try:
            for element, future in zip(elements, futures):
                request.token.raise_if_cancelled()
                result = future.result()
                if result is None:
                    continue
                scores, reasoning = result
                candidates.append(self._candidate(request, element, scores, reasoning))
        finally:
            for future in futures:
                future.cancel()
        return candidates

    def _candidate(
        self,
        request: StrategyRequest,
        element: PageElement,
        scores: SimilarityScores,
        reasoning: str,
    ) -> SelectorCandidate:
        return SelectorCandidate(
            locator=element.locator,
            strategy=self.strategy,
            scores=scores,
            confidence=request.confidence.aggregate(scores),
            reasoning=reasoning,
            signature=element.signature(),
        )


class TextMatchStrategy(CandidateStrategy):
    """Elements whose visible text or accessible name matches."""

    strategy = HealingStrategy.TEXT_MATCH

    def applies(self, request: StrategyRequest) -> bool:
        description = request.context.description
        return bool(description.text or description.accessible_name)

    def produce(self, request: StrategyRequest) -> list[SelectorCandidate]:
        description = request.context.description
        matcher = request.matcher
        expected = [t for t in (description.text, description.accessible_name) if t]
        expected_attributes = request.context.scoring_attributes()

        def score(element: PageElement) -> tuple[SimilarityScores, str] | None:
            observed = [t for t in (element.text, element.accessible_name) if t]
            best = max(
                (matcher.textual(e, o) or 0.0 for e in expected for o in observed),
                default=0.0,
            )
            if best < request.config.min_text_similarity:
                return None
            scores = SimilarityScores(
                textual=best,
                attribute=matcher.attribute(expected_attributes, element.attribute_map()),
            )
            shown = element.text or element.accessible_name
            return scores, f'text "{shown}" matches with similarity {best:.2f}'

        return self._score_elements(request, request.elements, score)


class AriaMatchStrategy(CandidateStrategy):
    """Elements whose role or ARIA label matches."""

    strategy = HealingStrategy.ARIA_MATCH

    def applies(self, request: StrategyRequest) -> bool:
        description = request.context.description
        return bool(description.label or description.role)

    def produce(self, request: StrategyRequest) -> list[SelectorCandidate]:
        description = request.context.description
        matcher = request.matcher
        label = description.label
        role = description.role
        expected_attributes = request.context.scoring_attributes()

        def score(element: PageElement) -> tuple[SimilarityScores, str] | None:
            element_label = element.accessible_name or element.attributes.get("aria-label", "")
            label_score = matcher.textual(label, element_label) if label else None
            role_match = bool(role) and element.role == role

            if label:
                if label_score is None or label_score < request.config.min_text_similarity:
                    return None
            elif not role_match:
                return None

            scores = SimilarityScores(
                textual=label_score,
                attribute=matcher.attribute(expected_attributes, element.attribute_map()),
            )
            if label_score is not None:
                reasoning = f'label "{element_label}" matches with similarity {label_score:.2f}'
            else:
                reasoning = f"role {role} matches"
            return scores, reasoning

        return self._score_elements(request, request.elements, score)


class StableAttributeStrategy(CandidateStrategy):
    """Elements sharing stable attributes, with partial credit for near misses."""

    strategy = HealingStrategy.STABLE_ATTRIBUTES

    def applies(self, request: StrategyRequest) -> bool:
        return bool(request.matcher.stable_keys(request.context.description.attribute_map()))

    def produce(self, request: StrategyRequest) -> list[SelectorCandidate]:
        description = request.context.description
        matcher = request.matcher
        expected_attributes = description.attribute_map()

        def score(element: PageElement) -> tuple[SimilarityScores, str] | None:
            fuzzy = matcher.fuzzy_attribute(expected_attributes, element.attribute_map())
            if fuzzy is None or fuzzy < request.config.min_attribute_similarity:
                return None
            scores = SimilarityScores(
                attribute=fuzzy,
                textual=matcher.textual(description.text, element.text),
            )
            return scores, f"stable attributes match with similarity {fuzzy:.2f}"

        return self._score_elements(request, request.elements, score)


class VisualMatchStrategy(CandidateStrategy):
    """Elements that look like the reference patch."""

    strategy = HealingStrategy.VISUAL_MATCH

    def applies(self, request: StrategyRequest) -> bool:
        return request.context.description.reference_patch is not None

    def produce(self, request: StrategyRequest) -> list[SelectorCandidate]:
        reference = request.context.description.reference_patch
        matcher = request.matcher

        # Driver calls stay sequential; only scoring runs in the pool
        patches: dict[str, PixelImage] = {}
        for element in request.elements:
            request.token.raise_if_cancelled()
            patch = request.call(
                lambda locator=element.locator: request.driver.element_screenshot(locator),
                "element_screenshot",
            )
            if patch is not None:
                patches[element.locator] = patch

        captured = [e for e in request.elements if e.locator in patches]

        def score(element: PageElement) -> tuple[SimilarityScores, str] | None:
            visual = matcher.visual(reference, patches[element.locator])
            if visual is None or visual < request.config.min_visual_similarity:
                return None
            return SimilarityScores(visual=visual), f"appearance matches with similarity {visual:.2f}"

        return self._score_elements(request, captured, score)


class PositionalMatchStrategy(CandidateStrategy):
    """Elements near the last known position."""

    strategy = HealingStrategy.POSITIONAL_MATCH

    def applies(self, request: StrategyRequest) -> bool:
        return request.context.description.bounding_box is not None

    def produce(self, request: StrategyRequest) -> list[SelectorCandidate]:
        description = request.context.description
        matcher = request.matcher
        expected_attributes = request.context.scoring_attributes()

        def score(element: PageElement) -> tuple[SimilarityScores, str] | None:
            positional = matcher.positional(
                description.bounding_box, element.bounding_box, request.viewport
            )
            if not positional:
                return None
            scores = SimilarityScores(
                positional=positional,
                attribute=matcher.attribute(expected_attributes, element.attribute_map()),
            )
            distance = description.bounding_box.center_distance(element.bounding_box)
            return scores, f"{distance:.0f}px from last known position"

        return self._score_elements(request, request.elements, score)


class GenerativeStrategy(CandidateStrategy):
    """Selectors proposed by a language model, verified against the page."""

    strategy = HealingStrategy.GENERATIVE

    def produce(self, request: StrategyRequest) -> list[SelectorCandidate]:
        context = request.context
        description = context.description
        matcher = request.matcher

        catalog = self.build_catalog(request.elements, request.config.catalog_limit)
        prompt = LocatorPrompt(
            original_locator=context.original_locator,
            description=description,
            catalog=catalog,
            page_url=context.page_url,
        )
        proposals = request.call(lambda: request.llm_client.propose(prompt), "llm_propose")
        logger.debug("llm_proposals_received", count=len(proposals))

        by_locator = {element.locator: element for element in request.elements}
        expected_attributes = request.context.scoring_attributes()
        candidates = []

        for proposal in proposals:
            request.token.raise_if_cancelled()
            if proposal.selector == context.original_locator:
                continue
            count = request.call(
                lambda selector=proposal.selector: request.driver.count_visible(selector),
                "count_visible",
            )
            if count < 1:
                logger.debug("llm_proposal_unresolved", selector=proposal.selector)
                continue

            element = by_locator.get(proposal.selector)
            if element is not None:
                scores = SimilarityScores(
                    textual=matcher.textual(
                        description.text or description.label,
                        element.text or element.accessible_name,
                    ),
                    attribute=matcher.attribute(expected_attributes, element.attribute_map()),
                    positional=matcher.positional(
                        description.bounding_box, element.bounding_box, request.viewport
                    ),
                    generative=proposal.confidence,
                )
                signature = element.signature()
            else:
                box = request.call(
                    lambda selector=proposal.selector: request.driver.bounding_box(selector),
                    "bounding_box",
                )
                scores = SimilarityScores(
                    positional=matcher.positional(description.bounding_box, box, request.viewport),
                    generative=proposal.confidence,
                )
                signature = None

            candidates.append(
                SelectorCandidate(
                    locator=proposal.selector,
                    strategy=self.strategy,
                    scores=scores,
                    confidence=request.confidence.aggregate(scores),
                    reasoning=proposal.reasoning or f"proposed by the model ({proposal.strategy})",
                    signature=signature,
                )
            )

        return candidates

    @staticmethod
    def build_catalog(elements: Sequence[PageElement], limit: int) -> list[PageElement]:
        """Interactive elements first, then the rest, at most ``limit``."""
        interactive = [e for e in elements if _is_interactive(e)]
        others = [e for e in elements if not _is_interactive(e)]
        return (interactive + others)[:limit]


def _is_interactive(element: PageElement) -> bool:
    return element.tag_name.lower() in INTERACTIVE_TAGS or (element.role or "") in INTERACTIVE_ROLES


def build_strategy_registry() -> dict[HealingStrategy, CandidateStrategy]:
    """One instance of every built-in strategy, keyed by its variant."""
    strategies: list[CandidateStrategy] = [
        TextMatchStrategy(),
        AriaMatchStrategy(),
        StableAttributeStrategy(),
        VisualMatchStrategy(),
        PositionalMatchStrategy(),
        GenerativeStrategy(),
    ]
    return {s.strategy: s for s in strategies}
