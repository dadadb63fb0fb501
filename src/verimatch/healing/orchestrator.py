"""Multi-strategy locator healing.

Runs the candidate strategies in order and stops at the first pass whose
best unambiguous candidate reaches the acceptance threshold and verifies.
Ambiguous candidates wait in a pool that is verified once every strategy
has run. A candidate is only ever accepted after the driver confirms it
resolves to exactly one visible element.

This module emits structured healing events (healing_started,
strategy_attempted, strategy_failed, candidate_verified, healing_succeeded,
healing_failed).
"""

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace

from ..healing_exceptions import (
    ExternalServiceError,
    HealingCancelledError,
    StrategyBudgetExceeded,
)
from ..logging import LogContext, PerformanceLogger, get_logger
from ..matching.confidence import ConfidenceModel
from ..matching.similarity import SimilarityMatcher
from ..vision.geometry import Viewport
from .cancellation import CancellationToken
from .healing_config import HealingConfig
from .healing_types import (
    HealingContext,
    HealingOutcome,
    HealingReason,
    HealingStrategy,
    PageElement,
    SelectorCandidate,
)
from .history import HealingHistoryStore, HealingRecord, apply_bias, strategy_bias
from .interfaces import BrowserDriver
from .llm_client import SelectorLLMClient
from .retry import call_with_retry
from .strategies import CandidateStrategy, StrategyRequest, build_strategy_registry

logger = get_logger(__name__)

DEFAULT_VIEWPORT = Viewport(1280, 720)


class HealingOrchestrator:
    """Coordinates the healing strategies for a broken locator.

    Default behavior is NO LLM (llm_mode=DISABLED): the generative strategy
    runs but yields nothing unless an LLM client is configured.

    Attributes:
        driver: Page access.
        config: Healing configuration.
        history: Optional store of past runs, used to bias strategy order.

    Example:
        orchestrator = HealingOrchestrator(driver, history=InMemoryHistoryStore())
        outcome = orchestrator.heal(HealingContext("#submit", description))
        if outcome.is_reliable(0.75):
            page.click(outcome.healed_locator)
    """

    def __init__(
        self,
        driver: BrowserDriver,
        llm_client: SelectorLLMClient | None = None,
        history: HealingHistoryStore | None = None,
        config: HealingConfig | None = None,
        matcher: SimilarityMatcher | None = None,
        confidence_model: ConfidenceModel | None = None,
        strategies: dict[HealingStrategy, CandidateStrategy] | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            driver: Browser driver for the page under test.
            llm_client: Client for the generative strategy. Defaults to the
                one configured in ``config``.
            history: Optional healing history store.
            config: Healing configuration. Defaults to disabled LLM.
            matcher: Similarity matcher. Defaults to standard settings.
            confidence_model: Confidence model. Defaults to the configured preset.
            strategies: Strategy implementations keyed by variant.
        """
        self.config = config or HealingConfig.disabled()
        self.config.validate()
        self.driver = driver
        self.llm_client = llm_client or self.config.get_client()
        self.history = history
        self.matcher = matcher or SimilarityMatcher()
        self.confidence_model = confidence_model or self.config.create_confidence_model()
        self.strategies = strategies if strategies is not None else build_strategy_registry()

        # Statistics
        self._total_attempts = 0
        self._successful_heals = 0

    def heal(
        self,
        context: HealingContext,
        cancel_token: CancellationToken | None = None,
    ) -> HealingOutcome:
        """Find a replacement for a broken locator.

        Args:
            context: Broken locator, element description and run policy.
            cancel_token: Optional caller token; cancelling it ends the run.

        Returns:
            HealingOutcome. Nothing matching is an outcome, not an exception.

        Raises:
            ValueError: If context is None.
        """
        if context is None:
            raise ValueError("context is required")

        start_time = time.perf_counter()
        self._total_attempts += 1

        overall_budget = context.overall_budget_seconds or self.config.overall_budget_seconds
        if cancel_token is not None:
            token = cancel_token.child(overall_budget, scoped=False)
        else:
            token = CancellationToken(overall_budget)

        threshold = (
            context.confidence_threshold
            if context.confidence_threshold is not None
            else self.config.acceptance_threshold
        )
        attempts: list[tuple[HealingStrategy, str]] = []
        pool: dict[str, SelectorCandidate] = {}

        with LogContext(logger, locator=context.original_locator) as log:
            perf = PerformanceLogger(log)
            self._emit_healing_started(log, context, threshold)

            try:
                outcome = self._run(context, threshold, token, log, perf, attempts, pool)
            except HealingCancelledError as e:
                log.warning("healing_cancelled", reason=e.reason)
                outcome = HealingOutcome(
                    success=False,
                    reason=HealingReason.CANCELLED_OR_TIMED_OUT,
                    original_locator=context.original_locator,
                    candidate=self._best(pool),
                    attempts=attempts,
                )

            outcome.duration_ms = (time.perf_counter() - start_time) * 1000
            outcome.timings = {op: stats["total"] * 1000 for op, stats in perf.get_stats().items()}

            if outcome.success:
                self._successful_heals += 1
                self._emit_healing_succeeded(log, outcome)
            else:
                self._emit_healing_failed(log, outcome)

        if outcome.reason != HealingReason.NOT_BROKEN:
            self._record(outcome)
        return outcome

    def get_stats(self) -> dict[str, int | float]:
        """Get healing statistics."""
        return {
            "total_attempts": self._total_attempts,
            "successful_heals": self._successful_heals,
            "success_rate": (
                self._successful_heals / self._total_attempts * 100
                if self._total_attempts > 0
                else 0.0
            ),
        }

    # Search

    def _run(
        self,
        context: HealingContext,
        threshold: float,
        token: CancellationToken,
        log,
        perf: PerformanceLogger,
        attempts: list[tuple[HealingStrategy, str]],
        pool: dict[str, SelectorCandidate],
    ) -> HealingOutcome:
        token.raise_if_cancelled()

        if self.config.check_original_locator and self._verify(context.original_locator, token):
            log.info("locator_not_broken")
            return HealingOutcome(
                success=True,
                reason=HealingReason.NOT_BROKEN,
                original_locator=context.original_locator,
            )

        order = self._strategy_order(context, log)
        elements = self._list_elements(token, log)
        viewport = self._viewport(token, log)

        seen_signatures: set[tuple] = set()
        rejected: set[str] = {context.original_locator}
        strategy_budget = context.strategy_budget_seconds or self.config.strategy_budget_seconds

        with ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
            base_request = StrategyRequest(
                context=context,
                elements=elements,
                viewport=viewport,
                token=token,
                driver=self.driver,
                matcher=self.matcher,
                confidence=self.confidence_model,
                config=self.config,
                llm_client=self.llm_client,
                executor=executor,
            )

            for strategy in order:
                token.raise_if_cancelled()
                implementation = self.strategies.get(strategy)
                if implementation is None:
                    attempts.append((strategy, "not registered"))
                    continue

                request = base_request.with_token(token.child(strategy_budget))
                if not implementation.applies(request):
                    attempts.append((strategy, "not applicable"))
                    continue

                scored = self._try_strategy(
                    implementation, request, seen_signatures, log, perf, attempts
                )
                scored = [c for c in scored if c.locator not in rejected]
                if not scored:
                    continue

                for candidate in scored:
                    kept = pool.get(candidate.locator)
                    if kept is None or candidate.confidence > kept.confidence:
                        pool[candidate.locator] = candidate
                seen_signatures.update(c.signature for c in scored if c.signature is not None)

                accepted = self._accept_from_pass(scored, threshold, token, pool, rejected, log)
                if accepted is not None:
                    return self._healed(context, accepted, attempts, log)

        return self._exhausted(context, threshold, token, pool, rejected, attempts, log)

    def _try_strategy(
        self,
        implementation: CandidateStrategy,
        request: StrategyRequest,
        seen_signatures: set[tuple],
        log,
        perf: PerformanceLogger,
        attempts: list[tuple[HealingStrategy, str]],
    ) -> list[SelectorCandidate]:
        """One strategy pass: produce, keep the top N, apply penalties."""
        strategy = implementation.strategy
        self._emit_strategy_attempted(log, strategy)
        started = time.perf_counter()

        try:
            candidates = implementation.produce(request)
        except StrategyBudgetExceeded:
            attempts.append((strategy, "strategy budget exceeded"))
            self._emit_strategy_failed(log, strategy, "strategy budget exceeded")
            return []
        except ExternalServiceError as e:
            attempts.append((strategy, f"{e.service} unavailable"))
            self._emit_strategy_failed(log, strategy, e.message)
            return []
        finally:
            perf.log_timing(strategy.value, time.perf_counter() - started)

        top = sorted(candidates, key=lambda c: (-c.confidence, c.locator))[: self.config.top_n]
        scored = self.confidence_model.score_pass(top, seen_signatures)

        if scored:
            best = scored[0]
            attempts.append(
                (strategy, f"{len(scored)} candidates, best {best.locator} at {best.confidence:.2f}")
            )
        else:
            attempts.append((strategy, "no candidates"))
            self._emit_strategy_failed(log, strategy, "no candidates")
        return scored

    def _accept_from_pass(
        self,
        scored: list[SelectorCandidate],
        threshold: float,
        token: CancellationToken,
        pool: dict[str, SelectorCandidate],
        rejected: set[str],
        log,
    ) -> SelectorCandidate | None:
        """Verify this pass's qualifying candidates, best first.

        An ambiguous candidate only qualifies here when its penalised
        confidence still reaches the shortcut threshold; otherwise it stays
        pooled for the final verification round.
        """
        verifications = 0
        for candidate in scored:
            if candidate.confidence < threshold:
                break
            if candidate.ambiguous and candidate.confidence < self.config.shortcut_threshold:
                continue
            if verifications >= self.config.max_verification_attempts:
                break
            verifications += 1
            if self._verify(candidate.locator, token):
                event = (
                    "shortcut_taken"
                    if candidate.confidence >= self.config.shortcut_threshold
                    else "strategy_succeeded"
                )
                log.info(event, strategy=candidate.strategy.value)
                return candidate
            rejected.add(candidate.locator)
            pool.pop(candidate.locator, None)
        return None

    def _exhausted(
        self,
        context: HealingContext,
        threshold: float,
        token: CancellationToken,
        pool: dict[str, SelectorCandidate],
        rejected: set[str],
        attempts: list[tuple[HealingStrategy, str]],
        log,
    ) -> HealingOutcome:
        """Verify pooled candidates above the threshold, best first."""
        eligible = sorted(
            (
                c
                for c in pool.values()
                if c.confidence >= threshold and c.locator not in rejected
            ),
            key=lambda c: (-c.confidence, c.locator),
        )

        for candidate in eligible[: self.config.max_verification_attempts]:
            token.raise_if_cancelled()
            if self._verify(candidate.locator, token):
                return self._healed(context, candidate, attempts, log)
            rejected.add(candidate.locator)

        return HealingOutcome(
            success=False,
            reason=HealingReason.ALL_STRATEGIES_EXHAUSTED,
            original_locator=context.original_locator,
            candidate=self._best({k: v for k, v in pool.items() if k not in rejected}),
            attempts=attempts,
        )

    def _healed(
        self,
        context: HealingContext,
        candidate: SelectorCandidate,
        attempts: list[tuple[HealingStrategy, str]],
        log,
    ) -> HealingOutcome:
        verified = replace(candidate, verified=True)
        log.info(
            "candidate_verified",
            healed_locator=verified.locator,
            strategy=verified.strategy.value,
            confidence=round(verified.confidence, 4),
        )
        return HealingOutcome(
            success=True,
            reason=HealingReason.HEALED,
            original_locator=context.original_locator,
            candidate=verified,
            attempts=attempts,
        )

    # Collaborators

    def _call(self, fn, token: CancellationToken, operation: str):
        return call_with_retry(
            fn,
            attempts=self.config.retry_attempts,
            delay=self.config.retry_delay,
            token=token,
            operation=operation,
        )

    def _verify(self, locator: str, token: CancellationToken) -> bool:
        """Whether the locator resolves to exactly one visible element."""
        try:
            count = self._call(lambda: self.driver.count_visible(locator), token, "count_visible")
        except ExternalServiceError as e:
            logger.warning("verification_unavailable", candidate=locator, error=e.message)
            return False
        return count == 1

    def _list_elements(self, token: CancellationToken, log) -> list[PageElement]:
        try:
            elements = self._call(self.driver.list_elements, token, "list_elements")
        except ExternalServiceError as e:
            log.warning("element_listing_failed", error=e.message)
            return []
        return [e for e in elements if e.visible]

    def _viewport(self, token: CancellationToken, log) -> Viewport:
        try:
            return self._call(self.driver.viewport, token, "viewport")
        except ExternalServiceError as e:
            log.warning("viewport_unavailable", error=e.message)
            return DEFAULT_VIEWPORT

    def _strategy_order(self, context: HealingContext, log) -> tuple[HealingStrategy, ...]:
        """Context order, nudged toward strategies that healed this locator before."""
        if self.history is None:
            return context.strategies
        try:
            records = self.history.recent(context.original_locator, self.config.history_limit)
        except Exception as e:
            log.warning("history_unavailable", error=str(e))
            return context.strategies

        order = apply_bias(context.strategies, strategy_bias(records), self.config.history_bias)
        if order != context.strategies:
            log.debug("strategy_order_biased", order=[s.value for s in order])
        return order

    def _record(self, outcome: HealingOutcome) -> None:
        if self.history is None:
            return
        record = HealingRecord(
            original_locator=outcome.original_locator,
            healed_locator=outcome.healed_locator,
            strategy=outcome.strategy if outcome.success else None,
            confidence=outcome.confidence,
            success=outcome.success,
        )
        try:
            self.history.append(record)
        except Exception as e:
            logger.warning("history_append_failed", locator=outcome.original_locator, error=str(e))

    @staticmethod
    def _best(pool: dict[str, SelectorCandidate]) -> SelectorCandidate | None:
        if not pool:
            return None
        return min(pool.values(), key=lambda c: (-c.confidence, c.locator))

    # Event emission

    def _emit_healing_started(self, log, context: HealingContext, threshold: float) -> None:
        log.info(
            "healing_started",
            strategies=[s.value for s in context.strategies],
            threshold=threshold,
            page_url=context.page_url,
        )

    def _emit_strategy_attempted(self, log, strategy: HealingStrategy) -> None:
        log.debug("strategy_attempted", strategy=strategy.value)

    def _emit_strategy_failed(self, log, strategy: HealingStrategy, reason: str) -> None:
        log.info("strategy_failed", strategy=strategy.value, reason=reason)

    def _emit_healing_succeeded(self, log, outcome: HealingOutcome) -> None:
        log.info(
            "healing_succeeded",
            reason=outcome.reason.value,
            healed_locator=outcome.healed_locator,
            strategy=outcome.strategy.value if outcome.strategy else None,
            confidence=round(outcome.confidence, 4),
            duration_ms=round(outcome.duration_ms, 1),
        )

    def _emit_healing_failed(self, log, outcome: HealingOutcome) -> None:
        strategies_tried = ", ".join(s.value for s, _ in outcome.attempts)
        log.warning(
            "healing_failed",
            reason=outcome.reason.value,
            strategies_tried=strategies_tried,
            duration_ms=round(outcome.duration_ms, 1),
        )
