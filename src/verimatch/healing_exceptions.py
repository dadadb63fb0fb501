"""Healing-related exceptions.

Only collaborator failures and cancellation are exceptions. A strategy
that finds nothing, or a candidate that fails verification, is reported
through ``HealingOutcome`` instead.
"""

from .base_exceptions import VerimatchException


class HealingException(VerimatchException):
    """Base exception for healing errors."""

    pass


class ExternalServiceError(HealingException):
    """Raised when the browser driver or language-model service fails.

    Treated as transient: retried a bounded number of times at the call
    site, after which the strategy yields no candidates.
    """

    def __init__(self, service: str, reason: str, **kwargs) -> None:
        """Initialize with service details."""
        super().__init__(
            f"{service} call failed: {reason}",
            error_code="EXTERNAL_SERVICE_ERROR",
            context={"service": service, "reason": reason, **kwargs},
        )
        self.service = service


class HealingCancelledError(HealingException):
    """Raised at a suspension point once the run is cancelled or out of time."""

    def __init__(self, reason: str = "cancelled") -> None:
        """Initialize with the cancellation cause."""
        super().__init__(
            f"Healing cancelled: {reason}",
            error_code="CANCELLED_OR_TIMED_OUT",
            context={"reason": reason},
        )
        self.reason = reason


class StrategyBudgetExceeded(HealingCancelledError):
    """Raised when a single strategy's sub-budget runs out.

    The orchestrator ends that strategy only; the overall run continues.
    """

    def __init__(self) -> None:
        """Initialize with a fixed reason."""
        super().__init__("strategy budget exceeded")
        self.error_code = "STRATEGY_BUDGET_EXCEEDED"
