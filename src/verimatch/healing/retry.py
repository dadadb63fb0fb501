"""Bounded retry for transient collaborator failures."""

import time
from collections.abc import Callable
from typing import TypeVar

from ..healing_exceptions import ExternalServiceError
from ..logging import get_logger
from .cancellation import CancellationToken

T = TypeVar("T")

logger = get_logger(__name__)


def call_with_retry(
    fn: Callable[[], T],
    attempts: int = 3,
    delay: float = 0.25,
    token: CancellationToken | None = None,
    operation: str = "call",
) -> T:
    """Call ``fn``, retrying ExternalServiceError up to ``attempts`` tries in total.

    Other exceptions propagate immediately. Sleeps between tries wake up on
    cancellation.

    Raises:
        ExternalServiceError: The last failure once every try failed
        HealingCancelledError: If the token is cancelled between tries
    """
    attempts = max(1, attempts)
    attempt = 1

    while True:
        if token is not None:
            token.raise_if_cancelled()
        try:
            return fn()
        except ExternalServiceError as e:
            logger.warning(
                "external_call_failed",
                operation=operation,
                service=e.service,
                attempt=attempt,
                attempts=attempts,
                error=e.message,
            )
            if attempt == attempts:
                raise
            if token is None:
                if delay > 0:
                    time.sleep(delay)
            elif not token.wait(delay):
                token.raise_if_cancelled()
        attempt += 1
