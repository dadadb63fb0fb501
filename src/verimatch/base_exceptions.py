"""Base exception classes for verimatch.

This module contains the root exception hierarchy that all other
verimatch exceptions inherit from.
"""

from typing import Any


class VerimatchException(Exception):
    """Base exception for all verimatch errors.

    Attributes:
        message: Human-readable error message
        error_code: Optional error code for programmatic handling
        context: Additional context information
    """

    def __init__(
        self, message: str, error_code: str | None = None, context: dict[str, Any] | None = None
    ) -> None:
        """Initialize the exception.

        Args:
            message: Error message
            error_code: Optional error code
            context: Optional context dictionary
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}

    def __str__(self) -> str:
        """Return string representation."""
        if self.error_code:
            return f"[{self.error_code}] {self.message}"
        return self.message


class ConfigurationError(VerimatchException):
    """Raised when configuration is invalid.

    Covers invalid weights, thresholds outside [0, 1] and non-positive
    budgets. These are programming errors, never runtime outcomes.
    """

    def __init__(self, config_key: str, reason: str, **kwargs) -> None:
        """Initialize with configuration details."""
        super().__init__(
            f"Configuration error for '{config_key}': {reason}",
            error_code="CONFIGURATION_ERROR",
            context={"config_key": config_key, "reason": reason, **kwargs},
        )
