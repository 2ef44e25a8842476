"""Exception hierarchy for the transfer engine.

Ambiguous or incomplete transaction data is never an error here: it is
reported as uncertain matches, penalty tags and collision buckets. The only
caller-visible failure is a configuration value that cannot be interpreted.
"""

from __future__ import annotations

from typing import Any


class TransferEngineError(Exception):
    """Base exception for all transfer engine errors."""

    error_code: str = "TRANSFER_ENGINE_ERROR"

    def __init__(self, message: str, *, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.error_code,
            "message": self.message,
            "context": self.context,
        }


class InvalidConfigurationError(TransferEngineError):
    """Raised when a tunable cannot be interpreted as a number."""

    error_code = "INVALID_CONFIGURATION"
