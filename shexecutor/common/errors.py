"""
Exception classes for shexecutor.

Each error also derives from the matching builtin so callers can catch
``ValueError`` / ``TimeoutError`` / ``OSError`` without importing this module.
"""

from typing import Any


class ShexecutorError(Exception):
    """Base exception class for all shexecutor errors."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize shexecutor error.

        Args:
            message: Human-readable error message
            error_code: Optional error code for programmatic handling
            details: Optional additional error details
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def __str__(self) -> str:
        if self.error_code:
            return f"[{self.error_code}] {self.message}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }


class ValidationError(ShexecutorError, ValueError):
    """Bad, missing or non-executable path, or a suspected injection."""
    pass


class ExecutionTimeout(ShexecutorError, TimeoutError):
    """Raised once a timed-out process has been terminated."""
    pass


class StreamError(ShexecutorError, OSError):
    """A drainer failed while no timeout was in flight."""
    pass


class ConfigError(ShexecutorError):
    """Unknown or malformed option values."""
    pass
