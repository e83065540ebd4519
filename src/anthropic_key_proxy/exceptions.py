"""Exception hierarchy for the key rotation proxy.

All exceptions use proper exception chaining with the `from` keyword.
Error types use StrEnum for type safety and autocompletion.
"""

from enum import StrEnum
from typing import Any

from starlette import status


class ErrorType(StrEnum):
    """Error type codes for API responses."""

    CONFIGURATION = "configuration_error"
    SERVICE_UNAVAILABLE = "service_unavailable_error"
    KEYS_EXHAUSTED = "api_keys_exhausted_error"
    INTERNAL_SERVER = "internal_server_error"


# ============================================================================
# Base Exceptions
# ============================================================================


class ProxyError(Exception):
    """Base exception for all proxy errors.

    Supports HTTP status codes and structured error details.
    """

    def __init__(
        self,
        message: str,
        *,
        error_type: ErrorType | str = ErrorType.INTERNAL_SERVER,
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if isinstance(error_type, str) and not isinstance(error_type, ErrorType):
            try:
                self.error_type = ErrorType(error_type)
            except ValueError:
                self.error_type = error_type  # type: ignore[assignment]
        else:
            self.error_type = error_type
        self.status_code = status_code
        self.details = details or {}


# ============================================================================
# Credentials Errors
# ============================================================================


class CredentialsNotFoundError(ProxyError):
    """No API keys were configured."""

    def __init__(self, message: str = "No API keys configured") -> None:
        super().__init__(
            message,
            error_type=ErrorType.CONFIGURATION,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )


# ============================================================================
# Rotation Errors
# ============================================================================


class KeysExhaustedError(ProxyError):
    """Every configured API key was tried for a request without success."""

    def __init__(self, attempts: int) -> None:
        super().__init__(
            "All API keys exhausted",
            error_type=ErrorType.KEYS_EXHAUSTED,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details={"attempts": attempts},
        )
        self.attempts = attempts


__all__ = [
    "ErrorType",
    "ProxyError",
    "CredentialsNotFoundError",
    "KeysExhaustedError",
]
