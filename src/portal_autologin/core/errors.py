"""Exception hierarchy for the auto-login daemon.

Nothing here is meant to be process-fatal: the engine catches these at its
boundaries and degrades to idle.
"""

from typing import Any


class PortalAutoLoginError(Exception):
    """Base exception for all auto-login errors.

    Attributes:
        message: Human-readable error message
        details: Additional context as key-value pairs
        cause: Underlying exception, if any
    """

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


class ConfigurationError(PortalAutoLoginError):
    """Static configuration could not be read or a value failed validation."""


class NetworkError(PortalAutoLoginError):
    """OS network state query or control-plane failure."""


class CredentialStoreError(PortalAutoLoginError):
    """Credentials could not be written to the private store."""
