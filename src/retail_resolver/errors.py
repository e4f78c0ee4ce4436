"""Failure taxonomy shared by adapters, the orchestrator and the HTTP layer."""

from typing import Optional


class ResolverError(Exception):
    """Base class for storefront resolution failures."""


class NetworkError(ResolverError):
    """Upstream unreachable or answered with a non-2xx status."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ParseError(ResolverError):
    """Expected page marker or JSON shape was absent."""


class AutomationTimeoutError(ResolverError, TimeoutError):
    """Browser automation did not observe the awaited response in time."""


class NotFoundError(ResolverError):
    """No unambiguous match exists for the requested code or reference."""
