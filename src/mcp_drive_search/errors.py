"""Domain errors."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class DriveError(RuntimeError):
    """Base class for everything the search engine raises."""

    message: str

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True, slots=True)
class DriveApiError(DriveError):
    """Raised when the Drive API returns a non-success response."""

    status_code: int = 0
    method: str = ""
    url: str = ""
    reason: str | None = None

    def __str__(self) -> str:  # pragma: no cover
        return f"Drive API error {self.status_code} for {self.method} {self.url}: {self.message}"


@dataclass(frozen=True, slots=True)
class NotFoundError(DriveApiError):
    """The node does not exist or is not visible to the credential."""


@dataclass(frozen=True, slots=True)
class UnauthorizedError(DriveApiError):
    """The bearer credential was rejected; the provider must refresh it."""


@dataclass(frozen=True, slots=True)
class RateLimitedError(DriveApiError):
    """The store asked us to slow down."""

    retry_after: float | None = None


@dataclass(frozen=True, slots=True)
class TransientError(DriveApiError):
    """Retry-safe failure: 5xx, network error, timeout or garbled payload."""


@dataclass(frozen=True, slots=True)
class ConfigurationError(DriveError):
    """Unresolvable root or malformed query. Never retried."""


@dataclass(frozen=True, slots=True)
class ReauthExhaustedError(DriveError):
    """The credential provider could not produce a working credential."""


@dataclass(frozen=True, slots=True)
class StrategyUnavailableError(DriveError):
    """One search strategy could not produce any answer; the next one is tried."""

    strategy: str = ""


@dataclass(frozen=True, slots=True)
class SearchFailedError(DriveError):
    """Every search strategy failed outright."""

    attempted: tuple[str, ...] = ()


# Failures that abort a whole search instead of one folder or one strategy.
HARD_FAILURES: tuple[type[DriveError], ...] = (ConfigurationError, ReauthExhaustedError)


def http_status_for(exc: BaseException) -> int:
    """Map an engine error to the status code a front end should answer with."""
    if isinstance(exc, ConfigurationError):
        return 400
    if isinstance(exc, (UnauthorizedError, ReauthExhaustedError)):
        return 401
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, RateLimitedError):
        return 429
    if isinstance(exc, (TransientError, SearchFailedError)):
        return 503
    return 500
