"""Custom exceptions for the contact discovery domain."""

from __future__ import annotations


class DiscoveryError(Exception):
    """Base exception for this project."""

    reason = "internal_error"

    def __init__(self, message: str = "", *, reason: str | None = None) -> None:
        super().__init__(message)
        if reason is not None:
            self.reason = reason


class ValidationError(DiscoveryError):
    """Raised when a search request or other caller input is malformed."""

    reason = "invalid_input"


class ConfigError(DiscoveryError):
    """Raised when runtime configuration is invalid."""

    reason = "invalid_config"


class RateLimitError(DiscoveryError):
    """Raised when a user exhausted the quota of an endpoint."""

    reason = "rate_limited"
    retryable = True

    def __init__(
        self, *, limit: int, remaining: int, reset_time: float, retry_after_seconds: int
    ) -> None:
        super().__init__(
            f"Rate limit exceeded, retry after {retry_after_seconds}s "
            f"(limit={limit}, remaining={remaining})"
        )
        self.limit = limit
        self.remaining = remaining
        self.reset_time = reset_time
        self.retry_after_seconds = retry_after_seconds


class AIProviderError(DiscoveryError):
    """Raised when an LLM or classifier call fails after retries."""

    reason = "ai_provider_failed"

    def __init__(self, message: str, *, last_error: BaseException | None = None) -> None:
        super().__init__(message)
        self.last_error = last_error


class VerificationError(AIProviderError):
    """Raised when email verification fails unexpectedly."""

    reason = "verification_failed"


class ExtractionError(DiscoveryError):
    """Raised when fetched content cannot be parsed into contacts."""

    reason = "extraction_failed"


class FetchError(DiscoveryError):
    """Raised when fetching a URL fails unexpectedly."""

    reason = "fetch_failed"


class StoreUnavailableError(DiscoveryError):
    """Raised by a counter store whose backend cannot be reached."""

    reason = "store_unavailable"


class SearchTimeoutError(DiscoveryError):
    """Raised when a search exceeds its wall-clock budget."""

    reason = "timeout"


class SearchNotFoundError(DiscoveryError):
    """Raised when a search id is unknown to the orchestrator."""

    reason = "not_found"
