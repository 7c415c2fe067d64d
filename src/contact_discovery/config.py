"""Runtime configuration model and heuristic constants."""

from __future__ import annotations

import os
from dataclasses import dataclass

from .validation import validate_runtime_constraints

DEFAULT_USER_AGENT = "ContactDiscovery/1.0 (+mailto:research@example.com)"
DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_REQUEST_TIMEOUT = 15.0
DEFAULT_MAX_CONCURRENCY = 5
DEFAULT_CALL_TIMEOUT = 30.0
DEFAULT_SEARCH_TIMEOUT = 300.0
DEFAULT_RESULTS_PER_QUERY = 5
DEFAULT_MIN_DELAY = 0.5
DEFAULT_MAX_DELAY = 1.5
DEFAULT_CACHE_TTL_SECONDS = 30 * 60


@dataclass(frozen=True)
class RateLimitPolicy:
    """Quota of one endpoint type: points per window, then a block."""

    points: int
    window_seconds: int
    block_seconds: int


DEFAULT_RATE_LIMIT_POLICIES: dict[str, RateLimitPolicy] = {
    "search": RateLimitPolicy(points=5, window_seconds=60, block_seconds=60),
    "progress": RateLimitPolicy(points=10, window_seconds=60, block_seconds=30),
    "import": RateLimitPolicy(points=10, window_seconds=60, block_seconds=30),
    "health": RateLimitPolicy(points=20, window_seconds=60, block_seconds=60),
}


@dataclass(frozen=True)
class SpamScoreWeights:
    """Additive spam-score contributions and validity thresholds."""

    generic_or_department: float = 0.4
    disposable: float = 0.8
    domain_missing: float = 0.6
    mx_missing: float = 0.3
    suspicious_local_part: float = 0.3
    odd_local_part_length: float = 0.2
    strict_max_spam: float = 0.7
    lenient_max_spam: float = 0.9
    professional_hint_threshold: float = 0.5


# Substrings that mark a domain as a throwaway mailbox provider.
DISPOSABLE_DOMAIN_MARKERS: tuple[str, ...] = (
    "10minutemail",
    "tempmail",
    "mailinator",
    "guerrillamail",
    "yopmail",
    "maildrop",
    "throwaway",
    "mailnesia",
)

DISPOSABLE_SERVICES: tuple[str, ...] = (
    "10minutemail.com",
    "tempmail.org",
    "mailinator.com",
    "guerrillamail.info",
    "yopmail.com",
    "maildrop.cc",
    "throwaway.email",
    "mailnesia.org",
    "tempmail.co",
    "tempmail.dev",
    "tempmail.net",
    "tempmail.app",
)

SUSPICIOUS_LOCAL_PARTS: tuple[str, ...] = ("test", "demo", "sample")


@dataclass(frozen=True)
class DiscoveryConfig:
    """Validated configuration used to build the discovery services."""

    redis_url: str | None = None
    openai_api_key: str | None = None
    model: str = DEFAULT_MODEL
    serpapi_key: str | None = None
    bing_key: str | None = None
    user_agent: str = DEFAULT_USER_AGENT
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    call_timeout: float = DEFAULT_CALL_TIMEOUT
    search_timeout: float = DEFAULT_SEARCH_TIMEOUT
    results_per_query: int = DEFAULT_RESULTS_PER_QUERY
    min_delay: float = DEFAULT_MIN_DELAY
    max_delay: float = DEFAULT_MAX_DELAY
    cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS
    show_progress: bool = True

    def __post_init__(self) -> None:
        validate_runtime_constraints(
            max_concurrency=self.max_concurrency,
            request_timeout=self.request_timeout,
            call_timeout=self.call_timeout,
            search_timeout=self.search_timeout,
            results_per_query=self.results_per_query,
            min_delay=self.min_delay,
            max_delay=self.max_delay,
            cache_ttl_seconds=self.cache_ttl_seconds,
        )

    @classmethod
    def from_env(cls, **overrides: object) -> DiscoveryConfig:
        """Build a config from environment secrets; explicit overrides win."""
        values: dict[str, object] = {
            "redis_url": os.getenv("REDIS_URL"),
            "openai_api_key": os.getenv("OPENAI_API_KEY"),
            "model": os.getenv("CONTACT_DISCOVERY_MODEL") or DEFAULT_MODEL,
            "serpapi_key": os.getenv("SERPAPI_KEY"),
            "bing_key": os.getenv("BING_API_KEY"),
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)  # type: ignore[arg-type]
