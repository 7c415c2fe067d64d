"""Validation and runtime guardrails."""

from __future__ import annotations

import random
import socket
import time
from urllib.parse import urlparse

import dns.resolver

from .errors import ConfigError, ValidationError
from .models import SearchRequest

MAX_QUERY_LENGTH = 1000
MAX_CRITERIA_VALUES = 50


def polite_sleep(min_delay: float, max_delay: float) -> None:
    """Sleep within configured bounds."""
    time.sleep(random.uniform(min_delay, max_delay))


def is_supported_url(url: str) -> bool:
    """Allow only absolute HTTP(S) URLs with a hostname."""
    parsed = urlparse(url)
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def normalize_urls(urls: list[str]) -> list[str]:
    """Normalize and dedupe candidate URL list."""
    output: list[str] = []
    seen: set[str] = set()
    for raw in urls:
        value = raw.strip()
        if not is_supported_url(value):
            continue
        key = value.split("?", maxsplit=1)[0].rstrip("/")
        if key in seen:
            continue
        seen.add(key)
        output.append(value)
    return output


def validate_runtime_constraints(
    *,
    max_concurrency: int,
    request_timeout: float,
    call_timeout: float,
    search_timeout: float,
    results_per_query: int,
    min_delay: float,
    max_delay: float,
    cache_ttl_seconds: float,
) -> None:
    """Validate CLI/runtime configuration and raise ConfigError on invalid values."""
    if max_concurrency < 1:
        raise ConfigError("--max-concurrency must be >= 1.")
    if request_timeout <= 0 or call_timeout <= 0:
        raise ConfigError("--request-timeout and --call-timeout must be > 0.")
    if search_timeout <= 0:
        raise ConfigError("--search-timeout must be > 0.")
    if call_timeout > search_timeout:
        raise ConfigError("--call-timeout cannot be greater than --search-timeout.")
    if results_per_query < 1:
        raise ConfigError("--results-per-query must be >= 1.")
    if min_delay < 0 or max_delay < 0:
        raise ConfigError("--min-delay and --max-delay must be >= 0.")
    if min_delay > max_delay:
        raise ConfigError("--min-delay cannot be greater than --max-delay.")
    if cache_ttl_seconds <= 0:
        raise ConfigError("cache TTL must be > 0 seconds.")


def validate_search_request(request: SearchRequest) -> None:
    """Reject malformed search requests with ValidationError."""
    query = (request.query or "").strip()
    if len(query) < 3:
        raise ValidationError("Search query must be at least 3 characters.")
    if len(query) > MAX_QUERY_LENGTH:
        raise ValidationError(f"Search query must be at most {MAX_QUERY_LENGTH} characters.")
    if not (request.requester_id or "").strip():
        raise ValidationError("A requester id is required.")

    options = request.options
    if options.max_results < 1:
        raise ValidationError("max_results must be >= 1.")
    if options.target_query_count < 1:
        raise ValidationError("target_query_count must be >= 1.")
    if options.priority not in {"low", "normal", "high"}:
        raise ValidationError(f"Unknown priority: {options.priority}")

    criteria = request.criteria
    for name in ("beats", "countries", "languages", "categories", "regions", "outlet_types"):
        values = getattr(criteria, name)
        if len(values) > MAX_CRITERIA_VALUES:
            raise ValidationError(f"Too many {name}: at most {MAX_CRITERIA_VALUES} allowed.")
        if any(not str(value).strip() for value in values):
            raise ValidationError(f"{name} must not contain empty values.")
        if len(set(values)) != len(values):
            raise ValidationError(f"{name} must not contain duplicates.")
    if criteria.date_range is not None:
        start, end = criteria.date_range
        if start > end:
            raise ValidationError("date_range start must not be after its end.")


def mx_check(email: str) -> bool:
    """Return True when target domain has MX or A record."""
    try:
        domain = email.split("@", maxsplit=1)[1]
    except IndexError:
        return False
    try:
        answers = dns.resolver.resolve(domain, "MX", lifetime=8)
        return bool(answers)
    except (dns.resolver.NoAnswer, dns.resolver.NXDOMAIN, dns.resolver.NoNameservers):
        try:
            socket.gethostbyname(domain)
            return True
        except OSError:
            return False
    except dns.exception.DNSException:
        return False
