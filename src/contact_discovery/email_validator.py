"""Multi-layer email validation with a time-bounded result cache."""

from __future__ import annotations

import asyncio
import dataclasses
import hashlib
import json
import logging
import re
import time
from collections.abc import Awaitable, Callable, Sequence
from threading import Lock

from .classifier import HeuristicEmailClassifier
from .config import (
    DEFAULT_CACHE_TTL_SECONDS,
    DISPOSABLE_DOMAIN_MARKERS,
    DISPOSABLE_SERVICES,
    SUSPICIOUS_LOCAL_PARTS,
    SpamScoreWeights,
)
from .counter_store import Clock
from .errors import VerificationError
from .logging_utils import get_logger
from .models import (
    DisposableCheck,
    DomainCheck,
    EmailClassification,
    EmailClassifier,
    EmailValidationResult,
    FormatCheck,
    MXCheck,
    ValidationOptions,
)
from .validation import mx_check

EMAIL_FORMAT_REGEX = re.compile(r"^[a-zA-Z0-9._%+\-]+@[a-zA-Z0-9.\-]+\.[a-zA-Z]{2,}$")

SleepFn = Callable[[float], Awaitable[None]]
MxLookupFn = Callable[[str], bool]


def check_format(email: str) -> FormatCheck:
    """Reject addresses that fail the local-part@domain.tld shape."""
    if not EMAIL_FORMAT_REGEX.match(email):
        return FormatCheck(False, "Invalid email format", format_suggestions(email))
    if ".." in email:
        return FormatCheck(False, "Email contains consecutive dots", ("Remove consecutive dots",))
    if email.startswith(".") or email.endswith("."):
        return FormatCheck(
            False, "Email starts or ends with a dot", ("Remove leading or trailing dots",)
        )
    if "@." in email:
        return FormatCheck(
            False, "Invalid @. combination", ("Ensure proper format: user@domain.com",)
        )
    return FormatCheck(True, "Valid email format")


def format_suggestions(email: str) -> tuple[str, ...]:
    suggestions: list[str] = []
    if "@" not in email:
        suggestions.append("Add @ symbol between name and domain")
    if "@." in email or ".@" in email:
        suggestions.append("Ensure proper format: user@domain.com")
    if ".." in email:
        suggestions.append("Remove consecutive dots")
    if email.startswith(".") or email.endswith("."):
        suggestions.append("Remove leading or trailing dots")
    return tuple(suggestions)


def cache_key(email: str, options: ValidationOptions, contact_name: str | None = None) -> str:
    """Stable hash of an address, the options and the contact name it was validated with."""
    payload = json.dumps(
        {"options": dataclasses.asdict(options), "contact_name": contact_name}, sort_keys=True
    )
    return hashlib.sha256(f"{email}:{payload}".encode("utf-8")).hexdigest()


def _domain_of(email: str) -> str:
    return email.split("@", maxsplit=1)[1].lower() if "@" in email else ""


def _chunks(items: Sequence[str], size: int) -> list[Sequence[str]]:
    return [items[index : index + size] for index in range(0, len(items), size)]


class EmailValidator:
    """Scores addresses through format, type, domain, MX and disposable checks."""

    def __init__(
        self,
        *,
        classifier: EmailClassifier | None = None,
        weights: SpamScoreWeights | None = None,
        disposable_markers: tuple[str, ...] = DISPOSABLE_DOMAIN_MARKERS,
        disposable_services: tuple[str, ...] = DISPOSABLE_SERVICES,
        ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        clock: Clock = time.time,
        mx_lookup: MxLookupFn = mx_check,
        sleep: SleepFn = asyncio.sleep,
        logger: logging.Logger | None = None,
    ) -> None:
        self._classifier = classifier or HeuristicEmailClassifier()
        self._weights = weights or SpamScoreWeights()
        self._disposable_markers = disposable_markers
        self._disposable_services = disposable_services
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._mx_lookup = mx_lookup
        self._sleep = sleep
        self._logger = logger or get_logger()
        self._cache: dict[str, tuple[EmailValidationResult, float]] = {}
        self._cache_lock = Lock()
        self._hits = 0
        self._misses = 0

    async def validate_email(
        self,
        email: str,
        options: ValidationOptions | None = None,
        *,
        contact_name: str | None = None,
    ) -> EmailValidationResult:
        """Validate one address; raises VerificationError when the classifier fails."""
        options = options or ValidationOptions()
        email = email.strip()
        format_check = check_format(email)
        if not format_check.is_valid:
            return EmailValidationResult(
                email=email,
                is_valid=False,
                is_disposable=False,
                is_temporary=False,
                domain_exists=False,
                mx_records=False,
                spam_score=1.0,
                suggestions=format_check.suggestions,
                reasoning=format_check.reasoning,
            )

        key = cache_key(email, options, contact_name)
        cached = self._cache_get(key)
        if cached is not None:
            return cached

        try:
            classification, domain_check, mx_result, disposable_check = await asyncio.gather(
                self._classifier.classify(email, contact_name),
                self._check_domain(email, options),
                self._check_mx(email, options),
                self._check_disposable(email, options),
            )
        except Exception as exc:
            raise VerificationError(
                f"Email validation failed for {email}: {exc}", last_error=exc
            ) from exc

        spam_score = self.spam_score(
            email, classification, domain_check, mx_result, disposable_check
        )
        is_valid = self._overall_validity(
            classification,
            domain_check,
            mx_result,
            disposable_check,
            spam_score,
            options.strict_mode,
        )
        result = EmailValidationResult(
            email=email,
            is_valid=is_valid,
            is_disposable=disposable_check.is_disposable,
            is_temporary=classification.email_type in ("department", "generic"),
            domain_exists=domain_check.exists,
            mx_records=mx_result.has_mx,
            spam_score=spam_score,
            suggestions=self._suggestions(
                format_check, classification, domain_check, mx_result, disposable_check, spam_score
            ),
            reasoning=_reasoning(
                format_check, classification, domain_check, mx_result, disposable_check, spam_score
            ),
            email_type=classification.email_type,
        )
        self._cache_put(key, result)
        return result

    async def validate_multiple_emails(
        self,
        emails: Sequence[str],
        options: ValidationOptions | None = None,
        *,
        max_concurrent: int = 5,
    ) -> list[EmailValidationResult]:
        """Validate in chunks of ``max_concurrent``; results keep input order."""
        results: list[EmailValidationResult] = []
        for chunk in _chunks(emails, max(max_concurrent, 1)):
            results.extend(
                await asyncio.gather(*(self.validate_email(email, options) for email in chunk))
            )
        return results

    async def batch_validate_emails(
        self,
        emails: Sequence[str],
        options: ValidationOptions | None = None,
        *,
        batch_size: int = 10,
        delay_ms: int = 100,
    ) -> list[EmailValidationResult]:
        """Validate in batches, sleeping between batches to respect upstream quotas."""
        results: list[EmailValidationResult] = []
        chunks = _chunks(emails, max(batch_size, 1))
        for index, chunk in enumerate(chunks):
            results.extend(
                await self.validate_multiple_emails(chunk, options, max_concurrent=batch_size)
            )
            if index < len(chunks) - 1 and delay_ms > 0:
                await self._sleep(delay_ms / 1000)
        return results

    def spam_score(
        self,
        email: str,
        classification: EmailClassification,
        domain_check: DomainCheck,
        mx_result: MXCheck,
        disposable_check: DisposableCheck,
    ) -> float:
        weights = self._weights
        score = 0.0
        if classification.email_type in ("generic", "department"):
            score += weights.generic_or_department
        if disposable_check.is_disposable:
            score += weights.disposable
        if not domain_check.exists:
            score += weights.domain_missing
        if not mx_result.has_mx:
            score += weights.mx_missing
        local_part = email.split("@", maxsplit=1)[0].lower()
        if any(marker in local_part for marker in SUSPICIOUS_LOCAL_PARTS):
            score += weights.suspicious_local_part
        if len(local_part) > 20 or len(local_part) < 3:
            score += weights.odd_local_part_length
        return round(min(score, 1.0), 4)

    def clear_cache(self) -> None:
        with self._cache_lock:
            self._cache.clear()
            self._hits = 0
            self._misses = 0

    def cache_stats(self) -> dict[str, int]:
        with self._cache_lock:
            return {"size": len(self._cache), "hits": self._hits, "misses": self._misses}

    def _cache_get(self, key: str) -> EmailValidationResult | None:
        now = self._clock()
        with self._cache_lock:
            entry = self._cache.get(key)
            if entry is not None and now < entry[1]:
                self._hits += 1
                return entry[0]
            self._misses += 1
            return None

    def _cache_put(self, key: str, result: EmailValidationResult) -> None:
        with self._cache_lock:
            self._cache[key] = (result, self._clock() + self._ttl_seconds)

    async def _check_domain(self, email: str, options: ValidationOptions) -> DomainCheck:
        if not options.enable_domain_check:
            return DomainCheck(exists=True)
        domain = _domain_of(email)
        if len(domain) < 3:
            return DomainCheck(exists=False, reasoning="Invalid domain format")
        if any(marker in domain for marker in self._disposable_markers):
            return DomainCheck(exists=True, reasoning="Disposable email domain")
        return DomainCheck(exists=True)

    async def _check_mx(self, email: str, options: ValidationOptions) -> MXCheck:
        if not options.enable_mx_check:
            return MXCheck(has_mx=True)
        if not _domain_of(email):
            return MXCheck(has_mx=False, reasoning="Invalid domain format")
        if options.dns_lookup:
            has_mx = await asyncio.to_thread(self._mx_lookup, email)
            return MXCheck(has_mx=has_mx, reasoning=None if has_mx else "No MX or A record")
        return MXCheck(has_mx=True)

    async def _check_disposable(self, email: str, options: ValidationOptions) -> DisposableCheck:
        if not options.enable_disposable_check:
            return DisposableCheck(is_disposable=False)
        domain = _domain_of(email)
        service = next((name for name in self._disposable_services if name in domain), None)
        if service is None:
            service = next((name for name in self._disposable_markers if name in domain), None)
        return DisposableCheck(is_disposable=service is not None, service=service)

    def _overall_validity(
        self,
        classification: EmailClassification,
        domain_check: DomainCheck,
        mx_result: MXCheck,
        disposable_check: DisposableCheck,
        spam_score: float,
        strict_mode: bool,
    ) -> bool:
        if strict_mode:
            return (
                domain_check.exists
                and mx_result.has_mx
                and not disposable_check.is_disposable
                and spam_score <= self._weights.strict_max_spam
                and classification.email_type != "unknown"
            )
        return not (
            disposable_check.is_disposable or spam_score > self._weights.lenient_max_spam
        )

    def _suggestions(
        self,
        format_check: FormatCheck,
        classification: EmailClassification,
        domain_check: DomainCheck,
        mx_result: MXCheck,
        disposable_check: DisposableCheck,
        spam_score: float,
    ) -> tuple[str, ...]:
        suggestions: list[str] = list(format_check.suggestions)
        if classification.email_type == "alias":
            suggestions.extend(classification.alternative_emails)
        if classification.contact_method:
            suggestions.append(classification.contact_method)
        if not domain_check.exists and domain_check.reasoning:
            suggestions.append("Consider using a different email domain")
        if not mx_result.has_mx and mx_result.reasoning:
            suggestions.append("Email domain may not receive messages properly")
        if disposable_check.is_disposable:
            suggestions.append("Use a permanent email address instead")
        if spam_score > self._weights.professional_hint_threshold:
            suggestions.append("Consider a more professional email address")
        return tuple(dict.fromkeys(suggestions))


def _reasoning(
    format_check: FormatCheck,
    classification: EmailClassification,
    domain_check: DomainCheck,
    mx_result: MXCheck,
    disposable_check: DisposableCheck,
    spam_score: float,
) -> str:
    reasons = [
        f"Email format: {'valid' if format_check.is_valid else 'invalid'}",
        f"Email type: {classification.email_type}",
        f"Confidence: {classification.confidence * 100:.0f}%",
        "Domain exists" if domain_check.exists else "Domain may not exist",
        "MX records found" if mx_result.has_mx else "No MX records found",
    ]
    if disposable_check.is_disposable:
        reasons.append("Disposable email service")
    if spam_score > 0:
        reasons.append(f"Spam risk: {spam_score * 100:.0f}%")
    return "; ".join(reasons)
