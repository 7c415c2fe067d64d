"""Protocols and model types shared by the discovery pipeline."""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field, replace
from typing import Any, Literal, Protocol


class EnhancementType(str, enum.Enum):
    EXPANSION = "expansion"
    REFINEMENT = "refinement"
    LOCALIZATION = "localization"
    DIVERSIFICATION = "diversification"


class SearchStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATUSES


_TERMINAL_STATUSES = frozenset(
    {SearchStatus.COMPLETED, SearchStatus.FAILED, SearchStatus.CANCELLED}
)

EmailType = Literal["personal", "alias", "generic", "department", "unknown"]


@dataclass(frozen=True)
class SearchCriteria:
    """Structured filters attached to a search query."""

    beats: tuple[str, ...] = ()
    countries: tuple[str, ...] = ()
    languages: tuple[str, ...] = ()
    categories: tuple[str, ...] = ()
    regions: tuple[str, ...] = ()
    outlet_types: tuple[str, ...] = ()
    date_range: tuple[str, str] | None = None


@dataclass(frozen=True)
class SearchOptions:
    max_results: int = 50
    priority: Literal["low", "normal", "high"] = "normal"
    diversity_boost: bool = False
    strict_validation: bool = False
    target_query_count: int = 8


@dataclass(frozen=True)
class SearchRequest:
    """A caller's request; immutable once accepted."""

    query: str
    requester_id: str
    criteria: SearchCriteria = field(default_factory=SearchCriteria)
    options: SearchOptions = field(default_factory=SearchOptions)


@dataclass(frozen=True)
class QueryEnhancementRequest:
    base_query: str
    criteria: SearchCriteria
    enhancement_type: EnhancementType
    target_count: int = 8
    diversity_boost: bool = False


@dataclass(frozen=True)
class EnhancedQuery:
    text: str
    kind: EnhancementType


@dataclass(frozen=True)
class FormatCheck:
    is_valid: bool
    reasoning: str
    suggestions: tuple[str, ...] = ()
    kind: Literal["format"] = "format"


@dataclass(frozen=True)
class DomainCheck:
    exists: bool
    reasoning: str | None = None
    kind: Literal["domain"] = "domain"


@dataclass(frozen=True)
class MXCheck:
    has_mx: bool
    reasoning: str | None = None
    kind: Literal["mx"] = "mx"


@dataclass(frozen=True)
class DisposableCheck:
    is_disposable: bool
    service: str | None = None
    kind: Literal["disposable"] = "disposable"


@dataclass(frozen=True)
class EmailClassification:
    """Output of the email-type classifier capability."""

    email_type: EmailType
    confidence: float
    reasoning: str = ""
    alternative_emails: tuple[str, ...] = ()
    contact_method: str | None = None


@dataclass(frozen=True)
class ValidationOptions:
    enable_domain_check: bool = True
    enable_mx_check: bool = True
    enable_disposable_check: bool = True
    strict_mode: bool = False
    dns_lookup: bool = False


@dataclass(frozen=True)
class EmailValidationResult:
    email: str
    is_valid: bool
    is_disposable: bool
    is_temporary: bool
    domain_exists: bool
    mx_records: bool
    spam_score: float
    suggestions: tuple[str, ...]
    reasoning: str
    email_type: EmailType = "unknown"


@dataclass(frozen=True)
class ContactFragment:
    """Raw contact data extracted from one page."""

    email: str
    name: str | None = None
    role: str | None = None
    organization: str | None = None


@dataclass(frozen=True)
class FetchedContent:
    url: str
    text: str
    metadata: dict[str, Any] = field(default_factory=dict)


def normalize_email(email: str) -> str:
    """Return the dedup key for an email address."""
    return email.strip().lower()


@dataclass
class CandidateContact:
    email: str
    source_url: str
    confidence: float
    spam_score: float
    name: str | None = None
    role: str | None = None
    organization: str | None = None

    @property
    def dedup_key(self) -> str:
        return normalize_email(self.email)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name or "",
            "email": self.email,
            "role": self.role or "",
            "organization": self.organization or "",
            "source_url": self.source_url,
            "confidence": round(self.confidence, 4),
            "spam_score": round(self.spam_score, 4),
        }


@dataclass(frozen=True)
class RateLimitState:
    user_id: str
    endpoint_type: str
    limit: int
    remaining: int
    window_reset_at: float
    retry_after_seconds: int | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.user_id, self.endpoint_type)


@dataclass(frozen=True)
class HealthReport:
    status: Literal["healthy", "degraded", "unhealthy"]
    distributed: bool
    latency_ms: float


@dataclass
class SearchExecution:
    """Lifecycle record of one search; written only by the orchestrator."""

    id: str
    correlation_id: str
    requester_id: str
    status: SearchStatus = SearchStatus.PENDING
    progress: int = 0
    results: list[CandidateContact] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    reason: str | None = None
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    def transition(self, status: SearchStatus, *, reason: str | None = None) -> bool:
        """Move to a new status; terminal statuses are absorbing."""
        if self.status.is_terminal:
            return False
        self.status = status
        if reason is not None:
            self.reason = reason
        if status is SearchStatus.COMPLETED:
            self.progress = 100
        self.updated_at = time.time()
        return True

    def advance(self, progress: int) -> None:
        """Raise progress; never lowers it and never moves a terminal search."""
        if self.status.is_terminal:
            return
        bounded = max(0, min(100, int(progress)))
        if bounded > self.progress:
            self.progress = bounded
            self.updated_at = time.time()

    def record_error(self, message: str) -> None:
        self.errors.append(message)
        self.updated_at = time.time()

    def snapshot(self) -> SearchExecution:
        """Return a copy safe to hand to callers."""
        return replace(self, results=list(self.results), errors=list(self.errors))

    def to_dict(self) -> dict[str, Any]:
        return {
            "search_id": self.id,
            "correlation_id": self.correlation_id,
            "status": self.status.value,
            "progress": self.progress,
            "reason": self.reason,
            "results": [contact.to_dict() for contact in self.results],
            "errors": list(self.errors),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass(frozen=True)
class SubmitAck:
    search_id: str
    status: str = SearchStatus.PENDING.value


@dataclass(frozen=True)
class CancelAck:
    search_id: str
    success: bool
    message: str


@dataclass(frozen=True)
class CounterSnapshot:
    """Counter state returned by a store after consume/get."""

    consumed: int
    ms_before_next: int


class TextGenerator(Protocol):
    """Contract for LLM text generation."""

    async def generate(self, prompt: str) -> str:
        """Return the model completion for a prompt."""


class EmailClassifier(Protocol):
    """Contract for email-type classification."""

    async def classify(self, email: str, contact_name: str | None = None) -> EmailClassification:
        """Return the type tag and confidence of an email address."""


class SearchBackend(Protocol):
    """Contract for search providers."""

    async def search(self, query: str, num: int) -> list[str]:
        """Return candidate URLs for a query."""


class ContentFetcher(Protocol):
    """Contract for page content retrieval."""

    async def fetch(self, url: str) -> FetchedContent:
        """Return page text and metadata for a URL."""


class ContactExtractor(Protocol):
    """Contract for contact fragment extraction."""

    def extract(self, content: FetchedContent) -> list[ContactFragment]:
        """Return raw contact fragments found in fetched content."""


class CounterStore(Protocol):
    """Contract for atomic, TTL-bound counters keyed by string."""

    async def consume(
        self, key: str, points: int, *, limit: int, window_seconds: int, block_seconds: int
    ) -> CounterSnapshot:
        """Atomically add points to a key and return the resulting state."""

    async def get(self, key: str) -> CounterSnapshot | None:
        """Return the current state of a key without consuming."""

    async def delete(self, key: str) -> None:
        """Drop a key, lifting any block immediately."""

    async def ping(self) -> bool:
        """Return True when the backend is reachable."""

    async def close(self) -> None:
        """Release associated resources."""
