"""Search orchestration: admission, enhancement, fetching, validation and ranking."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field

from tqdm import tqdm

from .classifier import HeuristicEmailClassifier
from .config import DiscoveryConfig
from .counter_store import build_counter_store
from .dedupe import merge_candidates
from .email_validator import EmailValidator
from .errors import (
    AIProviderError,
    DiscoveryError,
    RateLimitError,
    SearchNotFoundError,
    SearchTimeoutError,
)
from .extraction import HtmlContactExtractor
from .fetchers import RequestsFetcher, RobotsPolicy, ThreadedContentFetcher, make_retry_session
from .llm import OpenAITextGenerator
from .logging_utils import CorrelationAdapter, bind_correlation, get_logger
from .models import (
    CancelAck,
    CandidateContact,
    ContactExtractor,
    ContactFragment,
    ContentFetcher,
    EmailValidationResult,
    EnhancementType,
    FetchedContent,
    HealthReport,
    QueryEnhancementRequest,
    RateLimitState,
    SearchBackend,
    SearchExecution,
    SearchRequest,
    SearchStatus,
    SubmitAck,
    ValidationOptions,
)
from .query_enhancement import QueryEnhancementEngine
from .rate_limiter import RateLimiter
from .scoring import score_contact
from .search_backends import FallbackSearchBackend, build_providers
from .validation import validate_search_request

ENHANCED_PROGRESS = 20
FETCHED_PROGRESS = 70
VALIDATED_PROGRESS = 90
POLL_INTERVAL_SECONDS = 0.2
JOB_RETENTION_SECONDS = 3600.0


@dataclass
class _SearchJob:
    execution: SearchExecution
    request: SearchRequest
    log: CorrelationAdapter
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    task: asyncio.Task[None] | None = None
    partial: list[CandidateContact] = field(default_factory=list)
    seen_urls: set[str] = field(default_factory=set)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()


class SearchOrchestrator:
    """Runs each accepted search as a background task and owns its execution record."""

    def __init__(
        self,
        *,
        rate_limiter: RateLimiter,
        query_engine: QueryEnhancementEngine,
        email_validator: EmailValidator,
        search_backend: SearchBackend,
        fetcher: ContentFetcher,
        extractor: ContactExtractor,
        max_concurrency: int = 5,
        call_timeout: float = 30.0,
        search_timeout: float = 300.0,
        results_per_query: int = 5,
        retention_seconds: float = JOB_RETENTION_SECONDS,
        clock: Callable[[], float] = time.time,
        logger: logging.Logger | None = None,
    ) -> None:
        self._rate_limiter = rate_limiter
        self._query_engine = query_engine
        self._email_validator = email_validator
        self._search_backend = search_backend
        self._fetcher = fetcher
        self._extractor = extractor
        self._max_concurrency = max_concurrency
        self._call_timeout = call_timeout
        self._search_timeout = search_timeout
        self._results_per_query = results_per_query
        self._retention_seconds = retention_seconds
        self._clock = clock
        self._logger = logger or get_logger()
        self._jobs: dict[str, _SearchJob] = {}

    async def submit(self, request: SearchRequest) -> SubmitAck:
        """Accept a search and start it in the background."""
        validate_search_request(request)
        self._evict_finished()
        search_id = str(uuid.uuid4())
        execution = SearchExecution(
            id=search_id,
            correlation_id=uuid.uuid4().hex[:12],
            requester_id=request.requester_id,
        )
        job = _SearchJob(
            execution=execution,
            request=request,
            log=bind_correlation(self._logger, execution.correlation_id),
        )
        self._jobs[search_id] = job
        job.task = asyncio.create_task(self._run(job), name=f"search-{search_id}")
        job.log.info("Accepted search %s for requester %s.", search_id, request.requester_id)
        return SubmitAck(search_id=search_id)

    def get_status(self, search_id: str) -> SearchExecution:
        return self._job(search_id).execution.snapshot()

    def cancel(self, search_id: str) -> CancelAck:
        """Stop issuing new work for a search and mark it cancelled."""
        job = self._job(search_id)
        status = job.execution.status
        if status.is_terminal:
            return CancelAck(
                search_id=search_id,
                success=False,
                message=f"Search is already {status.value} and cannot be cancelled.",
            )
        job.cancel_event.set()
        job.execution.transition(SearchStatus.CANCELLED, reason="cancelled")
        job.log.info("Search %s cancelled.", search_id)
        return CancelAck(search_id=search_id, success=True, message="Search cancelled.")

    async def wait(self, search_id: str) -> SearchExecution:
        """Wait for the background task of a search, then return its final state."""
        job = self._job(search_id)
        if job.task is not None:
            await asyncio.shield(job.task)
        return job.execution.snapshot()

    async def validate_email(
        self,
        email: str,
        options: ValidationOptions | None = None,
        *,
        contact_name: str | None = None,
    ) -> EmailValidationResult:
        return await self._email_validator.validate_email(
            email, options, contact_name=contact_name
        )

    async def check_rate_limit(self, user_id: str, endpoint_type: str) -> RateLimitState:
        return await self._rate_limiter.check_limit(user_id, endpoint_type)

    async def health_check(self) -> HealthReport:
        return await self._rate_limiter.health_check()

    async def close(self) -> None:
        """Cancel unfinished searches and release the rate limiter."""
        for search_id, job in self._jobs.items():
            if not job.execution.status.is_terminal:
                self.cancel(search_id)
        pending = [job.task for job in self._jobs.values() if job.task and not job.task.done()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        await self._rate_limiter.close()

    def _evict_finished(self) -> None:
        """Forget terminal searches older than the retention period."""
        cutoff = self._clock() - self._retention_seconds
        expired = [
            search_id
            for search_id, job in self._jobs.items()
            if job.execution.status.is_terminal
            and job.execution.updated_at <= cutoff
            and (job.task is None or job.task.done())
        ]
        for search_id in expired:
            del self._jobs[search_id]
        if expired:
            self._logger.debug("Evicted %d finished searches.", len(expired))

    def _job(self, search_id: str) -> _SearchJob:
        try:
            return self._jobs[search_id]
        except KeyError:
            raise SearchNotFoundError(f"Search not found: {search_id}") from None

    async def _run(self, job: _SearchJob) -> None:
        execution = job.execution
        try:
            if not await self._admit(job):
                return
            await asyncio.wait_for(self._process(job), timeout=self._search_timeout)
        except asyncio.TimeoutError:
            error = SearchTimeoutError(f"Search exceeded its {self._search_timeout:g}s budget.")
            execution.results = self._ranked(job, job.partial)
            execution.record_error(str(error))
            execution.transition(SearchStatus.FAILED, reason=error.reason)
            job.log.warning("%s Kept %d partial results.", error, len(execution.results))
        except Exception as exc:
            job.log.exception("Search %s failed unexpectedly.", execution.id)
            execution.record_error(str(exc) or exc.__class__.__name__)
            reason = exc.reason if isinstance(exc, DiscoveryError) else "internal_error"
            execution.transition(SearchStatus.FAILED, reason=reason)

    async def _admit(self, job: _SearchJob) -> bool:
        execution = job.execution
        try:
            await self._rate_limiter.check_limit(job.request.requester_id, "search")
        except RateLimitError as exc:
            execution.record_error(str(exc))
            execution.transition(SearchStatus.FAILED, reason=exc.reason)
            job.log.info("Search %s rejected: %s", execution.id, exc)
            return False
        return execution.transition(SearchStatus.PROCESSING)

    async def _process(self, job: _SearchJob) -> None:
        execution = job.execution
        queries = await self._enhance(job)
        if job.cancelled:
            return
        if not queries:
            execution.record_error("Query enhancement produced no queries.")
            execution.transition(SearchStatus.FAILED, reason="no_queries")
            job.log.warning("Search %s has no queries to run.", execution.id)
            return
        execution.advance(ENHANCED_PROGRESS)

        pages = await self._fetch_all(job, queries)
        if job.cancelled:
            return
        execution.advance(FETCHED_PROGRESS)
        job.log.info("Fetched %d pages for %d queries.", len(pages), len(queries))

        await self._extract_and_validate(job, pages)
        if job.cancelled:
            return
        execution.advance(VALIDATED_PROGRESS)

        execution.results = self._ranked(job, job.partial)
        execution.transition(SearchStatus.COMPLETED)
        job.log.info("Search %s completed with %d contacts.", execution.id, len(execution.results))

    async def _enhance(self, job: _SearchJob) -> list[str]:
        request = job.request
        criteria = request.criteria
        localized = bool(criteria.countries or criteria.languages)
        kind = EnhancementType.LOCALIZATION if localized else EnhancementType.EXPANSION
        enhancement = QueryEnhancementRequest(
            base_query=request.query,
            criteria=criteria,
            enhancement_type=kind,
            target_count=request.options.target_query_count,
            diversity_boost=request.options.diversity_boost,
        )
        try:
            return await self._query_engine.enhance_query(enhancement)
        except AIProviderError as exc:
            job.execution.record_error(f"Query enhancement failed: {exc}")
            job.log.warning("Query enhancement failed: %s", exc)
            return []

    async def _fetch_all(self, job: _SearchJob, queries: list[str]) -> list[FetchedContent]:
        semaphore = asyncio.Semaphore(self._max_concurrency)
        span = FETCHED_PROGRESS - ENHANCED_PROGRESS
        finished = 0

        async def run(query: str) -> list[FetchedContent]:
            nonlocal finished
            try:
                async with semaphore:
                    if job.cancelled:
                        return []
                    return await self._fetch_query(job, query)
            finally:
                finished += 1
                job.execution.advance(ENHANCED_PROGRESS + span * finished // len(queries))

        batches = await asyncio.gather(*(run(query) for query in queries))
        return [page for batch in batches for page in batch]

    async def _fetch_query(self, job: _SearchJob, query: str) -> list[FetchedContent]:
        execution = job.execution
        try:
            urls = await asyncio.wait_for(
                self._search_backend.search(query, self._results_per_query),
                timeout=self._call_timeout,
            )
        except asyncio.TimeoutError:
            execution.record_error(f"Search timed out for query '{query}'.")
            return []
        except Exception as exc:
            execution.record_error(f"Search failed for query '{query}': {exc}")
            job.log.debug("Search failed for '%s': %s", query, exc)
            return []
        job.log.debug("Query '%s' found %d candidate URLs.", query, len(urls))

        pages: list[FetchedContent] = []
        for url in urls:
            if job.cancelled:
                break
            if url in job.seen_urls:
                continue
            job.seen_urls.add(url)
            try:
                page = await asyncio.wait_for(self._fetcher.fetch(url), timeout=self._call_timeout)
            except asyncio.TimeoutError:
                execution.record_error(f"Fetch timed out for {url}.")
                job.log.debug("Fetch timed out for %s", url)
            except Exception as exc:
                execution.record_error(f"Fetch failed for {url}: {exc}")
                job.log.debug("Fetch failed for %s: %s", url, exc)
            else:
                pages.append(page)
        return pages

    async def _extract_and_validate(self, job: _SearchJob, pages: list[FetchedContent]) -> None:
        execution = job.execution
        found: list[tuple[ContactFragment, str]] = []
        for page in pages:
            try:
                fragments = await asyncio.to_thread(self._extractor.extract, page)
            except Exception as exc:
                execution.record_error(f"Extraction failed for {page.url}: {exc}")
                job.log.debug("Extraction failed for %s: %s", page.url, exc)
                continue
            found.extend((fragment, page.url) for fragment in fragments)
        if not found:
            return

        options = ValidationOptions(strict_mode=job.request.options.strict_validation)
        semaphore = asyncio.Semaphore(self._max_concurrency)
        span = VALIDATED_PROGRESS - FETCHED_PROGRESS
        finished = 0

        async def validate(fragment: ContactFragment, source_url: str) -> None:
            nonlocal finished
            try:
                async with semaphore:
                    if job.cancelled:
                        return
                    result = await asyncio.wait_for(
                        self._email_validator.validate_email(
                            fragment.email, options, contact_name=fragment.name
                        ),
                        timeout=self._call_timeout,
                    )
            except asyncio.TimeoutError:
                execution.record_error(f"Validation timed out for {fragment.email}.")
                return
            except Exception as exc:
                execution.record_error(f"Validation failed for {fragment.email}: {exc}")
                return
            finally:
                finished += 1
                execution.advance(FETCHED_PROGRESS + span * finished // len(found))

            if not result.is_valid:
                job.log.debug("Dropping %s: %s", fragment.email, result.reasoning)
                return
            job.partial.append(
                CandidateContact(
                    email=result.email,
                    source_url=source_url,
                    confidence=score_contact(fragment, result, source_url),
                    spam_score=result.spam_score,
                    name=fragment.name,
                    role=fragment.role,
                    organization=fragment.organization,
                )
            )

        await asyncio.gather(*(validate(fragment, url) for fragment, url in found))

    @staticmethod
    def _ranked(job: _SearchJob, candidates: list[CandidateContact]) -> list[CandidateContact]:
        return merge_candidates(candidates)[: job.request.options.max_results]


def build_orchestrator(config: DiscoveryConfig, *, logger: logging.Logger) -> SearchOrchestrator:
    """Build concrete services from configuration and wire them together."""
    session = make_retry_session(config.user_agent)
    providers = build_providers(
        session,
        user_agent=config.user_agent,
        timeout=config.request_timeout,
        serpapi_key=config.serpapi_key,
        bing_key=config.bing_key,
        min_delay=config.min_delay,
        max_delay=config.max_delay,
    )
    fetcher = RequestsFetcher(
        session=session,
        robots_policy=RobotsPolicy(
            session, user_agent=config.user_agent, timeout=config.request_timeout
        ),
        timeout=config.request_timeout,
        logger=logger,
    )
    generator = OpenAITextGenerator(api_key=config.openai_api_key, model=config.model)
    return SearchOrchestrator(
        rate_limiter=RateLimiter(
            primary=build_counter_store(config.redis_url, logger=logger), logger=logger
        ),
        query_engine=QueryEnhancementEngine(generator, logger=logger),
        email_validator=EmailValidator(
            classifier=HeuristicEmailClassifier(),
            ttl_seconds=config.cache_ttl_seconds,
            logger=logger,
        ),
        search_backend=FallbackSearchBackend(providers, logger=logger),
        fetcher=ThreadedContentFetcher(fetcher),
        extractor=HtmlContactExtractor(),
        max_concurrency=config.max_concurrency,
        call_timeout=config.call_timeout,
        search_timeout=config.search_timeout,
        results_per_query=config.results_per_query,
        logger=logger,
    )


async def run_search(
    orchestrator: SearchOrchestrator,
    request: SearchRequest,
    *,
    show_progress: bool = True,
    poll_interval: float = POLL_INTERVAL_SECONDS,
) -> SearchExecution:
    """Submit a search and follow its progress until it reaches a terminal state."""
    ack = await orchestrator.submit(request)
    with tqdm(total=100, desc="searching", disable=not show_progress) as progress_bar:
        while True:
            execution = orchestrator.get_status(ack.search_id)
            progress_bar.update(execution.progress - progress_bar.n)
            if execution.status.is_terminal:
                break
            await asyncio.sleep(poll_interval)
    return await orchestrator.wait(ack.search_id)
