"""LLM-driven query expansion, refinement, localization and diversification."""

from __future__ import annotations

import asyncio
import logging
import re
import time

from .errors import AIProviderError, ValidationError
from .logging_utils import get_logger
from .models import (
    EnhancedQuery,
    EnhancementType,
    QueryEnhancementRequest,
    SearchCriteria,
    TextGenerator,
)
from .retry import RetryPolicy, SleepFn, call_with_retry

NUMBERED_LINE = re.compile(r"^\d+\.\s*(.+)$")
WRAPPING_QUOTES = re.compile(r"^[\"']|[\"']$")
MIN_QUERY_LENGTH = 3
DEFAULT_LOCALE_CONCURRENCY = 3

COUNTRY_CONTEXTS: dict[str, str] = {
    "US": "Major publications include NYT, Washington Post, WSJ. Focus on national and regional media.",
    "GB": "Major publications include BBC, The Guardian, The Times. Focus on UK and European media.",
    "CA": "Major publications include CBC, The Globe and Mail, Toronto Star. Focus on Canadian media.",
    "AU": (
        "Major publications include ABC, The Australian, Sydney Morning Herald. "
        "Focus on Australian and Asia-Pacific media."
    ),
    "DE": (
        "Major publications include Der Spiegel, Die Zeit, Frankfurter Allgemeine. "
        "Focus on German and European media."
    ),
    "FR": (
        "Major publications include Le Monde, Le Figaro, Liberation. "
        "Focus on French and European media."
    ),
}
DEFAULT_COUNTRY_CONTEXT = "Focus on local and national media outlets."


def parse_numbered_list(content: str) -> list[str]:
    """Keep ``N. text`` lines, trimmed and stripped of wrapping quotes."""
    queries: list[str] = []
    for line in content.splitlines():
        match = NUMBERED_LINE.match(line.strip())
        if not match:
            continue
        cleaned = WRAPPING_QUOTES.sub("", match.group(1).strip()).strip()
        if cleaned:
            queries.append(cleaned)
    return queries


def normalize_query(query: str) -> str:
    return " ".join(query.split()).lower()


def finalize_queries(queries: list[str], target_count: int) -> list[str]:
    """Normalize, drop short and duplicate queries, and truncate."""
    output: list[str] = []
    seen: set[str] = set()
    for query in queries:
        normalized = normalize_query(query)
        if len(normalized) < MIN_QUERY_LENGTH or normalized in seen:
            continue
        seen.add(normalized)
        output.append(normalized)
        if len(output) >= target_count:
            break
    return output


def add_diversity(queries: list[str], criteria: SearchCriteria) -> list[str]:
    """Append each category and beat to every query, deduped in order."""
    if not queries:
        return queries
    diverse = list(queries)
    for category in criteria.categories:
        diverse.extend(f"{query} {category}" for query in queries)
    for beat in criteria.beats:
        diverse.extend(f"{query} {beat}" for query in queries)
    return list(dict.fromkeys(diverse))


def context_info(criteria: SearchCriteria) -> str:
    parts: list[str] = []
    if criteria.categories:
        parts.append(f"Categories: {', '.join(criteria.categories)}")
    if criteria.beats:
        parts.append(f"Beats: {', '.join(criteria.beats)}")
    if criteria.countries:
        parts.append(f"Countries: {', '.join(criteria.countries)}")
    if criteria.languages:
        parts.append(f"Languages: {', '.join(criteria.languages)}")
    if criteria.regions:
        parts.append(f"Regions: {', '.join(criteria.regions)}")
    if criteria.outlet_types:
        parts.append(f"Target outlet types: {', '.join(criteria.outlet_types)}")
    return f"\nAdditional context:\n{chr(10).join(parts)}" if parts else ""


def expansion_prompt(base_query: str, criteria: SearchCriteria) -> str:
    return f"""You are an expert in media research and query optimization.

Given the base search query: "{base_query}"
{context_info(criteria)}

Generate 5-8 expanded search queries that would help find relevant media contacts. Each query should:
1. Include synonyms and related terms
2. Use different phrasing and structure
3. Incorporate relevant media/journalism terminology
4. Be optimized for search engines
5. Maintain the core intent of the original query

Format your response as a numbered list of queries only, no additional text:

1. [First expanded query]
2. [Second expanded query]
..."""


def refinement_prompt(base_query: str, criteria: SearchCriteria) -> str:
    return f"""You are an expert in media research and precision searching.

Given the base search query: "{base_query}"
{context_info(criteria)}

Refine this query into 3-5 more precise versions that would yield higher quality results. Each refined query should:
1. Be more specific and targeted
2. Include professional terminology
3. Add relevant qualifiers and filters
4. Remove ambiguity
5. Maintain searchability

Format your response as a numbered list of refined queries only, no additional text:

1. [First refined query]
2. [Second refined query]
..."""


def localization_prompt(base_query: str, country: str, criteria: SearchCriteria) -> str:
    country_context = COUNTRY_CONTEXTS.get(country.upper(), DEFAULT_COUNTRY_CONTEXT)
    return f"""You are an expert in international media research.

Given the base search query: "{base_query}"
{context_info(criteria)}
Country context: {country_context}

Generate 3-5 localized versions of this query for {country}. Each query should:
1. Incorporate local media terminology
2. Use country-specific publications and outlets
3. Include local geographic references
4. Adapt to local media landscape
5. Maintain searchability

Format your response as a numbered list of localized queries only, no additional text:

1. [First localized query]
2. [Second localized query]
..."""


def language_prompt(base_query: str, language: str, criteria: SearchCriteria) -> str:
    return f"""You are an expert in multilingual media research.

Given the base search query: "{base_query}"
{context_info(criteria)}
Target language: {language}

Generate 3-5 language-specific versions of this query. Each query should:
1. Include relevant language terminology
2. Target language-specific media outlets
3. Use appropriate cultural references
4. Maintain searchability in both English and target language where applicable

Format your response as a numbered list of language-specific queries only, no additional text:

1. [First language-specific query]
2. [Second language-specific query]
..."""


class QueryEnhancementEngine:
    """Turns one base query into a bounded, deduplicated set of search queries."""

    def __init__(
        self,
        generator: TextGenerator,
        *,
        retry_policy: RetryPolicy | None = None,
        locale_concurrency: int = DEFAULT_LOCALE_CONCURRENCY,
        sleep: SleepFn = asyncio.sleep,
        logger: logging.Logger | None = None,
    ) -> None:
        self._generator = generator
        self._retry_policy = retry_policy or RetryPolicy()
        self._locale_concurrency = max(locale_concurrency, 1)
        self._sleep = sleep
        self._logger = logger or get_logger()

    async def enhance_query(self, request: QueryEnhancementRequest) -> list[str]:
        """Return up to ``target_count`` normalized, unique queries."""
        if request.target_count < 1:
            raise ValidationError("target_count must be >= 1.")
        started = time.perf_counter()
        kind = request.enhancement_type
        if kind is EnhancementType.EXPANSION or kind is EnhancementType.DIVERSIFICATION:
            queries = await self._single_call(
                expansion_prompt(request.base_query, request.criteria), "query_expansion"
            )
        elif kind is EnhancementType.REFINEMENT:
            queries = await self._single_call(
                refinement_prompt(request.base_query, request.criteria), "query_refinement"
            )
        elif kind is EnhancementType.LOCALIZATION:
            queries = await self._localize(request)
        else:
            raise ValidationError(f"Unknown enhancement type: {kind}")

        if request.diversity_boost or kind is EnhancementType.DIVERSIFICATION:
            queries = add_diversity(queries, request.criteria)

        final = finalize_queries(queries, request.target_count)
        self._logger.info(
            "Query enhancement (%s) produced %d queries in %.0fms.",
            kind.value,
            len(final),
            (time.perf_counter() - started) * 1000,
        )
        return final

    async def enhance_query_set(self, request: QueryEnhancementRequest) -> list[EnhancedQuery]:
        queries = await self.enhance_query(request)
        return [EnhancedQuery(text=query, kind=request.enhancement_type) for query in queries]

    async def _single_call(self, prompt: str, operation: str) -> list[str]:
        return parse_numbered_list(await self._call_ai(prompt, operation))

    async def _localize(self, request: QueryEnhancementRequest) -> list[str]:
        criteria = request.criteria
        jobs: list[tuple[str, str]] = [
            (f"country {country}", localization_prompt(request.base_query, country, criteria))
            for country in criteria.countries
        ]
        jobs.extend(
            (f"language {language}", language_prompt(request.base_query, language, criteria))
            for language in criteria.languages
        )
        semaphore = asyncio.Semaphore(self._locale_concurrency)

        async def run(label: str, prompt: str) -> list[str]:
            async with semaphore:
                try:
                    return await self._single_call(prompt, f"query_localization {label}")
                except AIProviderError as exc:
                    self._logger.warning("Localization failed for %s: %s", label, exc)
                    return []

        batches = await asyncio.gather(*(run(label, prompt) for label, prompt in jobs))
        return [query for batch in batches for query in batch]

    async def _call_ai(self, prompt: str, operation: str) -> str:
        async def attempt() -> str:
            content = await self._generator.generate(prompt)
            if not content or not content.strip():
                raise AIProviderError("No content returned from AI service")
            return content

        outcome = await call_with_retry(
            attempt,
            self._retry_policy,
            sleep=self._sleep,
            logger=self._logger,
            label=operation,
        )
        if not outcome.ok:
            raise AIProviderError(
                f"AI call failed after {outcome.attempts} attempts: {outcome.error}",
                last_error=outcome.error,
            )
        return outcome.value or ""
