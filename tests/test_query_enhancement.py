import asyncio
import logging
from collections.abc import Callable

import pytest

from contact_discovery.errors import AIProviderError, ValidationError
from contact_discovery.models import EnhancementType, QueryEnhancementRequest, SearchCriteria
from contact_discovery.query_enhancement import (
    QueryEnhancementEngine,
    add_diversity,
    finalize_queries,
    parse_numbered_list,
)

LIST_REPLY = """Here are some queries:
1. Tech Reporters   AI
2. "AI journalists"
3. tech reporters ai
4. ab
5. 'machine learning editors'
"""


class FakeGenerator:
    def __init__(self, reply: Callable[[str], str] | str) -> None:
        self._reply = reply
        self.prompts: list[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if callable(self._reply):
            return self._reply(prompt)
        return self._reply


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def _engine(generator: FakeGenerator, sleep: RecordingSleep | None = None) -> QueryEnhancementEngine:
    return QueryEnhancementEngine(
        generator, sleep=sleep or RecordingSleep(), logger=logging.getLogger("test")
    )


def _request(**overrides: object) -> QueryEnhancementRequest:
    values: dict[str, object] = {
        "base_query": "tech reporters covering AI",
        "criteria": SearchCriteria(),
        "enhancement_type": EnhancementType.EXPANSION,
        "target_count": 5,
    }
    values.update(overrides)
    return QueryEnhancementRequest(**values)  # type: ignore[arg-type]


def test_parse_numbered_list_strips_quotes_and_ignores_prose() -> None:
    assert parse_numbered_list(LIST_REPLY) == [
        "Tech Reporters   AI",
        "AI journalists",
        "tech reporters ai",
        "ab",
        "machine learning editors",
    ]


def test_finalize_queries_normalizes_dedupes_and_truncates() -> None:
    queries = ["A  B C", "a b c", "xy", "second query", "third query"]
    assert finalize_queries(queries, 2) == ["a b c", "second query"]


def test_expansion_returns_unique_normalized_queries() -> None:
    queries = asyncio.run(_engine(FakeGenerator(LIST_REPLY)).enhance_query(_request()))
    assert queries == ["tech reporters ai", "ai journalists", "machine learning editors"]
    assert 1 <= len(queries) <= 5
    assert all(len(query) >= 3 for query in queries)


def test_expansion_prompt_carries_criteria_context() -> None:
    generator = FakeGenerator(LIST_REPLY)
    criteria = SearchCriteria(beats=("privacy",), outlet_types=("podcast",))
    asyncio.run(_engine(generator).enhance_query(_request(criteria=criteria)))
    assert 'Given the base search query: "tech reporters covering AI"' in generator.prompts[0]
    assert "Beats: privacy" in generator.prompts[0]
    assert "Target outlet types: podcast" in generator.prompts[0]


def test_refinement_uses_refinement_prompt() -> None:
    generator = FakeGenerator("1. senior AI correspondents")
    queries = asyncio.run(
        _engine(generator).enhance_query(_request(enhancement_type=EnhancementType.REFINEMENT))
    )
    assert queries == ["senior ai correspondents"]
    assert "more precise versions" in generator.prompts[0]


def test_diversity_boost_combines_categories_and_beats() -> None:
    criteria = SearchCriteria(categories=("startups",), beats=("funding",))
    assert add_diversity(["ai reporters"], criteria) == [
        "ai reporters",
        "ai reporters startups",
        "ai reporters funding",
    ]
    queries = asyncio.run(
        _engine(FakeGenerator("1. ai reporters")).enhance_query(
            _request(criteria=criteria, diversity_boost=True)
        )
    )
    assert queries == ["ai reporters", "ai reporters startups", "ai reporters funding"]


def test_diversification_type_always_diversifies() -> None:
    criteria = SearchCriteria(categories=("climate",))
    queries = asyncio.run(
        _engine(FakeGenerator("1. energy writers")).enhance_query(
            _request(criteria=criteria, enhancement_type=EnhancementType.DIVERSIFICATION)
        )
    )
    assert queries == ["energy writers", "energy writers climate"]


def test_localization_skips_failing_locales() -> None:
    def reply(prompt: str) -> str:
        if "for GB" in prompt:
            raise ConnectionError("provider down")
        if "for US" in prompt:
            return "1. US tech reporters\n2. NYT AI desk"
        return "1. journalistes tech"

    generator = FakeGenerator(reply)
    criteria = SearchCriteria(countries=("US", "GB"), languages=("French",))
    queries = asyncio.run(
        _engine(generator).enhance_query(
            _request(criteria=criteria, enhancement_type=EnhancementType.LOCALIZATION)
        )
    )
    assert queries == ["us tech reporters", "nyt ai desk", "journalistes tech"]
    us_prompt = next(prompt for prompt in generator.prompts if "for US" in prompt)
    assert "Major publications include NYT" in us_prompt
    assert any("Target language: French" in prompt for prompt in generator.prompts)


def test_retries_then_succeeds_with_backoff() -> None:
    attempts = {"count": 0}

    def reply(_prompt: str) -> str:
        attempts["count"] += 1
        if attempts["count"] < 3:
            raise TimeoutError("slow provider")
        return "1. ai reporters"

    sleep = RecordingSleep()
    queries = asyncio.run(_engine(FakeGenerator(reply), sleep).enhance_query(_request()))
    assert queries == ["ai reporters"]
    assert sleep.calls == [1.0, 2.0]


def test_empty_replies_exhaust_retries_and_raise() -> None:
    sleep = RecordingSleep()
    engine = _engine(FakeGenerator("   "), sleep)
    with pytest.raises(AIProviderError) as excinfo:
        asyncio.run(engine.enhance_query(_request()))
    assert "after 3 attempts" in str(excinfo.value)
    assert excinfo.value.reason == "ai_provider_failed"
    assert sleep.calls == [1.0, 2.0]


def test_non_positive_target_count_is_rejected() -> None:
    with pytest.raises(ValidationError):
        asyncio.run(_engine(FakeGenerator(LIST_REPLY)).enhance_query(_request(target_count=0)))


def test_enhance_query_set_tags_kind() -> None:
    enhanced = asyncio.run(
        _engine(FakeGenerator("1. ai reporters")).enhance_query_set(_request())
    )
    assert [(item.text, item.kind) for item in enhanced] == [
        ("ai reporters", EnhancementType.EXPANSION)
    ]
