import pytest

from contact_discovery.config import (
    DEFAULT_MODEL,
    DEFAULT_RATE_LIMIT_POLICIES,
    DiscoveryConfig,
)
from contact_discovery.errors import ConfigError


def test_from_env_reads_secrets(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REDIS_URL", "redis://localhost:6379/0")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.delenv("CONTACT_DISCOVERY_MODEL", raising=False)
    monkeypatch.delenv("SERPAPI_KEY", raising=False)
    monkeypatch.setenv("BING_API_KEY", "bing")

    config = DiscoveryConfig.from_env()

    assert config.redis_url == "redis://localhost:6379/0"
    assert config.openai_api_key == "sk-test"
    assert config.model == DEFAULT_MODEL
    assert config.serpapi_key is None
    assert config.bing_key == "bing"


def test_from_env_overrides_win_and_none_is_ignored(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CONTACT_DISCOVERY_MODEL", "env-model")
    config = DiscoveryConfig.from_env(model="cli-model", redis_url=None, max_concurrency=2)
    assert config.model == "cli-model"
    assert config.max_concurrency == 2


def test_invalid_values_raise_config_error() -> None:
    with pytest.raises(ConfigError):
        DiscoveryConfig(max_concurrency=0)
    with pytest.raises(ConfigError):
        DiscoveryConfig(call_timeout=10.0, search_timeout=5.0)


def test_default_rate_limit_policies() -> None:
    search = DEFAULT_RATE_LIMIT_POLICIES["search"]
    assert (search.points, search.window_seconds, search.block_seconds) == (5, 60, 60)
    assert DEFAULT_RATE_LIMIT_POLICIES["progress"].block_seconds == 30
    assert DEFAULT_RATE_LIMIT_POLICIES["health"].points == 20
