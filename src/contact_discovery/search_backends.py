"""Search providers and the async fallback backend that chains them."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol
from urllib.parse import unquote

from bs4 import BeautifulSoup
from requests import Session
from requests.exceptions import RequestException

from .errors import FetchError
from .logging_utils import get_logger
from .validation import normalize_urls, polite_sleep

SERPAPI_URL = "https://serpapi.com/search.json"
BING_URL = "https://api.bing.microsoft.com/v7.0/search"
DUCKDUCKGO_BASES = ("https://html.duckduckgo.com/html/", "https://duckduckgo.com/html/")


class SearchProvider(Protocol):
    """One blocking web search API; raises FetchError when it cannot answer."""

    name: str

    def search(self, query: str, num: int) -> list[str]:
        """Return result URLs for a query."""


def _decode_ddg_href(href: str) -> str | None:
    if not href:
        return None
    if "uddg=" not in href:
        return href
    encoded = href.split("uddg=")[-1].split("&", maxsplit=1)[0]
    return unquote(encoded)


def _get_json(session: Session, provider: str, url: str, **kwargs: Any) -> dict[str, Any]:
    try:
        response = session.get(url, **kwargs)
        response.raise_for_status()
        payload = response.json()
    except (RequestException, ValueError) as exc:
        raise FetchError(f"{provider} search failed: {exc}") from exc
    if not isinstance(payload, dict):
        raise FetchError(f"{provider} returned an unexpected payload.")
    return payload


class SerpApiProvider:
    name = "serpapi"

    def __init__(self, session: Session, *, api_key: str, timeout: float) -> None:
        self._session = session
        self._api_key = api_key
        self._timeout = timeout

    def search(self, query: str, num: int) -> list[str]:
        payload = _get_json(
            self._session,
            "SerpApi",
            SERPAPI_URL,
            params={"q": query, "engine": "google", "num": num, "api_key": self._api_key},
            timeout=self._timeout,
        )
        links = (item.get("link") or item.get("url") for item in payload.get("organic_results", []))
        return [link for link in links if isinstance(link, str)]


class BingProvider:
    name = "bing"

    def __init__(self, session: Session, *, api_key: str, user_agent: str, timeout: float) -> None:
        self._session = session
        self._api_key = api_key
        self._user_agent = user_agent
        self._timeout = timeout

    def search(self, query: str, num: int) -> list[str]:
        payload = _get_json(
            self._session,
            "Bing",
            BING_URL,
            params={"q": query, "count": num, "textDecorations": "false", "textFormat": "Raw"},
            headers={"Ocp-Apim-Subscription-Key": self._api_key, "User-Agent": self._user_agent},
            timeout=self._timeout,
        )
        pages = payload.get("webPages", {}).get("value", [])
        return [item["url"] for item in pages if isinstance(item.get("url"), str)]


class DuckDuckGoProvider:
    """Keyless HTML search; tries each mirror with a polite pause between them."""

    name = "duckduckgo"

    def __init__(
        self,
        session: Session,
        *,
        user_agent: str,
        timeout: float,
        min_delay: float = 0.0,
        max_delay: float = 0.0,
        bases: tuple[str, ...] = DUCKDUCKGO_BASES,
    ) -> None:
        self._session = session
        self._user_agent = user_agent
        self._timeout = timeout
        self._min_delay = min_delay
        self._max_delay = max_delay
        self._bases = bases

    def search(self, query: str, num: int) -> list[str]:
        answered = False
        last_error = "no mirror answered"
        for index, base in enumerate(self._bases):
            if index:
                polite_sleep(self._min_delay, self._max_delay)
            try:
                response = self._session.get(
                    base,
                    params={"q": query},
                    headers={"User-Agent": self._user_agent},
                    timeout=self._timeout,
                )
            except RequestException as exc:
                last_error = str(exc)
                continue
            if response.status_code != 200:
                last_error = f"HTTP {response.status_code} from {base}"
                continue
            answered = True
            urls = self._result_links(response.text, num)
            if urls:
                return urls
        if not answered:
            raise FetchError(f"DuckDuckGo search failed: {last_error}")
        return []

    @staticmethod
    def _result_links(html: str, num: int) -> list[str]:
        urls: list[str] = []
        for anchor in BeautifulSoup(html, "html.parser").find_all("a", href=True):
            href = str(anchor.get("href")).strip()
            decoded = _decode_ddg_href(href)
            if decoded and decoded.startswith("http"):
                href = decoded
            if href.startswith("javascript:") or "duckduckgo.com" in href:
                continue
            if href.startswith("http"):
                urls.append(href)
            if len(urls) >= num:
                break
        return urls


def build_providers(
    session: Session,
    *,
    user_agent: str,
    timeout: float,
    serpapi_key: str | None = None,
    bing_key: str | None = None,
    min_delay: float = 0.0,
    max_delay: float = 0.0,
) -> list[SearchProvider]:
    """Keyed providers first, in priority order, then the keyless DuckDuckGo fallback."""
    providers: list[SearchProvider] = []
    if serpapi_key:
        providers.append(SerpApiProvider(session, api_key=serpapi_key, timeout=timeout))
    if bing_key:
        providers.append(
            BingProvider(session, api_key=bing_key, user_agent=user_agent, timeout=timeout)
        )
    providers.append(
        DuckDuckGoProvider(
            session,
            user_agent=user_agent,
            timeout=timeout,
            min_delay=min_delay,
            max_delay=max_delay,
        )
    )
    return providers


class FallbackSearchBackend:
    """Async SearchBackend that asks each provider in turn until one returns URLs.

    A provider that raises ``FetchError`` is logged and skipped. When every
    provider fails the last error is raised so the caller can record it; a
    provider that answers with no results is not a failure.
    """

    def __init__(
        self, providers: list[SearchProvider], *, logger: logging.Logger | None = None
    ) -> None:
        if not providers:
            raise ValueError("At least one search provider is required.")
        self._providers = providers
        self._logger = logger or get_logger()

    async def search(self, query: str, num: int) -> list[str]:
        last_error: FetchError | None = None
        answered = False
        for provider in self._providers:
            try:
                urls = await asyncio.to_thread(provider.search, query, num)
            except FetchError as exc:
                self._logger.warning("Provider %s failed for '%s': %s", provider.name, query, exc)
                last_error = exc
                continue
            answered = True
            urls = normalize_urls(urls)
            if urls:
                return urls[:num]
        if not answered and last_error is not None:
            raise FetchError(f"All search providers failed: {last_error}")
        return []
