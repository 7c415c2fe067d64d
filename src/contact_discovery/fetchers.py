"""HTTP page fetchers."""

from __future__ import annotations

import asyncio
import logging
import urllib.robotparser
from threading import Lock
from urllib.parse import urlparse

from requests import Session
from requests.adapters import HTTPAdapter
from requests.exceptions import RequestException
from urllib3.util.retry import Retry

from .errors import FetchError
from .models import FetchedContent
from .validation import is_supported_url


class RobotsPolicy:
    """robots.txt cache and allow checks.

    Policies are downloaded through the shared session with the fetch timeout.
    The download happens outside the cache lock, so a slow origin only delays
    fetches to that origin. A robots.txt that cannot be read or decoded means
    no policy; 401 and 403 disallow the whole origin.
    """

    def __init__(self, session: Session, *, user_agent: str, timeout: float) -> None:
        self._session = session
        self._user_agent = user_agent
        self._timeout = timeout
        self._cache: dict[str, urllib.robotparser.RobotFileParser | None] = {}
        self._lock = Lock()

    def allowed(self, url: str) -> bool:
        """Return True if robots policy allows this URL."""
        if not is_supported_url(url):
            return False
        parsed = urlparse(url)
        origin = f"{parsed.scheme}://{parsed.netloc}"

        with self._lock:
            cached = origin in self._cache
            parser = self._cache.get(origin)
        if not cached:
            parser = self._load(origin)
            with self._lock:
                parser = self._cache.setdefault(origin, parser)

        if parser is None:
            return True
        return parser.can_fetch(self._user_agent, url)

    def _load(self, origin: str) -> urllib.robotparser.RobotFileParser | None:
        robots_url = origin.rstrip("/") + "/robots.txt"
        parser = urllib.robotparser.RobotFileParser(robots_url)
        try:
            response = self._session.get(robots_url, timeout=self._timeout)
            if response.status_code in (401, 403):
                parser.disallow_all = True
                return parser
            if response.status_code >= 400:
                return None
            parser.parse(response.text.splitlines())
        except (RequestException, ValueError):
            return None
        return parser


def make_retry_session(user_agent: str) -> Session:
    """Create requests session with retry/backoff defaults."""
    session = Session()
    session.headers.update({"User-Agent": user_agent})
    retry = Retry(
        total=3,
        backoff_factor=0.6,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=frozenset({"GET", "POST"}),
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


class RequestsFetcher:
    """Requests-based fetcher with robots checks."""

    def __init__(
        self,
        *,
        session: Session,
        robots_policy: RobotsPolicy,
        timeout: float,
        logger: logging.Logger,
    ) -> None:
        self._session = session
        self._robots_policy = robots_policy
        self._timeout = timeout
        self._logger = logger

    def fetch(self, url: str) -> FetchedContent:
        """Fetch one page; raise FetchError when nothing usable comes back."""
        if not is_supported_url(url):
            raise FetchError(f"Unsupported URL: {url}")
        if not self._robots_policy.allowed(url):
            self._logger.info("Skipping due to robots.txt: %s", url)
            raise FetchError(f"Disallowed by robots.txt: {url}")
        try:
            response = self._session.get(url, timeout=self._timeout)
            response.raise_for_status()
        except RequestException as exc:
            self._logger.debug("Requests fetch failed for %s: %s", url, exc)
            raise FetchError(f"Request failed for {url}: {exc}") from exc

        text = str(response.text)
        if not text.strip():
            raise FetchError(f"Empty response from {url}")
        return FetchedContent(
            url=url,
            text=text,
            metadata={
                "status_code": response.status_code,
                "content_type": response.headers.get("Content-Type", ""),
            },
        )


class ThreadedContentFetcher:
    """Runs a blocking fetcher in a worker thread for the event loop."""

    def __init__(self, fetcher: RequestsFetcher) -> None:
        self._fetcher = fetcher

    async def fetch(self, url: str) -> FetchedContent:
        return await asyncio.to_thread(self._fetcher.fetch, url)
