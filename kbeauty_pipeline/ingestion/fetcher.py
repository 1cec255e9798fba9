"""
Resilient Fetcher Module
========================

Queued, rate-limited, retrying HTTP and browser fetching shared by all
source adapters.

One ResilientFetcher instance is shared per pipeline run so that the
concurrency cap and the minimum delay between requests apply across
every adapter, not per adapter.
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx

from kbeauty_pipeline.ingestion.browser import (
    BrowserError,
    PageAction,
    PageRenderer,
    PlaywrightRenderer,
)

if TYPE_CHECKING:
    from kbeauty_pipeline.ingestion.registry import FetchConfig

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENTS = [
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.3 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64; rv:123.0) Gecko/20100101 Firefox/123.0",
]

DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9,ko;q=0.8",
    "Cache-Control": "no-cache",
}

# Statuses that carry a Retry-After hint rather than a hard failure
RATE_LIMIT_STATUSES = frozenset({429, 503})


class FetchError(Exception):
    """A request failed after exhausting its retries."""

    def __init__(self, url: str, message: str, status_code: int | None = None) -> None:
        super().__init__(f"{message} ({url})")
        self.url = url
        self.status_code = status_code


@dataclass
class RetryPolicy:
    """
    Retry and backoff settings.

    Ordinary failures back off exponentially (backoff_base * 2**attempt)
    plus up to `jitter` seconds of noise. Rate-limit responses wait for
    the server's Retry-After hint instead, capped at retry_after_cap.
    """

    max_retries: int = 3
    backoff_base: float = 1.0
    jitter: float = 1.0
    retry_after_default: float = 10.0
    retry_after_cap: float = 60.0

    def backoff(self, attempt: int) -> float:
        """Seconds to wait after a failed attempt (0-based)."""
        return self.backoff_base * (2**attempt) + random.uniform(0, self.jitter)

    def retry_after(self, header_value: str | None) -> float:
        """Seconds to wait after a 429/503, from the Retry-After header."""
        try:
            seconds = float(header_value) if header_value is not None else self.retry_after_default
        except ValueError:
            seconds = self.retry_after_default
        return max(0.0, min(seconds, self.retry_after_cap))


@dataclass
class FetchStats:
    """Counters describing fetcher activity."""

    total_requests: int = 0
    errors: int = 0
    queue_length: int = 0
    active_requests: int = 0

    def to_dict(self) -> dict[str, int]:
        """Convert to dictionary for serialization."""
        return {
            "total_requests": self.total_requests,
            "errors": self.errors,
            "queue_length": self.queue_length,
            "active_requests": self.active_requests,
        }


@dataclass
class _Reply:
    status_code: int
    headers: dict[str, str]
    body: str = field(repr=False)


class RequestSpacer:
    """
    Enforces a minimum interval between request starts.

    Callers are serialized through a lock so concurrent slots still
    start their requests at least `min_interval` seconds apart.
    """

    def __init__(self, min_interval: float) -> None:
        self.min_interval = min_interval
        self._last_start: float | None = None
        self._lock = asyncio.Lock()

    async def wait(self) -> None:
        """Block until the next request may start."""
        async with self._lock:
            if self._last_start is not None and self.min_interval > 0:
                remaining = self._last_start + self.min_interval - time.monotonic()
                if remaining > 0:
                    await asyncio.sleep(remaining)
            self._last_start = time.monotonic()


class ResilientFetcher:
    """
    Shared fetch layer for all source adapters.

    Features:
    - Bounded concurrency (asyncio.Semaphore)
    - Minimum delay between request starts
    - Rotating user agents
    - Retry-After handling for 429/503
    - Exponential backoff with jitter for other failures
    - Browser rendering through the same queue
    """

    def __init__(
        self,
        concurrency: int = 3,
        delay_seconds: float = 2.0,
        retry_policy: RetryPolicy | None = None,
        timeout: float = 30.0,
        user_agents: list[str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        renderer: PageRenderer | None = None,
    ) -> None:
        self.concurrency = concurrency
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self.user_agents = list(user_agents or DEFAULT_USER_AGENTS)

        self._semaphore = asyncio.Semaphore(concurrency)
        self._spacer = RequestSpacer(delay_seconds)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._renderer = renderer
        self._stats = FetchStats()

    @classmethod
    def from_config(cls, config: FetchConfig, **kwargs: Any) -> ResilientFetcher:
        """Build a fetcher from the `fetch` section of the pipeline config."""
        policy = RetryPolicy(
            max_retries=config.max_retries,
            retry_after_default=config.retry_after_default,
            retry_after_cap=config.retry_after_cap,
        )
        return cls(
            concurrency=config.concurrency,
            delay_seconds=config.delay_seconds,
            retry_policy=policy,
            timeout=config.timeout,
            user_agents=config.user_agents,
            **kwargs,
        )

    @property
    def stats(self) -> FetchStats:
        """Current activity counters."""
        return self._stats

    @property
    def renderer(self) -> PageRenderer:
        """Browser backend, created on first use."""
        if self._renderer is None:
            self._renderer = PlaywrightRenderer()
        return self._renderer

    def next_user_agent(self) -> str:
        """Pick a user agent from the pool."""
        return random.choice(self.user_agents)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def fetch(
        self,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        retries: int | None = None,
        timeout: float | None = None,
    ) -> str:
        """
        Fetch a URL over HTTP and return the response body.

        Args:
            url: URL to fetch
            headers: Extra headers merged over the defaults
            retries: Override for the policy's max_retries
            timeout: Override for the request timeout in seconds

        Returns:
            Response text

        Raises:
            FetchError: After all retries fail
        """

        async def send(user_agent: str) -> _Reply:
            merged = {**DEFAULT_HEADERS, **(headers or {}), "User-Agent": user_agent}
            response = await self._get_client().get(
                url, headers=merged, timeout=timeout or self.timeout
            )
            return _Reply(response.status_code, dict(response.headers), response.text)

        return await self._execute(url, send, retries)

    async def fetch_json(
        self,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        retries: int | None = None,
        timeout: float | None = None,
    ) -> Any:
        """
        Fetch a URL and decode the body as JSON.

        Raises:
            FetchError: After all retries fail or if the body is not JSON
        """
        merged = {"Accept": "application/json", **(headers or {})}
        body = await self.fetch(url, headers=merged, retries=retries, timeout=timeout)
        try:
            return json.loads(body)
        except json.JSONDecodeError as e:
            raise FetchError(url, f"Invalid JSON: {e}") from e

    async def render(
        self,
        url: str,
        *,
        wait_for: str | None = None,
        settle_seconds: float = 2.0,
        page_action: PageAction | None = None,
        headers: dict[str, str] | None = None,
        retries: int | None = None,
        timeout: float | None = None,
    ) -> str:
        """
        Render a page in the headless browser and return its HTML.

        Uses the same queue, delay, user-agent rotation and retry policy
        as fetch().

        Raises:
            FetchError: After all retries fail
        """
        extra = {"Accept-Language": DEFAULT_HEADERS["Accept-Language"], **(headers or {})}

        async def load(user_agent: str) -> _Reply:
            page = await self.renderer.render(
                url,
                user_agent=user_agent,
                headers=extra,
                wait_for=wait_for,
                settle_seconds=settle_seconds,
                page_action=page_action,
                timeout=timeout or self.timeout,
            )
            return _Reply(page.status_code, page.headers, page.html)

        return await self._execute(url, load, retries)

    async def _attempt(self, request: Callable[[str], Awaitable[_Reply]]) -> _Reply:
        """Run one attempt inside a queue slot, after the inter-request delay."""
        self._stats.queue_length += 1
        async with self._semaphore:
            self._stats.queue_length -= 1
            await self._spacer.wait()
            self._stats.active_requests += 1
            self._stats.total_requests += 1
            try:
                return await request(self.next_user_agent())
            finally:
                self._stats.active_requests -= 1

    async def _execute(
        self,
        url: str,
        request: Callable[[str], Awaitable[_Reply]],
        retries: int | None,
    ) -> str:
        """Retry loop shared by fetch() and render()."""
        max_retries = self.retry_policy.max_retries if retries is None else retries
        last_error: FetchError | None = None

        for attempt in range(max_retries + 1):
            try:
                reply = await self._attempt(request)
            except httpx.TimeoutException:
                error = FetchError(url, f"Timeout after {self.timeout}s")
            except (httpx.HTTPError, BrowserError) as e:
                error = FetchError(url, str(e) or type(e).__name__)
            else:
                if reply.status_code in RATE_LIMIT_STATUSES:
                    self._stats.errors += 1
                    last_error = FetchError(url, f"HTTP {reply.status_code}", reply.status_code)
                    if attempt < max_retries:
                        wait = self.retry_policy.retry_after(_header(reply.headers, "retry-after"))
                        logger.warning(
                            f"Rate limited ({reply.status_code}) on {url}, waiting {wait:.1f}s "
                            f"(attempt {attempt + 1}/{max_retries + 1})"
                        )
                        await asyncio.sleep(wait)
                    continue

                if 200 <= reply.status_code < 300:
                    return reply.body

                error = FetchError(url, f"HTTP {reply.status_code}", reply.status_code)

            self._stats.errors += 1
            last_error = error
            if attempt < max_retries:
                wait = self.retry_policy.backoff(attempt)
                logger.warning(
                    f"Fetch failed for {url}: {error} "
                    f"(attempt {attempt + 1}/{max_retries + 1}), retrying in {wait:.1f}s"
                )
                await asyncio.sleep(wait)

        logger.error(f"Giving up on {url} after {max_retries + 1} attempts")
        raise last_error or FetchError(url, "Exhausted retries")

    async def close(self) -> None:
        """Close the HTTP client and the browser, if they were started."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        if self._renderer is not None:
            await self._renderer.close()

    async def __aenter__(self) -> ResilientFetcher:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()


def _header(headers: dict[str, str], name: str) -> str | None:
    """Case-insensitive header lookup on a plain dict."""
    for key, value in headers.items():
        if key.lower() == name:
            return value
    return None
