"""
Browser Rendering Module
========================

Headless-browser page rendering for JavaScript-heavy retail sites.
The fetcher drives a PageRenderer through its queue so rendered pages
obey the same concurrency, delay and retry policy as plain HTTP.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

PageAction = Callable[[Any], Awaitable[None]]

BROWSER_LAUNCH_ARGS = ["--no-sandbox", "--disable-setuid-sandbox"]


class BrowserError(Exception):
    """A page could not be loaded in the headless browser."""


@dataclass
class RenderedPage:
    """HTML of a rendered page plus the navigation response status."""

    url: str
    status_code: int
    html: str
    headers: dict[str, str] = field(default_factory=dict)


class PageRenderer(ABC):
    """Abstract headless-browser backend."""

    @abstractmethod
    async def render(
        self,
        url: str,
        *,
        user_agent: str,
        headers: dict[str, str],
        wait_for: str | None = None,
        settle_seconds: float = 2.0,
        page_action: PageAction | None = None,
        timeout: float = 30.0,
    ) -> RenderedPage:
        """
        Load a page and return its rendered HTML.

        Args:
            url: Page URL
            user_agent: User-Agent for the browser context
            headers: Extra HTTP headers
            wait_for: Optional CSS selector to wait for (best effort)
            settle_seconds: Extra time for client-side rendering
            page_action: Optional coroutine run against the page before capture
            timeout: Navigation timeout in seconds

        Raises:
            BrowserError: If navigation fails
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release browser resources."""
        pass


class PlaywrightRenderer(PageRenderer):
    """
    Chromium renderer backed by Playwright.

    The browser is launched lazily on first use and shared by all
    pages until close() is called. Each render gets its own context.
    """

    def __init__(self, headless: bool = True) -> None:
        self.headless = headless
        self._playwright: Any = None
        self._browser: Any = None

    async def _ensure_browser(self) -> Any:
        if self._browser is None:
            from playwright.async_api import async_playwright

            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.headless,
                args=BROWSER_LAUNCH_ARGS,
            )
            logger.info("Launched headless Chromium")
        return self._browser

    async def render(
        self,
        url: str,
        *,
        user_agent: str,
        headers: dict[str, str],
        wait_for: str | None = None,
        settle_seconds: float = 2.0,
        page_action: PageAction | None = None,
        timeout: float = 30.0,
    ) -> RenderedPage:
        from playwright.async_api import Error as PlaywrightError
        from playwright.async_api import TimeoutError as PlaywrightTimeoutError

        browser = await self._ensure_browser()
        context = await browser.new_context(
            user_agent=user_agent,
            extra_http_headers=headers,
            viewport={"width": 1366, "height": 768},
        )
        page = await context.new_page()

        try:
            response = await page.goto(
                url, wait_until="domcontentloaded", timeout=timeout * 1000
            )

            if wait_for:
                try:
                    await page.wait_for_selector(wait_for, timeout=15000)
                except PlaywrightTimeoutError:
                    logger.debug(f"Selector '{wait_for}' did not appear on {url}")

            if settle_seconds > 0:
                await page.wait_for_timeout(settle_seconds * 1000)

            if page_action is not None:
                await page_action(page)

            html = await page.content()
            status = response.status if response is not None else 200
            response_headers = dict(response.headers) if response is not None else {}
            return RenderedPage(url=url, status_code=status, html=html, headers=response_headers)

        except PlaywrightError as e:
            raise BrowserError(f"Failed to render {url}: {e}") from e
        finally:
            await page.close()
            await context.close()

    async def close(self) -> None:
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
