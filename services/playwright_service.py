"""Playwright page navigator: one isolated, short-lived browser session per scrape"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Optional, Sequence

from playwright.async_api import (
    async_playwright,
    Browser,
    BrowserContext,
    Page,
    Playwright,
    Response,
    Error as PlaywrightError,
    TimeoutError as PlaywrightTimeout,
)
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from config import NAVIGATION_ATTEMPTS
from exceptions import NavigationError
from models import ScrapeConfig

logger = logging.getLogger(__name__)

PageHook = Callable[[Page], Any]


class BrowserSession:
    """
    Owns the Playwright driver, browser, context and page of one scrape.

    All page interactions of a scrape go through this session; it is never
    shared between scrapes. ``close()`` is idempotent.
    """

    def __init__(
        self,
        playwright: Playwright,
        browser: Optional[Browser] = None,
        context: Optional[BrowserContext] = None,
        page: Optional[Page] = None,
    ):
        self._playwright = playwright
        self._browser = browser
        self._context = context
        self.page = page
        self.response: Optional[Response] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self):
        """Release page, context, browser and driver"""
        if self._closed:
            return
        self._closed = True
        for resource in (self.page, self._context, self._browser):
            if resource is None:
                continue
            try:
                await resource.close()
            except PlaywrightError as e:
                logger.debug(f"Ignoring error while closing {type(resource).__name__}: {e}")
        if self._playwright:
            await self._playwright.stop()
        logger.debug("Browser session closed")


class PageNavigator:
    """
    Drives a headless Chromium session to a listing page.

    Features:
    - Isolated browsing context per scrape (user agent, Accept-Language)
    - Configurable headless mode and request timeout
    - Hooks that run against the page before navigation starts
    - Waits for network idle; navigation timeouts are retried once
    - Cookie consent handling
    """

    COOKIE_CONSENT_SELECTORS = [
        '#onetrust-accept-btn-handler',
        'button:has-text("Accept")',
        'button:has-text("Accept all")',
        '[id*="consent"] button',
    ]

    LAUNCH_ARGS = [
        '--disable-blink-features=AutomationControlled',
        '--no-sandbox',
        '--disable-setuid-sandbox',
        '--disable-dev-shm-usage',
        '--disable-gpu',
    ]

    def __init__(self, config: Optional[ScrapeConfig] = None):
        self.config = config or ScrapeConfig()

    async def launch(self) -> BrowserSession:
        """Start the driver and create an isolated page"""
        playwright = await async_playwright().start()
        session = BrowserSession(playwright)
        try:
            session._browser = await playwright.chromium.launch(
                headless=self.config.headless,
                args=self.LAUNCH_ARGS,
            )
            session._context = await session._browser.new_context(
                viewport={'width': 1920, 'height': 1080},
                user_agent=self.config.user_agent,
                extra_http_headers={'Accept-Language': self.config.accept_language},
                locale='en-US',
            )
            session.page = await session._context.new_page()
            session.page.set_default_timeout(self.config.timeout_ms)
        except PlaywrightError as e:
            await session.close()
            raise NavigationError(f"Browser launch failed: {e}") from e
        except BaseException:
            await session.close()
            raise
        return session

    @retry(
        stop=stop_after_attempt(NAVIGATION_ATTEMPTS),
        wait=wait_exponential(multiplier=1, min=1, max=5),
        retry=retry_if_exception_type(PlaywrightTimeout),
        reraise=True,
    )
    async def _goto(self, page: Page, url: str) -> Optional[Response]:
        return await page.goto(url, timeout=self.config.timeout_ms, wait_until='networkidle')

    async def navigate(self, session: BrowserSession, url: str) -> Response:
        """
        Navigate the session's page and wait for network idle.

        Raises:
            NavigationError: on timeout, missing response or non-2xx status
        """
        logger.info(f"Navigating to {url}")
        try:
            response = await self._goto(session.page, url)
        except PlaywrightTimeout as e:
            raise NavigationError(f"Timeout after {self.config.timeout_ms} ms loading {url}") from e
        except PlaywrightError as e:
            raise NavigationError(f"Navigation failed for {url}: {e}") from e

        if response is None:
            raise NavigationError(f"No response received for {url}")
        if not response.ok:
            raise NavigationError(f"HTTP {response.status} for {url}", status=response.status)

        session.response = response
        await self._handle_cookie_consent(session.page)
        return response

    async def _handle_cookie_consent(self, page: Page) -> bool:
        """Try to dismiss the cookie consent banner"""
        for selector in self.COOKIE_CONSENT_SELECTORS:
            try:
                button = page.locator(selector).first
                if await button.is_visible(timeout=1000):
                    await button.click(timeout=2000)
                    logger.debug(f"Clicked cookie consent button: {selector}")
                    return True
            except PlaywrightError:
                continue
        return False

    @asynccontextmanager
    async def open(
        self, url: str, before_navigation: Sequence[PageHook] = ()
    ) -> AsyncIterator[BrowserSession]:
        """
        Open a session on ``url``. The session is closed on every exit path.

        Args:
            url: Listing page URL
            before_navigation: Callables invoked with the page before ``goto``
                (used to register response listeners)
        """
        session = await self.launch()
        try:
            for hook in before_navigation:
                hook(session.page)
            await self.navigate(session, url)
            yield session
        finally:
            await session.close()


def open_session(
    url: str,
    config: Optional[ScrapeConfig] = None,
    before_navigation: Sequence[PageHook] = (),
):
    """Shortcut for ``PageNavigator(config).open(url, before_navigation)``"""
    return PageNavigator(config).open(url, before_navigation)
