"""Tests for browser session lifecycle and page navigation (no real browser)"""

import pytest
from playwright.async_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeout
from tenacity import wait_none

from conftest import LISTING_URL
from exceptions import NavigationError
from services.playwright_service import BrowserSession, PageNavigator, open_session


class Closable:
    def __init__(self, error=None):
        self.error = error
        self.close_calls = 0

    async def close(self):
        self.close_calls += 1
        if self.error:
            raise self.error


class FakeDriver:
    def __init__(self):
        self.stopped = 0

    async def stop(self):
        self.stopped += 1


class HiddenLocator:
    @property
    def first(self):
        return self

    async def is_visible(self, timeout=None):
        return False


class NavResponse:
    def __init__(self, status):
        self.status = status

    @property
    def ok(self):
        return 200 <= self.status < 300


class NavPage(Closable):
    """Page whose goto() plays back a list of results (responses or exceptions)"""

    def __init__(self, *results):
        super().__init__()
        self.results = list(results)
        self.goto_calls = []
        self.listeners = []

    def on(self, event, handler):
        self.listeners.append((event, handler))

    async def goto(self, url, timeout=None, wait_until=None):
        self.goto_calls.append((url, wait_until))
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    def locator(self, selector):
        return HiddenLocator()


def _session(page):
    return BrowserSession(FakeDriver(), Closable(), Closable(), page)


@pytest.fixture(autouse=True)
def no_retry_wait(monkeypatch):
    monkeypatch.setattr(PageNavigator._goto.retry, "wait", wait_none())


class TestBrowserSession:
    async def test_close_releases_everything_once(self):
        session = _session(NavPage())

        await session.close()
        await session.close()

        assert session.closed
        assert session.page.close_calls == 1
        assert session._context.close_calls == 1
        assert session._browser.close_calls == 1
        assert session._playwright.stopped == 1

    async def test_close_tolerates_already_closed_browser(self):
        session = BrowserSession(FakeDriver(), Closable(PlaywrightError("Browser has been closed")), None, None)

        await session.close()

        assert session._playwright.stopped == 1


class TestNavigate:
    async def test_success(self, scrape_config):
        page = NavPage(NavResponse(200))
        session = _session(page)

        response = await PageNavigator(scrape_config).navigate(session, LISTING_URL)

        assert response.status == 200
        assert session.response is response
        assert page.goto_calls == [(LISTING_URL, "networkidle")]

    async def test_non_success_status(self, scrape_config):
        session = _session(NavPage(NavResponse(503)))

        with pytest.raises(NavigationError) as exc_info:
            await PageNavigator(scrape_config).navigate(session, LISTING_URL)

        assert exc_info.value.status == 503

    async def test_missing_response(self, scrape_config):
        with pytest.raises(NavigationError):
            await PageNavigator(scrape_config).navigate(_session(NavPage(None)), LISTING_URL)

    async def test_timeout_is_retried_once(self, scrape_config):
        page = NavPage(PlaywrightTimeout("Timeout 30000ms exceeded"), NavResponse(200))

        await PageNavigator(scrape_config).navigate(_session(page), LISTING_URL)

        assert len(page.goto_calls) == 2

    async def test_repeated_timeout(self, scrape_config):
        page = NavPage(PlaywrightTimeout("Timeout"), PlaywrightTimeout("Timeout"))

        with pytest.raises(NavigationError, match="Timeout"):
            await PageNavigator(scrape_config).navigate(_session(page), LISTING_URL)

    async def test_network_error_is_not_retried(self, scrape_config):
        page = NavPage(PlaywrightError("net::ERR_NAME_NOT_RESOLVED"), NavResponse(200))

        with pytest.raises(NavigationError):
            await PageNavigator(scrape_config).navigate(_session(page), LISTING_URL)

        assert len(page.goto_calls) == 1


class StubLaunchNavigator(PageNavigator):
    def __init__(self, config, page):
        super().__init__(config)
        self.page = page
        self.session = None

    async def launch(self):
        self.session = _session(self.page)
        return self.session


class TestOpen:
    async def test_hooks_run_before_navigation_and_session_closes(self, scrape_config):
        page = NavPage(NavResponse(200))
        navigator = StubLaunchNavigator(scrape_config, page)
        seen = []

        async with navigator.open(LISTING_URL, before_navigation=[lambda p: seen.append(list(p.goto_calls))]) as session:
            assert not session.closed

        assert seen == [[]]
        assert navigator.session.closed

    async def test_session_closed_on_navigation_failure(self, scrape_config):
        navigator = StubLaunchNavigator(scrape_config, NavPage(NavResponse(404)))

        with pytest.raises(NavigationError):
            async with navigator.open(LISTING_URL):
                pass

        assert navigator.session.closed

    async def test_open_session_shortcut(self, scrape_config, monkeypatch):
        page = NavPage(NavResponse(200))
        sessions = []

        async def launch(self):
            sessions.append(_session(page))
            return sessions[-1]

        monkeypatch.setattr(PageNavigator, "launch", launch)

        async with open_session(LISTING_URL, scrape_config) as session:
            assert session.page is page

        assert sessions[0].closed
