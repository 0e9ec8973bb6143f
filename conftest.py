"""Shared fixtures: fake browser objects, canned payloads and a throwaway database"""

from contextlib import asynccontextmanager
from typing import List, Optional

import pytest

from db import create_db_engine, init_db, make_session_factory
from models import ScrapeConfig
from services.listing_repository import ListingRepository

LISTING_URL = "https://www.booking.com/hotel/fr/123456-le-petit-hotel.html"
OTHER_LISTING_URL = "https://www.booking.com/hotel/es/789012-casa-azul.html"

CALENDAR_PAYLOAD = {
    "data": {
        "availabilityCalendar": {
            "hotelId": 123456,
            "days": [
                {"checkin": "2024-01-01", "avgPriceFormatted": "€150", "available": True, "minLengthOfStay": 1},
                {"checkin": "2024-01-02", "avgPriceFormatted": "€1.2K", "available": False},
            ],
        }
    }
}

LISTING_HTML = """
<html><body>
  <h2 data-testid="title">Le Petit Hotel</h2>
  <span data-testid="address">12 Rue de la Paix, 75002 Paris, France</span>
  <div data-testid="review-score-component"><span class="bui-review-score__badge">8,7</span></div>
  <div data-testid="location-score"><span class="bui-review-score__badge">9.4</span></div>
  <div class="hotel-facilities-group">
    <div class="bui-list__description">Free WiFi</div>
    <div class="bui-list__description">Non-smoking rooms</div>
    <div class="bui-list__description">Airport shuttle</div>
  </div>
  <div data-testid="price-and-discounted-price">£212</div>
</body></html>
"""

CALENDAR_HTML = """
<html><body>
  <table><tr>
    <td data-date="2024-03-01" class="bui-calendar__date"><span class="bui-calendar__price">€99</span></td>
    <td data-date="2024-03-02" class="bui-calendar__date bui-calendar__date--disabled"><span class="bui-calendar__price">€105</span></td>
    <td data-date="2024-03-03" class="bui-calendar__date"></td>
  </tr></table>
</body></html>
"""


class FakeRequest:
    def __init__(self, post_data: Optional[str] = None):
        self.post_data = post_data


class FakeResponse:
    """Stands in for a Playwright network response"""

    def __init__(self, url: str, payload=None, post_data: Optional[str] = None, status: int = 200):
        self.url = url
        self.request = FakeRequest(post_data)
        self.status = status
        self._payload = payload

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    async def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakePage:
    """Stands in for a Playwright page: event listeners, content() and evaluate()"""

    def __init__(self, html: str = "", evaluate_result=None):
        self.html = html
        self.evaluate_result = evaluate_result
        self.evaluate_calls: List[tuple] = []
        self._listeners = {}

    def on(self, event: str, handler):
        self._listeners.setdefault(event, []).append(handler)

    def emit(self, event: str, *args):
        for handler in self._listeners.get(event, []):
            handler(*args)

    async def content(self) -> str:
        if isinstance(self.html, Exception):
            raise self.html
        return self.html

    async def evaluate(self, script: str, arg=None):
        self.evaluate_calls.append((script, arg))
        if isinstance(self.evaluate_result, Exception):
            raise self.evaluate_result
        return self.evaluate_result


class FakeSession:
    def __init__(self, page: FakePage):
        self.page = page
        self.closed = False

    async def close(self):
        self.closed = True


class FakeNavigator:
    """
    Replaces PageNavigator: runs the before-navigation hooks against a fake
    page, then emits the given network responses as if the page issued them.
    """

    def __init__(self, page: FakePage, responses=(), error: Exception = None):
        self.page = page
        self.responses = list(responses)
        self.error = error
        self.sessions: List[FakeSession] = []

    @asynccontextmanager
    async def open(self, url, before_navigation=()):
        session = FakeSession(self.page)
        self.sessions.append(session)
        try:
            for hook in before_navigation:
                hook(session.page)
            if self.error is not None:
                raise self.error
            for response in self.responses:
                session.page.emit("response", response)
            yield session
        finally:
            await session.close()


@pytest.fixture
def scrape_config():
    """Short grace window so interception misses resolve quickly"""
    return ScrapeConfig(grace_ms=50, months=2)


@pytest.fixture
def session_factory(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'monitor.db'}")
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def repository(session_factory):
    return ListingRepository(session_factory)
