"""Tests for the single-listing scrape pipeline"""

import pytest

from conftest import CALENDAR_PAYLOAD, LISTING_HTML, LISTING_URL, FakeNavigator, FakePage, FakeResponse
from exceptions import InvalidInputError, NavigationError
from models import AcquisitionTier, ErrorKind
from services.hotel_scraper import HotelScraperService

CALENDAR_RESPONSE = FakeResponse(
    "https://www.booking.com/dml/graphql",
    CALENDAR_PAYLOAD,
    post_data='{"operationName":"AvailabilityCalendar"}',
)


def _scraper(scrape_config, navigator):
    return HotelScraperService(config=scrape_config, navigator=navigator)


class TestHotelScraper:
    async def test_full_scrape(self, scrape_config):
        navigator = FakeNavigator(FakePage(LISTING_HTML), responses=[CALENDAR_RESPONSE])

        outcome = await _scraper(scrape_config, navigator).scrape(LISTING_URL)

        assert outcome.success is True
        snapshot = outcome.listing
        assert snapshot.external_id == "123456"
        assert snapshot.name == "Le Petit Hotel"
        assert snapshot.rating_overall == 8.7
        assert snapshot.source_tier == AcquisitionTier.INTERCEPT
        assert [(d.checkin, d.price) for d in snapshot.days] == [("2024-01-01", 150), ("2024-01-02", 1200)]
        assert snapshot.currency == "EUR"
        assert navigator.sessions[0].closed

    async def test_invalid_url_never_opens_a_session(self, scrape_config):
        navigator = FakeNavigator(FakePage())

        with pytest.raises(InvalidInputError):
            await _scraper(scrape_config, navigator).scrape("https://www.example.com/hotel/x.html")

        assert navigator.sessions == []

    async def test_navigation_failure_is_a_failed_outcome(self, scrape_config):
        navigator = FakeNavigator(FakePage(), error=NavigationError("HTTP 503", status=503))

        outcome = await _scraper(scrape_config, navigator).scrape(LISTING_URL)

        assert outcome.success is False
        assert outcome.error_kind == ErrorKind.NAVIGATION
        assert outcome.retryable
        assert "HTTP 503" in outcome.message
        assert navigator.sessions[0].closed

    async def test_no_calendar_data_is_still_success(self, scrape_config):
        page = FakePage(LISTING_HTML, evaluate_result={"ok": False, "status": 403, "body": None})
        navigator = FakeNavigator(page)

        outcome = await _scraper(scrape_config, navigator).scrape(LISTING_URL)

        assert outcome.success is True
        assert outcome.listing.days == []
        assert outcome.listing.source_tier == AcquisitionTier.NONE
        assert outcome.listing.name == "Le Petit Hotel"
        # Currency falls back to the page price hint
        assert outcome.listing.currency == "GBP"
        assert navigator.sessions[0].closed

    async def test_default_currency(self, scrape_config):
        page = FakePage("<html><body><h1 id='hp_hotel_name'>Bare</h1></body></html>")
        navigator = FakeNavigator(page)

        outcome = await _scraper(scrape_config, navigator).scrape(LISTING_URL)

        assert outcome.listing.currency == scrape_config.default_currency

    async def test_session_closed_when_pipeline_crashes(self, scrape_config):
        navigator = FakeNavigator(FakePage(LISTING_HTML))
        scraper = _scraper(scrape_config, navigator)

        async def crash(session):
            raise RuntimeError("renderer crashed")

        scraper.extractor.extract = crash

        with pytest.raises(RuntimeError):
            await scraper.scrape(LISTING_URL)

        assert navigator.sessions[0].closed
