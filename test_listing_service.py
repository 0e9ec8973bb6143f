"""Tests for registration, rescrapes and history import"""

import asyncio
from datetime import date

import pytest

from conftest import LISTING_URL, OTHER_LISTING_URL
from exceptions import InvalidInputError, PersistenceError
from models import (
    AcquisitionTier,
    AvailabilityDay,
    ErrorKind,
    HistoryRow,
    ListingSnapshot,
    ScrapeOutcome,
)
from services.listing_service import ListingService


class StubScraper:
    """Returns a canned snapshot per URL after a short, URL-specific delay"""

    def __init__(self, prices=None, delays=None, error=None):
        self.prices = prices or {}
        self.delays = delays or {}
        self.error = error
        self.calls = []

    async def scrape(self, url):
        self.calls.append(url)
        await asyncio.sleep(self.delays.get(url, 0))
        if self.error is not None:
            raise self.error
        price = self.prices.get(url, 100)
        snapshot = ListingSnapshot(
            external_id=url.rsplit("/", 1)[-1][:6],
            name=f"Hotel {price}",
            currency="EUR",
            days=[
                AvailabilityDay(checkin="2024-01-01", price=price, available=True),
                AvailabilityDay(checkin="2024-01-02", price=price + 1, available=True),
            ],
            source_tier=AcquisitionTier.INTERCEPT,
        )
        return ScrapeOutcome(success=True, message="Scraped 2 days", listing=snapshot)


class StubQueue:
    def __init__(self):
        self.jobs = []

    async def enqueue(self, listing_id, url):
        self.jobs.append((listing_id, url))


class TestRegisterListing:
    async def test_new_listing_is_queued(self, repository):
        queue = StubQueue()
        service = ListingService(repository, StubScraper(), queue)

        result = await service.register_listing(LISTING_URL)

        assert result.accepted is True
        assert result.listing.source_url == LISTING_URL
        assert queue.jobs == [(result.listing.id, LISTING_URL)]

    async def test_duplicate_is_not_accepted(self, repository):
        queue = StubQueue()
        service = ListingService(repository, StubScraper(), queue)
        first = await service.register_listing(LISTING_URL)

        second = await service.register_listing(LISTING_URL)

        assert second.accepted is False
        assert second.reason == "Listing already registered"
        assert second.listing.id == first.listing.id
        assert len(queue.jobs) == 1

    async def test_invalid_url(self, repository):
        service = ListingService(repository, StubScraper(), StubQueue())
        with pytest.raises(InvalidInputError):
            await service.register_listing("https://www.example.com/hotel/x.html")
        assert await service.list_listings() == []


class TestRunScrape:
    async def test_success_is_persisted(self, repository):
        service = ListingService(repository, StubScraper(prices={LISTING_URL: 150}))
        registered = await service.register_listing(LISTING_URL)

        outcome = await service.request_rescrape(registered.listing.id)

        assert outcome.success
        assert outcome.listing_id == registered.listing.id
        listing = await service.get_listing(registered.listing.id)
        assert listing.name == "Hotel 150"
        points = await service.get_price_points(listing.id)
        assert [p.price for p in points] == [150, 151]

    async def test_unknown_listing(self, repository):
        service = ListingService(repository, StubScraper())
        outcome = await service.run_scrape(42)
        assert outcome.success is False
        assert outcome.error_kind == ErrorKind.NOT_FOUND

    async def test_scraper_crash_becomes_failed_outcome(self, repository):
        service = ListingService(repository, StubScraper(error=ValueError("bad markup")))
        registered = await service.register_listing(LISTING_URL)

        outcome = await service.run_scrape(registered.listing.id)

        assert outcome.success is False
        assert outcome.error_kind == ErrorKind.UNEXPECTED
        assert outcome.retryable
        listing = await service.get_listing(registered.listing.id)
        assert listing.scrape_status == "error"

    async def test_persistence_failure_is_reported(self, repository, monkeypatch):
        service = ListingService(repository, StubScraper())
        registered = await service.register_listing(LISTING_URL)

        def reject(listing_id, outcome):
            raise PersistenceError("database is locked")

        monkeypatch.setattr(repository, "apply_scrape_result", reject)

        outcome = await service.run_scrape(registered.listing.id)

        assert outcome.success is False
        assert outcome.error_kind == ErrorKind.PERSISTENCE
        assert "preserved" in outcome.message
        assert outcome.listing is not None

    async def test_concurrent_rescrapes_do_not_interfere(self, repository):
        scraper = StubScraper(
            prices={LISTING_URL: 150, OTHER_LISTING_URL: 80},
            delays={LISTING_URL: 0.05, OTHER_LISTING_URL: 0.01},
        )
        service = ListingService(repository, scraper)
        first = await service.register_listing(LISTING_URL)
        second = await service.register_listing(OTHER_LISTING_URL)

        outcomes = await asyncio.gather(
            service.request_rescrape(first.listing.id),
            service.request_rescrape(second.listing.id),
        )

        assert all(o.success for o in outcomes)
        first_prices = [p.price for p in await service.get_price_points(first.listing.id)]
        second_prices = [p.price for p in await service.get_price_points(second.listing.id)]
        assert first_prices == [150, 151]
        assert second_prices == [80, 81]
        assert (await service.get_listing(first.listing.id)).name == "Hotel 150"
        assert (await service.get_listing(second.listing.id)).name == "Hotel 80"


class TestHistoryImport:
    async def test_import_and_list(self, repository):
        service = ListingService(repository, StubScraper())
        rows = [
            HistoryRow(date=date(2024, 1, 2), price_applied=130, reservations=4),
            HistoryRow(date=date(2024, 1, 1), price_applied=120, reservations=6),
        ]

        assert await service.import_historical_records(rows) == 2

        history = await service.list_history()
        assert [r.date for r in history] == [date(2024, 1, 1), date(2024, 1, 2)]
