"""Inbound operations: listing registration, rescrapes and history import"""

import asyncio
import logging
from datetime import date
from typing import List, Optional, TYPE_CHECKING

from exceptions import InvalidInputError, PersistenceError
from models import (
    ErrorKind,
    HistoryRow,
    ListingResponse,
    RegisterListingResponse,
    ScrapeOutcome,
)
from .hotel_scraper import HotelScraperService
from .listing_repository import ListingRepository
from .url_tools import validate

if TYPE_CHECKING:
    from .scrape_queue_service import ScrapeQueueService

logger = logging.getLogger(__name__)


class ListingService:
    """Connects the scrape pipeline, the persistence adapter and the worker queue"""

    def __init__(
        self,
        repository: ListingRepository,
        scraper: HotelScraperService,
        queue: Optional["ScrapeQueueService"] = None,
    ):
        self.repository = repository
        self.scraper = scraper
        self.queue = queue

    async def register_listing(self, url: str) -> RegisterListingResponse:
        """
        Register a listing and hand its first scrape to the worker queue.

        Returns immediately; the scrape completes in the background.

        Raises:
            InvalidInputError: the URL is not a listing on the target site
        """
        url = (url or "").strip()
        if not validate(url):
            raise InvalidInputError(f"Not a valid listing URL: {url}")

        listing, is_new = await asyncio.to_thread(self.repository.upsert_listing, url)
        if not is_new:
            return RegisterListingResponse(
                accepted=False,
                reason="Listing already registered",
                listing=ListingResponse.model_validate(listing),
            )

        if self.queue is not None:
            await self.queue.enqueue(listing.id, url)
        else:
            logger.warning(f"No scrape queue configured; listing {listing.id} stays pending")

        return RegisterListingResponse(
            accepted=True,
            reason="Listing registered. Scraping in progress...",
            listing=ListingResponse.model_validate(listing),
        )

    async def request_rescrape(self, listing_id: int) -> ScrapeOutcome:
        """Scrape a registered listing now and wait for the outcome"""
        return await self.run_scrape(listing_id)

    async def run_scrape(self, listing_id: int) -> ScrapeOutcome:
        """
        Scrape one listing and reconcile the result with stored state.

        Used both for explicit rescrapes and by the background workers.
        """
        listing = await asyncio.to_thread(self.repository.get_listing, listing_id)
        if listing is None:
            return ScrapeOutcome(
                success=False,
                message="Listing not found",
                error_kind=ErrorKind.NOT_FOUND,
                listing_id=listing_id,
            )

        try:
            outcome = await self.scraper.scrape(listing.source_url)
        except InvalidInputError as e:
            outcome = ScrapeOutcome(success=False, message=str(e), error_kind=ErrorKind.INVALID_INPUT)
        except Exception as e:
            logger.exception(f"Listing {listing_id}: scrape crashed")
            outcome = ScrapeOutcome(
                success=False,
                message=f"Unexpected scrape error: {e}",
                error_kind=ErrorKind.UNEXPECTED,
            )
        outcome.listing_id = listing_id

        try:
            await asyncio.to_thread(self.repository.apply_scrape_result, listing_id, outcome)
        except PersistenceError as e:
            logger.error(f"Listing {listing_id}: {e}")
            return ScrapeOutcome(
                success=False,
                message=f"{e}. Previously stored data was preserved.",
                listing=outcome.listing,
                error_kind=ErrorKind.PERSISTENCE,
                listing_id=listing_id,
            )
        return outcome

    async def import_historical_records(self, rows: List[HistoryRow]) -> int:
        """Bulk replace our own hotel's pricing history"""
        return await asyncio.to_thread(self.repository.replace_history, rows)

    async def list_listings(self):
        return await asyncio.to_thread(self.repository.list_listings)

    async def get_listing(self, listing_id: int):
        return await asyncio.to_thread(self.repository.get_listing, listing_id)

    async def delete_listing(self, listing_id: int) -> bool:
        return await asyncio.to_thread(self.repository.delete_listing, listing_id)

    async def get_price_points(self, listing_id: int, start: Optional[date] = None, end: Optional[date] = None):
        return await asyncio.to_thread(self.repository.get_price_points, listing_id, start, end)

    async def list_history(self):
        return await asyncio.to_thread(self.repository.list_history)
