"""Scrape pipeline orchestration for a single listing"""

import logging
from typing import Optional

from exceptions import InvalidInputError, NavigationError
from models import (
    AcquisitionTier,
    ErrorKind,
    ListingMetadata,
    ListingSnapshot,
    ScrapeConfig,
    ScrapeOutcome,
)
from .availability_interceptor import AcquisitionResult, AvailabilityInterceptor
from .metadata_extractor import MetadataExtractor
from .playwright_service import PageNavigator
from .price_parser import extract_currency
from .url_tools import extract_identifier, validate

logger = logging.getLogger(__name__)


class HotelScraperService:
    """Runs the full scrape pipeline for one listing URL"""

    def __init__(self, config: Optional[ScrapeConfig] = None, navigator: Optional[PageNavigator] = None):
        self.config = config or ScrapeConfig()
        self.navigator = navigator or PageNavigator(self.config)
        self.extractor = MetadataExtractor(amenity_cap=self.config.amenity_cap)

    async def scrape(self, url: str) -> ScrapeOutcome:
        """
        Scrape a listing page.

        Process:
        1. Validate the URL and extract the external identifier
        2. Open a browser session with the calendar listener attached
        3. Read metadata from the rendered DOM
        4. Acquire the calendar (intercept, replay, DOM)
        5. Build the snapshot; the session is closed on every path

        Raises:
            InvalidInputError: the URL is not a listing on the target site

        Returns:
            ScrapeOutcome; navigation failures come back as success=False
        """
        if not validate(url):
            raise InvalidInputError(f"Not a valid listing URL: {url}")

        external_id = extract_identifier(url)
        interceptor = AvailabilityInterceptor(self.config, external_id)

        try:
            async with self.navigator.open(url, before_navigation=[interceptor.attach]) as session:
                metadata = await self.extractor.extract(session)
                acquisition = await interceptor.acquire(session.page)
        except NavigationError as e:
            logger.warning(f"Scrape failed for {url}: {e}")
            return ScrapeOutcome(
                success=False,
                message=f"Navigation failed: {e}",
                error_kind=ErrorKind.NAVIGATION,
            )

        snapshot = self._build_snapshot(external_id, metadata, acquisition)
        if snapshot.days:
            message = f"Scraped {len(snapshot.days)} days via {snapshot.source_tier.value}"
        else:
            message = "Scraped metadata; no availability data could be obtained"
        logger.info(f"{url}: {message}")
        return ScrapeOutcome(success=True, message=message, listing=snapshot)

    def _build_snapshot(
        self,
        external_id: Optional[str],
        metadata: ListingMetadata,
        acquisition: AcquisitionResult,
    ) -> ListingSnapshot:
        currency = acquisition.currency
        if not currency and metadata.currency_hint:
            currency = extract_currency(metadata.currency_hint, default=None)
        if not currency:
            currency = self.config.default_currency

        return ListingSnapshot(
            external_id=external_id,
            name=metadata.name,
            location=metadata.location,
            currency=currency,
            rating_overall=metadata.rating_overall,
            rating_location=metadata.rating_location,
            amenities=metadata.amenities,
            days=acquisition.days,
            source_tier=acquisition.tier if acquisition.days else AcquisitionTier.NONE,
        )
