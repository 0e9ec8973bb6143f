"""Services for the Hotel Rate Monitor API"""

from .hotel_scraper import HotelScraperService
from .listing_repository import ListingRepository
from .listing_service import ListingService
from .metadata_extractor import MetadataExtractor
from .availability_interceptor import AvailabilityInterceptor
from .playwright_service import PageNavigator, BrowserSession
from .scrape_queue_service import ScrapeQueueService

__all__ = [
    "HotelScraperService",
    "ListingRepository",
    "ListingService",
    "MetadataExtractor",
    "AvailabilityInterceptor",
    "PageNavigator",
    "BrowserSession",
    "ScrapeQueueService",
]
