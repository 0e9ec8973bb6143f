"""Pydantic models for the Hotel Rate Monitor API"""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import date, datetime
from enum import Enum

from config import (
    SCRAPE_MONTHS,
    SCRAPE_HEADLESS,
    SCRAPE_TIMEOUT_MS,
    USER_AGENT,
    ACCEPT_LANGUAGE,
    INTERCEPT_GRACE_MS,
    AMENITY_CAP,
    DEFAULT_CURRENCY,
)


class ScrapeStatus(str, Enum):
    PENDING = "pending"  # Registered, first scrape not finished
    OK = "ok"
    ERROR = "error"


class AcquisitionTier(str, Enum):
    """Which calendar acquisition strategy produced the price data"""
    INTERCEPT = "intercept"
    REPLAY = "replay"
    DOM = "dom"
    NONE = "none"


class ErrorKind(str, Enum):
    INVALID_INPUT = "invalid_input"
    NAVIGATION = "navigation"
    PERSISTENCE = "persistence"
    NOT_FOUND = "not_found"
    UNEXPECTED = "unexpected"


class ScrapeConfig(BaseModel):
    """Options for a single scrape attempt"""
    months: int = Field(SCRAPE_MONTHS, ge=1, le=12, description="Months of calendar to request")
    headless: bool = SCRAPE_HEADLESS
    timeout_ms: int = Field(SCRAPE_TIMEOUT_MS, gt=0)
    user_agent: str = USER_AGENT
    accept_language: str = ACCEPT_LANGUAGE
    grace_ms: int = Field(INTERCEPT_GRACE_MS, ge=0, description="Wait after load for an intercepted calendar response")
    amenity_cap: Optional[int] = Field(AMENITY_CAP, ge=0)
    default_currency: str = DEFAULT_CURRENCY


class AvailabilityDay(BaseModel):
    """One night of the availability calendar"""
    checkin: str = Field(..., description="Check-in date, YYYY-MM-DD")
    price: float = 0.0
    available: bool = False
    min_length_of_stay: Optional[int] = None


class ListingMetadata(BaseModel):
    """Descriptive fields read from the rendered listing page"""
    name: Optional[str] = None
    location: Optional[str] = None
    rating_overall: Optional[float] = None
    rating_location: Optional[float] = None
    amenities: List[str] = Field(default_factory=list)
    currency_hint: Optional[str] = None  # Raw text of the first visible price


class ListingSnapshot(BaseModel):
    """Everything a scrape attempt managed to read for one listing"""
    external_id: Optional[str] = None
    name: Optional[str] = None
    location: Optional[str] = None
    currency: Optional[str] = None
    rating_overall: Optional[float] = None
    rating_location: Optional[float] = None
    amenities: List[str] = Field(default_factory=list)
    days: List[AvailabilityDay] = Field(default_factory=list)
    source_tier: AcquisitionTier = AcquisitionTier.NONE


class ScrapeOutcome(BaseModel):
    """Result of one scrape attempt"""
    success: bool
    message: str
    listing: Optional[ListingSnapshot] = None
    error_kind: Optional[ErrorKind] = None
    listing_id: Optional[int] = None

    @property
    def retryable(self) -> bool:
        return not self.success and self.error_kind in (
            ErrorKind.NAVIGATION,
            ErrorKind.PERSISTENCE,
            ErrorKind.UNEXPECTED,
        )


class RegisterListingRequest(BaseModel):
    """Request model for registering a competitor listing"""
    url: str = Field(..., description="Booking.com hotel page URL")

    class Config:
        json_schema_extra = {
            "example": {
                "url": "https://www.booking.com/hotel/fr/123456-le-petit-hotel.html"
            }
        }


class ListingResponse(BaseModel):
    """A monitored listing as stored"""
    id: int
    source_url: str
    external_id: Optional[str] = None
    name: Optional[str] = None
    location: Optional[str] = None
    currency: Optional[str] = None
    rating_overall: Optional[float] = None
    rating_location: Optional[float] = None
    amenities: List[str] = Field(default_factory=list)
    scrape_status: ScrapeStatus = ScrapeStatus.PENDING
    last_error: Optional[str] = None
    last_scraped_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class RegisterListingResponse(BaseModel):
    accepted: bool
    reason: Optional[str] = None
    listing: Optional[ListingResponse] = None


class PricePointResponse(BaseModel):
    check_in_date: date
    price: float
    available: bool
    min_length_of_stay: Optional[int] = None
    captured_at: datetime

    class Config:
        from_attributes = True


class HistoryRow(BaseModel):
    """One day of our own hotel's pricing history"""
    date: date
    price_applied: float = Field(..., ge=0)
    reservations: int = Field(..., ge=0)


class HistoryRowResponse(HistoryRow):
    id: int
    created_at: datetime

    class Config:
        from_attributes = True


class ImportHistoryResponse(BaseModel):
    imported: int


class ScrapeJobResponse(BaseModel):
    """A single scrape job record"""
    id: str
    listing_id: int
    url: str
    status: str = "pending"
    attempt_count: int = 0
    max_attempts: int = 3
    created_at: str
    last_attempt_at: Optional[str] = None
    next_retry_at: Optional[str] = None
    last_error: Optional[str] = None
    last_message: Optional[str] = None


class QueueStatsResponse(BaseModel):
    """Scrape queue statistics"""
    queue_size: int
    pending: int
    running: int
    history_size: int
    total_succeeded: int
    total_exhausted: int
    storage: str
    max_attempts: int
    backoff_base_seconds: float
    workers: int


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str
    database: str
    job_storage: str = "in-memory"
