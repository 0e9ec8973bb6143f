"""Hotel metadata extraction from the rendered listing page.

Each field is resolved by an ordered list of probes. A probe is a pure function
over the parsed document that returns a value or None; the first non-empty
value wins and a field nobody resolves is left absent.
"""

import logging
import re
from typing import Any, Callable, List, Optional, Sequence

from bs4 import BeautifulSoup

from config import AMENITY_CAP
from models import ListingMetadata

logger = logging.getLogger(__name__)

Probe = Callable[[BeautifulSoup], Any]

NAME_SELECTORS = [
    'h2[data-testid="title"]',
    'h1[data-testid="title"]',
    '#hp_hotel_name',
    'h1[data-testid="property-header-name"]',
    '.hp__hotel-name',
]

LOCATION_SELECTORS = [
    '[data-testid="property-location"]',
    '[data-testid="address"]',
    '.hp_address_subtitle',
    '.hp__hotel-address',
    '.hp__hotel-location',
]

RATING_SELECTORS = [
    'div[data-testid="review-score-component"] span.bui-review-score__badge',
    '[data-testid="review-score-component"] .bui-review-score__badge',
    '.bui-review-score__badge',
    '.review-score-badge',
]

LOCATION_RATING_SELECTORS = [
    '[data-testid="location-score"] .bui-review-score__badge',
    '[data-testid="location-score"]',
    '.location-score',
]

AMENITY_SELECTORS = [
    'div.hotel-facilities-group div.bui-list__description',
    '[data-testid="facilities"] .bui-list__description',
    '.hotel-facilities .bui-list__description',
    '[data-testid="facility"]',
]

PRICE_HINT_SELECTORS = [
    '[data-testid="price-and-discounted-price"]',
    '.bui-price-display__value',
    '.prco-valign-middle-helper',
]

_NUMBER = re.compile(r"\d+(?:\.\d+)?")
_WHITESPACE = re.compile(r"\s+")


def _clean(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    text = _WHITESPACE.sub(" ", text).strip()
    return text or None


def parse_rating(text: Optional[str]) -> Optional[float]:
    """Read a 0-10 score, accepting a decimal comma. Anything else is discarded."""
    if not text:
        return None
    match = _NUMBER.search(text.replace(",", "."))
    if not match:
        return None
    value = float(match.group(0))
    if 0.0 <= value <= 10.0:
        return value
    return None


def text_probe(selector: str) -> Probe:
    def probe(soup: BeautifulSoup) -> Optional[str]:
        element = soup.select_one(selector)
        return _clean(element.get_text(" ")) if element else None
    return probe


def rating_probe(selector: str) -> Probe:
    def probe(soup: BeautifulSoup) -> Optional[float]:
        element = soup.select_one(selector)
        return parse_rating(element.get_text(" ")) if element else None
    return probe


def list_probe(selector: str) -> Probe:
    """All non-empty texts under one selector; None when nothing matches."""
    def probe(soup: BeautifulSoup) -> Optional[List[str]]:
        values = [_clean(el.get_text(" ")) for el in soup.select(selector)]
        values = [v for v in values if v]
        return values or None
    return probe


def first_match(probes: Sequence[Probe], soup: BeautifulSoup) -> Any:
    """Run probes in order and return the first non-empty result."""
    for probe in probes:
        value = probe(soup)
        if value is not None and value != [] and value != "":
            return value
    return None


NAME_PROBES = [text_probe(s) for s in NAME_SELECTORS]
LOCATION_PROBES = [text_probe(s) for s in LOCATION_SELECTORS]
RATING_PROBES = [rating_probe(s) for s in RATING_SELECTORS]
LOCATION_RATING_PROBES = [rating_probe(s) for s in LOCATION_RATING_SELECTORS]
AMENITY_PROBES = [list_probe(s) for s in AMENITY_SELECTORS]
PRICE_HINT_PROBES = [text_probe(s) for s in PRICE_HINT_SELECTORS]


def extract_from_html(html: Optional[str], amenity_cap: Optional[int] = AMENITY_CAP) -> ListingMetadata:
    """
    Extract listing metadata from page HTML.

    Args:
        html: Rendered page markup
        amenity_cap: Maximum number of amenities kept (None for no cap)

    Returns:
        ListingMetadata with whatever fields could be read
    """
    if not html:
        logger.warning("Metadata extraction: empty page content")
        return ListingMetadata()

    soup = BeautifulSoup(html, 'lxml')

    amenities = first_match(AMENITY_PROBES, soup) or []
    if amenity_cap is not None:
        amenities = amenities[:amenity_cap]

    metadata = ListingMetadata(
        name=first_match(NAME_PROBES, soup),
        location=first_match(LOCATION_PROBES, soup),
        rating_overall=first_match(RATING_PROBES, soup),
        rating_location=first_match(LOCATION_RATING_PROBES, soup),
        amenities=amenities,
        currency_hint=first_match(PRICE_HINT_PROBES, soup),
    )

    missing = [
        field for field in ("name", "location", "rating_overall", "rating_location")
        if getattr(metadata, field) is None
    ]
    if not metadata.amenities:
        missing.append("amenities")
    if missing:
        logger.warning(f"Metadata extraction: could not resolve {', '.join(missing)}")

    return metadata


class MetadataExtractor:
    """Reads hotel metadata from an open browser session. Never raises."""

    def __init__(self, amenity_cap: Optional[int] = AMENITY_CAP):
        self.amenity_cap = amenity_cap

    async def extract(self, session) -> ListingMetadata:
        try:
            html = await session.page.content()
        except Exception as e:
            logger.warning(f"Metadata extraction: could not read page content: {e}")
            return ListingMetadata()
        return extract_from_html(html, self.amenity_cap)
