"""Listing URL validation and external identifier extraction"""

import logging
import re
from typing import Optional
from urllib.parse import urlparse, parse_qs

from config import TARGET_HOST, LISTING_PATH_MARKER

logger = logging.getLogger(__name__)

# Query parameters the site uses to carry a numeric hotel id
ID_QUERY_PARAMS = ("highlighted_hotels", "hotel_id")

_LEADING_DIGITS = re.compile(r"^(\d+)")


def validate(url: str, target_host: str = TARGET_HOST) -> bool:
    """
    Check that a URL points at a hotel page on the target site.

    Malformed URLs are reported as invalid, never raised.
    """
    if not url or not isinstance(url, str):
        return False
    try:
        parsed = urlparse(url.strip())
        host = parsed.hostname
    except ValueError:
        return False
    if not host or host != target_host.lower():
        return False
    return LISTING_PATH_MARKER in parsed.path


def extract_identifier(url: str) -> Optional[str]:
    """
    Extract the site-assigned hotel id from a listing URL.

    Tries, in order:
    1. a numeric id query parameter (``highlighted_hotels``, ``hotel_id``)
    2. the leading digits of the slug in ``/hotel/<locale>/<slug>.html``

    Returns:
        The identifier, or None when neither form is present
    """
    if not url:
        return None
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return None

    query = parse_qs(parsed.query)
    for param in ID_QUERY_PARAMS:
        for value in query.get(param, []):
            value = value.strip()
            if value.isdigit():
                return value

    segments = parsed.path.split("/")
    if "hotel" in segments:
        idx = segments.index("hotel")
        if len(segments) > idx + 2:
            slug = segments[idx + 2]
            if slug.endswith(".html"):
                slug = slug[: -len(".html")]
            match = _LEADING_DIGITS.match(slug)
            if match:
                return match.group(1)

    return None
