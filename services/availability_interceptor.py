"""Availability calendar acquisition.

Nightly prices come from the site's internal GraphQL calendar API. Three tiers
are tried in priority order and the acquisition is modelled as an explicit
state machine:

    INTERCEPTING -> REPLAYING -> DOM_FALLBACK -> DONE

INTERCEPTING observes calendar responses the page issues on its own,
REPLAYING re-issues the calendar query from inside the page (so it carries the
page's cookies), DOM_FALLBACK reads calendar widgets from the rendered markup.
Any tier that yields days moves straight to DONE.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, List, Optional

from bs4 import BeautifulSoup

from config import CALENDAR_API_PATH
from exceptions import ReplayError
from models import AcquisitionTier, AvailabilityDay, ScrapeConfig
from .price_parser import extract_currency, parse_price

logger = logging.getLogger(__name__)


class AcquisitionState(str, Enum):
    INTERCEPTING = "intercepting"
    REPLAYING = "replaying"
    DOM_FALLBACK = "dom_fallback"
    DONE = "done"


@dataclass
class AcquisitionResult:
    """Terminal DONE state: which tier succeeded and the days it produced"""
    tier: AcquisitionTier
    days: List[AvailabilityDay] = field(default_factory=list)
    currency: Optional[str] = None
    transitions: List[AcquisitionState] = field(default_factory=list)


@dataclass
class RawDay:
    """A calendar entry before price normalisation"""
    checkin: Any
    price: Optional[str]
    available: bool
    min_length_of_stay: Optional[int] = None


CALENDAR_QUERY = """
query AvailabilityCalendarQuery($hotelId: Int!, $startDate: String!, $months: Int!) {
  availabilityCalendar(hotelId: $hotelId, startDate: $startDate, months: $months) {
    hotelId
    days {
      checkin
      avgPriceFormatted
      available
      minLengthOfStay
    }
  }
}
"""

# Runs inside the page; returns {ok, status, body} and never throws
REPLAY_SCRIPT = """
async ({ apiPath, query, variables }) => {
  try {
    const response = await fetch(apiPath, {
      method: 'POST',
      credentials: 'include',
      headers: { 'Content-Type': 'application/json', 'Accept': 'application/json' },
      body: JSON.stringify({ operationName: 'AvailabilityCalendarQuery', variables, query }),
    });
    let body = null;
    try { body = await response.json(); } catch (e) { body = null; }
    return { ok: response.ok, status: response.status, body };
  } catch (e) {
    return { ok: false, status: 0, body: null, error: String(e) };
  }
}
"""

CALENDAR_DAY_SELECTORS = [
    '[data-testid="calendar-day"]',
    '.bui-calendar__day',
    'td[data-date]',
]

CALENDAR_PRICE_SELECTORS = [
    '.bui-price-display__value',
    '[data-testid="calendar-day-price"]',
    '.bui-calendar__price',
]

_DATE_FORMATS = ("%Y-%m-%d", "%Y/%m/%d", "%d/%m/%Y", "%d.%m.%Y")


def normalize_checkin(raw: Any) -> Optional[str]:
    """Return a check-in date as YYYY-MM-DD, or None when it cannot be read"""
    if isinstance(raw, datetime):
        return raw.date().isoformat()
    if isinstance(raw, date):
        return raw.isoformat()
    if not isinstance(raw, str) or not raw.strip():
        return None
    text = raw.strip()
    try:
        return date.fromisoformat(text[:10]).isoformat()
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date().isoformat()
        except ValueError:
            continue
    return None


def raw_days_from_payload(payload: Any) -> List[RawDay]:
    """
    Read day entries from a calendar payload.

    Expected shape:
        {"data": {"availabilityCalendar": {"days": [{"checkin", "avgPriceFormatted",
         "available", "minLengthOfStay"?}]}}}

    Any deviation yields an empty list.
    """
    if not isinstance(payload, dict):
        return []
    data = payload.get("data")
    calendar = data.get("availabilityCalendar") if isinstance(data, dict) else None
    days = calendar.get("days") if isinstance(calendar, dict) else None
    if not isinstance(days, list):
        return []

    raw_days = []
    for day in days:
        if not isinstance(day, dict):
            continue
        min_stay = day.get("minLengthOfStay")
        raw_days.append(RawDay(
            checkin=day.get("checkin"),
            price=day.get("avgPriceFormatted") or "",
            available=bool(day.get("available", False)),
            min_length_of_stay=min_stay if isinstance(min_stay, int) else None,
        ))
    return raw_days


def raw_days_from_html(html: Optional[str]) -> List[RawDay]:
    """Read calendar-day widgets from page markup; incomplete elements are skipped"""
    if not html:
        return []
    soup = BeautifulSoup(html, 'lxml')

    elements = []
    for selector in CALENDAR_DAY_SELECTORS:
        elements = soup.select(selector)
        if elements:
            break

    raw_days = []
    for element in elements:
        checkin = element.get("data-date")
        price_text = None
        for selector in CALENDAR_PRICE_SELECTORS:
            price_el = element.select_one(selector)
            if price_el:
                price_text = price_el.get_text(strip=True)
                if price_text:
                    break
        if not checkin or not price_text:
            continue
        classes = " ".join(element.get("class") or [])
        raw_days.append(RawDay(
            checkin=checkin,
            price=price_text,
            available="disabled" not in classes,
        ))
    return raw_days


def normalize_days(raw_days: List[RawDay]) -> List[AvailabilityDay]:
    """Parse prices and dates; a later entry for the same date replaces an earlier one"""
    by_date = {}
    for raw in raw_days:
        checkin = normalize_checkin(raw.checkin)
        if checkin is None:
            logger.debug(f"Skipping calendar entry with unreadable date: {raw.checkin!r}")
            continue
        by_date[checkin] = AvailabilityDay(
            checkin=checkin,
            price=parse_price(raw.price),
            available=raw.available,
            min_length_of_stay=raw.min_length_of_stay,
        )
    return list(by_date.values())


def _first_currency(raw_days: List[RawDay]) -> Optional[str]:
    for raw in raw_days:
        if raw.price:
            return extract_currency(raw.price, default=None)
    return None


class AvailabilityInterceptor:
    """
    Acquires the availability calendar for one listing page.

    Usage:
        interceptor = AvailabilityInterceptor(config, external_id)
        # register before navigation
        interceptor.attach(page)
        ...
        result = await interceptor.acquire(page)
    """

    def __init__(
        self,
        config: Optional[ScrapeConfig] = None,
        external_id: Optional[str] = None,
        api_path: str = CALENDAR_API_PATH,
    ):
        self.config = config or ScrapeConfig()
        self.external_id = external_id
        self.api_path = api_path
        self._captured: list = []
        self._captured_event = asyncio.Event()

    # ── INTERCEPTING ──────────────────────────────────

    def attach(self, page) -> None:
        """Register the response listener. Must run before navigation."""
        page.on("response", self._on_response)

    def _on_response(self, response) -> None:
        """Record calendar responses and return immediately; bodies are read later."""
        try:
            if self.api_path not in response.url:
                return
            if not self._is_calendar_request(response.request):
                return
        except Exception as e:
            logger.debug(f"Ignoring response in listener: {e}")
            return
        self._captured.append(response)
        self._captured_event.set()

    @staticmethod
    def _is_calendar_request(request) -> bool:
        post_data = getattr(request, "post_data", None)
        if not post_data:
            return False
        return "availabilitycalendar" in post_data.lower()

    async def _wait_for_capture(self) -> bool:
        if self._captured_event.is_set():
            return True
        try:
            await asyncio.wait_for(self._captured_event.wait(), timeout=self.config.grace_ms / 1000)
            return True
        except asyncio.TimeoutError:
            return False

    async def _intercepted_days(self) -> List[RawDay]:
        if not await self._wait_for_capture():
            logger.info("Interception: no calendar response within grace window")
            return []
        raw_days: List[RawDay] = []
        for response in list(self._captured):
            try:
                payload = await response.json()
            except Exception as e:
                logger.debug(f"Interception: unreadable calendar response body: {e}")
                continue
            raw_days.extend(raw_days_from_payload(payload))
        return raw_days

    # ── REPLAYING ─────────────────────────────────────

    async def _replayed_days(self, page) -> List[RawDay]:
        """
        Re-issue the calendar query from inside the page.

        Raises:
            ReplayError: no identifier, non-success response or unusable body
        """
        if not self.external_id or not self.external_id.isdigit():
            raise ReplayError("No numeric external identifier to replay the calendar query with")

        variables = {
            "hotelId": int(self.external_id),
            "startDate": date.today().isoformat(),
            "months": self.config.months,
        }
        try:
            result = await page.evaluate(
                REPLAY_SCRIPT,
                {"apiPath": self.api_path, "query": CALENDAR_QUERY, "variables": variables},
            )
        except Exception as e:
            raise ReplayError(f"Replay script failed: {e}") from e

        if not isinstance(result, dict) or not result.get("ok"):
            status = result.get("status") if isinstance(result, dict) else None
            raise ReplayError(f"Replay returned non-success status {status}")

        raw_days = raw_days_from_payload(result.get("body"))
        if not raw_days:
            raise ReplayError("Replay response carried no calendar days")
        return raw_days

    # ── DOM_FALLBACK ──────────────────────────────────

    async def _dom_days(self, page) -> List[RawDay]:
        try:
            html = await page.content()
        except Exception as e:
            logger.warning(f"DOM fallback: could not read page content: {e}")
            return []
        return raw_days_from_html(html)

    # ── State machine ─────────────────────────────────

    async def acquire(self, page) -> AcquisitionResult:
        """
        Run the tiers in priority order until one yields days.

        Returns:
            AcquisitionResult; an empty day list is a valid outcome
        """
        state = AcquisitionState.INTERCEPTING
        transitions = [state]
        raw_days: List[RawDay] = []
        tier = AcquisitionTier.NONE

        while state is not AcquisitionState.DONE:
            if state is AcquisitionState.INTERCEPTING:
                raw_days = await self._intercepted_days()
                if raw_days:
                    tier = AcquisitionTier.INTERCEPT
                    state = AcquisitionState.DONE
                else:
                    state = AcquisitionState.REPLAYING

            elif state is AcquisitionState.REPLAYING:
                try:
                    raw_days = await self._replayed_days(page)
                    tier = AcquisitionTier.REPLAY
                    state = AcquisitionState.DONE
                except ReplayError as e:
                    logger.info(f"Replay: {e}; falling back to DOM calendar")
                    state = AcquisitionState.DOM_FALLBACK

            elif state is AcquisitionState.DOM_FALLBACK:
                raw_days = await self._dom_days(page)
                if raw_days:
                    tier = AcquisitionTier.DOM
                state = AcquisitionState.DONE

            transitions.append(state)

        days = normalize_days(raw_days)
        logger.info(f"Calendar acquisition done: {len(days)} days via {tier.value}")
        return AcquisitionResult(
            tier=tier if days else AcquisitionTier.NONE,
            days=days,
            currency=_first_currency(raw_days),
            transitions=transitions,
        )
