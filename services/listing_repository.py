"""Reconciliation of scrape outcomes with stored listings and price points"""

import logging
from datetime import date, datetime
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from db import MonitoredListing, OwnHotelHistory, PricePoint
from exceptions import PersistenceError
from models import HistoryRow, ScrapeOutcome, ScrapeStatus

logger = logging.getLogger(__name__)

ERROR_NAME_MARKER = "Error scraping hotel"


class ListingRepository:
    """
    Sole writer of scrape-derived listing fields.

    Every write runs in one transaction: either the whole update is visible
    or none of it is.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    # ── Listings ──────────────────────────────────────

    def upsert_listing(self, url: str) -> Tuple[MonitoredListing, bool]:
        """
        Look up a listing by URL, creating a bare pending record if absent.

        Returns:
            (listing, is_new)
        """
        with self._session_factory() as session:
            existing = session.scalar(select(MonitoredListing).where(MonitoredListing.source_url == url))
            if existing:
                return existing, False
            listing = MonitoredListing(source_url=url, amenities=[], scrape_status=ScrapeStatus.PENDING.value)
            session.add(listing)
            try:
                session.commit()
            except IntegrityError:
                # Registered concurrently by another request
                session.rollback()
                existing = session.scalar(select(MonitoredListing).where(MonitoredListing.source_url == url))
                if existing is None:
                    raise PersistenceError(f"Could not register listing {url}")
                return existing, False
            except SQLAlchemyError as e:
                session.rollback()
                raise PersistenceError(f"Could not register listing {url}: {e}") from e
            logger.info(f"Registered listing {listing.id}: {url}")
            return listing, True

    def get_listing(self, listing_id: int) -> Optional[MonitoredListing]:
        with self._session_factory() as session:
            return session.get(MonitoredListing, listing_id)

    def list_listings(self) -> List[MonitoredListing]:
        with self._session_factory() as session:
            stmt = select(MonitoredListing).order_by(MonitoredListing.created_at.desc(), MonitoredListing.id.desc())
            return list(session.scalars(stmt))

    def delete_listing(self, listing_id: int) -> bool:
        """Delete a listing and all its price points"""
        with self._session_factory() as session:
            try:
                with session.begin():
                    listing = session.get(MonitoredListing, listing_id)
                    if listing is None:
                        return False
                    session.execute(delete(PricePoint).where(PricePoint.listing_id == listing_id))
                    session.delete(listing)
            except SQLAlchemyError as e:
                raise PersistenceError(f"Could not delete listing {listing_id}: {e}") from e
        logger.info(f"Deleted listing {listing_id}")
        return True

    # ── Scrape results ────────────────────────────────

    def apply_scrape_result(self, listing_id: int, outcome: ScrapeOutcome) -> MonitoredListing:
        """
        Persist a scrape outcome.

        Success: overwrite the extracted descriptive fields and replace the
        listing's price set (delete-then-insert) in a single transaction.
        Failure: flag the listing as errored, leaving prior data untouched.

        Raises:
            PersistenceError: the listing is gone or the database rejected the write
        """
        with self._session_factory() as session:
            try:
                with session.begin():
                    listing = session.get(MonitoredListing, listing_id)
                    if listing is None:
                        raise PersistenceError(f"Listing {listing_id} no longer exists")
                    if outcome.success:
                        self._apply_success(session, listing, outcome)
                    else:
                        self._apply_failure(listing, outcome)
            except SQLAlchemyError as e:
                logger.error(f"Persisting scrape result for listing {listing_id} failed: {e}")
                raise PersistenceError(f"Could not store scrape result: {e}") from e
            return listing

    def _apply_success(self, session, listing: MonitoredListing, outcome: ScrapeOutcome):
        snapshot = outcome.listing
        now = datetime.utcnow()

        if snapshot is not None:
            for field in ("external_id", "name", "location", "currency", "rating_overall", "rating_location"):
                value = getattr(snapshot, field)
                if value is not None:
                    setattr(listing, field, value)
            if snapshot.amenities:
                listing.amenities = list(snapshot.amenities)

        listing.scrape_status = ScrapeStatus.OK.value
        listing.last_error = None
        listing.last_scraped_at = now

        session.execute(delete(PricePoint).where(PricePoint.listing_id == listing.id))
        points = {}
        for day in (snapshot.days if snapshot is not None else []):
            check_in = date.fromisoformat(day.checkin)
            points[check_in] = PricePoint(
                listing_id=listing.id,
                check_in_date=check_in,
                price=day.price,
                available=day.available,
                min_length_of_stay=day.min_length_of_stay,
                captured_at=now,
            )
        session.add_all(points.values())
        session.flush()
        logger.info(f"Listing {listing.id}: replaced price set with {len(points)} points")

    def _apply_failure(self, listing: MonitoredListing, outcome: ScrapeOutcome):
        listing.scrape_status = ScrapeStatus.ERROR.value
        listing.last_error = outcome.message
        if not listing.name:
            listing.name = ERROR_NAME_MARKER
        logger.warning(f"Listing {listing.id}: scrape failed ({outcome.message}); prior data kept")

    def get_price_points(
        self,
        listing_id: int,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> List[PricePoint]:
        """Price points for one listing, optionally limited to [start, end]"""
        with self._session_factory() as session:
            stmt = select(PricePoint).where(PricePoint.listing_id == listing_id)
            if start is not None:
                stmt = stmt.where(PricePoint.check_in_date >= start)
            if end is not None:
                stmt = stmt.where(PricePoint.check_in_date <= end)
            stmt = stmt.order_by(PricePoint.check_in_date)
            return list(session.scalars(stmt))

    # ── Own history ───────────────────────────────────

    def replace_history(self, rows: Iterable[HistoryRow]) -> int:
        """Bulk replace our own pricing history"""
        records = [
            OwnHotelHistory(date=row.date, price_applied=row.price_applied, reservations=row.reservations)
            for row in rows
        ]
        with self._session_factory() as session:
            try:
                with session.begin():
                    session.execute(delete(OwnHotelHistory))
                    session.add_all(records)
            except SQLAlchemyError as e:
                raise PersistenceError(f"Could not import history: {e}") from e
        logger.info(f"Imported {len(records)} history rows")
        return len(records)

    def list_history(self) -> List[OwnHotelHistory]:
        with self._session_factory() as session:
            return list(session.scalars(select(OwnHotelHistory).order_by(OwnHotelHistory.date)))
