"""SQLAlchemy database models and session setup."""

import datetime as dt
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship, sessionmaker


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class MonitoredListing(Base):
    """Competitor listing being monitored."""

    __tablename__ = "listings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    source_url: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    external_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    location: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    currency: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)
    rating_overall: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    rating_location: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    amenities: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    scrape_status: Mapped[str] = mapped_column(String(16), default="pending", nullable=False)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_scraped_at: Mapped[Optional[dt.datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime, default=dt.datetime.utcnow, nullable=False
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime, default=dt.datetime.utcnow, onupdate=dt.datetime.utcnow, nullable=False
    )

    # Relationships
    price_points: Mapped[list["PricePoint"]] = relationship(
        "PricePoint",
        back_populates="listing",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class PricePoint(Base):
    """Nightly price for one listing and check-in date."""

    __tablename__ = "price_points"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    listing_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False
    )
    check_in_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    available: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    min_length_of_stay: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    captured_at: Mapped[dt.datetime] = mapped_column(
        DateTime, default=dt.datetime.utcnow, nullable=False
    )

    # Relationships
    listing: Mapped["MonitoredListing"] = relationship(
        "MonitoredListing", back_populates="price_points"
    )

    __table_args__ = (
        UniqueConstraint("listing_id", "check_in_date", name="uq_price_point_listing_date"),
    )


class OwnHotelHistory(Base):
    """Our own hotel's applied price and reservations per day."""

    __tablename__ = "own_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    price_applied: Mapped[float] = mapped_column(Float, nullable=False)
    reservations: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime, default=dt.datetime.utcnow, nullable=False
    )


def create_db_engine(url: str) -> Engine:
    """Create an engine; SQLite connections may be shared with worker threads."""
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(url, connect_args=connect_args)


def init_db(engine: Engine) -> None:
    Base.metadata.create_all(engine)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, expire_on_commit=False)
