"""
Hotel Rate Monitor API

A FastAPI service that tracks competitor hotel listings on Booking.com:
descriptive metadata plus a nightly price calendar, refreshed by background
browser scrapes.
"""

import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import List, Optional

import redis.asyncio as redis
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from sqlalchemy import text

from config import (
    DATABASE_URL,
    LOG_LEVEL,
    REDIS_URL,
    REDIS_ENABLED,
    RETRY_BACKOFF_BASE,
    RETRY_MAX_ATTEMPTS,
    SCRAPE_MAX_CONCURRENT,
)
from db import create_db_engine, init_db, make_session_factory
from exceptions import InvalidInputError
from models import (
    ErrorKind,
    HealthResponse,
    HistoryRow,
    HistoryRowResponse,
    ImportHistoryResponse,
    ListingResponse,
    PricePointResponse,
    QueueStatsResponse,
    RegisterListingRequest,
    RegisterListingResponse,
    ScrapeJobResponse,
    ScrapeOutcome,
)
from services import HotelScraperService, ListingRepository, ListingService, ScrapeQueueService

# Configure logging
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Service instances
engine = None
listing_service: ListingService = None
scrape_queue: ScrapeQueueService = None
redis_client = None


async def connect_redis(url: str):
    """Connect to Redis for job records; returns None when unreachable"""
    client = redis.from_url(url, encoding="utf-8", decode_responses=True)
    try:
        await client.ping()
    except (RedisError, OSError) as e:
        logger.warning(f"Redis unavailable at {url} ({e}); job records kept in memory")
        await client.aclose()
        return None
    logger.info(f"Scrape job records stored in Redis at {url}")
    return client


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    global engine, listing_service, scrape_queue, redis_client

    logger.info("Starting Hotel Rate Monitor API...")

    engine = create_db_engine(DATABASE_URL)
    init_db(engine)
    repository = ListingRepository(make_session_factory(engine))

    redis_client = None
    if REDIS_ENABLED:
        redis_client = await connect_redis(REDIS_URL)
    else:
        logger.info("Redis disabled by configuration; job records kept in memory")

    listing_service = ListingService(repository, HotelScraperService())
    scrape_queue = ScrapeQueueService(
        runner=listing_service.run_scrape,
        redis_client=redis_client,
        workers=SCRAPE_MAX_CONCURRENT,
        max_attempts=RETRY_MAX_ATTEMPTS,
        backoff_base=RETRY_BACKOFF_BASE,
    )
    listing_service.queue = scrape_queue
    await scrape_queue.start()

    yield

    # Cleanup
    await scrape_queue.stop()
    if redis_client:
        await redis_client.aclose()
    engine.dispose()

    logger.info("Shutting down Hotel Rate Monitor API...")


app = FastAPI(
    title="Hotel Rate Monitor API",
    description="""
    Competitor rate monitoring for hotel listings on Booking.com.

    For each registered listing this API will:
    1. Load the listing page in an isolated headless browser
    2. Read name, location, ratings and amenities from the rendered page
    3. Capture the availability calendar (intercepted API call, in-page replay, or DOM fallback)
    4. Store one nightly price per check-in date

    ## Usage
    - **Register**: POST /api/v1/listings (scrape runs in the background)
    - **Rescrape**: POST /api/v1/listings/{id}/scrape
    - **Prices**: GET /api/v1/listings/{id}/prices
    - **Own history import**: POST /api/v1/history/import
    """,
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _require_service() -> ListingService:
    if not listing_service:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return listing_service


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Check API health and storage status"""
    database = "unavailable"
    if engine is not None:
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            database = "ok"
        except Exception as e:
            logger.warning(f"Database health check failed: {e}")
            database = "error"
    return HealthResponse(
        status="healthy" if database == "ok" else "degraded",
        version=app.version,
        database=database,
        job_storage="redis" if scrape_queue and scrape_queue.uses_redis else "in-memory",
    )


# ── Listings ──────────────────────────────────────────


@app.post("/api/v1/listings", response_model=RegisterListingResponse, tags=["Listings"])
async def register_listing(request: RegisterListingRequest):
    """
    Register a competitor listing for monitoring.

    Returns immediately; the first scrape runs in the background. Registering
    a URL that is already monitored returns `accepted=false` with the stored
    listing.
    """
    service = _require_service()
    try:
        return await service.register_listing(request.url)
    except InvalidInputError as e:
        return JSONResponse(
            status_code=400,
            content=RegisterListingResponse(accepted=False, reason=str(e)).model_dump(),
        )


@app.get("/api/v1/listings", response_model=List[ListingResponse], tags=["Listings"])
async def list_listings():
    """List all monitored listings, newest first"""
    service = _require_service()
    return await service.list_listings()


@app.get("/api/v1/listings/{listing_id}", response_model=ListingResponse, tags=["Listings"])
async def get_listing(listing_id: int):
    """Get one monitored listing"""
    service = _require_service()
    listing = await service.get_listing(listing_id)
    if listing is None:
        raise HTTPException(status_code=404, detail="Listing not found")
    return listing


@app.delete("/api/v1/listings/{listing_id}", tags=["Listings"])
async def delete_listing(listing_id: int):
    """Delete a listing together with its price points"""
    service = _require_service()
    if not await service.delete_listing(listing_id):
        raise HTTPException(status_code=404, detail="Listing not found")
    return {"deleted": True, "listing_id": listing_id}


@app.post("/api/v1/listings/{listing_id}/scrape", response_model=ScrapeOutcome, tags=["Listings"])
async def rescrape_listing(listing_id: int):
    """
    Scrape a registered listing now and wait for the result.

    A failed scrape is reported in the body (`success=false`) and leaves the
    previously stored data in place.
    """
    service = _require_service()
    outcome = await service.request_rescrape(listing_id)
    if outcome.error_kind == ErrorKind.NOT_FOUND:
        raise HTTPException(status_code=404, detail=outcome.message)
    return outcome


@app.get(
    "/api/v1/listings/{listing_id}/prices",
    response_model=List[PricePointResponse],
    tags=["Prices"],
)
async def get_prices(
    listing_id: int,
    start: Optional[date] = Query(None, description="First check-in date (inclusive)"),
    end: Optional[date] = Query(None, description="Last check-in date (inclusive)"),
):
    """Nightly prices for one listing, ordered by check-in date"""
    service = _require_service()
    if await service.get_listing(listing_id) is None:
        raise HTTPException(status_code=404, detail="Listing not found")
    return await service.get_price_points(listing_id, start, end)


# ── Own history ───────────────────────────────────────


@app.post("/api/v1/history/import", response_model=ImportHistoryResponse, tags=["History"])
async def import_history(rows: List[HistoryRow]):
    """Replace our own hotel's pricing history with the given rows"""
    service = _require_service()
    imported = await service.import_historical_records(rows)
    return ImportHistoryResponse(imported=imported)


@app.get("/api/v1/history", response_model=List[HistoryRowResponse], tags=["History"])
async def list_history():
    """Our own hotel's pricing history, ordered by date"""
    service = _require_service()
    return await service.list_history()


# ── Scrape queue ──────────────────────────────────────


@app.get("/api/v1/queue/stats", response_model=QueueStatsResponse, tags=["Scrape Queue"])
async def queue_stats():
    """Get scrape queue statistics"""
    if not scrape_queue:
        raise HTTPException(status_code=503, detail="Scrape queue not initialized")
    return await scrape_queue.get_stats()


@app.get("/api/v1/queue/history", response_model=List[ScrapeJobResponse], tags=["Scrape Queue"])
async def queue_history():
    """Get finished scrape jobs, newest first"""
    if not scrape_queue:
        raise HTTPException(status_code=503, detail="Scrape queue not initialized")
    return await scrape_queue.get_history()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
