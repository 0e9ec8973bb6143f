"""Configuration settings for the Hotel Rate Monitor"""

import os
from dotenv import load_dotenv

load_dotenv()

# Database Configuration
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./hotel_monitor.db")

# Redis Configuration (scrape job records)
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379")
REDIS_ENABLED = os.getenv("REDIS_ENABLED", "false").lower() == "true"

# Target site
TARGET_HOST = os.getenv("TARGET_HOST", "www.booking.com")
LISTING_PATH_MARKER = "/hotel/"
CALENDAR_API_PATH = os.getenv("CALENDAR_API_PATH", "/dml/graphql")

# Scraping
SCRAPE_MONTHS = int(os.getenv("SCRAPE_MONTHS", "2"))
SCRAPE_HEADLESS = os.getenv("SCRAPE_HEADLESS", "true").lower() == "true"
SCRAPE_TIMEOUT_MS = int(os.getenv("SCRAPE_TIMEOUT_MS", "30000"))
INTERCEPT_GRACE_MS = int(os.getenv("INTERCEPT_GRACE_MS", "5000"))
NAVIGATION_ATTEMPTS = int(os.getenv("NAVIGATION_ATTEMPTS", "2"))
AMENITY_CAP = int(os.getenv("AMENITY_CAP", "10"))
DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "EUR")

# Background scrape workers
SCRAPE_MAX_CONCURRENT = int(os.getenv("SCRAPE_MAX_CONCURRENT", "2"))

# Retry queue
RETRY_MAX_ATTEMPTS = int(os.getenv("RETRY_MAX_ATTEMPTS", "3"))
RETRY_BACKOFF_BASE = float(os.getenv("RETRY_BACKOFF_BASE", "30.0"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# User agent and locale for the browsing context
USER_AGENT = os.getenv(
    "USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
)
ACCEPT_LANGUAGE = os.getenv("ACCEPT_LANGUAGE", "en-US,en;q=0.9")

# Leading currency glyphs recognised in formatted prices
CURRENCY_SYMBOLS = {
    "€": "EUR",
    "$": "USD",
    "£": "GBP",
    "¥": "JPY",
}
