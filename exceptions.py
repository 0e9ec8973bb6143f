"""Error taxonomy for the scraping pipeline"""


class HotelMonitorError(Exception):
    """Base class for all pipeline errors"""


class InvalidInputError(HotelMonitorError):
    """The listing URL failed validation; the scrape never starts."""


class NavigationError(HotelMonitorError):
    """The page failed to load in time or answered with a non-success status."""

    def __init__(self, message: str, status: int = None):
        super().__init__(message)
        self.status = status


class ReplayError(HotelMonitorError):
    """Manual replay of the calendar API call failed or returned unusable data."""


class PersistenceError(HotelMonitorError):
    """The database rejected a write. Prior listing state is left intact."""
