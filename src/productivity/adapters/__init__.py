"""Data source adapters for the productivity backend."""

from productivity.adapters.base import (
    AdapterError,
    AuthenticationError,
    BaseAdapter,
    CourseFetchError,
    FetchError,
)
from productivity.adapters.canvas import (
    CanvasAdapter,
    FeedResult,
    fetch_tecsup_feed,
    validate_tecsup_token,
)

__all__ = [
    # Base
    "BaseAdapter",
    "AdapterError",
    "AuthenticationError",
    "FetchError",
    "CourseFetchError",
    # Adapters
    "CanvasAdapter",
    "FeedResult",
    # Convenience functions
    "validate_tecsup_token",
    "fetch_tecsup_feed",
]
