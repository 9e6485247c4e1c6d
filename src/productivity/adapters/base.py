"""Base adapter interface for external data sources."""

from abc import ABC, abstractmethod
from typing import Any

import structlog

logger = structlog.get_logger()


class BaseAdapter(ABC):
    """Abstract base class for external feed adapters.

    All adapters must implement:
    - connect(): Open the transport
    - disconnect(): Clean up resources
    - health_check(): Verify the credentials are accepted upstream
    - fetch(): Retrieve the feed
    """

    def __init__(self, name: str) -> None:
        """Initialize adapter with a name for logging."""
        self.name = name
        self._connected = False
        self.logger = logger.bind(adapter=name)

    @property
    def is_connected(self) -> bool:
        """Check if adapter is currently connected."""
        return self._connected

    @abstractmethod
    async def connect(self) -> bool:
        """Open the connection to the data source.

        Returns:
            True if connection successful, False otherwise.
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Disconnect and clean up resources."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Verify the adapter is operational.

        Returns:
            True if the data source accepts our credentials. Never raises.
        """
        pass

    @abstractmethod
    async def fetch(self, **kwargs: Any) -> Any:
        """Fetch the feed.

        Args:
            **kwargs: Adapter-specific parameters.
        """
        pass

    async def __aenter__(self) -> "BaseAdapter":
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.disconnect()


class AdapterError(Exception):
    """Base exception for adapter errors."""

    def __init__(self, adapter_name: str, message: str) -> None:
        self.adapter_name = adapter_name
        self.message = message
        super().__init__(f"[{adapter_name}] {message}")


class AuthenticationError(AdapterError):
    """Raised when the upstream rejects the credentials."""

    pass


class FetchError(AdapterError):
    """Raised when data fetch fails."""

    pass


class CourseFetchError(FetchError):
    """One course sub-resource could not be fetched.

    Collected rather than raised so the remaining courses still import.
    """

    def __init__(
        self,
        adapter_name: str,
        course_id: str,
        course_name: str | None,
        resource: str,
        message: str,
    ) -> None:
        self.course_id = course_id
        self.course_name = course_name
        self.resource = resource
        super().__init__(adapter_name, f"course {course_id} {resource}: {message}")
        self.message = message
