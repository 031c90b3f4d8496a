"""
Abstract base classes for the geocoding system.

These define the interfaces that all concrete implementations must follow.
"""

from abc import ABC, abstractmethod
from typing import ClassVar, List, Optional

from .models import Coordinate, GeocodeHit, ProviderName


class Geocoder(ABC):
    """
    Abstract base for provider adapters.

    Each adapter builds the provider-specific request and normalizes the
    response into GeocodeHit objects. Network and HTTP failures are raised
    as ProviderError subclasses; "no match" is an empty list / None.
    """

    provider: ClassVar[ProviderName]

    @abstractmethod
    def search(self, query: str, limit: int = 1) -> List[GeocodeHit]:
        """
        Free-text search.

        Args:
            query: Place description, e.g. "Baltimore County, MD, USA"
            limit: Maximum number of hits to request

        Returns:
            Normalized hits, best first (possibly empty)
        """
        pass

    @abstractmethod
    def reverse_geocode(self, coordinate: Coordinate) -> Optional[GeocodeHit]:
        """
        Resolve a coordinate to the containing place.

        Args:
            coordinate: Point to look up

        Returns:
            The containing place with its address components, or None
        """
        pass

    def forward_geocode(self, query: str) -> Optional[GeocodeHit]:
        """Return the best hit for a query, or None when nothing matched."""
        hits = self.search(query, limit=1)
        return hits[0] if hits else None


class RateLimiter(ABC):
    """
    Abstract base for rate limiters.

    Rate limiters control the rate at which requests are made,
    useful for respecting API rate limits.
    """

    @abstractmethod
    def wait(self) -> None:
        """Block until it's safe to make another request."""
        pass

    @abstractmethod
    def acquire(self, count: int = 1) -> None:
        """
        Acquire one or more request slots.

        Args:
            count: Number of requests to acquire
        """
        pass

    def release(self) -> None:
        """Mark the end of a request started after acquire()."""
        pass
