"""
Core data models for geocoding, proximity and town enumeration.

Immutable, frozen dataclasses serve as the contract between the
provider adapters, the retry executor and the resolvers. The one
mutable object, ResolutionContext, is scoped to a single request.
"""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Dict, List, Optional, Set


class ProviderName(StrEnum):
    """The closed set of geocoding providers."""
    NOMINATIM = "nominatim"
    LOCATIONIQ = "locationiq"
    GOOGLE = "google"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["ProviderName"]:
        """Return the matching provider or None for unknown/empty names."""
        if not value:
            return None
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


# Minimum interval between consecutive calls to the same provider.
# Nominatim policy is 1 req/s, so leave some margin.
PROVIDER_INTERVALS_MS: Dict[ProviderName, int] = {
    ProviderName.NOMINATIM: 1100,
    ProviderName.LOCATIONIQ: 1200,
    ProviderName.GOOGLE: 200,
}

# Semantic address fields every adapter normalizes into
ADDRESS_FIELDS = ("road", "house_number", "city", "county", "state", "postcode", "country")


@dataclass(frozen=True)
class Coordinate:
    """A WGS84 point. Construction fails for out-of-range values."""
    lat: float
    lon: float

    def __post_init__(self) -> None:
        if not -90 <= self.lat <= 90:
            raise ValueError(f"latitude out of range: {self.lat}")
        if not -180 <= self.lon <= 180:
            raise ValueError(f"longitude out of range: {self.lon}")

    @classmethod
    def try_parse(cls, lat: Any, lon: Any) -> Optional["Coordinate"]:
        """Build a Coordinate from loosely typed provider values (often strings)."""
        try:
            return cls(float(lat), float(lon))
        except (TypeError, ValueError):
            return None


@dataclass(frozen=True)
class ProviderConfig:
    """The active provider for one request. Never mutated mid-request."""
    name: ProviderName
    api_key: Optional[str] = None
    min_interval_ms: int = 1100

    @property
    def min_interval_s(self) -> float:
        return self.min_interval_ms / 1000.0

    @property
    def is_paid(self) -> bool:
        return self.name is not ProviderName.NOMINATIM

    def __repr__(self) -> str:
        # keep keys out of logs
        key = "set" if self.api_key else None
        return f"ProviderConfig(name={self.name.value!r}, api_key={key}, min_interval_ms={self.min_interval_ms})"


@dataclass(frozen=True)
class GeocodeHit:
    """
    A single normalized geocoding match.

    Produced by a Geocoder from raw provider output. `address` only
    carries the keys listed in ADDRESS_FIELDS that the provider filled.
    """
    coordinate: Coordinate
    display_name: str = ""
    name: str = ""
    address: Dict[str, str] = field(default_factory=dict)
    place_type: str = ""
    place_class: str = ""
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def address_text(self) -> str:
        """County component followed by the display name, for substring matching."""
        parts = [self.address.get("county", ""), self.display_name]
        return " | ".join(p for p in parts if p)


@dataclass(frozen=True)
class CountyDistance:
    county_name: str
    distance_miles: float


@dataclass
class ResolutionContext:
    """
    Request-scoped state for one proximity or town resolution.

    Lifecycle: created at the start of a request (or passed in by the
    caller), mutated only by the resolver handling that request, and
    returned with the result. Never shared between requests.
    """
    coordinate_cache: Dict[str, Coordinate] = field(default_factory=dict)
    skipped_counties: List[str] = field(default_factory=list)
    towns: Set[str] = field(default_factory=set)
    provider_calls: int = 0

    def cache_coordinate(self, county: str, coordinate: Coordinate) -> None:
        self.coordinate_cache[county] = coordinate

    def cached(self, county: str) -> Optional[Coordinate]:
        return self.coordinate_cache.get(county)


@dataclass(frozen=True)
class ProximityResult:
    """Outcome of a radius resolution."""
    counties: List[str]
    center_county: Optional[str]
    radius_miles: float
    distances: List[CountyDistance] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "counties": list(self.counties),
            "centerCounty": self.center_county,
            "radiusMiles": self.radius_miles,
        }


@dataclass(frozen=True)
class TownResult:
    """Outcome of a town enumeration. `success` means the enumeration ran."""
    success: bool
    towns: List[str] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.towns)

    def to_dict(self) -> dict[str, Any]:
        return {"success": self.success, "towns": list(self.towns), "count": self.count}
