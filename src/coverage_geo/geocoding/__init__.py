"""
- Models: Data structures (Coordinate, GeocodeHit, ProviderConfig, ...)
- Base classes: Abstract interfaces
- Providers: Nominatim, LocationIQ and Google adapters, provider selection
- Throttling: Per-provider rate pacing
- Retry: Backoff/retry executor for outbound calls
- Distance: Haversine distance in miles
"""

from .models import (
    ProviderName,
    PROVIDER_INTERVALS_MS,
    Coordinate,
    ProviderConfig,
    GeocodeHit,
    CountyDistance,
    ResolutionContext,
    ProximityResult,
    TownResult,
)

from .base import (
    Geocoder,
    RateLimiter,
)

from .distance import (
    EARTH_RADIUS_MILES,
    haversine_miles,
)

from .throttling import (
    IntervalPacer,
    NoOpRateLimiter,
    PacerRegistry,
)

from .retry import (
    RetryExecutor,
    backoff_ms,
)

from .providers import (
    HttpGeocoder,
    NominatimGeocoder,
    LocationIQGeocoder,
    GoogleGeocoder,
    GEOCODERS,
    select_provider,
    build_geocoder,
)

__all__ = [
    # Models
    "ProviderName",
    "PROVIDER_INTERVALS_MS",
    "Coordinate",
    "ProviderConfig",
    "GeocodeHit",
    "CountyDistance",
    "ResolutionContext",
    "ProximityResult",
    "TownResult",
    # Base classes
    "Geocoder",
    "RateLimiter",
    # Distance
    "EARTH_RADIUS_MILES",
    "haversine_miles",
    # Throttling
    "IntervalPacer",
    "NoOpRateLimiter",
    "PacerRegistry",
    # Retry
    "RetryExecutor",
    "backoff_ms",
    # Providers
    "HttpGeocoder",
    "NominatimGeocoder",
    "LocationIQGeocoder",
    "GoogleGeocoder",
    "GEOCODERS",
    "select_provider",
    "build_geocoder",
]
