"""Counties within a radius of a point.

The resolver geocodes every candidate county of a state one at a time,
paced for the active provider, and keeps the ones whose centre lies
within the radius. Individual county failures are skipped, never raised.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable

from .geocoding.base import Geocoder, RateLimiter
from .geocoding.distance import haversine_miles
from .geocoding.models import (
    Coordinate,
    CountyDistance,
    GeocodeHit,
    ProximityResult,
    ResolutionContext,
)
from .geocoding.retry import RetryExecutor

logger = logging.getLogger(__name__)

DEFAULT_RADIUS_MILES = 20.0
MAX_CANDIDATE_COUNTIES = 50

# Names that already carry their administrative suffix
_ADMIN_SUFFIX = re.compile(
    r"\b(county|city|parish|borough|census area|municipality|city and borough)$", re.I
)


def county_query(county: str, state_code: str) -> str:
    """Search text for a county, e.g. "Baltimore County, MD, USA"."""
    county = county.strip()
    if not _ADMIN_SUFFIX.search(county):
        county = f"{county} County"
    return f"{county}, {state_code.upper()}, USA"


def match_center_county(hit: GeocodeHit, county_names: Iterable[str]) -> str | None:
    """Return the candidate county named in a reverse-geocode hit.

    The hit's county component is checked first, then its display name.
    When several candidates match, the longest name wins so that
    "Baltimore County" is preferred over "Baltimore".
    """
    names = [c for c in county_names if c and c.strip()]
    for text in (hit.address.get("county", ""), hit.display_name):
        haystack = text.lower()
        if not haystack:
            continue
        matches = [c for c in names if c.lower() in haystack]
        if matches:
            return max(matches, key=len)
    return None


class ProximityResolver:
    """Resolves the counties of a state that lie within a radius of an origin.

    Args:
        geocoder: Adapter of the active provider
        pacer: Pacer of the active provider
        executor: Retry executor shared with the caller
    """

    def __init__(self, geocoder: Geocoder, pacer: RateLimiter, executor: RetryExecutor):
        self.geocoder = geocoder
        self.pacer = pacer
        self.executor = executor

    def resolve(
        self,
        origin: Coordinate,
        state_code: str,
        county_names: list[str],
        radius_miles: float = DEFAULT_RADIUS_MILES,
        context: ResolutionContext | None = None,
    ) -> ProximityResult:
        """Find the counties within `radius_miles` of `origin`.

        Args:
            origin: Centre of the coverage area
            state_code: 2-letter state code used in county queries
            county_names: Candidate counties of the state
            radius_miles: Inclusive radius
            context: Request-scoped cache; a fresh one is created if omitted

        Returns:
            ProximityResult with county names sorted by distance
        """
        ctx = context if context is not None else ResolutionContext()

        center_county = self._find_center_county(origin, county_names, ctx)

        candidates = list(dict.fromkeys(county_names))[:MAX_CANDIDATE_COUNTIES]
        if len(county_names) > MAX_CANDIDATE_COUNTIES:
            logger.info(
                f"Capping {len(county_names)} {state_code} counties to the first {MAX_CANDIDATE_COUNTIES}"
            )

        for county in candidates:
            if ctx.cached(county) is not None:
                continue
            coordinate = self._geocode_county(county, state_code, ctx)
            if coordinate is None:
                ctx.skipped_counties.append(county)
                continue
            ctx.cache_coordinate(county, coordinate)

        kept: list[CountyDistance] = []
        for county in candidates:
            coordinate = ctx.cached(county)
            if coordinate is None:
                continue
            miles = haversine_miles(origin, coordinate)
            if miles <= radius_miles:
                kept.append(CountyDistance(county, miles))

        kept.sort(key=lambda cd: cd.distance_miles)

        counties = [cd.county_name for cd in kept]
        if center_county and center_county not in counties:
            counties.insert(0, center_county)

        logger.info(
            f"Resolved {len(counties)} counties within {radius_miles} miles of "
            f"({origin.lat:.4f}, {origin.lon:.4f}) in {state_code}; "
            f"center={center_county}, skipped={len(ctx.skipped_counties)}"
        )

        return ProximityResult(
            counties=counties,
            center_county=center_county,
            radius_miles=radius_miles,
            distances=kept,
            skipped=list(ctx.skipped_counties),
        )

    def _find_center_county(
        self,
        origin: Coordinate,
        county_names: list[str],
        ctx: ResolutionContext,
    ) -> str | None:
        ctx.provider_calls += 1
        hit = self.executor.execute(
            lambda: self.geocoder.reverse_geocode(origin),
            self.pacer,
            label=f"reverse geocode ({origin.lat:.4f}, {origin.lon:.4f})",
        )
        if hit is None:
            logger.info("Reverse geocoding found no place for the origin")
            return None

        center = match_center_county(hit, county_names)
        if center is None:
            logger.debug(f"No candidate county found in '{hit.address_text()}'")
        return center

    def _geocode_county(
        self,
        county: str,
        state_code: str,
        ctx: ResolutionContext,
    ) -> Coordinate | None:
        query = county_query(county, state_code)
        ctx.provider_calls += 1
        hit = self.executor.execute(
            lambda: self.geocoder.forward_geocode(query),
            self.pacer,
            label=query,
        )
        if hit is None:
            logger.warning(f"Skipping county '{county}': no coordinates for '{query}'")
            return None
        return hit.coordinate
