"""Towns and cities inside a set of counties.

Runs several free-text query variants per county against Nominatim,
keeps populated places and merges them into one sorted list. A paid
provider key, when given, adds a best-effort enrichment pass.
"""

from __future__ import annotations

import logging

from .geocoding.base import Geocoder, RateLimiter
from .geocoding.models import GeocodeHit, ResolutionContext, TownResult
from .geocoding.retry import RetryExecutor
from .proximity import county_query

logger = logging.getLogger(__name__)

MAX_COUNTIES = 10
MAX_ENRICHMENT_COUNTIES = 5
SEARCH_LIMIT = 50

POPULATED_PLACE_TYPES = frozenset(
    {"city", "town", "village", "municipality", "hamlet", "locality"}
)


def town_queries(county: str, state_code: str) -> list[str]:
    """Query variants for one county, most specific first."""
    state = state_code.upper()
    base = county_query(county, state)
    named = base.rsplit(",", 2)[0]  # "<county> County"
    return [
        base,
        f"cities in {named}, {state}",
        f"towns in {named}, {state}",
    ]


def is_populated_place(hit: GeocodeHit) -> bool:
    return hit.place_class == "place" or hit.place_type in POPULATED_PLACE_TYPES


def town_name(hit: GeocodeHit, county_names: set[str]) -> str | None:
    """Name to record for a hit, or None when the hit is not a usable town."""
    if not is_populated_place(hit):
        return None
    name = hit.name.strip()
    if len(name) <= 1:
        return None
    lowered = name.lower()
    if lowered.endswith(" county") or lowered in county_names:
        return None
    return name


class TownEnumerator:
    """Collects populated places for a list of counties.

    Args:
        geocoder: Nominatim adapter used for the query variants
        pacer: Nominatim pacer
        executor: Retry executor shared with the caller
    """

    def __init__(self, geocoder: Geocoder, pacer: RateLimiter, executor: RetryExecutor):
        self.geocoder = geocoder
        self.pacer = pacer
        self.executor = executor

    def enumerate(
        self,
        county_names: list[str],
        state_code: str,
        enrichment: tuple[Geocoder, RateLimiter] | None = None,
        context: ResolutionContext | None = None,
    ) -> TownResult:
        """Enumerate towns in the given counties.

        Args:
            county_names: Counties to search, only the first 10 are queried
            state_code: 2-letter state code
            enrichment: Optional (geocoder, pacer) of a paid provider
            context: Request-scoped state; a fresh one is created if omitted

        Returns:
            TownResult with towns sorted case-insensitively
        """
        ctx = context if context is not None else ResolutionContext()
        counties = county_names[:MAX_COUNTIES]
        excluded = {c.strip().lower() for c in county_names}

        for county in counties:
            for query in town_queries(county, state_code):
                self._collect(self.geocoder, self.pacer, query, excluded, ctx)

        if enrichment is not None:
            paid_geocoder, paid_pacer = enrichment
            for county in county_names[:MAX_ENRICHMENT_COUNTIES]:
                query = town_queries(county, state_code)[-1]
                self._collect(paid_geocoder, paid_pacer, query, excluded, ctx, max_retries=1)

        towns = sorted(ctx.towns, key=str.lower)
        logger.info(f"Found {len(towns)} towns in {len(counties)} {state_code.upper()} counties")
        return TownResult(success=True, towns=towns)

    def _collect(
        self,
        geocoder: Geocoder,
        pacer: RateLimiter,
        query: str,
        excluded: set[str],
        ctx: ResolutionContext,
        max_retries: int | None = None,
    ) -> None:
        ctx.provider_calls += 1
        hits = self.executor.execute(
            lambda: geocoder.search(query, limit=SEARCH_LIMIT),
            pacer,
            max_retries=max_retries,
            label=query,
        )
        if not hits:
            logger.debug(f"No hits for '{query}'")
            return

        added = 0
        for hit in hits:
            name = town_name(hit, excluded)
            if name and name not in ctx.towns:
                ctx.towns.add(name)
                added += 1
        logger.debug(f"'{query}': {len(hits)} hits, {added} new towns")
