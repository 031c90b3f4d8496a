from __future__ import annotations

import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from coverage_geo.geocoding.base import Geocoder
from coverage_geo.geocoding.models import Coordinate, GeocodeHit, ProviderName


class FakeClock:
    """Monotonic clock whose sleep just advances time."""

    def __init__(self, start: float = 100.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeGeocoder(Geocoder):
    """Scripted geocoder.

    `places` maps a query to a list of hits or to an exception instance
    raised on every call. Unknown queries return no hits.
    """

    provider = ProviderName.NOMINATIM

    def __init__(self, places=None, reverse=None):
        self.places = dict(places or {})
        self.reverse = reverse
        self.queries: list[str] = []
        self.reverse_calls: list[Coordinate] = []

    def search(self, query, limit=1):
        self.queries.append(query)
        outcome = self.places.get(query, [])
        if isinstance(outcome, Exception):
            raise outcome
        return list(outcome)[:limit]

    def reverse_geocode(self, coordinate):
        self.reverse_calls.append(coordinate)
        if isinstance(self.reverse, Exception):
            raise self.reverse
        return self.reverse


def make_hit(lat, lon, name="", county="", display_name="", place_type="", place_class=""):
    address = {"county": county} if county else {}
    return GeocodeHit(
        coordinate=Coordinate(lat, lon),
        display_name=display_name or name,
        name=name,
        address=address,
        place_type=place_type,
        place_class=place_class,
    )


@pytest.fixture
def clock():
    return FakeClock()
