"""Great-circle distance helpers."""

from math import atan2, cos, radians, sin, sqrt

from .models import Coordinate

EARTH_RADIUS_MILES = 3959


def haversine_miles(a: Coordinate, b: Coordinate) -> float:
    """
    Distance between two coordinates using the Haversine formula.

    Returns:
        Distance in statute miles
    """
    lat1, lon1 = radians(a.lat), radians(a.lon)
    lat2, lon2 = radians(b.lat), radians(b.lon)

    dlat = lat2 - lat1
    dlon = lon2 - lon1

    x = sin(dlat/2)**2 + cos(lat1) * cos(lat2) * sin(dlon/2)**2
    c = 2 * atan2(sqrt(x), sqrt(1-x))

    return EARTH_RADIUS_MILES * c
