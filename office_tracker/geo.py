"""Great-circle distance and geofence checks."""

from __future__ import annotations

import math
from typing import Final

from .models import Coordinates, OfficeLocation

EARTH_RADIUS_M: Final[float] = 6_371_000.0


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute the haversine distance in meters between two lat/lon points.

    Inputs are degrees and are not range-checked; out-of-range values still
    produce a number.
    """

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2.0) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2.0) ** 2
    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))
    return EARTH_RADIUS_M * c


def distance_m(a: Coordinates | OfficeLocation, b: Coordinates | OfficeLocation) -> float:
    return haversine_m(a.latitude, a.longitude, b.latitude, b.longitude)


def is_inside_geofence(point: Coordinates, office: OfficeLocation) -> bool:
    """Check whether a point is inside or on the boundary of the office geofence."""

    return distance_m(point, office) <= office.radius_m
