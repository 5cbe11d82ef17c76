"""Geospatial helpers."""
from __future__ import annotations

import math
from typing import List, Sequence

from .models import Coordinate

CORRIDOR_FRACTIONS = (0.25, 0.5, 0.75)


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    r = 6371.0
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)

    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return r * c


def interpolate(origin: Coordinate, destination: Coordinate, t: float) -> Coordinate:
    return Coordinate(
        origin.lat + (destination.lat - origin.lat) * t,
        origin.lon + (destination.lon - origin.lon) * t,
    )


def corridor_points(
    origin: Coordinate,
    destination: Coordinate,
    fractions: Sequence[float] = CORRIDOR_FRACTIONS,
) -> List[Coordinate]:
    """Sample the straight origin->destination line; no road network involved."""
    return [interpolate(origin, destination, t) for t in fractions]
