from __future__ import annotations

import math
from typing import Iterable, Protocol, TypeVar

EARTH_RADIUS_M = 6371e3


class Located(Protocol):
    latitude: float
    longitude: float


T = TypeVar("T", bound=Located)


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in metres between two lat/lng points."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def within_radius(items: Iterable[T], lat: float, lng: float, max_distance_m: float) -> list[tuple[T, float]]:
    """
    Filter items to those within max_distance_m of (lat, lng).

    Returns (item, distance_m) pairs, nearest first.
    """
    hits = []
    for item in items:
        if item.latitude is None or item.longitude is None:
            continue
        distance = haversine_m(lat, lng, item.latitude, item.longitude)
        if distance <= max_distance_m:
            hits.append((item, distance))
    hits.sort(key=lambda pair: pair[1])
    return hits
