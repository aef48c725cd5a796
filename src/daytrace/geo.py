"""Distance and geohash helpers."""

import math
from typing import Iterable, Optional, Sequence, Tuple

import numpy as np
import pygeohash as pgh
from geopy.distance import geodesic

EARTH_RADIUS_M = 6_371_000


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def encode_geohash(lat: float, lon: float, precision: int = 7) -> str:
    """Geohash of a coordinate. Precision 7 cells are roughly 150 m across."""
    return pgh.encode(lat, lon, precision=precision)


def path_distance_m(points: Iterable[Tuple[float, float]]) -> float:
    """Geodesic length of a polyline of (lat, lon) points in meters."""
    total = 0.0
    prev = None
    for point in points:
        if prev is not None:
            total += geodesic(prev, point).meters
        prev = point
    return total


def centroid(points: Sequence[Tuple[float, float]]) -> Optional[Tuple[float, float]]:
    """Mean latitude/longitude, or None for no points."""
    if not points:
        return None
    arr = np.asarray(points, dtype=float)
    lat, lon = arr.mean(axis=0)
    return float(lat), float(lon)
