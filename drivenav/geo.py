"""Geographic utility functions."""

from __future__ import annotations

import math
import random
from typing import TYPE_CHECKING, Optional, Sequence

if TYPE_CHECKING:
    from .models import Coordinates

EARTH_RADIUS = 6371000  # meters


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate distance between two points in meters using Haversine formula"""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    a = (math.sin(delta_phi / 2) ** 2 +
         math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS * c


def distance_between(a: "Coordinates", b: "Coordinates") -> float:
    return haversine_distance(a.lat, a.lon, b.lat, b.lon)


def bearing_between(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate bearing from point 1 to point 2 in degrees (0-360, 0=North)"""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_lambda = math.radians(lon2 - lon1)

    x = math.sin(delta_lambda) * math.cos(phi2)
    y = (math.cos(phi1) * math.sin(phi2) -
         math.sin(phi1) * math.cos(phi2) * math.cos(delta_lambda))

    bearing = math.degrees(math.atan2(x, y))
    return (bearing + 360) % 360


def turn_angle(from_bearing: float, to_bearing: float) -> float:
    """Signed turn in degrees, positive to the right, in (-180, 180]"""
    diff = (to_bearing - from_bearing + 360) % 360
    return diff - 360 if diff > 180 else diff


def polyline_length(points: Sequence["Coordinates"]) -> float:
    """Total length of a polyline in meters"""
    return sum(distance_between(points[i], points[i + 1]) for i in range(len(points) - 1))


def interpolate(a: "Coordinates", b: "Coordinates", fraction: float) -> "Coordinates":
    """Linear interpolation between two nearby points"""
    from .models import Coordinates
    return Coordinates(
        lat=a.lat + (b.lat - a.lat) * fraction,
        lon=a.lon + (b.lon - a.lon) * fraction,
    )


def point_along(points: Sequence["Coordinates"], distance: float) -> "Coordinates":
    """Point at the given distance along a polyline, clamped to its ends"""
    if distance <= 0 or len(points) == 1:
        return points[0]
    remaining = distance
    for i in range(len(points) - 1):
        seg_len = distance_between(points[i], points[i + 1])
        if seg_len > 0 and remaining <= seg_len:
            return interpolate(points[i], points[i + 1], remaining / seg_len)
        remaining -= seg_len
    return points[-1]


def project_onto_segment(point: "Coordinates", a: "Coordinates",
                         b: "Coordinates") -> tuple[float, float]:
    """Project a point onto segment a-b.

    Uses a local equirectangular approximation, which is accurate enough at
    road-segment scale.

    Returns:
        (fraction along the segment in [0, 1], distance from the segment in meters)
    """
    ref_lat = math.radians((a.lat + b.lat) / 2)

    def to_xy(c):
        return (math.radians(c.lon) * EARTH_RADIUS * math.cos(ref_lat),
                math.radians(c.lat) * EARTH_RADIUS)

    px, py = to_xy(point)
    ax, ay = to_xy(a)
    bx, by = to_xy(b)
    dx, dy = bx - ax, by - ay
    seg_len_sq = dx * dx + dy * dy

    if seg_len_sq == 0:
        fraction = 0.0
    else:
        fraction = ((px - ax) * dx + (py - ay) * dy) / seg_len_sq
        fraction = max(0.0, min(1.0, fraction))

    cx = ax + fraction * dx
    cy = ay + fraction * dy
    return fraction, math.hypot(px - cx, py - cy)


def random_coordinates_around(center: "Coordinates", spread: float = 0.02,
                              rng: Optional[random.Random] = None) -> "Coordinates":
    """Sample a coordinate uniformly within +/- spread degrees of center, per axis"""
    from .models import Coordinates
    rng = rng or random
    return Coordinates(
        lat=rng.uniform(center.lat - spread, center.lat + spread),
        lon=rng.uniform(center.lon - spread, center.lon + spread),
    )
