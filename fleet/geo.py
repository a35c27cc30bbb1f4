"""
Distance and heading helpers for WGS84 coordinates.
"""
from __future__ import annotations

import math
from dataclasses import dataclass

from .telemetry import Coordinate

EARTH_RADIUS_M = 6371000.0


def distance_meters(start: Coordinate, end: Coordinate) -> float:
    """
    Compute the great-circle distance between two coordinates in metres
    using the Haversine formula.
    """
    lat1 = math.radians(start.lat)
    lat2 = math.radians(end.lat)
    d_lat = lat2 - lat1
    d_lng = math.radians(end.lng - start.lng)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    )
    # Rounding can push `a` just outside [0, 1] for antipodal points.
    a = min(max(a, 0.0), 1.0)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def bearing_deg(start: Coordinate, end: Coordinate) -> float:
    """
    Compute forward azimuth in degrees clockwise from north, in [0, 360).
    """
    phi1 = math.radians(start.lat)
    phi2 = math.radians(end.lat)
    d_lambda = math.radians(end.lng - start.lng)

    x = math.sin(d_lambda) * math.cos(phi2)
    y = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(
        d_lambda
    )
    bearing = math.degrees(math.atan2(x, y))
    return (bearing + 360) % 360


def planar_distance_deg(start: Coordinate, end: Coordinate) -> float:
    return math.hypot(end.lng - start.lng, end.lat - start.lat)


@dataclass(frozen=True)
class BoundingBox:
    min_lng: float
    min_lat: float
    max_lng: float
    max_lat: float

    @classmethod
    def around(cls, center: Coordinate, lat_range: float, lng_range: float) -> "BoundingBox":
        return cls(
            min_lng=center.lng - lng_range,
            min_lat=center.lat - lat_range,
            max_lng=center.lng + lng_range,
            max_lat=center.lat + lat_range,
        )

    def contains(self, point: Coordinate) -> bool:
        return (
            self.min_lng <= point.lng <= self.max_lng
            and self.min_lat <= point.lat <= self.max_lat
        )

    def clamp(self, point: Coordinate) -> Coordinate:
        if self.contains(point):
            return point
        return Coordinate(
            lng=min(max(point.lng, self.min_lng), self.max_lng),
            lat=min(max(point.lat, self.min_lat), self.max_lat),
        )
