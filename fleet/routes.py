"""
Position of a vehicle travelling along a polyline at a constant speed.

Coordinates are interpolated linearly in degrees inside each segment while
segment lengths are measured along the great circle. At city scale the
difference is a few centimetres, which is accepted as an approximation.
"""
from __future__ import annotations

import bisect
from dataclasses import dataclass
from typing import List

from .geo import distance_meters, planar_distance_deg
from .telemetry import Coordinate, Polyline


@dataclass(frozen=True)
class RoutePosition:
    """
    Interpolated position on a route.

    Attributes:
        coordinate: the interpolated point.
        segment_index: index of the segment start vertex.
        ratio: fraction of that segment already covered, in [0, 1].
    """
    coordinate: Coordinate
    segment_index: int
    ratio: float


def cumulative_meters(route: Polyline) -> List[float]:
    cumulative: List[float] = [0.0]
    for start, end in zip(route[:-1], route[1:]):
        cumulative.append(cumulative[-1] + distance_meters(start, end))
    return cumulative


def route_length_meters(route: Polyline) -> float:
    return cumulative_meters(route)[-1]


def walk_route(route: Polyline, speed_kmh: float, elapsed_seconds: float) -> RoutePosition:
    """
    Walk `route` for `elapsed_seconds` at `speed_kmh`.

    Negative speeds and elapsed times count as zero, so the walk never goes
    backwards. Past the end of the route the final vertex is returned.
    """
    if len(route) < 2:
        return RoutePosition(route[0], 0, 0.0)

    speed_kmh = max(speed_kmh, 0.0)
    elapsed_seconds = max(elapsed_seconds, 0.0)
    traveled_m = (speed_kmh / 3600) * elapsed_seconds * 1000

    cumulative = cumulative_meters(route)
    if traveled_m >= cumulative[-1]:
        return RoutePosition(route[-1], len(route) - 2, 1.0)

    idx = max(bisect.bisect_left(cumulative, traveled_m) - 1, 0)
    start = route[idx]
    end = route[idx + 1]
    segment_m = cumulative[idx + 1] - cumulative[idx]
    ratio = (traveled_m - cumulative[idx]) / segment_m if segment_m > 0 else 0.0

    coordinate = Coordinate(
        lng=start.lng + (end.lng - start.lng) * ratio,
        lat=start.lat + (end.lat - start.lat) * ratio,
    )
    return RoutePosition(coordinate, idx, ratio)


def position_along_route(route: Polyline, speed_kmh: float, elapsed_seconds: float) -> Coordinate:
    return walk_route(route, speed_kmh, elapsed_seconds).coordinate


def nearest_vertex_index(route: Polyline, position: Coordinate) -> int:
    return min(
        range(len(route)),
        key=lambda index: planar_distance_deg(route[index], position),
    )
