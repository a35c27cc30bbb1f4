"""
Value types shared by the simulator, the route walker and the alert detector.
"""
from __future__ import annotations

from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple


class VehicleStatus(str, Enum):
    NORMAL = "normal"
    OVERSPEEDING = "overspeeding"
    ACCIDENT = "accident"


class Scenario(str, Enum):
    NORMAL_DRIVING = "normal_driving"
    OVERSPEEDING = "overspeeding"
    ACCIDENT = "accident"
    STATIONARY = "stationary"


class AlertType(str, Enum):
    OVERSPEEDING = "overspeeding"
    ACCIDENT = "accident"


class Severity(str, Enum):
    LOW = "low"  # reserved, never produced by the detector
    MEDIUM = "medium"
    HIGH = "high"


class EventType(str, Enum):
    OVERSPEEDING = "overspeeding"
    ACCIDENT = "accident"
    STATUS_CHANGE = "status_change"
    ROUTE_CHANGE = "route_change"


@dataclass(frozen=True)
class Coordinate:
    """WGS84 position in decimal degrees."""
    lng: float
    lat: float

    def as_dict(self) -> dict:
        return {"lat": round(self.lat, 6), "lng": round(self.lng, 6)}


Polyline = Tuple[Coordinate, ...]


@dataclass(frozen=True)
class Landmark:
    name: str
    coordinate: Coordinate


@dataclass(frozen=True)
class TelemetrySample:
    """
    One reading for one vehicle, produced once per tick.

    Attributes:
        timestamp: epoch seconds at which the reading was taken.
    """
    vehicle_id: str
    position: Coordinate
    speed_kmh: float
    status: VehicleStatus
    route_name: str
    timestamp: float


@dataclass(frozen=True)
class AlertEvent:
    vehicle_id: str
    alert_type: AlertType
    position: Coordinate
    speed_at_alert: float
    severity: Severity
    created_at: float


@dataclass(frozen=True)
class VehicleEvent:
    vehicle_id: str
    event_type: EventType
    position: Coordinate
    speed_kmh: float
    previous_value: str
    new_value: str
    description: str
    timestamp: float


@dataclass
class VehicleState:
    """
    Mutable per-vehicle state owned by a single simulator run.

    `route` and `route_start_epoch` are only ever assigned together through
    `follow` and `clear_route`. `route_progress` is derived from `position`
    on every tick and never advanced on its own.
    """
    id: str
    position: Coordinate
    origin: Landmark
    target: Landmark
    route_name: str
    speed_kmh: float = 0.0
    direction_deg: float = 0.0
    status: VehicleStatus = VehicleStatus.NORMAL
    scenario: Scenario = Scenario.NORMAL_DRIVING
    route: Optional[Polyline] = None
    route_start_epoch: Optional[float] = None
    route_progress: float = 0.0
    pending_route: Optional[Future] = field(default=None, repr=False)
    pending_target: Optional[Landmark] = None

    def follow(self, route: Polyline, now: float) -> None:
        self.route = route
        self.route_start_epoch = now
        self.route_progress = 0.0

    def clear_route(self) -> None:
        self.route = None
        self.route_start_epoch = None
        self.route_progress = 0.0
        self.pending_route = None
        self.pending_target = None

    def snapshot(self) -> dict:
        return {
            "id": self.id,
            "location": self.position.as_dict(),
            "speed_kmh": round(self.speed_kmh, 1),
            "heading": round(self.direction_deg, 1),
            "status": self.status.value,
            "scenario": self.scenario.value,
            "route": {
                "name": self.route_name,
                "progress": round(self.route_progress, 3),
                "origin": self.origin.name,
                "destination": self.target.name,
            },
        }
