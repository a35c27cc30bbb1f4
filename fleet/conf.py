"""
Simulator and routing configuration read from Django settings, with
defaults for anything the project does not override.
"""
from __future__ import annotations

from typing import Any, Dict, List, Sequence

from django.conf import settings

from .geo import BoundingBox
from .telemetry import Coordinate, Landmark

# Recognisable Bengaluru locations used as trip endpoints.
DEFAULT_LANDMARKS: Sequence[Dict[str, Any]] = [
    {"name": "MG Road", "lat": 12.9750, "lng": 77.6093},
    {"name": "Electronic City", "lat": 12.8456, "lng": 77.6633},
    {"name": "Whitefield", "lat": 12.9698, "lng": 77.7499},
    {"name": "Koramangala", "lat": 12.9352, "lng": 77.6245},
    {"name": "Indiranagar", "lat": 12.9784, "lng": 77.6408},
    {"name": "Marathahalli", "lat": 12.9592, "lng": 77.6974},
    {"name": "JP Nagar", "lat": 12.9078, "lng": 77.5852},
    {"name": "Hebbal", "lat": 13.0355, "lng": 77.5970},
]

DEFAULT_SIMULATOR_CONFIG: Dict[str, Any] = {
    "update_interval_ms": 5000,
    "max_vehicles": 6,
    "default_speed_limit_kmh": 60,
    "center": {"lat": 12.9750, "lng": 77.6093},
    "lat_range": 0.15,
    "lng_range": 0.15,
    "arrival_tolerance_deg": 0.001,
    "fallback_step_deg": 0.0005,
    "landmarks": DEFAULT_LANDMARKS,
    "vehicle_id_format": "V{:03d}",
}

DEFAULT_ROUTING_CONFIG: Dict[str, Any] = {
    "provider": "osrm",
    "osrm_url": "https://router.project-osrm.org",
    "mapbox_access_token": "",
    "timeout_seconds": 5,
    "max_workers": 4,
}


def get_simulator_config() -> Dict[str, Any]:
    config = dict(DEFAULT_SIMULATOR_CONFIG)
    config.update(getattr(settings, "FLEET_SIMULATOR", None) or {})
    return config


def get_routing_config() -> Dict[str, Any]:
    config = dict(DEFAULT_ROUTING_CONFIG)
    config.update(getattr(settings, "ROUTING_CONFIG", None) or {})
    return config


def build_landmarks(config: Dict[str, Any]) -> List[Landmark]:
    landmarks = [
        Landmark(
            name=entry["name"],
            coordinate=Coordinate(lng=float(entry["lng"]), lat=float(entry["lat"])),
        )
        for entry in config["landmarks"]
    ]
    if len(landmarks) < 2:
        raise ValueError("At least two landmarks are required to plan trips.")
    return landmarks


def build_bounds(config: Dict[str, Any]) -> BoundingBox:
    center = config["center"]
    return BoundingBox.around(
        Coordinate(lng=float(center["lng"]), lat=float(center["lat"])),
        lat_range=float(config["lat_range"]),
        lng_range=float(config["lng_range"]),
    )
