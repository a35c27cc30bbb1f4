"""
Moves simulated vehicles between landmarks.

A vehicle is in one of three phases: without a route, waiting for a route
fetch, or following a route. While a fetch is outstanding the vehicle creeps
in a straight line toward its target so a tick never waits on the network.
"""
from __future__ import annotations

import logging
import math
import random
from typing import List, Optional, Sequence

from .geo import BoundingBox, bearing_deg, planar_distance_deg
from .routes import nearest_vertex_index, position_along_route
from .routing import RouteFetcher, straight_line
from .telemetry import Coordinate, Landmark, Polyline, VehicleState

LOGGER = logging.getLogger(__name__)


def route_name(origin: Landmark, target: Landmark) -> str:
    return f"{origin.name} to {target.name}"


class MotionDriver:
    def __init__(
        self,
        landmarks: Sequence[Landmark],
        fetcher: RouteFetcher,
        bounds: BoundingBox,
        arrival_tolerance_deg: float = 0.001,
        fallback_step_deg: float = 0.0005,
        rng: Optional[random.Random] = None,
    ):
        if len(landmarks) < 2:
            raise ValueError("At least two landmarks are required to plan trips.")
        self.landmarks: List[Landmark] = list(landmarks)
        self.fetcher = fetcher
        self.bounds = bounds
        self.arrival_tolerance_deg = arrival_tolerance_deg
        self.fallback_step_deg = fallback_step_deg
        self.rng = rng or random.Random()

    def create_vehicle(self, vehicle_id: str, index: int) -> VehicleState:
        origin = self.landmarks[index % len(self.landmarks)]
        target = self._pick_target(exclude=origin)
        return VehicleState(
            id=vehicle_id,
            position=origin.coordinate,
            origin=origin,
            target=target,
            route_name=route_name(origin, target),
        )

    def _pick_target(self, exclude: Landmark) -> Landmark:
        return self.rng.choice([landmark for landmark in self.landmarks if landmark != exclude])

    def advance(self, state: VehicleState, now: float) -> None:
        """
        Move `state` to its position at `now`.
        """
        if state.route is None:
            self._await_route(state, now)
        if state.route is not None:
            self._follow_route(state, now)

        state.position = self.bounds.clamp(state.position)

        if self._has_arrived(state):
            self._arrive(state)

    def _await_route(self, state: VehicleState, now: float) -> None:
        future = state.pending_route
        if future is None or state.pending_target != state.target:
            future = self.fetcher.request(state.origin.coordinate, state.target.coordinate)
            state.pending_route = future
            state.pending_target = state.target

        if not future.done():
            self._step_towards_target(state)
            return

        if future.cancelled() or future.exception() is not None:
            route: Polyline = straight_line(state.origin.coordinate, state.target.coordinate)
        else:
            route = future.result()
        state.pending_route = None
        state.pending_target = None
        state.follow(route, now)

    def _step_towards_target(self, state: VehicleState) -> None:
        target = state.target.coordinate
        distance = planar_distance_deg(state.position, target)
        if distance == 0:
            return
        state.direction_deg = bearing_deg(state.position, target)
        if state.speed_kmh <= 0:
            return
        if distance <= self.fallback_step_deg:
            state.position = target
            return
        ratio = self.fallback_step_deg / distance
        state.position = Coordinate(
            lng=state.position.lng + (target.lng - state.position.lng) * ratio,
            lat=state.position.lat + (target.lat - state.position.lat) * ratio,
        )

    def _follow_route(self, state: VehicleState, now: float) -> None:
        route = state.route
        # Stopped vehicles hold where they are instead of snapping back to
        # the start of the route.
        if state.speed_kmh > 0:
            elapsed = now - state.route_start_epoch
            state.position = position_along_route(route, state.speed_kmh, elapsed)

        last = len(route) - 1
        if last < 1:
            state.route_progress = 1.0
            return

        state.route_progress = nearest_vertex_index(route, state.position) / last
        index = min(int(math.floor(state.route_progress * last + 1e-9)), last - 1)
        state.direction_deg = bearing_deg(route[index], route[index + 1])

    def _has_arrived(self, state: VehicleState) -> bool:
        destination = state.route[-1] if state.route else state.target.coordinate
        return planar_distance_deg(state.position, destination) < self.arrival_tolerance_deg

    def _arrive(self, state: VehicleState) -> None:
        arrived_at = state.target
        state.origin = arrived_at
        state.target = self._pick_target(exclude=arrived_at)
        state.route_name = route_name(state.origin, state.target)
        state.clear_route()
        LOGGER.info("Vehicle %s reached %s, heading to %s", state.id, arrived_at.name, state.target.name)
