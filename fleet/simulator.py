"""
Simulator run: a periodic tick that moves every vehicle, picks its speed
and feeds the resulting telemetry through the ingestion pipeline.

One `SimulatorRunner` owns one run's timer thread and vehicle table. The
hosting process is responsible for keeping at most one of them alive.
"""
from __future__ import annotations

import logging
import random
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from django.db import connection

from .conf import build_bounds, build_landmarks, get_routing_config, get_simulator_config
from .motion import MotionDriver
from .routing import RouteFetcher, get_routing_provider
from .scenarios import ScenarioGenerator
from .services import TelemetryIngestor
from .telemetry import Scenario, TelemetrySample, VehicleState

LOGGER = logging.getLogger(__name__)


class SimulatorError(Exception):
    """Base class for simulator control errors."""


class SimulatorAlreadyRunning(SimulatorError):
    def __init__(self):
        super().__init__("Simulator is already running")


class SimulatorNotRunning(SimulatorError):
    def __init__(self):
        super().__init__("Simulator is not running")


class SimulatorConfigurationError(SimulatorError):
    pass


@dataclass(frozen=True)
class RunSettings:
    max_vehicles: int = 6
    overspeeding_limit: float = 60
    update_interval_ms: int = 5000

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "RunSettings":
        return cls(
            max_vehicles=int(config["max_vehicles"]),
            overspeeding_limit=float(config["default_speed_limit_kmh"]),
            update_interval_ms=int(config["update_interval_ms"]),
        )


class SimulatorRunner:
    def __init__(
        self,
        ingestor: Optional[TelemetryIngestor] = None,
        fetcher: Optional[RouteFetcher] = None,
        scenarios: Optional[ScenarioGenerator] = None,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
        config: Optional[Dict[str, Any]] = None,
    ):
        self.config = config or get_simulator_config()
        self.ingestor = ingestor or TelemetryIngestor()
        self.clock = clock
        self.rng = rng or random.Random()
        self.scenarios = scenarios or ScenarioGenerator(self.rng)
        if fetcher is None:
            routing = get_routing_config()
            fetcher = RouteFetcher(get_routing_provider(routing), max_workers=routing.get("max_workers", 4))
        self.fetcher = fetcher
        self.driver = MotionDriver(
            build_landmarks(self.config),
            self.fetcher,
            build_bounds(self.config),
            arrival_tolerance_deg=self.config["arrival_tolerance_deg"],
            fallback_step_deg=self.config["fallback_step_deg"],
            rng=self.rng,
        )

        self.settings = RunSettings.from_config(self.config)
        self.started_at: Optional[datetime] = None
        self._vehicles: Dict[str, VehicleState] = {}
        self._running = False
        self._finished = False
        self._lock = threading.RLock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self, vehicle_count: int, settings: Optional[RunSettings] = None, background: bool = True) -> Dict[str, Any]:
        """
        Start a run with `vehicle_count` vehicles at the landmark origins.

        Raises:
            SimulatorAlreadyRunning: a run is in progress.
            SimulatorConfigurationError: the count is outside 1..max_vehicles.
        """
        with self._lock:
            if self._running:
                raise SimulatorAlreadyRunning()
            if self._finished:
                raise SimulatorError("A stopped runner cannot be restarted; create a new one")

            settings = settings or self.settings
            if vehicle_count < 1:
                raise SimulatorConfigurationError("vehicle_count must be at least 1")
            if vehicle_count > settings.max_vehicles:
                raise SimulatorConfigurationError(
                    f"vehicle_count {vehicle_count} exceeds max_vehicles {settings.max_vehicles}"
                )
            if settings.update_interval_ms <= 0:
                raise SimulatorConfigurationError("update_interval_ms must be positive")

            self.settings = settings
            id_format = self.config["vehicle_id_format"]
            self._vehicles = {}
            for index in range(vehicle_count):
                vehicle_id = id_format.format(index + 1)
                self._vehicles[vehicle_id] = self.driver.create_vehicle(vehicle_id, index)

            self._running = True
            self.started_at = datetime.now(timezone.utc)
            self._stop_event.clear()

            if background:
                self._thread = threading.Thread(target=self._run_loop, name="fleet-simulator", daemon=True)
                self._thread.start()

        LOGGER.info(
            "Simulator started with %s vehicles, update interval %sms",
            vehicle_count,
            settings.update_interval_ms,
        )
        return self.status()

    def stop(self) -> Dict[str, Any]:
        with self._lock:
            if not self._running:
                raise SimulatorNotRunning()
            self._running = False
            self._stop_event.set()
            thread = self._thread
            self._thread = None

        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.settings.update_interval_ms / 1000.0 + 1.0)

        with self._lock:
            # Pending fetches finish on their own; their results are never applied.
            self.fetcher.shutdown()
            self._finished = True
            self._vehicles = {}
            runtime = int((datetime.now(timezone.utc) - self.started_at).total_seconds()) if self.started_at else 0
            self.started_at = None

        LOGGER.info("Simulator stopped. Runtime: %s seconds", runtime)
        return {"runtime_seconds": runtime}

    def status(self) -> Dict[str, Any]:
        return {
            "is_running": self._running,
            "vehicle_count": len(self._vehicles),
            "started_at": self.started_at.isoformat() if self.started_at else None,
        }

    def vehicles(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [state.snapshot() for state in self._vehicles.values()]

    def set_scenario(self, vehicle_id: str, scenario: Scenario) -> bool:
        with self._lock:
            state = self._vehicles.get(vehicle_id)
            if state is None:
                return False
            ScenarioGenerator.reset(state, scenario)
        LOGGER.info("Set %s to scenario %s", vehicle_id, scenario.value)
        return True

    def _run_loop(self) -> None:
        interval = self.settings.update_interval_ms / 1000.0
        try:
            while not self._stop_event.wait(interval):
                try:
                    self.tick()
                except Exception:
                    LOGGER.exception("Simulator tick failed")
        finally:
            connection.close()

    def tick(self, now: Optional[float] = None) -> List[TelemetrySample]:
        """
        Advance every active vehicle once and ingest its sample.

        A failure for one vehicle is logged and does not stop the others.
        """
        now = self.clock() if now is None else now
        samples: List[TelemetrySample] = []
        with self._lock:
            if not self._running:
                return samples
            states = list(self._vehicles.values())

            for state in states:
                try:
                    samples.append(self._tick_vehicle(state, now))
                except Exception:
                    LOGGER.exception("Error updating vehicle %s", state.id)

        return samples

    def _tick_vehicle(self, state: VehicleState, now: float) -> TelemetrySample:
        self.driver.advance(state, now)
        self.scenarios.apply(state)
        sample = TelemetrySample(
            vehicle_id=state.id,
            position=state.position,
            speed_kmh=state.speed_kmh,
            status=state.status,
            route_name=state.route_name,
            timestamp=now,
        )
        self.ingestor.ingest(sample, default_speed_limit_kmh=self.settings.overspeeding_limit)
        LOGGER.debug(
            "%s: %s km/h | Lat: %.6f, Lng: %.6f | Status: %s",
            state.id,
            state.speed_kmh,
            state.position.lat,
            state.position.lng,
            state.status.value,
        )
        return sample
