import json
import math
import random
from concurrent.futures import Future
from dataclasses import replace
from unittest import mock

import requests
from django.db import DatabaseError
from django.test import Client, SimpleTestCase, TestCase
from django.urls import reverse

from . import views
from .alerts import check_overspeed, detect_accident, process_sample
from .conf import DEFAULT_SIMULATOR_CONFIG
from .geo import BoundingBox, bearing_deg, distance_meters
from .models import Alert, SimulatorSettings, Vehicle, VehicleEvent, VehicleHistory
from .motion import MotionDriver
from .routes import position_along_route, walk_route
from .routing import (
    MapboxRoutingProvider, OSRMRoutingProvider, RouteFetchError, RouteFetcher,
    get_routing_provider,
)
from .scenarios import SPEED_RANGES, STATUS_BY_SCENARIO, ScenarioGenerator
from .services import TelemetryIngestor, VehicleStore
from .simulator import (
    RunSettings, SimulatorAlreadyRunning, SimulatorConfigurationError,
    SimulatorError, SimulatorNotRunning, SimulatorRunner,
)
from .telemetry import (
    AlertType, Coordinate, EventType, Landmark, Scenario, Severity,
    TelemetrySample, VehicleStatus,
)

ONE_KM_DEG = math.degrees(1000 / 6371000.0)
BASE_TS = 1_700_000_000.0

POINT_A = Coordinate(lng=77.60, lat=12.90)
POINT_B = Coordinate(lng=77.60, lat=12.90 + ONE_KM_DEG)
POINT_C = Coordinate(lng=77.61, lat=12.90)


class ScriptedRandom:
    """Deterministic stand-in for random.Random."""

    def __init__(self, rolls=()):
        self.rolls = list(rolls)

    def random(self):
        return self.rolls.pop(0)

    def uniform(self, low, high):
        return (low + high) / 2

    def choice(self, seq):
        return seq[0]


class StubFetcher:
    def __init__(self, complete=True, route=None):
        self.complete = complete
        self.route = route
        self.calls = []
        self.futures = []

    def request(self, origin, destination):
        self.calls.append((origin, destination))
        future = Future()
        if self.complete:
            future.set_result(self.route or (origin, destination))
        self.futures.append(future)
        return future

    def shutdown(self):
        pass


def make_sample(speed, status=VehicleStatus.NORMAL, ts=BASE_TS, route="MG Road to Hebbal", vehicle_id="V001"):
    return TelemetrySample(
        vehicle_id=vehicle_id,
        position=POINT_A,
        speed_kmh=speed,
        status=status,
        route_name=route,
        timestamp=ts,
    )


class GeoTests(SimpleTestCase):
    def test_distance_is_symmetric(self):
        a = Coordinate(lng=77.6093, lat=12.9750)
        b = Coordinate(lng=77.6633, lat=12.8456)
        self.assertAlmostEqual(distance_meters(a, b), distance_meters(b, a), places=6)
        self.assertGreater(distance_meters(a, b), 15000)

    def test_distance_to_self_is_zero(self):
        self.assertEqual(distance_meters(POINT_A, POINT_A), 0.0)

    def test_meridian_kilometre(self):
        self.assertAlmostEqual(distance_meters(POINT_A, POINT_B), 1000.0, places=3)

    def test_antipodal_points_do_not_raise(self):
        distance = distance_meters(Coordinate(lng=0.0, lat=0.0), Coordinate(lng=180.0, lat=0.0))
        self.assertAlmostEqual(distance, math.pi * 6371000.0, delta=1.0)

    def test_bearing(self):
        self.assertAlmostEqual(bearing_deg(POINT_A, POINT_B), 0.0, places=6)
        east = Coordinate(lng=0.01, lat=0.0)
        self.assertAlmostEqual(bearing_deg(Coordinate(lng=0.0, lat=0.0), east), 90.0, places=6)

    def test_bounding_box_clamps(self):
        box = BoundingBox.around(POINT_A, lat_range=0.1, lng_range=0.1)
        inside = Coordinate(lng=77.65, lat=12.95)
        self.assertIs(box.clamp(inside), inside)
        clamped = box.clamp(Coordinate(lng=78.5, lat=11.0))
        self.assertAlmostEqual(clamped.lng, 77.70)
        self.assertAlmostEqual(clamped.lat, 12.80)


class RouteWalkerTests(SimpleTestCase):
    route = (POINT_A, POINT_B)

    def test_zero_elapsed_returns_start(self):
        self.assertEqual(position_along_route(self.route, 36, 0), POINT_A)

    def test_midpoint_after_half_the_distance(self):
        position = position_along_route(self.route, 36, 50)
        self.assertAlmostEqual(position.lat, POINT_A.lat + ONE_KM_DEG / 2, places=7)
        self.assertAlmostEqual(position.lng, POINT_A.lng, places=9)

    def test_clamped_at_destination(self):
        self.assertEqual(position_along_route(self.route, 36, 150), POINT_B)
        self.assertEqual(position_along_route(self.route, 36, 10_000), POINT_B)

    def test_negative_inputs_do_not_move_backwards(self):
        self.assertEqual(position_along_route(self.route, 36, -20), POINT_A)
        self.assertEqual(position_along_route(self.route, -36, 20), POINT_A)

    def test_single_point_route(self):
        self.assertEqual(position_along_route((POINT_C,), 80, 100), POINT_C)

    def test_zero_length_segment(self):
        position = position_along_route((POINT_A, POINT_A, POINT_B), 36, 25)
        self.assertAlmostEqual(position.lat, POINT_A.lat + ONE_KM_DEG / 4, places=7)

    def test_progress_is_monotonic(self):
        route = (
            POINT_A,
            POINT_B,
            Coordinate(lng=77.605, lat=POINT_B.lat),
            Coordinate(lng=77.605, lat=12.905),
        )
        previous = (-1, -1.0)
        for elapsed in range(0, 600, 7):
            walked = walk_route(route, 45, elapsed)
            current = (walked.segment_index, walked.ratio)
            self.assertGreaterEqual(current, previous)
            previous = current
        self.assertEqual(walk_route(route, 45, 10_000).coordinate, route[-1])


class ScenarioGeneratorTests(SimpleTestCase):
    def test_normal_driving_stays(self):
        outcome = ScenarioGenerator(ScriptedRandom([0.5])).next(Scenario.NORMAL_DRIVING)
        self.assertEqual(outcome.scenario, Scenario.NORMAL_DRIVING)
        self.assertEqual(outcome.speed_kmh, 45.0)
        self.assertEqual(outcome.status, VehicleStatus.NORMAL)

    def test_overspeeding_starts_in_the_same_tick(self):
        outcome = ScenarioGenerator(ScriptedRandom([0.05])).next(Scenario.NORMAL_DRIVING)
        self.assertEqual(outcome.scenario, Scenario.OVERSPEEDING)
        self.assertEqual(outcome.speed_kmh, 80.0)
        self.assertEqual(outcome.status, VehicleStatus.OVERSPEEDING)

    def test_recovery_reports_normal_speed_in_the_same_tick(self):
        outcome = ScenarioGenerator(ScriptedRandom([0.1, 0.5])).next(Scenario.OVERSPEEDING)
        self.assertEqual(outcome.scenario, Scenario.NORMAL_DRIVING)
        self.assertEqual(outcome.speed_kmh, 45.0)
        self.assertEqual(outcome.status, VehicleStatus.NORMAL)

    def test_overspeeding_crashes(self):
        outcome = ScenarioGenerator(ScriptedRandom([0.5, 0.01])).next(Scenario.OVERSPEEDING)
        self.assertEqual(outcome.scenario, Scenario.ACCIDENT)
        self.assertEqual(outcome.speed_kmh, 0.0)
        self.assertEqual(outcome.status, VehicleStatus.ACCIDENT)

    def test_accident_overrides_recovery(self):
        outcome = ScenarioGenerator(ScriptedRandom([0.1, 0.01])).next(Scenario.OVERSPEEDING)
        self.assertEqual(outcome.scenario, Scenario.ACCIDENT)
        self.assertEqual(outcome.speed_kmh, 0.0)
        self.assertEqual(outcome.status, VehicleStatus.ACCIDENT)

    def test_accident_roll_is_always_made_while_overspeeding(self):
        for recover_roll in (0.1, 0.9):
            rng = ScriptedRandom([recover_roll, 0.5])
            ScenarioGenerator(rng).next(Scenario.OVERSPEEDING)
            self.assertEqual(rng.rolls, [])

    def test_overspeeding_continues(self):
        outcome = ScenarioGenerator(ScriptedRandom([0.5, 0.5])).next(Scenario.OVERSPEEDING)
        self.assertEqual(outcome.scenario, Scenario.OVERSPEEDING)
        self.assertEqual(outcome.status, VehicleStatus.OVERSPEEDING)

    def test_stationary_resumes_in_the_same_tick(self):
        generator = ScenarioGenerator(ScriptedRandom([0.2, 0.9]))
        resumed = generator.next(Scenario.STATIONARY)
        self.assertEqual(resumed.scenario, Scenario.NORMAL_DRIVING)
        self.assertEqual(resumed.speed_kmh, 45.0)
        self.assertEqual(resumed.status, VehicleStatus.NORMAL)

        parked = generator.next(Scenario.STATIONARY)
        self.assertEqual(parked.scenario, Scenario.STATIONARY)
        self.assertEqual(parked.speed_kmh, 0.0)

    def test_accident_is_absorbing(self):
        generator = ScenarioGenerator(random.Random(7))
        scenario = Scenario.ACCIDENT
        for _ in range(500):
            outcome = generator.next(scenario)
            self.assertEqual(outcome.scenario, Scenario.ACCIDENT)
            self.assertEqual(outcome.speed_kmh, 0.0)
            scenario = outcome.scenario

    def test_speed_matches_reported_scenario(self):
        generator = ScenarioGenerator(random.Random(11))
        for _ in range(200):
            for scenario in (Scenario.NORMAL_DRIVING, Scenario.OVERSPEEDING, Scenario.STATIONARY):
                outcome = generator.next(scenario)
                low, high = SPEED_RANGES[outcome.scenario]
                self.assertTrue(low <= outcome.speed_kmh <= high)
                self.assertEqual(outcome.status, STATUS_BY_SCENARIO[outcome.scenario])


class AlertDetectorTests(SimpleTestCase):
    def test_overspeed_boundary(self):
        self.assertFalse(check_overspeed(make_sample(60), 60))
        self.assertTrue(check_overspeed(make_sample(61), 60))

    def test_sudden_stop_rule(self):
        previous = make_sample(35, ts=BASE_TS)
        self.assertTrue(detect_accident(make_sample(0, ts=BASE_TS + 2), previous))
        self.assertFalse(detect_accident(make_sample(0, ts=BASE_TS + 4), previous))

    def test_hard_brake_rule(self):
        previous = make_sample(80, ts=BASE_TS)
        self.assertTrue(detect_accident(make_sample(30, ts=BASE_TS + 1.5), previous))
        self.assertFalse(detect_accident(make_sample(45, ts=BASE_TS + 1.5), previous))

    def test_no_previous_sample(self):
        self.assertFalse(detect_accident(make_sample(0), None))

    def test_first_overspeed_raises_medium_alert(self):
        result = process_sample(make_sample(80, VehicleStatus.OVERSPEEDING), None, 60)
        self.assertEqual(result.alert.alert_type, AlertType.OVERSPEEDING)
        self.assertEqual(result.alert.severity, Severity.MEDIUM)
        self.assertEqual(result.status, VehicleStatus.OVERSPEEDING)
        self.assertEqual([event.event_type for event in result.events], [EventType.OVERSPEEDING])

    def test_one_alert_per_overspeeding_episode(self):
        speeds = [80, 85, 90, 50, 75, 78]
        previous = None
        alerts = []
        for index, speed in enumerate(speeds):
            status = VehicleStatus.OVERSPEEDING if speed > 60 else VehicleStatus.NORMAL
            current = make_sample(speed, status, ts=BASE_TS + index * 5)
            result = process_sample(current, previous, 60)
            alerts.append(result.alert)
            overspeed_events = [e for e in result.events if e.event_type == EventType.OVERSPEEDING]
            self.assertEqual(len(overspeed_events), 1 if speed > 60 else 0)
            previous = replace(current, status=result.status or current.status)

        self.assertIsNotNone(alerts[0])
        self.assertEqual(alerts[1:4], [None, None, None])
        self.assertIsNotNone(alerts[4])
        self.assertIsNone(alerts[5])

    def test_accident_alert(self):
        previous = make_sample(50, ts=BASE_TS)
        result = process_sample(make_sample(0, ts=BASE_TS + 1), previous, 60)
        self.assertEqual(result.alert.alert_type, AlertType.ACCIDENT)
        self.assertEqual(result.alert.severity, Severity.HIGH)
        self.assertEqual(result.status, VehicleStatus.ACCIDENT)
        self.assertIn(EventType.ACCIDENT, [event.event_type for event in result.events])

    def test_accident_not_repeated_once_recorded(self):
        previous = make_sample(50, VehicleStatus.ACCIDENT, ts=BASE_TS)
        result = process_sample(make_sample(0, VehicleStatus.ACCIDENT, ts=BASE_TS + 1), previous, 60)
        self.assertIsNone(result.alert)
        self.assertIsNone(result.status)

    def test_status_change_and_reset(self):
        previous = make_sample(50, ts=BASE_TS)
        current = make_sample(55, VehicleStatus.OVERSPEEDING, ts=BASE_TS + 5)
        result = process_sample(current, previous, 60)
        self.assertIsNone(result.alert)
        self.assertEqual(result.status, VehicleStatus.NORMAL)
        self.assertEqual(len(result.events), 1)
        event = result.events[0]
        self.assertEqual(event.event_type, EventType.STATUS_CHANGE)
        self.assertEqual((event.previous_value, event.new_value), ("normal", "overspeeding"))

    def test_route_change_event(self):
        previous = make_sample(40, ts=BASE_TS, route="MG Road to Hebbal")
        current = make_sample(42, ts=BASE_TS + 5, route="Hebbal to Whitefield")
        result = process_sample(current, previous, 60)
        self.assertEqual([event.event_type for event in result.events], [EventType.ROUTE_CHANGE])
        self.assertEqual(result.events[0].new_value, "Hebbal to Whitefield")

    def test_quiet_sample_produces_nothing(self):
        previous = make_sample(40, ts=BASE_TS)
        result = process_sample(make_sample(42, ts=BASE_TS + 5), previous, 60)
        self.assertIsNone(result.alert)
        self.assertEqual(result.events, [])
        self.assertIsNone(result.status)


class RoutingTests(SimpleTestCase):
    def _session(self, payload):
        session = mock.Mock()
        session.get.return_value.json.return_value = payload
        return session

    def test_osrm_route_is_parsed(self):
        session = self._session(
            {
                "code": "Ok",
                "routes": [{"geometry": {"coordinates": [[77.6, 12.9], [77.62, 12.91], [77.7, 13.0]]}}],
            }
        )
        provider = OSRMRoutingProvider(session=session, timeout_seconds=3)
        route = provider.fetch_route(Coordinate(lng=77.6, lat=12.9), Coordinate(lng=77.7, lat=13.0))

        self.assertEqual(len(route), 3)
        self.assertEqual(route[1], Coordinate(lng=77.62, lat=12.91))
        url = session.get.call_args[0][0]
        self.assertIn("/route/v1/driving/77.6,12.9;77.7,13.0", url)
        self.assertEqual(session.get.call_args[1]["timeout"], 3)

    def test_missing_route_raises(self):
        provider = OSRMRoutingProvider(session=self._session({"code": "NoRoute", "routes": []}))
        with self.assertRaises(RouteFetchError):
            provider.fetch_route(POINT_A, POINT_B)

    def test_timeout_raises(self):
        session = mock.Mock()
        session.get.side_effect = requests.exceptions.Timeout("slow")
        with self.assertRaises(RouteFetchError):
            OSRMRoutingProvider(session=session).fetch_route(POINT_A, POINT_B)

    def test_mapbox_requires_token(self):
        with self.assertRaises(ValueError):
            MapboxRoutingProvider("")
        provider = MapboxRoutingProvider("pk.test", session=mock.Mock())
        self.assertEqual(provider._params()["access_token"], "pk.test")

    def test_mapbox_without_token_falls_back_to_osrm(self):
        provider = get_routing_provider({"provider": "mapbox", "mapbox_access_token": ""})
        self.assertIsInstance(provider, OSRMRoutingProvider)

    def test_fetcher_falls_back_to_straight_line(self):
        provider = mock.Mock()
        provider.fetch_route.side_effect = RouteFetchError("down")
        fetcher = RouteFetcher(provider)
        try:
            route = fetcher.request(POINT_A, POINT_B).result(timeout=5)
        finally:
            fetcher.shutdown()
        self.assertEqual(route, (POINT_A, POINT_B))
        self.assertEqual(len(fetcher.cache), 0)

    def test_fetcher_caches_routes(self):
        provider = mock.Mock()
        provider.fetch_route.return_value = (POINT_A, POINT_C, POINT_B)
        fetcher = RouteFetcher(provider)
        try:
            first = fetcher.request(POINT_A, POINT_B).result(timeout=5)
            second = fetcher.request(POINT_A, POINT_B)
        finally:
            fetcher.shutdown()
        self.assertTrue(second.done())
        self.assertIs(second.result(), first)
        provider.fetch_route.assert_called_once_with(POINT_A, POINT_B)


class MotionDriverTests(SimpleTestCase):
    def setUp(self):
        self.landmarks = [
            Landmark("A", POINT_A),
            Landmark("B", POINT_B),
            Landmark("C", POINT_C),
        ]
        self.bounds = BoundingBox.around(POINT_A, 0.15, 0.15)

    def _driver(self, fetcher, bounds=None):
        return MotionDriver(self.landmarks, fetcher, bounds or self.bounds, rng=ScriptedRandom())

    def test_vehicle_starts_at_origin_landmark(self):
        state = self._driver(StubFetcher()).create_vehicle("V001", 0)
        self.assertEqual(state.position, POINT_A)
        self.assertEqual(state.target.name, "B")
        self.assertEqual(state.route_name, "A to B")
        self.assertIsNone(state.route)

    def test_straight_line_fallback_while_fetch_pending(self):
        fetcher = StubFetcher(complete=False)
        driver = self._driver(fetcher)
        state = driver.create_vehicle("V001", 0)
        state.speed_kmh = 36

        driver.advance(state, 100.0)
        self.assertEqual(fetcher.calls, [(POINT_A, POINT_B)])
        self.assertIsNone(state.route)
        self.assertAlmostEqual(state.position.lat, POINT_A.lat + 0.0005, places=9)
        self.assertAlmostEqual(state.direction_deg, 0.0, places=6)

        driver.advance(state, 105.0)
        self.assertEqual(len(fetcher.calls), 1)
        self.assertAlmostEqual(state.position.lat, POINT_A.lat + 0.001, places=9)

    def test_follows_fetched_route(self):
        driver = self._driver(StubFetcher())
        state = driver.create_vehicle("V001", 0)
        state.speed_kmh = 36

        driver.advance(state, 100.0)
        self.assertEqual(state.route, (POINT_A, POINT_B))
        self.assertEqual(state.route_start_epoch, 100.0)
        self.assertEqual(state.position, POINT_A)
        self.assertEqual(state.route_progress, 0.0)

        driver.advance(state, 175.0)
        self.assertAlmostEqual(state.position.lat, POINT_A.lat + ONE_KM_DEG * 0.75, places=7)
        self.assertEqual(state.route_progress, 1.0)
        self.assertAlmostEqual(state.direction_deg, 0.0, places=6)

    def test_arrival_picks_new_destination(self):
        driver = self._driver(StubFetcher())
        state = driver.create_vehicle("V001", 0)
        state.speed_kmh = 36
        driver.advance(state, 100.0)

        driver.advance(state, 300.0)
        self.assertEqual(state.origin.name, "B")
        self.assertEqual(state.target.name, "A")
        self.assertEqual(state.route_name, "B to A")
        self.assertIsNone(state.route)
        self.assertIsNone(state.route_start_epoch)
        self.assertIsNone(state.pending_route)

    def test_stale_fetch_is_ignored(self):
        fetcher = StubFetcher(complete=False)
        driver = self._driver(fetcher)
        state = driver.create_vehicle("V001", 0)
        state.speed_kmh = 36
        driver.advance(state, 100.0)

        state.target = self.landmarks[2]
        driver.advance(state, 105.0)
        self.assertEqual(fetcher.calls[-1], (POINT_A, POINT_C))

        fetcher.futures[0].set_result((POINT_A, POINT_B))
        driver.advance(state, 110.0)
        self.assertIsNone(state.route)
        self.assertIs(state.pending_route, fetcher.futures[1])

    def test_failed_fetch_uses_straight_line(self):
        fetcher = StubFetcher(complete=False)
        driver = self._driver(fetcher)
        state = driver.create_vehicle("V001", 0)
        driver.advance(state, 100.0)
        fetcher.futures[0].set_exception(RuntimeError("boom"))

        driver.advance(state, 105.0)
        self.assertEqual(state.route, (POINT_A, POINT_B))

    def test_stopped_vehicle_holds_position(self):
        driver = self._driver(StubFetcher())
        state = driver.create_vehicle("V001", 0)
        state.speed_kmh = 36
        driver.advance(state, 100.0)
        driver.advance(state, 130.0)
        held = state.position

        state.speed_kmh = 0
        driver.advance(state, 160.0)
        self.assertEqual(state.position, held)

    def test_position_clamped_to_bounds(self):
        bounds = BoundingBox.around(POINT_A, 0.002, 0.002)
        driver = self._driver(StubFetcher(), bounds=bounds)
        state = driver.create_vehicle("V001", 0)
        state.speed_kmh = 36
        driver.advance(state, 100.0)

        driver.advance(state, 180.0)
        self.assertTrue(bounds.contains(state.position))
        self.assertAlmostEqual(state.position.lat, POINT_A.lat + 0.002, places=9)


class TelemetryIngestorTests(TestCase):
    def setUp(self):
        self.ingestor = TelemetryIngestor()

    def test_first_sample_creates_vehicle(self):
        result = self.ingestor.ingest(make_sample(42, ts=BASE_TS))

        vehicle = Vehicle.objects.get(vehicle_id="V001")
        self.assertEqual(result.vehicle.pk, vehicle.pk)
        self.assertEqual(vehicle.speed, 42)
        self.assertEqual(vehicle.status, "normal")
        self.assertAlmostEqual(vehicle.latitude, POINT_A.lat)
        self.assertEqual(vehicle.route_name, "MG Road to Hebbal")
        self.assertEqual(VehicleHistory.objects.count(), 1)
        self.assertIsNone(result.alert)

    def test_stored_vehicle_fields(self):
        result = self.ingestor.ingest(make_sample(42, ts=BASE_TS))
        self.assertEqual(
            set(result.vehicle.as_dict()),
            {"vehicle_id", "latitude", "longitude", "speed", "status", "route_name", "timestamp"},
        )

    def test_single_alert_while_overspeeding(self):
        for index in range(3):
            self.ingestor.ingest(make_sample(80, VehicleStatus.OVERSPEEDING, ts=BASE_TS + index * 5))

        self.assertEqual(Alert.objects.count(), 1)
        alert = Alert.objects.get()
        self.assertEqual(alert.alert_type, "overspeeding")
        self.assertEqual(alert.severity, "medium")
        self.assertEqual(VehicleEvent.objects.filter(event_type="overspeeding").count(), 3)

    def test_speed_limit_from_settings(self):
        SimulatorSettings.objects.create(max_vehicles=3, overspeeding_limit=40, update_interval=5000)

        result = self.ingestor.ingest(make_sample(50, ts=BASE_TS))

        self.assertIsNotNone(result.alert)
        self.assertEqual(Vehicle.objects.get(vehicle_id="V001").status, "overspeeding")

    def test_default_limit_when_no_settings(self):
        result = self.ingestor.ingest(make_sample(50, ts=BASE_TS), default_speed_limit_kmh=45)
        self.assertIsNotNone(result.alert)

    def test_accident_detected_from_stored_sample(self):
        self.ingestor.ingest(make_sample(50, ts=BASE_TS))
        result = self.ingestor.ingest(make_sample(0, ts=BASE_TS + 2))

        self.assertEqual(result.alert.alert_type, "accident")
        self.assertEqual(result.alert.severity, "high")
        self.assertEqual(Vehicle.objects.get(vehicle_id="V001").status, "accident")

    def test_overspeeding_status_reset_when_under_limit(self):
        self.ingestor.ingest(make_sample(50, VehicleStatus.OVERSPEEDING, ts=BASE_TS))
        self.assertEqual(Vehicle.objects.get(vehicle_id="V001").status, "normal")

    def test_event_failures_do_not_block_alerts(self):
        with mock.patch.object(
            VehicleEvent.objects, "create", side_effect=DatabaseError("events table unavailable")
        ):
            with self.assertLogs("fleet.services", level="WARNING"):
                result = self.ingestor.ingest(make_sample(80, VehicleStatus.OVERSPEEDING, ts=BASE_TS))

        self.assertIsNotNone(result.alert)
        self.assertEqual(Alert.objects.count(), 1)
        self.assertEqual(VehicleEvent.objects.count(), 0)

    def test_failed_alert_insert_rolls_back_vehicle_status(self):
        with mock.patch.object(Alert.objects, "create", side_effect=DatabaseError("alerts table locked")):
            with self.assertRaises(DatabaseError):
                self.ingestor.ingest(make_sample(80, ts=BASE_TS))
        self.assertFalse(Vehicle.objects.filter(vehicle_id="V001").exists())

        self.ingestor.ingest(make_sample(82, ts=BASE_TS + 5))
        self.ingestor.ingest(make_sample(85, ts=BASE_TS + 10))

        self.assertEqual(Alert.objects.filter(alert_type="overspeeding").count(), 1)
        self.assertEqual(Vehicle.objects.get(vehicle_id="V001").status, "overspeeding")

    def test_vehicle_upsert_failure_propagates(self):
        with mock.patch.object(VehicleStore, "upsert_vehicle", side_effect=DatabaseError("down")):
            with self.assertRaises(DatabaseError):
                self.ingestor.ingest(make_sample(40))
        self.assertEqual(Alert.objects.count(), 0)


class SimulatorRunnerTests(TestCase):
    def setUp(self):
        self.fetcher = StubFetcher()
        self.runner = SimulatorRunner(
            fetcher=self.fetcher,
            rng=random.Random(3),
            config=dict(DEFAULT_SIMULATOR_CONFIG),
        )
        self.settings = RunSettings(max_vehicles=3, overspeeding_limit=60, update_interval_ms=60000)

    def tearDown(self):
        if self.runner.is_running:
            self.runner.stop()

    def test_start_and_status(self):
        status = self.runner.start(2, self.settings, background=False)
        self.assertTrue(status["is_running"])
        self.assertEqual(status["vehicle_count"], 2)
        self.assertIsNotNone(status["started_at"])

    def test_start_twice_is_rejected(self):
        self.runner.start(1, self.settings, background=False)
        with self.assertRaises(SimulatorAlreadyRunning):
            self.runner.start(1, self.settings, background=False)

    def test_vehicle_count_is_validated(self):
        with self.assertRaises(SimulatorConfigurationError):
            self.runner.start(4, self.settings, background=False)
        with self.assertRaises(SimulatorConfigurationError):
            self.runner.start(0, self.settings, background=False)
        self.assertFalse(self.runner.is_running)

    def test_stop_when_not_running(self):
        with self.assertRaises(SimulatorNotRunning):
            self.runner.stop()

    def test_tick_ingests_every_vehicle(self):
        self.runner.start(2, self.settings, background=False)
        samples = self.runner.tick(now=BASE_TS)

        self.assertEqual([sample.vehicle_id for sample in samples], ["V001", "V002"])
        self.assertEqual(
            sorted(Vehicle.objects.values_list("vehicle_id", flat=True)), ["V001", "V002"]
        )
        self.assertEqual(len(self.fetcher.calls), 2)

    def test_failing_vehicle_does_not_stop_others(self):
        ingestor = mock.Mock()
        ingestor.ingest.side_effect = [RuntimeError("db down"), None]
        runner = SimulatorRunner(
            ingestor=ingestor,
            fetcher=StubFetcher(),
            rng=random.Random(3),
            config=dict(DEFAULT_SIMULATOR_CONFIG),
        )
        runner.start(2, self.settings, background=False)
        with self.assertLogs("fleet.simulator", level="ERROR"):
            samples = runner.tick(now=BASE_TS)
        runner.stop()

        self.assertEqual([sample.vehicle_id for sample in samples], ["V002"])
        self.assertEqual(ingestor.ingest.call_count, 2)

    def test_stop_discards_vehicles(self):
        self.runner.start(2, self.settings, background=False)
        result = self.runner.stop()

        self.assertIn("runtime_seconds", result)
        self.assertEqual(self.runner.status()["vehicle_count"], 0)
        self.assertEqual(self.runner.tick(now=BASE_TS), [])
        with self.assertRaises(SimulatorError):
            self.runner.start(1, self.settings, background=False)

    def test_background_thread_stops(self):
        self.runner.start(1, self.settings)
        thread = self.runner._thread
        self.assertTrue(thread.is_alive())
        self.runner.stop()
        self.assertFalse(thread.is_alive())

    def test_forced_accident_scenario(self):
        self.runner.start(1, self.settings, background=False)
        self.assertTrue(self.runner.set_scenario("V001", Scenario.ACCIDENT))
        self.assertFalse(self.runner.set_scenario("V999", Scenario.ACCIDENT))

        for offset in range(3):
            sample = self.runner.tick(now=BASE_TS + offset * 5)[0]
            self.assertEqual(sample.speed_kmh, 0.0)
            self.assertEqual(sample.status, VehicleStatus.ACCIDENT)


class SimulatorAPITests(TestCase):
    def setUp(self):
        self.client = Client()
        SimulatorSettings.objects.create(max_vehicles=2, overspeeding_limit=60, update_interval=60000)

    def tearDown(self):
        runner = views.get_active_runner()
        if runner is not None and runner.is_running:
            runner.stop()
        views._runner = None

    def test_status_when_idle(self):
        response = self.client.get(reverse("fleet:simulator-status"))
        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.json()["data"]["is_running"])

    def test_start_and_stop(self):
        start_url = reverse("fleet:simulator-start")
        stop_url = reverse("fleet:simulator-stop")

        response = self.client.post(start_url, data=json.dumps({"vehicleCount": 2}), content_type="application/json")
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["data"]["is_running"])
        self.assertEqual(response.json()["data"]["vehicle_count"], 2)

        again = self.client.post(start_url, data=json.dumps({"vehicleCount": 1}), content_type="application/json")
        self.assertEqual(again.status_code, 400)

        status = self.client.get(reverse("fleet:simulator-status")).json()["data"]
        self.assertTrue(status["is_running"])

        self.assertEqual(self.client.post(stop_url).status_code, 200)
        self.assertEqual(self.client.post(stop_url).status_code, 400)

    def test_start_rejects_too_many_vehicles(self):
        response = self.client.post(
            reverse("fleet:simulator-start"),
            data=json.dumps({"vehicleCount": 5}),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 400)
        self.assertFalse(response.json()["success"])

    def test_settings_validation(self):
        url = reverse("fleet:simulator-settings")
        bad = self.client.put(
            url,
            data=json.dumps({"max_vehicles": 10, "overspeeding_limit": 60, "update_interval": 5000}),
            content_type="application/json",
        )
        self.assertEqual(bad.status_code, 400)

        good = self.client.put(
            url,
            data=json.dumps({"max_vehicles": 4, "overspeeding_limit": 80, "update_interval": 3000}),
            content_type="application/json",
        )
        self.assertEqual(good.status_code, 200)
        self.assertEqual(SimulatorSettings.latest().overspeeding_limit, 80)
        self.assertEqual(self.client.get(url).json()["data"]["max_vehicles"], 4)

    def test_settings_missing_fields_use_defaults(self):
        url = reverse("fleet:simulator-settings")
        response = self.client.put(
            url,
            data=json.dumps({"overspeeding_limit": 90}),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json()["data"],
            {"max_vehicles": 3, "overspeeding_limit": 90, "update_interval": 5000},
        )
        stored = SimulatorSettings.latest()
        self.assertEqual((stored.max_vehicles, stored.update_interval), (3, 5000))

    def test_ingest_endpoint(self):
        url = reverse("fleet:vehicle-data")
        payload = {
            "vehicle_id": "V010",
            "latitude": 12.97,
            "longitude": 77.60,
            "speed": 95,
            "status": "overspeeding",
            "route_name": "MG Road to Whitefield",
        }
        response = self.client.post(url, data=json.dumps(payload), content_type="application/json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["alert"]["alert_type"], "overspeeding")

        listing = self.client.get(url).json()["data"]
        self.assertEqual([vehicle["vehicle_id"] for vehicle in listing], ["V010"])
        alerts = self.client.get(reverse("fleet:alert-list"), {"vehicle_id": "V010"}).json()["data"]
        self.assertEqual(len(alerts), 1)

    def test_ingest_rejects_malformed_telemetry(self):
        url = reverse("fleet:vehicle-data")
        bad_latitude = {"vehicle_id": "V010", "latitude": 200, "longitude": 77.6}
        response = self.client.post(url, data=json.dumps(bad_latitude), content_type="application/json")
        self.assertEqual(response.status_code, 400)

        response = self.client.post(url, data="not json", content_type="application/json")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(Vehicle.objects.count(), 0)
