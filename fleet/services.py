"""
Persistence-backed collaborators for the alert pipeline: vehicle state,
alerts, the event log, and the ingestion flow that ties them to the
detector.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from django.db import DatabaseError, transaction

from .alerts import DEFAULT_SPEED_LIMIT_KMH, DetectionResult, process_sample
from .models import Alert, SimulatorSettings, Vehicle, VehicleEvent as VehicleEventRecord
from .models import VehicleHistory, epoch_to_datetime
from .telemetry import AlertEvent, TelemetrySample, VehicleEvent, VehicleStatus

LOGGER = logging.getLogger(__name__)


class VehicleStore:
    def get_vehicle(self, vehicle_id: str) -> Optional[Vehicle]:
        return Vehicle.objects.filter(vehicle_id=vehicle_id).first()

    def upsert_vehicle(self, sample: TelemetrySample) -> Vehicle:
        vehicle, _ = Vehicle.objects.update_or_create(
            vehicle_id=sample.vehicle_id,
            defaults={
                "latitude": sample.position.lat,
                "longitude": sample.position.lng,
                "speed": sample.speed_kmh or 0.0,
                "status": sample.status.value,
                "route_name": sample.route_name or "",
                "timestamp": epoch_to_datetime(sample.timestamp),
            },
        )
        return vehicle

    def set_status(self, vehicle_id: str, status: VehicleStatus) -> None:
        Vehicle.objects.filter(vehicle_id=vehicle_id).update(status=status.value)

    def record_history(self, sample: TelemetrySample) -> None:
        try:
            with transaction.atomic():
                VehicleHistory.objects.create(
                    vehicle_id=sample.vehicle_id,
                    latitude=sample.position.lat,
                    longitude=sample.position.lng,
                    speed=sample.speed_kmh or 0.0,
                    timestamp=epoch_to_datetime(sample.timestamp),
                )
        except DatabaseError as error:
            LOGGER.warning("Could not save history for %s: %s", sample.vehicle_id, error)


class AlertStore:
    def insert_alert(self, event: AlertEvent) -> Alert:
        return Alert.objects.create(
            vehicle_id=event.vehicle_id,
            alert_type=event.alert_type.value,
            latitude=event.position.lat,
            longitude=event.position.lng,
            speed_at_alert=event.speed_at_alert,
            severity=event.severity.value,
            resolved=False,
            created_at=epoch_to_datetime(event.created_at),
        )

    def current_speed_limit(self, default: float = DEFAULT_SPEED_LIMIT_KMH) -> float:
        try:
            settings = SimulatorSettings.latest()
        except DatabaseError as error:
            LOGGER.warning("Could not fetch overspeeding limit, using default: %s", error)
            return default
        if settings is None or not settings.overspeeding_limit:
            return default
        return settings.overspeeding_limit


class EventStore:
    def insert_event(self, event: VehicleEvent) -> None:
        """Best effort: failures are logged and never raised."""
        try:
            # Savepoint keeps an outer transaction usable after a failed insert.
            with transaction.atomic():
                VehicleEventRecord.objects.create(
                    vehicle_id=event.vehicle_id,
                    event_type=event.event_type.value,
                    latitude=event.position.lat,
                    longitude=event.position.lng,
                    speed=event.speed_kmh,
                    previous_value=event.previous_value,
                    new_value=event.new_value,
                    description=event.description,
                    timestamp=epoch_to_datetime(event.timestamp),
                )
        except DatabaseError as error:
            LOGGER.warning("Could not log %s event for %s: %s", event.event_type.value, event.vehicle_id, error)


@dataclass
class IngestResult:
    vehicle: Vehicle
    alert: Optional[Alert] = None
    events: List[VehicleEvent] = field(default_factory=list)
    detection: Optional[DetectionResult] = None


class TelemetryIngestor:
    """
    Store a sample and run the detector against the previously stored one.
    """

    def __init__(
        self,
        vehicles: Optional[VehicleStore] = None,
        alerts: Optional[AlertStore] = None,
        events: Optional[EventStore] = None,
    ):
        self.vehicles = vehicles or VehicleStore()
        self.alerts = alerts or AlertStore()
        self.events = events or EventStore()

    def ingest(self, sample: TelemetrySample, default_speed_limit_kmh: Optional[float] = None) -> IngestResult:
        stored_previous = self.vehicles.get_vehicle(sample.vehicle_id)
        previous = stored_previous.to_sample() if stored_previous else None

        speed_limit = self.alerts.current_speed_limit(
            default=default_speed_limit_kmh or DEFAULT_SPEED_LIMIT_KMH
        )
        detection = process_sample(sample, previous, speed_limit)

        # Stored status and its alert commit or roll back together.
        alert = None
        with transaction.atomic():
            vehicle = self.vehicles.upsert_vehicle(sample)
            if detection.status is not None and detection.status != sample.status:
                self.vehicles.set_status(sample.vehicle_id, detection.status)
                vehicle.status = detection.status.value
            if detection.alert is not None:
                alert = self.alerts.insert_alert(detection.alert)

        self.vehicles.record_history(sample)

        if alert is not None:
            LOGGER.info(
                "%s alert for vehicle %s: %s km/h at (%s, %s)",
                detection.alert.alert_type.value,
                sample.vehicle_id,
                sample.speed_kmh,
                sample.position.lat,
                sample.position.lng,
            )

        for event in detection.events:
            self.events.insert_event(event)

        return IngestResult(vehicle=vehicle, alert=alert, events=detection.events, detection=detection)
