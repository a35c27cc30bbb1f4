"""
Classify telemetry samples into safety alerts and informational events.

Everything here is pure: `process_sample` compares a sample with the
previously stored one and reports what the caller should persist.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from .telemetry import (
    AlertEvent,
    AlertType,
    EventType,
    Severity,
    TelemetrySample,
    VehicleEvent,
    VehicleStatus,
)

DEFAULT_SPEED_LIMIT_KMH = 60

SUDDEN_STOP_MIN_SPEED_KMH = 30
SUDDEN_STOP_WINDOW_S = 3
HARD_BRAKE_DROP_KMH = 40
HARD_BRAKE_WINDOW_S = 2

SEVERITY_BY_ALERT = {
    AlertType.ACCIDENT: Severity.HIGH,
    AlertType.OVERSPEEDING: Severity.MEDIUM,
}


@dataclass
class DetectionResult:
    """
    Attributes:
        alert: the alert to record, if any.
        events: informational events, in emission order.
        status: status to write back to the stored vehicle, or None to keep it.
    """
    alert: Optional[AlertEvent] = None
    events: List[VehicleEvent] = field(default_factory=list)
    status: Optional[VehicleStatus] = None


def check_overspeed(sample: TelemetrySample, speed_limit_kmh: float = DEFAULT_SPEED_LIMIT_KMH) -> bool:
    return sample.speed_kmh > speed_limit_kmh


def detect_accident(current: TelemetrySample, previous: Optional[TelemetrySample]) -> bool:
    """
    An accident is either a sudden stop from 30+ km/h within 3 seconds or a
    drop of more than 40 km/h within 2 seconds.
    """
    if previous is None:
        return False

    elapsed = current.timestamp - previous.timestamp
    if (
        previous.speed_kmh >= SUDDEN_STOP_MIN_SPEED_KMH
        and current.speed_kmh == 0
        and elapsed <= SUDDEN_STOP_WINDOW_S
    ):
        return True

    speed_drop = previous.speed_kmh - current.speed_kmh
    return speed_drop > HARD_BRAKE_DROP_KMH and elapsed <= HARD_BRAKE_WINDOW_S


def build_alert(sample: TelemetrySample, alert_type: AlertType) -> AlertEvent:
    return AlertEvent(
        vehicle_id=sample.vehicle_id,
        alert_type=alert_type,
        position=sample.position,
        speed_at_alert=sample.speed_kmh,
        severity=SEVERITY_BY_ALERT[alert_type],
        created_at=sample.timestamp,
    )


def _event(
    sample: TelemetrySample,
    event_type: EventType,
    previous_value: str,
    new_value: str,
    description: str,
) -> VehicleEvent:
    return VehicleEvent(
        vehicle_id=sample.vehicle_id,
        event_type=event_type,
        position=sample.position,
        speed_kmh=sample.speed_kmh,
        previous_value=previous_value,
        new_value=new_value,
        description=description,
        timestamp=sample.timestamp,
    )


def process_sample(
    current: TelemetrySample,
    previous: Optional[TelemetrySample],
    speed_limit_kmh: float = DEFAULT_SPEED_LIMIT_KMH,
) -> DetectionResult:
    """
    Evaluate `current` against the previously stored sample.

    An overspeeding alert is raised only when the vehicle enters an episode
    (no previous sample, or the previous stored status was not overspeeding);
    the overspeeding event is recorded on every overspeeding sample. Accident
    detection is skipped once the stored status is already `accident`.
    """
    result = DetectionResult()
    previous_status = previous.status.value if previous else VehicleStatus.NORMAL.value

    overspeeding = check_overspeed(current, speed_limit_kmh)
    if overspeeding:
        result.status = VehicleStatus.OVERSPEEDING
        if previous is None or previous.status != VehicleStatus.OVERSPEEDING:
            result.alert = build_alert(current, AlertType.OVERSPEEDING)
        result.events.append(
            _event(
                current,
                EventType.OVERSPEEDING,
                previous_status,
                VehicleStatus.OVERSPEEDING.value,
                f"Vehicle exceeded speed limit of {speed_limit_kmh} km/h "
                f"(current speed: {current.speed_kmh} km/h)",
            )
        )

    accident = (
        previous is not None
        and previous.status != VehicleStatus.ACCIDENT
        and detect_accident(current, previous)
    )
    if accident:
        result.status = VehicleStatus.ACCIDENT
        result.alert = build_alert(current, AlertType.ACCIDENT)
        result.events.append(
            _event(
                current,
                EventType.ACCIDENT,
                previous_status,
                VehicleStatus.ACCIDENT.value,
                f"Accident detected - speed dropped from {previous.speed_kmh} km/h "
                f"to {current.speed_kmh} km/h",
            )
        )

    if previous is not None and previous.status != current.status:
        result.events.append(
            _event(
                current,
                EventType.STATUS_CHANGE,
                previous.status.value,
                current.status.value,
                f"Status changed from {previous.status.value} to {current.status.value}",
            )
        )

    if current.status == VehicleStatus.OVERSPEEDING and not overspeeding and not accident:
        result.status = VehicleStatus.NORMAL

    if previous is not None and previous.route_name != current.route_name:
        result.events.append(
            _event(
                current,
                EventType.ROUTE_CHANGE,
                previous.route_name or "N/A",
                current.route_name or "N/A",
                f"Route changed to {current.route_name or 'N/A'}",
            )
        )

    return result
