from datetime import datetime, timezone

from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from .telemetry import Coordinate, TelemetrySample, VehicleStatus

STATUS_CHOICES = [
    ('normal', 'Normal'),
    ('overspeeding', 'Overspeeding'),
    ('accident', 'Accident'),
]


def epoch_to_datetime(epoch):
    return datetime.fromtimestamp(epoch, tz=timezone.utc)


class Vehicle(models.Model):
    vehicle_id = models.CharField(max_length=50, unique=True)
    latitude = models.FloatField(default=0.0)
    longitude = models.FloatField(default=0.0)
    speed = models.FloatField(default=0.0)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='normal')
    route_name = models.CharField(max_length=200, blank=True, default='')
    timestamp = models.DateTimeField()
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-timestamp']

    def __str__(self):
        return self.vehicle_id

    def to_sample(self):
        return TelemetrySample(
            vehicle_id=self.vehicle_id,
            position=Coordinate(lng=self.longitude, lat=self.latitude),
            speed_kmh=self.speed,
            status=VehicleStatus(self.status),
            route_name=self.route_name,
            timestamp=self.timestamp.timestamp(),
        )

    def as_dict(self):
        return {
            "vehicle_id": self.vehicle_id,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "speed": self.speed,
            "status": self.status,
            "route_name": self.route_name,
            "timestamp": self.timestamp.isoformat(),
        }


class VehicleHistory(models.Model):
    vehicle_id = models.CharField(max_length=50, db_index=True)
    latitude = models.FloatField()
    longitude = models.FloatField()
    speed = models.FloatField(default=0.0)
    timestamp = models.DateTimeField()

    class Meta:
        ordering = ['-timestamp']
        verbose_name_plural = 'vehicle history'


class Alert(models.Model):
    ALERT_TYPE_CHOICES = [
        ('overspeeding', 'Overspeeding'),
        ('accident', 'Accident'),
    ]
    SEVERITY_CHOICES = [
        ('low', 'Low'),
        ('medium', 'Medium'),
        ('high', 'High'),
    ]
    vehicle_id = models.CharField(max_length=50, db_index=True)
    alert_type = models.CharField(max_length=20, choices=ALERT_TYPE_CHOICES)
    latitude = models.FloatField()
    longitude = models.FloatField()
    speed_at_alert = models.FloatField()
    severity = models.CharField(max_length=10, choices=SEVERITY_CHOICES)
    resolved = models.BooleanField(default=False)
    created_at = models.DateTimeField()

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.alert_type} ({self.vehicle_id})"

    def as_dict(self):
        return {
            "id": self.pk,
            "vehicle_id": self.vehicle_id,
            "alert_type": self.alert_type,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "speed_at_alert": self.speed_at_alert,
            "severity": self.severity,
            "resolved": self.resolved,
            "created_at": self.created_at.isoformat(),
        }


class VehicleEvent(models.Model):
    EVENT_TYPE_CHOICES = [
        ('overspeeding', 'Overspeeding'),
        ('accident', 'Accident'),
        ('status_change', 'Status change'),
        ('route_change', 'Route change'),
    ]
    vehicle_id = models.CharField(max_length=50, db_index=True)
    event_type = models.CharField(max_length=20, choices=EVENT_TYPE_CHOICES)
    latitude = models.FloatField()
    longitude = models.FloatField()
    speed = models.FloatField(null=True, blank=True)
    previous_value = models.CharField(max_length=200, blank=True, default='')
    new_value = models.CharField(max_length=200, blank=True, default='')
    description = models.TextField(blank=True, default='')
    timestamp = models.DateTimeField()

    class Meta:
        ordering = ['-timestamp']


class SimulatorSettings(models.Model):
    max_vehicles = models.PositiveIntegerField(
        default=3, validators=[MinValueValidator(1), MaxValueValidator(6)]
    )
    overspeeding_limit = models.PositiveIntegerField(
        default=60, validators=[MinValueValidator(40), MaxValueValidator(120)]
    )
    update_interval = models.PositiveIntegerField(
        default=5000, validators=[MinValueValidator(1000)]
    )  # milliseconds
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = 'simulator settings'

    @classmethod
    def latest(cls):
        return cls.objects.order_by('-updated_at', '-pk').first()

    def as_dict(self):
        return {
            "max_vehicles": self.max_vehicles,
            "overspeeding_limit": self.overspeeding_limit,
            "update_interval": self.update_interval,
        }
