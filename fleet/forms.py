import time

from django import forms

from .models import STATUS_CHOICES, SimulatorSettings
from .telemetry import Coordinate, TelemetrySample, VehicleStatus


class SimulatorSettingsForm(forms.ModelForm):
    """
    Omitted or empty fields fall back to the model defaults rather than
    keeping the previously stored values.
    """

    class Meta:
        model = SimulatorSettings
        fields = ('max_vehicles', 'overspeeding_limit', 'update_interval')

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        for field in self.fields.values():
            field.required = False

    def clean(self):
        cleaned_data = super().clean()
        for name in self._meta.fields:
            if name not in self.errors and cleaned_data.get(name) is None:
                cleaned_data[name] = SimulatorSettings._meta.get_field(name).get_default()
        return cleaned_data


class TelemetryForm(forms.Form):
    vehicle_id = forms.CharField(max_length=50)
    latitude = forms.FloatField(min_value=-90, max_value=90)
    longitude = forms.FloatField(min_value=-180, max_value=180)
    speed = forms.FloatField(min_value=0, required=False)
    status = forms.ChoiceField(choices=STATUS_CHOICES, required=False)
    route_name = forms.CharField(max_length=200, required=False)

    def to_sample(self, timestamp=None):
        data = self.cleaned_data
        return TelemetrySample(
            vehicle_id=data['vehicle_id'],
            position=Coordinate(lng=data['longitude'], lat=data['latitude']),
            speed_kmh=data.get('speed') or 0.0,
            status=VehicleStatus(data.get('status') or 'normal'),
            route_name=data.get('route_name') or '',
            timestamp=time.time() if timestamp is None else timestamp,
        )
