from django.urls import path
from .views import (
    AlertListAPIView, SimulatorSettingsView, SimulatorStartView,
    SimulatorStatusView, SimulatorStopView, VehicleDataAPIView,
)

app_name = "fleet"

urlpatterns = [
    path("simulator/start/", SimulatorStartView.as_view(), name="simulator-start"),
    path("simulator/stop/", SimulatorStopView.as_view(), name="simulator-stop"),
    path("simulator/status/", SimulatorStatusView.as_view(), name="simulator-status"),
    path("simulator/settings/", SimulatorSettingsView.as_view(), name="simulator-settings"),
    path("api/vehicles/", VehicleDataAPIView.as_view(), name="vehicle-data"),
    path("api/alerts/", AlertListAPIView.as_view(), name="alert-list"),
]
