from __future__ import annotations

import json
import logging
import threading
from typing import Optional

from django.http import JsonResponse
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt

from .conf import get_simulator_config
from .forms import SimulatorSettingsForm, TelemetryForm
from .models import Alert, SimulatorSettings, Vehicle
from .services import TelemetryIngestor
from .simulator import RunSettings, SimulatorError, SimulatorNotRunning, SimulatorRunner

logger = logging.getLogger(__name__)

# The hosting process keeps at most one runner; a new one is built per run.
_runner: Optional[SimulatorRunner] = None
_runner_lock = threading.Lock()


def get_active_runner() -> Optional[SimulatorRunner]:
    return _runner


def _run_settings() -> RunSettings:
    config = get_simulator_config()
    stored = SimulatorSettings.latest()
    if stored is None:
        return RunSettings.from_config(config)
    return RunSettings(
        max_vehicles=stored.max_vehicles,
        overspeeding_limit=stored.overspeeding_limit,
        update_interval_ms=stored.update_interval,
    )


def _load_json(request):
    if not request.body:
        return {}
    data = json.loads(request.body)
    if not isinstance(data, dict):
        raise ValueError("Expected a JSON object")
    return data


def _error(message, status):
    return JsonResponse({'success': False, 'error': message}, status=status)


@method_decorator(csrf_exempt, name='dispatch')
class SimulatorStartView(View):
    def post(self, request, *args, **kwargs):
        global _runner
        try:
            data = _load_json(request)
        except (json.JSONDecodeError, ValueError):
            return _error('Invalid JSON', 400)

        settings = _run_settings()
        try:
            vehicle_count = int(data.get('vehicleCount') or settings.max_vehicles)
        except (TypeError, ValueError):
            return _error('vehicleCount must be an integer', 400)

        with _runner_lock:
            if _runner is not None and _runner.is_running:
                return _error('Simulator is already running', 400)
            runner = SimulatorRunner()
            try:
                state = runner.start(vehicle_count, settings)
            except SimulatorError as e:
                logger.error("Error starting simulator: %s", e)
                runner.fetcher.shutdown()
                return _error(str(e), 400)
            _runner = runner

        return JsonResponse({'success': True, 'message': 'Simulator started successfully', 'data': state})


@method_decorator(csrf_exempt, name='dispatch')
class SimulatorStopView(View):
    def post(self, request, *args, **kwargs):
        global _runner
        with _runner_lock:
            try:
                if _runner is None:
                    raise SimulatorNotRunning()
                result = _runner.stop()
            except SimulatorError as e:
                logger.error("Error stopping simulator: %s", e)
                return _error(str(e), 400)
            _runner = None

        return JsonResponse({'success': True, 'message': 'Simulator stopped successfully', 'data': result})


class SimulatorStatusView(View):
    def get(self, request, *args, **kwargs):
        runner = get_active_runner()
        if runner is None:
            status = {'is_running': False, 'vehicle_count': 0, 'started_at': None}
        else:
            status = runner.status()
        return JsonResponse({'success': True, 'data': status})


@method_decorator(csrf_exempt, name='dispatch')
class SimulatorSettingsView(View):
    def get(self, request, *args, **kwargs):
        stored = SimulatorSettings.latest()
        if stored is None:
            config = get_simulator_config()
            data = {
                'max_vehicles': config['max_vehicles'],
                'overspeeding_limit': config['default_speed_limit_kmh'],
                'update_interval': config['update_interval_ms'],
            }
        else:
            data = stored.as_dict()
        return JsonResponse({'success': True, 'data': data})

    def put(self, request, *args, **kwargs):
        try:
            data = _load_json(request)
        except (json.JSONDecodeError, ValueError):
            return _error('Invalid JSON', 400)

        form = SimulatorSettingsForm(data, instance=SimulatorSettings.latest())
        if not form.is_valid():
            return JsonResponse({'success': False, 'error': form.errors.get_json_data()}, status=400)

        settings = form.save()
        return JsonResponse({'success': True, 'message': 'Settings updated successfully', 'data': settings.as_dict()})


@method_decorator(csrf_exempt, name='dispatch')
class VehicleDataAPIView(View):
    def get(self, request, *args, **kwargs):
        vehicles = [vehicle.as_dict() for vehicle in Vehicle.objects.all()]
        runner = get_active_runner()
        return JsonResponse(
            {
                'success': True,
                'data': vehicles,
                'simulated': runner.vehicles() if runner is not None else [],
            }
        )

    def post(self, request, *args, **kwargs):
        try:
            data = _load_json(request)
        except (json.JSONDecodeError, ValueError):
            return _error('Invalid JSON', 400)

        form = TelemetryForm(data)
        if not form.is_valid():
            return JsonResponse({'success': False, 'error': form.errors.get_json_data()}, status=400)

        result = TelemetryIngestor().ingest(form.to_sample())
        return JsonResponse(
            {
                'success': True,
                'data': result.vehicle.as_dict(),
                'alert': result.alert.as_dict() if result.alert else None,
            }
        )


class AlertListAPIView(View):
    def get(self, request, *args, **kwargs):
        alerts = Alert.objects.all()
        vehicle_id = request.GET.get('vehicle_id')
        if vehicle_id:
            alerts = alerts.filter(vehicle_id=vehicle_id)
        return JsonResponse({'success': True, 'data': [alert.as_dict() for alert in alerts[:100]]})
