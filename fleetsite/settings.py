"""
Django settings for the fleetsite project.
"""
import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "dev-insecure-change-me")
DEBUG = os.environ.get("DJANGO_DEBUG", "1") == "1"
ALLOWED_HOSTS = os.environ.get("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",")

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "fleet",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
]

ROOT_URLCONF = "fleetsite.urls"
WSGI_APPLICATION = "fleetsite.wsgi.application"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.environ.get("DJANGO_DB_PATH", str(BASE_DIR / "db.sqlite3")),
    }
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_TZ = True

FLEET_SIMULATOR = {
    "update_interval_ms": int(os.environ.get("FLEET_UPDATE_INTERVAL_MS", 5000)),
    "max_vehicles": int(os.environ.get("FLEET_MAX_VEHICLES", 6)),
    "default_speed_limit_kmh": int(os.environ.get("FLEET_SPEED_LIMIT", 60)),
}

ROUTING_CONFIG = {
    "provider": os.environ.get("ROUTING_PROVIDER", "osrm"),
    "osrm_url": os.environ.get("OSRM_URL", "https://router.project-osrm.org"),
    "mapbox_access_token": os.environ.get("MAPBOX_ACCESS_TOKEN", ""),
    "timeout_seconds": 5,
}

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "simple"},
    },
    "loggers": {
        "fleet": {
            "handlers": ["console"],
            "level": os.environ.get("FLEET_LOG_LEVEL", "INFO"),
        },
    },
}
