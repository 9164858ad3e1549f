"""
Django settings for the alert lifecycle service.

Values come from the process environment; config.env.load_env() fills it
from .env / .env.dev first without overriding variables already set.
"""

import json
import os
from pathlib import Path

from config.env import load_env

BASE_DIR = Path(__file__).resolve().parent.parent

load_env(BASE_DIR)


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: list[str]) -> list[str]:
    value = os.environ.get(name)
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "django-insecure-dev-only-change-me")
DEBUG = _env_bool("DJANGO_DEBUG", False)
ALLOWED_HOSTS = _env_list("DJANGO_ALLOWED_HOSTS", ["localhost", "127.0.0.1", "testserver"])

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "apps.alerts",
    "apps.tracker",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = []

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.environ.get("DJANGO_DB_PATH", str(BASE_DIR / "db.sqlite3")),
    }
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = False
USE_TZ = True

# Celery
CELERY_BROKER_URL = os.environ.get("CELERY_BROKER_URL", "memory://")
CELERY_RESULT_BACKEND = os.environ.get("CELERY_RESULT_BACKEND", "cache+memory://")
CELERY_TASK_ALWAYS_EAGER = _env_bool("CELERY_TASK_ALWAYS_EAGER", False)
CELERY_TASK_ACKS_LATE = True
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_ACCEPT_CONTENT = ["json"]

# Alert lifecycle
ALERTS_TRACKER_ENABLED = _env_bool("ALERTS_TRACKER_ENABLED", False)
ALERTS_TRACKER_REPO = os.environ.get("ALERTS_TRACKER_REPO", "")
ALERTS_TRACKER_API_URL = os.environ.get("ALERTS_TRACKER_API_URL", "https://api.github.com")
ALERTS_TRACKER_TOKEN_SECRET = os.environ.get("ALERTS_TRACKER_TOKEN_SECRET", "ALERTS_TRACKER_TOKEN")
ALERTS_TRACKER_TIMEOUT = float(os.environ.get("ALERTS_TRACKER_TIMEOUT", "10"))

ALERTS_BREAKER_FAILURE_THRESHOLD = int(os.environ.get("ALERTS_BREAKER_FAILURE_THRESHOLD", "5"))
ALERTS_BREAKER_WINDOW_SECONDS = float(os.environ.get("ALERTS_BREAKER_WINDOW_SECONDS", "60"))
ALERTS_BREAKER_COOLDOWN_SECONDS = float(os.environ.get("ALERTS_BREAKER_COOLDOWN_SECONDS", "30"))

ALERTS_RATE_LIMIT_CAPACITY = int(os.environ.get("ALERTS_RATE_LIMIT_CAPACITY", "10"))
ALERTS_RATE_LIMIT_REFILL_PER_SECOND = float(
    os.environ.get("ALERTS_RATE_LIMIT_REFILL_PER_SECOND", "1.0")
)
ALERTS_RATE_LIMIT_MAX_WAIT_SECONDS = float(
    os.environ.get("ALERTS_RATE_LIMIT_MAX_WAIT_SECONDS", "2.0")
)

ALERTS_SECRET_CACHE_TTL_SECONDS = float(os.environ.get("ALERTS_SECRET_CACHE_TTL_SECONDS", "300"))
ALERTS_WEBHOOK_SECRET = os.environ.get("ALERTS_WEBHOOK_SECRET", "ALERTS_WEBHOOK_TOKENS")
ALERTS_ASYNC_INGEST = _env_bool("ALERTS_ASYNC_INGEST", True)
ALERTS_DISPLAY_TIMEZONE = os.environ.get("ALERTS_DISPLAY_TIMEZONE", "America/Los_Angeles")
ALERTS_ISSUE_LABELS = json.loads(os.environ.get("ALERTS_ISSUE_LABELS", '["area:alerting"]'))

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "WARNING",
    },
    "loggers": {
        "apps": {
            "handlers": ["console"],
            "level": os.environ.get("ALERTS_LOG_LEVEL", "INFO"),
            "propagate": False,
        },
    },
}
