# shop-backend/config/settings.py
import os
from datetime import timedelta
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def env_int(name, default):
    try:
        return int(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


def env_list(name):
    raw = os.environ.get(name, "")
    return [part.strip() for part in raw.split(",") if part.strip()]


SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "dev-only-insecure-key")
DEBUG = env_bool("DJANGO_DEBUG", False)
ALLOWED_HOSTS = env_list("DJANGO_ALLOWED_HOSTS") or ["localhost", "127.0.0.1"]

INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "rest_framework",
    "common",
    "catalog",
    "inventory",
]

MIDDLEWARE = []

DATABASES = {
    "default": {
        "ENGINE": os.environ.get("DB_ENGINE", "django.db.backends.postgresql"),
        "NAME": os.environ.get("DB_NAME", "shop"),
        "USER": os.environ.get("DB_USER", "shop"),
        "PASSWORD": os.environ.get("DB_PASSWORD", ""),
        "HOST": os.environ.get("DB_HOST", "localhost"),
        "PORT": os.environ.get("DB_PORT", "5432"),
        "ATOMIC_REQUESTS": False,
    }
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "pt-br"
TIME_ZONE = os.environ.get("DJANGO_TIME_ZONE", "America/Sao_Paulo")
USE_I18N = True
USE_TZ = True

EMAIL_BACKEND = os.environ.get("EMAIL_BACKEND", "django.core.mail.backends.smtp.EmailBackend")
DEFAULT_FROM_EMAIL = os.environ.get("DEFAULT_FROM_EMAIL", "estoque@localhost")

# --- Inventory ---------------------------------------------------------------
INVENTORY = {
    # minutes a cart reservation holds stock
    "RESERVATION_TTL": env_int("INVENTORY_RESERVATION_TTL", 30),
    "ALLOW_NEGATIVE_STOCK": env_bool("INVENTORY_ALLOW_NEGATIVE", False),
    "DEFAULT_LOW_STOCK_THRESHOLD": env_int("INVENTORY_LOW_STOCK_THRESHOLD", 5),
    "NOTIFICATION_RECIPIENTS": env_list("LOW_STOCK_NOTIFICATION_EMAILS"),
    "SEND_LOW_STOCK_NOTIFICATIONS": env_bool("LOW_STOCK_NOTIFICATIONS_ENABLED", True),
    "CLEAN_EXPIRED_RESERVATIONS_INTERVAL": env_int("INVENTORY_CLEAN_RESERVATIONS_INTERVAL", 5),
    "CLEANUP_BATCH_SIZE": env_int("INVENTORY_CLEANUP_BATCH_SIZE", 100),
}

# --- Celery ------------------------------------------------------------------
CELERY_BROKER_URL = os.environ.get("CELERY_BROKER_URL", "redis://localhost:6379/0")
CELERY_RESULT_BACKEND = os.environ.get("CELERY_RESULT_BACKEND", None)
CELERY_TASK_ALWAYS_EAGER = env_bool("CELERY_TASK_ALWAYS_EAGER", False)
CELERY_TIMEZONE = TIME_ZONE
CELERY_BEAT_SCHEDULE = {
    "clean-expired-stock-reservations": {
        "task": "inventory.tasks.clean_expired_reservations_task",
        "schedule": timedelta(minutes=INVENTORY["CLEAN_EXPIRED_RESERVATIONS_INTERVAL"]),
    },
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
        "inventory": {
            "handlers": ["console"],
            "level": os.environ.get("INVENTORY_LOG_LEVEL", "INFO"),
        },
    },
}
