# shop-backend/config/settings_test.py
from .settings import *  # noqa: F401,F403

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]
EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"

CELERY_BROKER_URL = "memory://"
CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True

INVENTORY = {
    "RESERVATION_TTL": 30,
    "ALLOW_NEGATIVE_STOCK": False,
    "DEFAULT_LOW_STOCK_THRESHOLD": 5,
    "NOTIFICATION_RECIPIENTS": [],
    "SEND_LOW_STOCK_NOTIFICATIONS": True,
    "CLEAN_EXPIRED_RESERVATIONS_INTERVAL": 5,
    "CLEANUP_BATCH_SIZE": 100,
}
