# shop-backend/inventory/config.py
from dataclasses import dataclass, field
from typing import Tuple

from django.conf import settings


@dataclass(frozen=True)
class StockConfig:
    reservation_ttl: int = 30  # minutes
    allow_negative_stock: bool = False
    default_low_stock_threshold: int = 5
    notification_recipients: Tuple[str, ...] = field(default_factory=tuple)
    send_low_stock_notifications: bool = True
    clean_expired_reservations_interval: int = 5  # minutes
    cleanup_batch_size: int = 100

    @classmethod
    def from_settings(cls) -> "StockConfig":
        raw = getattr(settings, "INVENTORY", None) or {}
        defaults = cls()
        recipients = raw.get("NOTIFICATION_RECIPIENTS") or ()
        if isinstance(recipients, str):
            recipients = recipients.split(",")
        return cls(
            reservation_ttl=int(raw.get("RESERVATION_TTL", defaults.reservation_ttl)),
            allow_negative_stock=bool(raw.get("ALLOW_NEGATIVE_STOCK", defaults.allow_negative_stock)),
            default_low_stock_threshold=max(
                int(raw.get("DEFAULT_LOW_STOCK_THRESHOLD", defaults.default_low_stock_threshold)), 0
            ),
            notification_recipients=tuple(r.strip() for r in recipients if r and r.strip()),
            send_low_stock_notifications=bool(
                raw.get("SEND_LOW_STOCK_NOTIFICATIONS", defaults.send_low_stock_notifications)
            ),
            clean_expired_reservations_interval=int(
                raw.get("CLEAN_EXPIRED_RESERVATIONS_INTERVAL", defaults.clean_expired_reservations_interval)
            ),
            cleanup_batch_size=max(int(raw.get("CLEANUP_BATCH_SIZE", defaults.cleanup_batch_size)), 1),
        )
