# shop-backend/inventory/tasks.py
"""
Celery tasks for inventory background work.
"""
import logging

from celery import shared_task

from .alerts import low_stock_items
from .config import StockConfig
from .notifications import send_low_stock_notification
from .reservations import clean_expired_reservations

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3)
def send_low_stock_alerts(self, stockable_type=None, stockable_id=None):
    """
    Email the low-stock digest. Returns the number of items reported.
    """
    config = StockConfig.from_settings()
    if not config.send_low_stock_notifications:
        return 0
    if not config.notification_recipients:
        logger.info("Low stock alert skipped: no recipients configured")
        return 0

    items = low_stock_items(config)
    if not items:
        return 0

    try:
        send_low_stock_notification(items, config.notification_recipients, config.default_low_stock_threshold)
    except Exception as exc:
        raise self.retry(exc=exc, countdown=60)

    logger.info(
        "Low stock alert sent for %d item(s), triggered by %s#%s",
        len(items),
        stockable_type,
        stockable_id,
    )
    return len(items)


@shared_task
def clean_expired_reservations_task():
    return clean_expired_reservations()
