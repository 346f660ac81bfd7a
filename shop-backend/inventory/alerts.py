# shop-backend/inventory/alerts.py
"""
Low-stock policy.

The stock service only decides *whether* to raise an alert; the alert itself
is a Celery job enqueued after commit, so a lost or failed alert never
affects a stock mutation.
"""
from django.db import models, transaction
from django.db.models import F, Value
from django.db.models.functions import Coalesce

from .config import StockConfig
from .stockables import StockableType, stockable_model, stockable_ref


def should_alert(stockable, movement, config: StockConfig) -> bool:
    if movement is None or movement.quantity >= 0:
        return False
    if not stockable.should_notify_low_stock():
        return False
    return stockable.is_low_stock(config.default_low_stock_threshold)


def schedule_low_stock_alert(stockable) -> None:
    from .tasks import send_low_stock_alerts

    ref = stockable_ref(stockable)
    transaction.on_commit(lambda: send_low_stock_alerts.delay(ref.type, ref.id))


def _with_effective_threshold(qs, default):
    return qs.annotate(
        effective_threshold=Coalesce(
            "low_stock_threshold",
            Value(default),
            output_field=models.IntegerField(),
        )
    ).filter(stock_quantity__gt=0, stock_quantity__lte=F("effective_threshold"))


def low_stock_items(config: StockConfig = None):
    """
    Products and variants that manage stock, want notifications, and sit
    between zero (exclusive) and their effective threshold (inclusive).
    """
    config = config or StockConfig.from_settings()
    default = config.default_low_stock_threshold

    products = _with_effective_threshold(
        stockable_model(StockableType.PRODUCT).objects.filter(manage_stock=True, notify_low_stock=True),
        default,
    ).order_by("stock_quantity", "name")

    variants = _with_effective_threshold(
        stockable_model(StockableType.VARIANT).objects.select_related("product").filter(
            product__manage_stock=True,
            product__notify_low_stock=True,
        ),
        default,
    ).order_by("stock_quantity", "name")

    return list(products) + list(variants)
