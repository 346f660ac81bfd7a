# shop-backend/inventory/stockables.py
"""
Polymorphic reference to anything that carries a stock quantity.

A stockable is identified by a stable type discriminator plus a numeric id.
Only this module knows which model backs each discriminator.
"""
from typing import NamedTuple, Optional

from django.apps import apps
from django.db import models


class StockableType(models.TextChoices):
    PRODUCT = "product", "Product"
    VARIANT = "variant", "Product variant"


_STOCKABLE_MODELS = {
    StockableType.PRODUCT: ("catalog", "Product"),
    StockableType.VARIANT: ("catalog", "ProductVariant"),
}


class StockableRef(NamedTuple):
    type: str
    id: int


def stockable_model(stockable_type: str):
    try:
        app_label, model_name = _STOCKABLE_MODELS[StockableType(stockable_type)]
    except ValueError:
        raise LookupError(f"Unknown stockable type: {stockable_type!r}")
    return apps.get_model(app_label, model_name)


def stockable_ref(stockable, stockable_id: Optional[int] = None) -> StockableRef:
    """
    Normalize a model instance, a (type, id) pair, or a type plus id into a StockableRef.
    """
    if stockable_id is not None:
        return StockableRef(str(stockable), int(stockable_id))
    if isinstance(stockable, StockableRef):
        return stockable
    if isinstance(stockable, tuple) and len(stockable) == 2:
        return StockableRef(str(stockable[0]), int(stockable[1]))
    stockable_type = getattr(stockable, "STOCKABLE_TYPE", None)
    if stockable_type is None or stockable.pk is None:
        raise TypeError(f"{stockable!r} is not a saved stockable")
    return StockableRef(str(stockable_type), int(stockable.pk))


def resolve_stockable(stockable_type: str, stockable_id: int):
    try:
        model = stockable_model(stockable_type)
    except LookupError:
        return None
    return model.objects.filter(pk=stockable_id).first()
