# shop-backend/catalog/models.py
from django.db import models
from django.db.models.functions import Lower

from common.models import TimeStampedModel
from inventory.models import StockableModel
from inventory.stockables import StockableType


class Product(TimeStampedModel, StockableModel):
    STOCKABLE_TYPE = StockableType.PRODUCT

    name = models.CharField(max_length=200)
    sku = models.CharField(max_length=64)
    price = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    is_active = models.BooleanField(default=True, db_index=True)

    # stock policy; variants inherit these from their product
    manage_stock = models.BooleanField(default=True)
    allow_backorders = models.BooleanField(default=False)
    notify_low_stock = models.BooleanField(default=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(Lower("sku"), name="uniq_product_sku_ci"),
        ]
        ordering = ["name", "id"]

    def __str__(self):
        return f"{self.name} ({self.sku})"

    @property
    def display_name(self) -> str:
        return self.name

    def is_managing_stock(self) -> bool:
        return bool(self.manage_stock)

    def allows_backorders(self) -> bool:
        return bool(self.allow_backorders)

    def should_notify_low_stock(self) -> bool:
        return bool(self.notify_low_stock)


class ProductVariant(TimeStampedModel, StockableModel):
    STOCKABLE_TYPE = StockableType.VARIANT

    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name="variants")
    name = models.CharField(max_length=64)
    sku = models.CharField(max_length=64)
    price = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    is_active = models.BooleanField(default=True, db_index=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(Lower("sku"), name="uniq_variant_sku_ci"),
        ]
        ordering = ["product_id", "name", "id"]

    def __str__(self):
        return f"{self.product.name} ({self.sku or self.id})"

    @property
    def display_name(self) -> str:
        return f"{self.product.name} - {self.name}"

    def is_managing_stock(self) -> bool:
        return bool(self.product.manage_stock)

    def allows_backorders(self) -> bool:
        return bool(self.product.allow_backorders)

    def should_notify_low_stock(self) -> bool:
        return bool(self.product.notify_low_stock)
