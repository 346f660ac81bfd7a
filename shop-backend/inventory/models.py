# shop-backend/inventory/models.py
from django.conf import settings
from django.db import models
from django.utils import timezone

from .stockables import StockableRef, StockableType, resolve_stockable, stockable_ref


class MovementType(models.TextChoices):
    MANUAL_ENTRY = "manual_entry", "Manual entry"
    MANUAL_EXIT = "manual_exit", "Manual exit"
    ADJUSTMENT = "adjustment", "Adjustment"
    SALE = "sale", "Sale"
    REFUND = "refund", "Refund"
    RESERVATION = "reservation", "Reservation"
    RESERVATION_RELEASE = "reservation_release", "Reservation release"

    @property
    def affects_stock(self) -> bool:
        return self.value not in AVAILABILITY_MOVEMENT_TYPES


# Types an admin may post by hand.
MANUAL_MOVEMENT_TYPES = (
    MovementType.MANUAL_ENTRY,
    MovementType.MANUAL_EXIT,
    MovementType.ADJUSTMENT,
)

# Availability bookkeeping only; stock_quantity is untouched.
AVAILABILITY_MOVEMENT_TYPES = (
    MovementType.RESERVATION.value,
    MovementType.RESERVATION_RELEASE.value,
)


class StockableModel(models.Model):
    """
    Abstract base for catalog models that carry a stock quantity.

    Only inventory.services.StockService writes stock_quantity.
    """
    STOCKABLE_TYPE = None

    stock_quantity = models.IntegerField(default=0)
    low_stock_threshold = models.PositiveIntegerField(null=True, blank=True)

    class Meta:
        abstract = True

    @property
    def stockable_ref(self) -> StockableRef:
        return stockable_ref(self)

    def is_managing_stock(self) -> bool:
        return True

    def allows_backorders(self) -> bool:
        return False

    def should_notify_low_stock(self) -> bool:
        return False

    def get_low_stock_threshold(self, default=None) -> int:
        if self.low_stock_threshold is not None:
            return int(self.low_stock_threshold)
        if default is None:
            from .config import StockConfig
            default = StockConfig.from_settings().default_low_stock_threshold
        return int(default)

    def is_low_stock(self, default=None) -> bool:
        if not self.is_managing_stock():
            return False
        threshold = self.get_low_stock_threshold(default)
        return 0 < self.stock_quantity <= threshold

    def stock_movements(self):
        return StockMovement.objects.for_stockable(self)

    def stock_reservations(self):
        return StockReservation.objects.for_stockable(self)

    def get_reserved_quantity(self) -> int:
        return self.stock_reservations().active().reserved_quantity()

    def get_available_quantity(self) -> int:
        return max(0, self.stock_quantity - self.get_reserved_quantity())


class StockMovementQuerySet(models.QuerySet):
    def of_type(self, movement_type):
        return self.filter(movement_type=movement_type)

    def for_stockable(self, stockable, stockable_id=None):
        ref = stockable_ref(stockable, stockable_id)
        return self.filter(stockable_type=ref.type, stockable_id=ref.id)

    def date_range(self, start=None, end=None):
        qs = self
        if start is not None:
            qs = qs.filter(created_at__gte=start)
        if end is not None:
            qs = qs.filter(created_at__lte=end)
        return qs

    def latest_first(self):
        return self.order_by("-created_at", "-id")

    def affecting_stock(self):
        return self.exclude(movement_type__in=AVAILABILITY_MOVEMENT_TYPES)


class StockMovement(models.Model):
    """
    Immutable movement log for audit: one row per quantity event.
    """
    stockable_type = models.CharField(max_length=16, choices=StockableType.choices)
    stockable_id = models.PositiveBigIntegerField()

    movement_type = models.CharField(max_length=32, choices=MovementType.choices)
    quantity = models.IntegerField()  # signed
    quantity_before = models.IntegerField()
    quantity_after = models.IntegerField()

    ref_type = models.CharField(max_length=32, blank=True, default="")
    ref_id = models.PositiveBigIntegerField(null=True, blank=True)
    notes = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="stock_movements",
    )

    objects = StockMovementQuerySet.as_manager()

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["stockable_type", "stockable_id", "created_at"], name="inventory_s_stockab_6c1f0e_idx"),
            models.Index(fields=["movement_type", "created_at"], name="inventory_s_movemen_3b9a2d_idx"),
            models.Index(fields=["ref_type", "ref_id"], name="inventory_s_ref_typ_8e4c71_idx"),
        ]

    def __str__(self):
        return (
            f"{self.stockable_type}#{self.stockable_id} {self.quantity:+d} "
            f"({self.movement_type}) {self.quantity_before}->{self.quantity_after}"
        )

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Stock movements are immutable")
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Stock movements are immutable")

    @property
    def stockable(self):
        return resolve_stockable(self.stockable_type, self.stockable_id)


from .models_reservations import StockReservation  # noqa: E402,F401
