# shop-backend/inventory/models_reservations.py
import logging

from django.db import models, transaction
from django.db.models import Sum
from django.utils import timezone

from .stockables import StockableRef, StockableType, resolve_stockable, stockable_ref

logger = logging.getLogger(__name__)


class StockReservationQuerySet(models.QuerySet):
    def active(self, now=None):
        now = now or timezone.now()
        return self.filter(converted_at__isnull=True, expires_at__gt=now)

    def expired(self, now=None):
        now = now or timezone.now()
        return self.filter(converted_at__isnull=True, expires_at__lte=now)

    def converted(self):
        return self.filter(converted_at__isnull=False)

    def for_cart(self, cart_id):
        return self.filter(cart_id=cart_id)

    def for_stockable(self, stockable, stockable_id=None):
        ref = stockable_ref(stockable, stockable_id)
        return self.filter(stockable_type=ref.type, stockable_id=ref.id)

    def reserved_quantity(self) -> int:
        return int(self.aggregate(total=Sum("quantity"))["total"] or 0)


class StockReservationManager(models.Manager.from_queryset(StockReservationQuerySet)):
    def claim(self, reservation_id, stockable=None, now=None):
        """
        Mark a reservation as converted, exactly once.

        Returns the converted reservation, or None when the reservation is
        missing, not Active, or (when a stockable is given) held against a
        different stockable. Must be called inside the caller's transaction
        so the claim rolls back with the sale.
        """
        if reservation_id is None:
            return None
        now = now or timezone.now()
        with transaction.atomic():
            reservation = self.select_for_update().filter(pk=reservation_id).first()
            if reservation is None:
                return None

            if stockable is not None and reservation.stockable_ref != stockable_ref(stockable):
                logger.warning(
                    "Reservation %s belongs to %s#%s, not %s; sale proceeds without conversion",
                    reservation.pk,
                    reservation.stockable_type,
                    reservation.stockable_id,
                    "%s#%s" % tuple(stockable_ref(stockable)),
                )
                return None

            if not reservation.is_active(now):
                return None

            reservation.converted_at = now
            reservation.save(update_fields=["converted_at"])
            return reservation


class StockReservation(models.Model):
    """
    Time-bounded hold against available quantity.
    Holds never touch stock_quantity; a confirmed sale converts them.
    """
    REFERENCE_TYPE = "reservation"

    stockable_type = models.CharField(max_length=16, choices=StockableType.choices)
    stockable_id = models.PositiveBigIntegerField()
    quantity = models.PositiveIntegerField()
    cart_id = models.CharField(max_length=64, null=True, blank=True, db_index=True)
    expires_at = models.DateTimeField(db_index=True)
    converted_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = StockReservationManager()

    class Meta:
        indexes = [
            models.Index(fields=["stockable_type", "stockable_id"], name="inventory_s_stockab_a47d52_idx"),
            models.Index(fields=["converted_at", "expires_at"], name="inventory_s_convert_f2e8b9_idx"),
        ]

    def __str__(self):
        return f"Reservation #{self.id} - {self.stockable_type}#{self.stockable_id} x{self.quantity}"

    @property
    def stockable_ref(self) -> StockableRef:
        return StockableRef(self.stockable_type, int(self.stockable_id))

    @property
    def stockable(self):
        return resolve_stockable(self.stockable_type, self.stockable_id)

    def is_converted(self) -> bool:
        return self.converted_at is not None

    def is_expired(self, now=None) -> bool:
        now = now or timezone.now()
        return not self.is_converted() and self.expires_at <= now

    def is_active(self, now=None) -> bool:
        now = now or timezone.now()
        return not self.is_converted() and self.expires_at > now
