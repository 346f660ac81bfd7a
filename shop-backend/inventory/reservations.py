# shop-backend/inventory/reservations.py
"""
Reservation service for holding stock against carts.
Reservations reduce availability without touching stock_quantity until a
confirmed sale converts them.
"""
import logging
from datetime import timedelta
from typing import Optional

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from .config import StockConfig
from .exceptions import InsufficientStockError
from .models import MovementType, StockMovement
from .models_reservations import StockReservation
from .services import StockService
from .stockables import stockable_model, stockable_ref

logger = logging.getLogger(__name__)

RESERVATION_NOTE = "Reserva de estoque"
CART_RESERVATION_NOTE = "Reserva para carrinho {cart_id}"
RELEASE_NOTE = "Liberacao de reserva"
EXPIRED_RELEASE_NOTE = "Liberacao automatica - reserva expirada"


def _record_availability_movement(stockable, quantity, movement_type, reservation, notes):
    # stock_quantity is untouched, so before == after
    return StockMovement.objects.create(
        stockable_type=reservation.stockable_type,
        stockable_id=reservation.stockable_id,
        movement_type=movement_type,
        quantity=quantity,
        quantity_before=stockable.stock_quantity,
        quantity_after=stockable.stock_quantity,
        ref_type=StockReservation.REFERENCE_TYPE,
        ref_id=reservation.pk,
        notes=notes,
    )


def release_reservation(reservation_id, notes=RELEASE_NOTE, expired_only=False, now=None) -> bool:
    """
    Release one reservation: record the release movement and delete the row.

    Returns False (and does nothing) when the reservation is already gone or
    converted, or, with expired_only, when it is no longer expired.
    """
    with transaction.atomic():
        reservation = StockReservation.objects.select_for_update().filter(pk=reservation_id).first()
        if reservation is None or reservation.is_converted():
            return False
        if expired_only and not reservation.is_expired(now):
            return False

        stockable = reservation.stockable
        if stockable is not None:
            _record_availability_movement(
                stockable,
                reservation.quantity,
                MovementType.RESERVATION_RELEASE,
                reservation,
                notes,
            )
        reservation.delete()
        return True


def clean_expired_reservations(batch_size: Optional[int] = None, now=None, config: Optional[StockConfig] = None) -> int:
    """
    Release every reservation that expired without being converted.

    Walks the backlog in primary-key batches. Rows released or converted
    concurrently are skipped. Returns the number of reservations cleaned.
    """
    config = config or StockConfig.from_settings()
    batch_size = batch_size or config.cleanup_batch_size
    now = now or timezone.now()

    total_cleaned = 0
    last_id = 0
    while True:
        batch = list(
            StockReservation.objects.expired(now)
            .filter(pk__gt=last_id)
            .order_by("pk")
            .values_list("pk", flat=True)[:batch_size]
        )
        if not batch:
            break

        for reservation_id in batch:
            if release_reservation(reservation_id, notes=EXPIRED_RELEASE_NOTE, expired_only=True, now=now):
                total_cleaned += 1

        last_id = batch[-1]
        if len(batch) < batch_size:
            break

    if total_cleaned:
        logger.info("Cleaned %d expired stock reservations.", total_cleaned)
    return total_cleaned


class ReservationService:
    def __init__(self, stock_service: Optional[StockService] = None, config: Optional[StockConfig] = None):
        if config is None:
            config = stock_service.config if stock_service is not None else StockConfig.from_settings()
        self.config = config
        self.stock_service = stock_service or StockService(config=config)

    def reserve(self, stockable, quantity, cart_id=None) -> StockReservation:
        """
        Hold stock for a cart for the configured TTL.

        Raises:
            ValidationError: if quantity is not positive
            InsufficientStockError: if quantity exceeds availability and the
                stockable manages stock without backorders
        """
        quantity = int(quantity)
        if quantity <= 0:
            raise ValidationError("Reservation quantity must be greater than 0")

        ref = stockable_ref(stockable)
        with transaction.atomic():
            # Lock the stockable so concurrent holds see each other
            locked = stockable_model(ref.type).objects.select_for_update().get(pk=ref.id)
            available = self.stock_service.get_available_quantity(locked)

            if quantity > available and locked.is_managing_stock() and not locked.allows_backorders():
                raise InsufficientStockError(
                    locked,
                    requested_quantity=quantity,
                    available_quantity=available,
                )

            reservation = StockReservation.objects.create(
                stockable_type=ref.type,
                stockable_id=ref.id,
                quantity=quantity,
                cart_id=cart_id,
                expires_at=timezone.now() + timedelta(minutes=self.config.reservation_ttl),
            )
            _record_availability_movement(
                locked,
                -quantity,
                MovementType.RESERVATION,
                reservation,
                CART_RESERVATION_NOTE.format(cart_id=cart_id) if cart_id else RESERVATION_NOTE,
            )
            return reservation

    def release(self, reservation: StockReservation) -> bool:
        return release_reservation(reservation.pk)

    def release_by_cart(self, cart_id) -> int:
        # cart-less reservations are never released as a group
        if cart_id is None:
            return 0
        reservation_ids = list(
            StockReservation.objects.for_cart(cart_id).active().values_list("pk", flat=True)
        )
        return sum(1 for reservation_id in reservation_ids if release_reservation(reservation_id))

    def convert_to_sale(self, reservation: StockReservation, order_id=None, actor=None) -> bool:
        """
        Turn an Active reservation into a sale, exactly once.
        Returns False without side effects when it is not Active.
        """
        if not reservation.is_active():
            return False

        with transaction.atomic():
            claimed = StockReservation.objects.claim(reservation.pk)
            if claimed is None:
                return False
            self.stock_service.record_sale(
                claimed.stockable_ref,
                claimed.quantity,
                order_id=order_id,
                actor=actor,
                reference=claimed,
            )

        reservation.converted_at = claimed.converted_at
        return True

    def get_available_quantity(self, stockable) -> int:
        return self.stock_service.get_available_quantity(stockable)

    def extend_reservation(self, reservation: StockReservation, new_expires_at) -> None:
        StockReservation.objects.filter(pk=reservation.pk).update(expires_at=new_expires_at)
        reservation.expires_at = new_expires_at
