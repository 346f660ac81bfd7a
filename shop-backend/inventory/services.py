# shop-backend/inventory/services.py
"""
Stock service: the only code path that writes stock_quantity.

Every mutation runs in one transaction that locks the stockable row,
persists the new quantity and appends exactly one StockMovement.
"""
import logging
from typing import Optional

from django.db import transaction

from .alerts import schedule_low_stock_alert, should_alert
from .config import StockConfig
from .exceptions import InsufficientStockError
from .models import MovementType, StockMovement
from .models_reservations import StockReservation
from .stockables import resolve_stockable, stockable_model, stockable_ref
from .validation import StockValidationItem, StockValidationResult, display_name

logger = logging.getLogger(__name__)

SALE_NOTE = "Venda"
REFUND_NOTE = "Estorno"


def sale_notes(order_id=None) -> str:
    if order_id is None:
        return SALE_NOTE
    return f"{SALE_NOTE} - Pedido #{order_id}"


def refund_notes(order_id=None, reason=None) -> str:
    parts = [REFUND_NOTE]
    if order_id is not None:
        parts.append(f"- Pedido #{order_id}")
    if reason:
        parts.append(f"- {reason}")
    return " ".join(parts)


def reference_fields(reference):
    """
    Turn a model instance or a (type, id) pair into ledger ref_type/ref_id.
    """
    if reference is None:
        return "", None
    if isinstance(reference, tuple):
        ref_type, ref_id = reference
        return str(ref_type), ref_id
    ref_type = getattr(reference, "REFERENCE_TYPE", None) or reference._meta.model_name
    return ref_type, reference.pk


def _actor_or_none(actor):
    if actor is None or not getattr(actor, "pk", None):
        return None
    return actor


class StockService:
    def __init__(self, config: Optional[StockConfig] = None, alert_dispatcher=None):
        self.config = config or StockConfig.from_settings()
        self.alert_dispatcher = alert_dispatcher or schedule_low_stock_alert

    # --- mutations --------------------------------------------------------

    def adjust(self, stockable, quantity, movement_type, notes=None, actor=None, reference=None) -> StockMovement:
        """
        Apply a signed quantity change and record it.

        Raises:
            InsufficientStockError: if the result would be negative while the
                stockable manages stock and negative stock is not allowed.
        """
        movement, locked = self._apply(
            stockable,
            quantity,
            movement_type,
            notes=notes,
            actor=actor,
            reference=reference,
        )
        self._maybe_alert(locked, movement)
        return movement

    def record_sale(self, stockable, quantity, order_id=None, actor=None, reference=None) -> StockMovement:
        """
        Deduct sold units. Backorders on the stockable lift the negative-stock guard.
        """
        movement, locked = self._apply(
            stockable,
            -abs(int(quantity)),
            MovementType.SALE,
            notes=sale_notes(order_id),
            actor=actor,
            reference=reference,
            allow_backorders=True,
        )
        self._maybe_alert(locked, movement)
        return movement

    def confirm_sale(self, stockable, quantity, order_id=None, reservation_id=None, actor=None) -> StockMovement:
        """
        Deduct stock for a confirmed order, converting the cart reservation when it still applies.

        A missing, expired, or foreign reservation does not block the sale; it
        is simply left untouched. Repeating the call for a reservation this
        stockable already sold, with the same order and quantity, returns the
        original Sale movement.
        """
        with transaction.atomic():
            reservation = None
            if reservation_id is not None:
                reservation = StockReservation.objects.claim(reservation_id, stockable=stockable)
                if reservation is None:
                    previous_sale = self._reservation_sale(reservation_id, stockable, quantity, order_id)
                    if previous_sale is not None:
                        logger.info("Reservation %s already converted; sale not repeated", reservation_id)
                        return previous_sale
            return self.record_sale(
                stockable,
                quantity,
                order_id=order_id,
                actor=actor,
                reference=reservation,
            )

    def refund_stock(self, stockable, quantity, order_id=None, reason=None, record_movement=True, actor=None):
        """
        Put units back on the shelf after a cancellation or refund.

        record_movement=False is used for goods that must not be restocked
        (damaged returns): nothing is written and None is returned.
        """
        if not record_movement:
            return None
        return self.adjust(
            stockable,
            abs(int(quantity)),
            MovementType.REFUND,
            notes=refund_notes(order_id, reason),
            actor=actor,
        )

    def _reservation_sale(self, reservation_id, stockable, quantity, order_id):
        # only a replay of the same sale is skipped
        return (
            StockMovement.objects.for_stockable(stockable)
            .of_type(MovementType.SALE)
            .filter(
                ref_type=StockReservation.REFERENCE_TYPE,
                ref_id=reservation_id,
                quantity=-abs(int(quantity)),
                notes=sale_notes(order_id),
            )
            .first()
        )

    def _apply(self, stockable, quantity, movement_type, notes=None, actor=None, reference=None, allow_backorders=False):
        quantity = int(quantity)
        movement_type = MovementType(movement_type)
        ref = stockable_ref(stockable)
        ref_type, ref_id = reference_fields(reference)

        with transaction.atomic():
            locked = stockable_model(ref.type).objects.select_for_update().get(pk=ref.id)
            quantity_before = int(locked.stock_quantity)
            quantity_after = quantity_before + quantity

            if quantity < 0 and quantity_after < 0 and not self._may_go_negative(locked, allow_backorders):
                raise InsufficientStockError(
                    locked,
                    requested_quantity=abs(quantity),
                    available_quantity=quantity_before,
                )

            locked.stock_quantity = quantity_after
            locked.save(update_fields=["stock_quantity"])

            movement = StockMovement.objects.create(
                stockable_type=ref.type,
                stockable_id=ref.id,
                movement_type=movement_type,
                quantity=quantity,
                quantity_before=quantity_before,
                quantity_after=quantity_after,
                ref_type=ref_type,
                ref_id=ref_id,
                notes=notes or "",
                created_by=_actor_or_none(actor),
            )

        if stockable is not locked and hasattr(stockable, "stock_quantity"):
            stockable.stock_quantity = quantity_after
        return movement, locked

    def _may_go_negative(self, stockable, allow_backorders) -> bool:
        if self.config.allow_negative_stock:
            return True
        if not stockable.is_managing_stock():
            return True
        return bool(allow_backorders and stockable.allows_backorders())

    def _maybe_alert(self, stockable, movement) -> None:
        if not should_alert(stockable, movement, self.config):
            return
        try:
            self.alert_dispatcher(stockable)
        except Exception:
            # alert delivery never decides the outcome of a stock mutation
            logger.exception(
                "Failed to schedule low stock alert for %s#%s",
                movement.stockable_type,
                movement.stockable_id,
            )

    # --- reads ------------------------------------------------------------

    def resolve_stockable(self, stockable_type, stockable_id):
        return resolve_stockable(stockable_type, stockable_id)

    def get_available_quantity(self, stockable) -> int:
        reserved = StockReservation.objects.for_stockable(stockable).active().reserved_quantity()
        return max(0, int(stockable.stock_quantity) - reserved)

    def check_availability(self, stockable, quantity) -> bool:
        if quantity <= 0:
            return True
        if not stockable.is_managing_stock():
            return True
        if stockable.allows_backorders():
            return True
        return self.get_available_quantity(stockable) >= quantity

    def validate_for_checkout(self, items) -> StockValidationResult:
        """
        Check a cart against live availability without writing anything.

        Args:
            items: iterable of (stockable, quantity) pairs or
                {"stockable": ..., "quantity": ...} dicts
        """
        validation_items = []
        for entry in items or ():
            if isinstance(entry, dict):
                stockable, requested = entry["stockable"], entry["quantity"]
            else:
                stockable, requested = entry
            validation_items.append(self._validation_item(stockable, int(requested)))

        if all(item.is_available for item in validation_items):
            return StockValidationResult.success(validation_items)

        self._log_failed_checkout_validation(validation_items)
        return StockValidationResult.failure(validation_items)

    def _validation_item(self, stockable, requested) -> StockValidationItem:
        if not stockable.is_managing_stock():
            return StockValidationItem(
                stockable=stockable,
                requested_quantity=requested,
                available_quantity=requested,
                is_available=True,
            )

        available = self.get_available_quantity(stockable)
        if stockable.allows_backorders():
            return StockValidationItem(
                stockable=stockable,
                requested_quantity=requested,
                available_quantity=available,
                is_available=True,
            )

        is_available = available >= requested
        return StockValidationItem(
            stockable=stockable,
            requested_quantity=requested,
            available_quantity=available,
            is_available=is_available,
            message=None if is_available else self._unavailable_message(stockable, requested, available),
        )

    def _unavailable_message(self, stockable, requested, available) -> str:
        name = display_name(stockable)
        if available == 0:
            return f"{name} esta fora de estoque."
        return f"{name}: apenas {available} unidades disponiveis (solicitado: {requested})."

    def _log_failed_checkout_validation(self, validation_items) -> None:
        details = []
        for item in validation_items:
            if item.is_available:
                continue
            ref = stockable_ref(item.stockable)
            details.append({
                "stockable_type": ref.type,
                "stockable_id": ref.id,
                "requested": item.requested_quantity,
                "available": item.available_quantity,
            })
        logger.info("Checkout validation failed: insufficient stock %s", details)
