"""
Stock service tests: adjustments, sales, refunds and the movement ledger.
"""
from datetime import timedelta
from unittest import mock

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.utils import timezone

from catalog.models import Product, ProductVariant
from inventory.config import StockConfig
from inventory.exceptions import InsufficientStockError
from inventory.models import MovementType, StockMovement
from inventory.models_reservations import StockReservation
from inventory.services import StockService, refund_notes, sale_notes


class InventoryTestBase(TestCase):
    """Base test class with a product, a variant and a user"""

    def setUp(self):
        self.user = get_user_model().objects.create_user(
            username="stockist",
            email="stockist@example.com",
            password="test-pass",
        )
        self.product = Product.objects.create(
            name="Camiseta",
            sku="CAM-001",
            price="49.90",
            stock_quantity=10,
        )
        self.variant = ProductVariant.objects.create(
            product=self.product,
            name="Azul M",
            sku="CAM-001-AZ-M",
            stock_quantity=4,
        )
        self.config = StockConfig()
        self.alerts = mock.Mock()
        self.service = StockService(config=self.config, alert_dispatcher=self.alerts)

    def _reservation(self, stockable, quantity, minutes=30, cart_id="cart-1", **extra):
        return StockReservation.objects.create(
            stockable_type=stockable.STOCKABLE_TYPE,
            stockable_id=stockable.pk,
            quantity=quantity,
            cart_id=cart_id,
            expires_at=timezone.now() + timedelta(minutes=minutes),
            **extra
        )


class StockAdjustTests(InventoryTestBase):
    def test_adjust_records_movement_and_updates_quantity(self):
        """Test that a manual exit decrements stock and logs before/after"""
        movement = self.service.adjust(
            self.product, -3, MovementType.MANUAL_EXIT, notes="Avaria", actor=self.user
        )

        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 7)
        self.assertEqual(movement.movement_type, MovementType.MANUAL_EXIT)
        self.assertEqual(movement.quantity, -3)
        self.assertEqual(movement.quantity_before, 10)
        self.assertEqual(movement.quantity_after, 7)
        self.assertEqual(movement.notes, "Avaria")
        self.assertEqual(movement.created_by, self.user)
        self.assertEqual(movement.stockable, self.product)

    def test_adjust_updates_callers_instance(self):
        """Test that the instance passed in reflects the new quantity"""
        self.service.adjust(self.product, 5, MovementType.MANUAL_ENTRY)
        self.assertEqual(self.product.stock_quantity, 15)

    def test_adjust_accepts_stockable_reference(self):
        """Test that a (type, id) pair works in place of an instance"""
        movement = self.service.adjust(("variant", self.variant.pk), 2, MovementType.ADJUSTMENT)

        self.variant.refresh_from_db()
        self.assertEqual(self.variant.stock_quantity, 6)
        self.assertEqual(movement.stockable_type, "variant")
        self.assertEqual(movement.stockable_id, self.variant.pk)

    def test_adjust_rejects_negative_result(self):
        """Test that going below zero raises and leaves no trace"""
        with self.assertRaises(InsufficientStockError) as ctx:
            self.service.adjust(self.product, -11, MovementType.MANUAL_EXIT)

        self.assertEqual(ctx.exception.requested_quantity, 11)
        self.assertEqual(ctx.exception.available_quantity, 10)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 10)
        self.assertFalse(StockMovement.objects.exists())

    def test_adjust_down_to_exactly_zero_is_allowed(self):
        """Test that stock may reach zero without negative stock enabled"""
        movement = self.service.adjust(self.product, -10, MovementType.MANUAL_EXIT)
        self.assertEqual(movement.quantity_after, 0)

    def test_adjust_allows_negative_when_configured(self):
        """Test that ALLOW_NEGATIVE_STOCK lifts the guard"""
        service = StockService(config=StockConfig(allow_negative_stock=True), alert_dispatcher=self.alerts)
        movement = service.adjust(self.product, -12, MovementType.ADJUSTMENT)

        self.assertEqual(movement.quantity_after, -2)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, -2)

    def test_adjust_skips_guard_for_unmanaged_stock(self):
        """Test that products not managing stock may go negative"""
        self.product.manage_stock = False
        self.product.save()

        movement = self.service.adjust(self.product, -15, MovementType.MANUAL_EXIT)
        self.assertEqual(movement.quantity_after, -5)

    def test_variant_inherits_product_stock_policy(self):
        """Test that the guard on a variant follows its product"""
        with self.assertRaises(InsufficientStockError):
            self.service.adjust(self.variant, -5, MovementType.MANUAL_EXIT)

        self.product.manage_stock = False
        self.product.save()
        self.variant.refresh_from_db()

        movement = self.service.adjust(self.variant, -5, MovementType.MANUAL_EXIT)
        self.assertEqual(movement.quantity_after, -1)

    def test_adjust_rolls_back_when_movement_write_fails(self):
        """Test that the quantity update and movement insert are all-or-nothing"""
        with mock.patch.object(StockMovement.objects, "create", side_effect=RuntimeError("db down")):
            with self.assertRaises(RuntimeError):
                self.service.adjust(self.product, -2, MovementType.MANUAL_EXIT)

        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 10)
        self.assertFalse(StockMovement.objects.exists())

    def test_unknown_movement_type_is_rejected(self):
        """Test that only known movement types are accepted"""
        with self.assertRaises(ValueError):
            self.service.adjust(self.product, 1, "gift")
        self.assertFalse(StockMovement.objects.exists())

    def test_movements_chain_consistently(self):
        """Test that each movement starts where the previous one ended"""
        self.service.adjust(self.product, 5, MovementType.MANUAL_ENTRY)
        self.service.adjust(self.product, -4, MovementType.MANUAL_EXIT)
        self.service.record_sale(self.product, 3, order_id=1)

        movements = list(self.product.stock_movements())
        self.assertEqual(len(movements), 3)
        previous_after = 10
        for movement in movements:
            self.assertEqual(movement.quantity_before, previous_after)
            self.assertEqual(movement.quantity_after, movement.quantity_before + movement.quantity)
            previous_after = movement.quantity_after
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, previous_after)


class StockMovementImmutabilityTests(InventoryTestBase):
    def test_saved_movement_cannot_be_updated(self):
        """Test that an existing movement refuses to save again"""
        movement = self.service.adjust(self.product, 1, MovementType.MANUAL_ENTRY)
        movement.notes = "edited"
        with self.assertRaises(ValueError):
            movement.save()

    def test_movement_cannot_be_deleted(self):
        """Test that movements refuse deletion"""
        movement = self.service.adjust(self.product, 1, MovementType.MANUAL_ENTRY)
        with self.assertRaises(ValueError):
            movement.delete()
        self.assertTrue(StockMovement.objects.filter(pk=movement.pk).exists())

    def test_queryset_filters(self):
        """Test the ledger query helpers"""
        self.service.adjust(self.product, 1, MovementType.MANUAL_ENTRY)
        self.service.record_sale(self.product, 2)
        self.service.adjust(self.variant, 1, MovementType.MANUAL_ENTRY)

        self.assertEqual(StockMovement.objects.for_stockable(self.product).count(), 2)
        self.assertEqual(StockMovement.objects.of_type(MovementType.SALE).count(), 1)
        self.assertEqual(StockMovement.objects.for_stockable("variant", self.variant.pk).count(), 1)
        latest = StockMovement.objects.latest_first().first()
        self.assertEqual(latest.stockable_type, "variant")
        tomorrow = timezone.now() + timedelta(days=1)
        self.assertEqual(StockMovement.objects.date_range(start=tomorrow).count(), 0)
        self.assertEqual(StockMovement.objects.date_range(end=tomorrow).count(), 3)


class ConfirmSaleTests(InventoryTestBase):
    def test_sale_without_reservation(self):
        """Test that a plain sale deducts stock with sale notes"""
        movement = self.service.confirm_sale(self.product, 3, order_id=42, actor=self.user)

        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 7)
        self.assertEqual(movement.movement_type, MovementType.SALE)
        self.assertEqual(movement.quantity, -3)
        self.assertEqual(movement.notes, "Venda - Pedido #42")
        self.assertEqual(movement.ref_type, "")
        self.assertIsNone(movement.ref_id)

    def test_sale_converts_active_reservation(self):
        """Test that the cart reservation is converted and referenced"""
        reservation = self._reservation(self.product, 2)

        movement = self.service.confirm_sale(self.product, 2, order_id=7, reservation_id=reservation.pk)

        reservation.refresh_from_db()
        self.assertTrue(reservation.is_converted())
        self.assertEqual(movement.ref_type, "reservation")
        self.assertEqual(movement.ref_id, reservation.pk)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 8)
        self.assertEqual(self.service.get_available_quantity(self.product), 8)

    def test_sale_with_expired_reservation_still_deducts(self):
        """Test that an expired reservation neither blocks nor gets converted"""
        reservation = self._reservation(self.product, 2, minutes=-1)

        movement = self.service.confirm_sale(self.product, 2, reservation_id=reservation.pk)

        reservation.refresh_from_db()
        self.assertFalse(reservation.is_converted())
        self.assertEqual(movement.ref_type, "")
        self.assertEqual(movement.quantity_after, 8)

    def test_sale_with_missing_reservation_still_deducts(self):
        """Test that an unknown reservation id is ignored"""
        movement = self.service.confirm_sale(self.product, 1, reservation_id=999999)
        self.assertEqual(movement.quantity_after, 9)

    def test_sale_with_foreign_reservation_logs_warning(self):
        """Test that a reservation for another stockable is left untouched"""
        reservation = self._reservation(self.variant, 1)

        with self.assertLogs("inventory.models_reservations", level="WARNING") as logs:
            movement = self.service.confirm_sale(self.product, 1, reservation_id=reservation.pk)

        self.assertIn(str(reservation.pk), logs.output[0])
        reservation.refresh_from_db()
        self.assertFalse(reservation.is_converted())
        self.assertEqual(movement.ref_type, "")

    def test_reservation_is_converted_only_once(self):
        """Test that a repeated confirmation for the same reservation is a no-op"""
        reservation = self._reservation(self.product, 2)

        first = self.service.confirm_sale(self.product, 2, reservation_id=reservation.pk)
        reservation.refresh_from_db()
        converted_at = reservation.converted_at

        second = self.service.confirm_sale(self.product, 2, reservation_id=reservation.pk)

        self.assertEqual(second.pk, first.pk)
        reservation.refresh_from_db()
        self.assertEqual(reservation.converted_at, converted_at)
        self.assertEqual(StockMovement.objects.of_type(MovementType.SALE).count(), 1)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 8)

    def test_confirm_after_convert_to_sale_is_a_no_op(self):
        """Test that both conversion entry points share one conversion"""
        from inventory.reservations import ReservationService

        reservation = self._reservation(self.product, 3)
        ReservationService(stock_service=self.service).convert_to_sale(reservation, order_id=9)

        self.service.confirm_sale(self.product, 3, order_id=9, reservation_id=reservation.pk)

        self.assertEqual(StockMovement.objects.of_type(MovementType.SALE).count(), 1)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 7)

    def test_other_order_reusing_converted_reservation_still_deducts(self):
        """Test that a different sale citing a converted reservation is charged to stock"""
        reservation = self._reservation(self.product, 2)

        first = self.service.confirm_sale(self.product, 2, order_id=1, reservation_id=reservation.pk)
        second = self.service.confirm_sale(self.product, 5, order_id=2, reservation_id=reservation.pk)

        self.assertNotEqual(second.pk, first.pk)
        self.assertEqual(second.quantity, -5)
        self.assertEqual(second.notes, "Venda - Pedido #2")
        self.assertEqual(second.ref_type, "")
        self.assertEqual(StockMovement.objects.of_type(MovementType.SALE).count(), 2)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 3)

    def test_same_order_different_quantity_still_deducts(self):
        """Test that only an identical repeat of the sale is skipped"""
        reservation = self._reservation(self.product, 2)

        self.service.confirm_sale(self.product, 2, order_id=1, reservation_id=reservation.pk)
        self.service.confirm_sale(self.product, 1, order_id=1, reservation_id=reservation.pk)

        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 7)

    def test_sale_beyond_stock_is_rejected(self):
        """Test that sales respect the negative-stock guard"""
        reservation = self._reservation(self.product, 2)

        with self.assertRaises(InsufficientStockError):
            self.service.confirm_sale(self.product, 11, reservation_id=reservation.pk)

        reservation.refresh_from_db()
        self.assertFalse(reservation.is_converted())
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 10)

    def test_sale_with_backorders_goes_negative(self):
        """Test that backorders let a sale oversell"""
        self.product.allow_backorders = True
        self.product.save()

        movement = self.service.confirm_sale(self.product, 12, order_id=3)
        self.assertEqual(movement.quantity_after, -2)

    def test_backorders_do_not_lift_guard_for_manual_exits(self):
        """Test that backorders only apply to sales"""
        self.product.allow_backorders = True
        self.product.save()

        with self.assertRaises(InsufficientStockError):
            self.service.adjust(self.product, -12, MovementType.MANUAL_EXIT)


class RefundStockTests(InventoryTestBase):
    def test_refund_restocks_with_notes(self):
        """Test that a refund adds stock back and records the reason"""
        movement = self.service.refund_stock(self.product, 3, order_id=42, reason="Cliente desistiu", actor=self.user)

        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 13)
        self.assertEqual(movement.movement_type, MovementType.REFUND)
        self.assertEqual(movement.quantity, 3)
        self.assertEqual(movement.notes, "Estorno - Pedido #42 - Cliente desistiu")

    def test_refund_quantity_is_always_positive(self):
        """Test that a negative refund quantity still restocks"""
        movement = self.service.refund_stock(self.product, -2)
        self.assertEqual(movement.quantity, 2)
        self.assertEqual(movement.notes, "Estorno")

    def test_refund_without_movement_is_a_no_op(self):
        """Test that damaged returns write nothing"""
        result = self.service.refund_stock(self.product, 3, order_id=42, record_movement=False)

        self.assertIsNone(result)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 10)
        self.assertFalse(StockMovement.objects.exists())

    def test_refund_never_triggers_low_stock_alert(self):
        """Test that increases do not dispatch alerts"""
        self.product.stock_quantity = 1
        self.product.save()
        self.service.refund_stock(self.product, 1)
        self.alerts.assert_not_called()

    def test_note_helpers(self):
        self.assertEqual(sale_notes(), "Venda")
        self.assertEqual(sale_notes(5), "Venda - Pedido #5")
        self.assertEqual(refund_notes(5), "Estorno - Pedido #5")
        self.assertEqual(refund_notes(reason="Troca"), "Estorno - Troca")


class LowStockDispatchTests(InventoryTestBase):
    def test_decrease_into_low_stock_dispatches_alert(self):
        """Test that crossing into the low-stock band calls the dispatcher"""
        self.service.record_sale(self.product, 6)

        self.alerts.assert_called_once()
        (stockable,), _ = self.alerts.call_args
        self.assertEqual(stockable.pk, self.product.pk)
        self.assertEqual(stockable.stock_quantity, 4)

    def test_decrease_above_threshold_does_not_dispatch(self):
        """Test that stock above the threshold stays quiet"""
        self.service.record_sale(self.product, 2)
        self.alerts.assert_not_called()

    def test_decrease_to_zero_does_not_dispatch(self):
        """Test that out-of-stock is not reported as low stock"""
        self.service.record_sale(self.product, 10)
        self.alerts.assert_not_called()

    def test_item_threshold_overrides_default(self):
        """Test that a per-item threshold is honoured"""
        self.product.low_stock_threshold = 8
        self.product.save()

        self.service.record_sale(self.product, 3)
        self.alerts.assert_called_once()

    def test_opted_out_items_do_not_dispatch(self):
        """Test that notify_low_stock=False silences alerts"""
        self.product.notify_low_stock = False
        self.product.save()

        self.service.record_sale(self.product, 8)
        self.alerts.assert_not_called()

    def test_dispatcher_failure_does_not_undo_mutation(self):
        """Test that a failing dispatcher is logged and the sale stands"""
        self.alerts.side_effect = RuntimeError("broker unavailable")

        with self.assertLogs("inventory.services", level="ERROR"):
            movement = self.service.record_sale(self.product, 7)

        self.assertEqual(movement.quantity_after, 3)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 3)


class AvailabilityTests(InventoryTestBase):
    def test_available_subtracts_active_reservations_only(self):
        """Test available = stock - active reservations"""
        self._reservation(self.product, 3)
        self._reservation(self.product, 2, minutes=-5)
        self._reservation(self.product, 4, converted_at=timezone.now())

        self.assertEqual(self.service.get_available_quantity(self.product), 7)
        self.assertEqual(self.product.get_reserved_quantity(), 3)
        self.assertEqual(self.product.get_available_quantity(), 7)

    def test_available_never_negative(self):
        """Test that over-reservation floors availability at zero"""
        self._reservation(self.product, 15)
        self.assertEqual(self.service.get_available_quantity(self.product), 0)

    def test_check_availability(self):
        """Test availability checks against policy"""
        self._reservation(self.product, 6)
        self.assertTrue(self.service.check_availability(self.product, 4))
        self.assertFalse(self.service.check_availability(self.product, 5))
        self.assertTrue(self.service.check_availability(self.product, 0))

        self.product.allow_backorders = True
        self.assertTrue(self.service.check_availability(self.product, 50))

    def test_resolve_stockable(self):
        """Test resolving stockables by type and id"""
        self.assertEqual(self.service.resolve_stockable("product", self.product.pk), self.product)
        self.assertEqual(self.service.resolve_stockable("variant", self.variant.pk), self.variant)
        self.assertIsNone(self.service.resolve_stockable("product", 999999))
        self.assertIsNone(self.service.resolve_stockable("bundle", self.product.pk))


class StockScenarioTests(TestCase):
    def setUp(self):
        self.product = Product.objects.create(name="Caderno", sku="CAD-1", stock_quantity=100)
        self.alerts = mock.Mock()
        self.service = StockService(config=StockConfig(), alert_dispatcher=self.alerts)

    def test_reserve_release_and_sell(self):
        """Test the cart lifecycle from holds to a plain sale"""
        from inventory.reservations import ReservationService

        reservations = ReservationService(stock_service=self.service)
        reservations.reserve(self.product, 40, cart_id="A")
        self.assertEqual(reservations.get_available_quantity(self.product), 60)

        with self.assertRaises(InsufficientStockError):
            reservations.reserve(self.product, 70, cart_id="B")

        reservations.release_by_cart("A")
        self.assertEqual(reservations.get_available_quantity(self.product), 100)

        movement = self.service.confirm_sale(self.product, 40)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 60)
        self.assertEqual(movement.quantity, -40)
        self.assertEqual(movement.quantity_before, 100)
        self.assertEqual(movement.quantity_after, 60)

    def test_sale_into_low_stock_schedules_alert(self):
        """Test that a sale ending at or under the threshold schedules the alert"""
        Product.objects.filter(pk=self.product.pk).update(stock_quantity=15, low_stock_threshold=10)
        self.product.refresh_from_db()

        self.service.confirm_sale(self.product, 10)

        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 5)
        self.assertTrue(self.product.is_low_stock())
        self.alerts.assert_called_once()

    def test_sale_above_threshold_does_not_schedule_alert(self):
        Product.objects.filter(pk=self.product.pk).update(stock_quantity=15, low_stock_threshold=3)
        self.product.refresh_from_db()

        self.service.confirm_sale(self.product, 10)

        self.alerts.assert_not_called()

    def test_refund_without_restock(self):
        """Test that a non-restocking refund changes nothing"""
        before = StockMovement.objects.count()

        self.assertIsNone(self.service.refund_stock(self.product, 10, record_movement=False))

        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 100)
        self.assertEqual(StockMovement.objects.count(), before)
