"""
Serializer tests for manual adjustments and ledger reads.
"""
from inventory.models import MovementType, StockMovement
from inventory.reservations import ReservationService
from inventory.serializers import AdjustStockSerializer, StockMovementSerializer, StockReservationSerializer
from inventory.tests import InventoryTestBase


class AdjustStockSerializerTests(InventoryTestBase):
    def _payload(self, **overrides):
        data = {
            "stockable_type": "product",
            "stockable_id": self.product.pk,
            "movement_type": "manual_exit",
            "quantity": 3,
            "notes": "Perda no inventario",
        }
        data.update(overrides)
        return data

    def test_manual_exit_is_always_negative(self):
        """Test that a positive exit quantity is applied as a decrease"""
        serializer = AdjustStockSerializer(data=self._payload())
        self.assertTrue(serializer.is_valid(), serializer.errors)

        movement = serializer.save(actor=self.user, stock_service=self.service)

        self.assertEqual(movement.quantity, -3)
        self.assertEqual(movement.movement_type, MovementType.MANUAL_EXIT)
        self.assertEqual(movement.created_by, self.user)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 7)

    def test_manual_entry_is_always_positive(self):
        serializer = AdjustStockSerializer(data=self._payload(movement_type="manual_entry", quantity=-4))
        self.assertTrue(serializer.is_valid(), serializer.errors)
        self.assertEqual(serializer.adjusted_quantity(), 4)

    def test_adjustment_keeps_sign(self):
        serializer = AdjustStockSerializer(
            data=self._payload(movement_type="adjustment", quantity=-2, stockable_type="variant", stockable_id=self.variant.pk)
        )
        self.assertTrue(serializer.is_valid(), serializer.errors)

        movement = serializer.save(stock_service=self.service)
        self.assertEqual(movement.quantity, -2)
        self.assertEqual(movement.quantity_after, 2)

    def test_rejects_system_movement_types(self):
        """Test that sales and reservations cannot be posted by hand"""
        for movement_type in ("sale", "refund", "reservation", "reservation_release"):
            serializer = AdjustStockSerializer(data=self._payload(movement_type=movement_type))
            self.assertFalse(serializer.is_valid())
            self.assertIn("movement_type", serializer.errors)

    def test_rejects_zero_quantity_and_short_notes(self):
        serializer = AdjustStockSerializer(data=self._payload(quantity=0, notes="ok"))
        self.assertFalse(serializer.is_valid())
        self.assertIn("quantity", serializer.errors)
        self.assertIn("notes", serializer.errors)

    def test_rejects_unknown_stockable(self):
        serializer = AdjustStockSerializer(data=self._payload(stockable_id=999999))
        self.assertFalse(serializer.is_valid())
        self.assertIn("stockable_id", serializer.errors)

        serializer = AdjustStockSerializer(data=self._payload(stockable_type="bundle"))
        self.assertFalse(serializer.is_valid())
        self.assertIn("stockable_type", serializer.errors)

    def test_insufficient_stock_becomes_validation_error(self):
        """Test that the stock guard surfaces as a field error"""
        from rest_framework.exceptions import ValidationError

        serializer = AdjustStockSerializer(data=self._payload(quantity=25))
        self.assertTrue(serializer.is_valid(), serializer.errors)

        with self.assertRaises(ValidationError) as ctx:
            serializer.save(stock_service=self.service)

        self.assertIn("quantity", ctx.exception.detail)
        self.assertFalse(StockMovement.objects.exists())


class LedgerSerializerTests(InventoryTestBase):
    def test_movement_serializer(self):
        movement = self.service.adjust(self.product, 2, MovementType.MANUAL_ENTRY, notes="Compra", actor=self.user)
        data = StockMovementSerializer(movement).data

        self.assertEqual(data["stockable_type"], "product")
        self.assertEqual(data["quantity"], 2)
        self.assertEqual(data["quantity_before"], 10)
        self.assertEqual(data["quantity_after"], 12)
        self.assertEqual(data["created_by"], "stockist")

    def test_reservation_serializer_status(self):
        reservations = ReservationService(stock_service=self.service)
        reservation = reservations.reserve(self.product, 1, cart_id="cart-1")
        self.assertEqual(StockReservationSerializer(reservation).data["status"], "active")

        reservations.convert_to_sale(reservation)
        self.assertEqual(StockReservationSerializer(reservation).data["status"], "converted")

        expired = self._reservation(self.product, 1, minutes=-1)
        self.assertEqual(StockReservationSerializer(expired).data["status"], "expired")
