"""
Checkout validation tests.
"""
from inventory.models import StockMovement
from inventory.tests import InventoryTestBase


class CheckoutValidationTests(InventoryTestBase):
    def test_all_items_available(self):
        """Test that a satisfiable cart validates"""
        result = self.service.validate_for_checkout([(self.product, 2), (self.variant, 4)])

        self.assertTrue(result.is_valid())
        self.assertEqual(result.unavailable_count, 0)
        self.assertEqual(result.error_messages, [])
        self.assertEqual(len(result.available_items), 2)

    def test_shortage_is_reported_per_item(self):
        """Test that a short item carries shortage and partial-fulfillment data"""
        self._reservation(self.product, 7)

        result = self.service.validate_for_checkout([
            {"stockable": self.product, "quantity": 5},
            {"stockable": self.variant, "quantity": 1},
        ])

        self.assertFalse(result.is_valid())
        self.assertEqual(result.unavailable_count, 1)
        item = result.unavailable_items[0]
        self.assertEqual(item.requested_quantity, 5)
        self.assertEqual(item.available_quantity, 3)
        self.assertEqual(item.shortage, 2)
        self.assertEqual(item.fulfillable_quantity, 3)
        self.assertTrue(item.can_partially_fulfill())
        self.assertTrue(result.has_partially_fulfillable_items())
        self.assertEqual(
            result.error_messages,
            ["Camiseta: apenas 3 unidades disponiveis (solicitado: 5)."],
        )

    def test_out_of_stock_message(self):
        """Test the message for an item with nothing available"""
        self._reservation(self.variant, 4)

        result = self.service.validate_for_checkout([(self.variant, 1)])

        self.assertFalse(result.is_valid())
        self.assertFalse(result.has_partially_fulfillable_items())
        self.assertEqual(result.error_messages, ["Camiseta - Azul M esta fora de estoque."])

    def test_unmanaged_and_backordered_items_always_pass(self):
        """Test that stock policy exempts items from the check"""
        self.product.manage_stock = False
        result = self.service.validate_for_checkout([(self.product, 500)])
        self.assertTrue(result.is_valid())
        self.assertEqual(result.items[0].available_quantity, 500)

        self.product.manage_stock = True
        self.product.allow_backorders = True
        result = self.service.validate_for_checkout([(self.product, 500)])
        self.assertTrue(result.is_valid())
        self.assertEqual(result.items[0].available_quantity, 10)

    def test_validation_writes_nothing(self):
        """Test that validation is read-only"""
        self.service.validate_for_checkout([(self.product, 50)])

        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 10)
        self.assertFalse(StockMovement.objects.exists())

    def test_failed_validation_is_logged(self):
        """Test that a failing cart logs the insufficient items"""
        with self.assertLogs("inventory.services", level="INFO") as logs:
            self.service.validate_for_checkout([(self.product, 11)])

        self.assertIn("Checkout validation failed: insufficient stock", logs.output[0])
        self.assertIn("'requested': 11", logs.output[0])

    def test_empty_cart_is_valid(self):
        result = self.service.validate_for_checkout([])
        self.assertTrue(result.is_valid())
        self.assertEqual(result.items, [])

    def test_to_dict(self):
        """Test the serialisable form of a result"""
        result = self.service.validate_for_checkout([(self.product, 12)])
        payload = result.to_dict()

        self.assertFalse(payload["valid"])
        self.assertEqual(payload["unavailable_count"], 1)
        row = payload["items"][0]
        self.assertEqual(row["stockable_type"], "product")
        self.assertEqual(row["stockable_id"], self.product.pk)
        self.assertEqual(row["name"], "Camiseta")
        self.assertEqual(row["shortage"], 2)
        self.assertTrue(row["can_partially_fulfill"])
