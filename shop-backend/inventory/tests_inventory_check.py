"""
Tests for the inventory_check ledger reconciliation command.
"""
from io import StringIO

from django.core.management import call_command
from django.core.management.base import CommandError

from catalog.models import Product
from inventory.models import MovementType, StockMovement
from inventory.reservations import ReservationService
from inventory.tests import InventoryTestBase


class InventoryCheckCommandTests(InventoryTestBase):
    def _run(self, *args):
        out = StringIO()
        call_command("inventory_check", *args, stdout=out)
        return out.getvalue()

    def test_clean_ledger(self):
        """Test that service-written movements reconcile"""
        self.service.adjust(self.product, 5, MovementType.MANUAL_ENTRY)
        self.service.record_sale(self.product, 3)
        ReservationService(stock_service=self.service).reserve(self.product, 2)
        self.service.adjust(self.variant, -1, MovementType.MANUAL_EXIT)

        output = self._run("--verbose")

        self.assertIn("Checked: 2 stockables", output)
        self.assertIn("Mismatches: 0", output)
        self.assertIn("clean", output)

    def test_out_of_band_write_is_reported(self):
        """Test that a stock change outside the service is detected"""
        self.service.adjust(self.product, 5, MovementType.MANUAL_ENTRY)
        Product.objects.filter(pk=self.product.pk).update(stock_quantity=99)

        out = StringIO()
        with self.assertRaises(CommandError) as ctx:
            call_command("inventory_check", stdout=out)

        self.assertEqual(ctx.exception.returncode, 1)
        self.assertIn("ledger ends at 15, stored stock is 99", out.getvalue())

    def test_broken_chain_is_reported(self):
        """Test that a movement not starting at the previous balance is detected"""
        self.service.adjust(self.product, 5, MovementType.MANUAL_ENTRY)
        StockMovement.objects.create(
            stockable_type="product",
            stockable_id=self.product.pk,
            movement_type=MovementType.ADJUSTMENT,
            quantity=1,
            quantity_before=20,
            quantity_after=21,
        )

        out = StringIO()
        with self.assertRaises(CommandError):
            call_command("inventory_check", "--type", "product", stdout=out)

        self.assertIn("starts at 20, previous ended at 15", out.getvalue())

    def test_type_filter(self):
        self.service.adjust(self.variant, 1, MovementType.MANUAL_ENTRY)
        Product.objects.filter(pk=self.product.pk).update(stock_quantity=0)

        output = self._run("--type", "variant")
        self.assertIn("Checked: 1 stockables", output)
