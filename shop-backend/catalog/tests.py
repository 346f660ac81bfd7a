from django.db import IntegrityError
from django.test import TestCase, override_settings

from catalog.models import Product, ProductVariant
from inventory.stockables import StockableRef, resolve_stockable, stockable_model, stockable_ref


class StockablePolicyTests(TestCase):
    def setUp(self):
        self.product = Product.objects.create(name="Caneca", sku="CAN-1", stock_quantity=3)
        self.variant = ProductVariant.objects.create(product=self.product, name="Branca", sku="CAN-1-BR", stock_quantity=8)

    def test_variant_delegates_policy_to_product(self):
        self.product.manage_stock = False
        self.product.allow_backorders = True
        self.product.notify_low_stock = False

        self.assertFalse(self.variant.is_managing_stock())
        self.assertTrue(self.variant.allows_backorders())
        self.assertFalse(self.variant.should_notify_low_stock())

    def test_threshold_falls_back_to_default(self):
        self.assertEqual(self.product.get_low_stock_threshold(5), 5)
        self.product.low_stock_threshold = 2
        self.assertEqual(self.product.get_low_stock_threshold(5), 2)

    @override_settings(INVENTORY={"DEFAULT_LOW_STOCK_THRESHOLD": 9})
    def test_threshold_default_comes_from_settings(self):
        self.assertEqual(self.variant.get_low_stock_threshold(), 9)
        self.assertTrue(self.variant.is_low_stock())

    def test_low_stock_band(self):
        """Zero stock is out of stock, not low stock"""
        self.assertTrue(self.product.is_low_stock(5))
        self.product.stock_quantity = 0
        self.assertFalse(self.product.is_low_stock(5))
        self.product.stock_quantity = 5
        self.assertTrue(self.product.is_low_stock(5))
        self.product.manage_stock = False
        self.assertFalse(self.product.is_low_stock(5))

    def test_display_names(self):
        self.assertEqual(self.product.display_name, "Caneca")
        self.assertEqual(self.variant.display_name, "Caneca - Branca")

    def test_sku_is_unique_case_insensitive(self):
        with self.assertRaises(IntegrityError):
            Product.objects.create(name="Outra", sku="can-1")


class StockableReferenceTests(TestCase):
    def setUp(self):
        self.product = Product.objects.create(name="Caneca", sku="CAN-1")
        self.variant = ProductVariant.objects.create(product=self.product, name="Branca", sku="CAN-1-BR")

    def test_refs(self):
        self.assertEqual(self.product.stockable_ref, StockableRef("product", self.product.pk))
        self.assertEqual(stockable_ref(self.variant), ("variant", self.variant.pk))
        self.assertEqual(stockable_ref("product", str(self.product.pk)), ("product", self.product.pk))

    def test_unsaved_instance_has_no_ref(self):
        with self.assertRaises(TypeError):
            stockable_ref(Product(name="Nova", sku="NOVA"))

    def test_model_lookup(self):
        self.assertIs(stockable_model("product"), Product)
        self.assertIs(stockable_model("variant"), ProductVariant)
        with self.assertRaises(LookupError):
            stockable_model("bundle")

    def test_resolve(self):
        self.assertEqual(resolve_stockable("variant", self.variant.pk), self.variant)
        self.assertIsNone(resolve_stockable("variant", self.variant.pk + 100))
