"""
Low-stock alert tests: item selection, the Celery job and on-commit dispatch.
"""
from unittest import mock

from django.core import mail
from django.test import override_settings

from catalog.models import Product, ProductVariant
from inventory.alerts import low_stock_items, schedule_low_stock_alert
from inventory.config import StockConfig
from inventory.services import StockService
from inventory.tasks import send_low_stock_alerts
from inventory.tests import InventoryTestBase

ALERT_SETTINGS = {
    "DEFAULT_LOW_STOCK_THRESHOLD": 5,
    "NOTIFICATION_RECIPIENTS": ["estoque@example.com", "gerente@example.com"],
    "SEND_LOW_STOCK_NOTIFICATIONS": True,
}


class LowStockItemsTests(InventoryTestBase):
    def setUp(self):
        super().setUp()
        # product: 10 (above default 5), variant: 4 (low)
        self.low_product = Product.objects.create(name="Boné", sku="BON-1", stock_quantity=2)
        self.custom_threshold = Product.objects.create(
            name="Meia", sku="MEI-1", stock_quantity=9, low_stock_threshold=10
        )
        Product.objects.create(name="Esgotado", sku="ESG-1", stock_quantity=0)
        Product.objects.create(name="Sem controle", sku="SC-1", stock_quantity=1, manage_stock=False)
        Product.objects.create(name="Silenciado", sku="SIL-1", stock_quantity=1, notify_low_stock=False)

    def test_selects_items_in_low_stock_band(self):
        """Test that only managed, notifying items with 0 < qty <= threshold are listed"""
        items = low_stock_items(StockConfig(default_low_stock_threshold=5))

        self.assertEqual(
            [item.sku for item in items],
            ["BON-1", "MEI-1", "CAM-001-AZ-M"],
        )

    def test_variants_follow_product_policy(self):
        """Test that variants of silenced products are skipped"""
        self.product.notify_low_stock = False
        self.product.save()

        skus = [item.sku for item in low_stock_items(StockConfig())]
        self.assertNotIn("CAM-001-AZ-M", skus)

    def test_is_low_stock_matches_selection(self):
        self.assertTrue(self.low_product.is_low_stock(5))
        self.assertTrue(self.custom_threshold.is_low_stock(5))
        self.assertFalse(self.product.is_low_stock(5))


class SendLowStockAlertsTaskTests(InventoryTestBase):
    @override_settings(INVENTORY=ALERT_SETTINGS)
    def test_sends_digest_to_recipients(self):
        """Test that the job emails every configured recipient"""
        sent = send_low_stock_alerts.apply(args=("variant", self.variant.pk)).get()

        self.assertEqual(sent, 1)
        self.assertEqual(len(mail.outbox), 1)
        message = mail.outbox[0]
        self.assertEqual(message.to, ["estoque@example.com", "gerente@example.com"])
        self.assertIn("Alerta de Estoque Baixo", message.subject)
        self.assertIn("Camiseta - Azul M", message.body)
        self.assertIn("4 em estoque", message.body)

    @override_settings(INVENTORY={**ALERT_SETTINGS, "SEND_LOW_STOCK_NOTIFICATIONS": False})
    def test_disabled_notifications_send_nothing(self):
        self.assertEqual(send_low_stock_alerts.apply().get(), 0)
        self.assertEqual(mail.outbox, [])

    @override_settings(INVENTORY={**ALERT_SETTINGS, "NOTIFICATION_RECIPIENTS": []})
    def test_no_recipients_sends_nothing(self):
        """Test that missing recipients skip the job and log why"""
        with self.assertLogs("inventory.tasks", level="INFO") as logs:
            self.assertEqual(send_low_stock_alerts.apply().get(), 0)

        self.assertIn("no recipients configured", logs.output[0])
        self.assertEqual(mail.outbox, [])

    @override_settings(INVENTORY={**ALERT_SETTINGS, "NOTIFICATION_RECIPIENTS": "a@example.com, b@example.com"})
    def test_comma_separated_recipients(self):
        send_low_stock_alerts.apply().get()
        self.assertEqual(mail.outbox[0].to, ["a@example.com", "b@example.com"])

    @override_settings(INVENTORY=ALERT_SETTINGS)
    def test_nothing_low_sends_nothing(self):
        ProductVariant.objects.filter(pk=self.variant.pk).update(stock_quantity=50)
        self.assertEqual(send_low_stock_alerts.apply().get(), 0)
        self.assertEqual(mail.outbox, [])


class LowStockDispatchOnCommitTests(InventoryTestBase):
    def test_alert_is_enqueued_after_commit(self):
        """Test that the default dispatcher enqueues the job only on commit"""
        service = StockService(config=StockConfig())

        with mock.patch("inventory.tasks.send_low_stock_alerts.delay") as delay:
            with self.captureOnCommitCallbacks(execute=True) as callbacks:
                service.record_sale(self.product, 7)
                delay.assert_not_called()

        self.assertEqual(len(callbacks), 1)
        delay.assert_called_once_with("product", self.product.pk)

    def test_schedule_low_stock_alert_registers_callback(self):
        with self.captureOnCommitCallbacks() as callbacks:
            schedule_low_stock_alert(self.variant)
        self.assertEqual(len(callbacks), 1)
