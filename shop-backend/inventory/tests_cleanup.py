"""
Expired reservation reclamation: service function, management command and Celery task.
"""
from datetime import timedelta
from io import StringIO

from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import override_settings
from django.utils import timezone

from inventory.models import MovementType, StockMovement
from inventory.models_reservations import StockReservation
from inventory.reservations import clean_expired_reservations, release_reservation
from inventory.tasks import clean_expired_reservations_task
from inventory.tests import InventoryTestBase


class CleanExpiredReservationsTests(InventoryTestBase):
    def test_only_expired_unconverted_reservations_are_released(self):
        """Test that active and converted reservations survive the sweep"""
        expired = self._reservation(self.product, 2, minutes=-5)
        active = self._reservation(self.product, 1, minutes=5)
        converted = self._reservation(self.product, 3, minutes=-5, converted_at=timezone.now())

        cleaned = clean_expired_reservations()

        self.assertEqual(cleaned, 1)
        remaining = set(StockReservation.objects.values_list("pk", flat=True))
        self.assertEqual(remaining, {active.pk, converted.pk})

        release = StockMovement.objects.get(movement_type=MovementType.RESERVATION_RELEASE)
        self.assertEqual(release.ref_id, expired.pk)
        self.assertEqual(release.quantity, 2)
        self.assertEqual(release.quantity_before, 10)
        self.assertEqual(release.quantity_after, 10)
        self.assertEqual(release.notes, "Liberacao automatica - reserva expirada")

    def test_stock_quantity_is_untouched(self):
        """Test that reclamation never writes stock_quantity"""
        self._reservation(self.product, 4, minutes=-1)
        self._reservation(self.variant, 1, minutes=-1)

        self.assertEqual(clean_expired_reservations(), 2)

        self.product.refresh_from_db()
        self.variant.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 10)
        self.assertEqual(self.variant.stock_quantity, 4)

    def test_walks_backlog_in_batches(self):
        """Test that a backlog larger than one batch is fully drained"""
        for _ in range(7):
            self._reservation(self.product, 1, minutes=-1)

        self.assertEqual(clean_expired_reservations(batch_size=3), 7)
        self.assertFalse(StockReservation.objects.exists())

    def test_batch_size_defaults_to_setting(self):
        """Test that CLEANUP_BATCH_SIZE is read when no batch size is given"""
        for _ in range(3):
            self._reservation(self.product, 1, minutes=-1)

        with override_settings(INVENTORY={"CLEANUP_BATCH_SIZE": 2}):
            self.assertEqual(clean_expired_reservations(), 3)

    def test_reference_time_is_respected(self):
        """Test that now= decides what counts as expired"""
        reservation = self._reservation(self.product, 1, minutes=5)

        self.assertEqual(clean_expired_reservations(), 0)
        later = timezone.now() + timedelta(minutes=10)
        self.assertEqual(clean_expired_reservations(now=later), 1)
        self.assertFalse(StockReservation.objects.filter(pk=reservation.pk).exists())

    def test_nothing_to_clean(self):
        self.assertEqual(clean_expired_reservations(), 0)
        self.assertFalse(StockMovement.objects.exists())

    def test_logs_cleaned_count(self):
        """Test that a sweep logs how many reservations it released"""
        self._reservation(self.product, 1, minutes=-1)
        self._reservation(self.product, 1, minutes=-1)

        with self.assertLogs("inventory.reservations", level="INFO") as logs:
            clean_expired_reservations()

        self.assertIn("Cleaned 2 expired stock reservations.", logs.output[0])

    def test_release_with_expired_only_skips_revived_reservation(self):
        """Test that a reservation extended after being listed is kept"""
        reservation = self._reservation(self.product, 1, minutes=5)

        self.assertFalse(release_reservation(reservation.pk, expired_only=True))
        self.assertTrue(StockReservation.objects.filter(pk=reservation.pk).exists())

    def test_release_of_orphaned_reservation(self):
        """Test that a reservation whose stockable is gone is still removed"""
        reservation = self._reservation(self.variant, 1, minutes=-1)
        self.variant.delete()

        self.assertEqual(clean_expired_reservations(), 1)
        self.assertFalse(StockReservation.objects.filter(pk=reservation.pk).exists())
        self.assertFalse(StockMovement.objects.exists())


class CleanExpiredReservationsEntryPointTests(InventoryTestBase):
    def test_management_command(self):
        """Test the command releases expired reservations and reports the count"""
        self._reservation(self.product, 1, minutes=-1)
        self._reservation(self.product, 1, minutes=-1)
        out = StringIO()

        call_command("clean_expired_reservations", "--batch-size", "1", stdout=out)

        self.assertIn("Cleaned 2 expired reservation(s).", out.getvalue())
        self.assertFalse(StockReservation.objects.exists())

    def test_management_command_rejects_bad_batch_size(self):
        with self.assertRaises(CommandError):
            call_command("clean_expired_reservations", "--batch-size", "0", stdout=StringIO())

    def test_celery_task(self):
        """Test the scheduled task returns the number cleaned"""
        self._reservation(self.product, 1, minutes=-1)
        self._reservation(self.product, 1, minutes=10)

        result = clean_expired_reservations_task.apply()

        self.assertEqual(result.get(), 1)
        self.assertEqual(StockReservation.objects.count(), 1)
