"""
Reservation tests: holds, releases, conversion and availability.
"""
from datetime import timedelta

from django.core.exceptions import ValidationError
from django.utils import timezone

from inventory.config import StockConfig
from inventory.exceptions import InsufficientStockError
from inventory.models import MovementType, StockMovement
from inventory.models_reservations import StockReservation
from inventory.reservations import ReservationService
from inventory.tests import InventoryTestBase


class ReservationServiceTests(InventoryTestBase):
    def setUp(self):
        super().setUp()
        self.reservations = ReservationService(stock_service=self.service)

    def test_reserve_holds_without_touching_stock(self):
        """Test that reserving lowers availability but not stock_quantity"""
        reservation = self.reservations.reserve(self.product, 3, cart_id="cart-9")

        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 10)
        self.assertEqual(self.reservations.get_available_quantity(self.product), 7)
        self.assertEqual(reservation.cart_id, "cart-9")
        self.assertTrue(reservation.is_active())

        movement = StockMovement.objects.get(movement_type=MovementType.RESERVATION)
        self.assertEqual(movement.quantity, -3)
        self.assertEqual(movement.quantity_before, 10)
        self.assertEqual(movement.quantity_after, 10)
        self.assertEqual(movement.ref_type, "reservation")
        self.assertEqual(movement.ref_id, reservation.pk)
        self.assertEqual(movement.notes, "Reserva para carrinho cart-9")

    def test_reserve_uses_configured_ttl(self):
        """Test that expiry is now + RESERVATION_TTL minutes"""
        service = ReservationService(stock_service=self.service, config=StockConfig(reservation_ttl=10))
        before = timezone.now()
        reservation = service.reserve(self.product, 1)

        self.assertGreaterEqual(reservation.expires_at, before + timedelta(minutes=10))
        self.assertLessEqual(reservation.expires_at, timezone.now() + timedelta(minutes=10))

    def test_reserve_without_cart_uses_plain_note(self):
        """Test the note of a cart-less reservation"""
        reservation = self.reservations.reserve(self.variant, 1)
        self.assertIsNone(reservation.cart_id)
        movement = StockMovement.objects.get(ref_id=reservation.pk)
        self.assertEqual(movement.notes, "Reserva de estoque")

    def test_reserve_rejects_non_positive_quantity(self):
        """Test that zero and negative holds are refused"""
        with self.assertRaises(ValidationError):
            self.reservations.reserve(self.product, 0)
        with self.assertRaises(ValidationError):
            self.reservations.reserve(self.product, -2)
        self.assertFalse(StockReservation.objects.exists())

    def test_reserve_beyond_availability_fails(self):
        """Test that holds cannot exceed stock minus active holds"""
        self.reservations.reserve(self.product, 8)

        with self.assertRaises(InsufficientStockError) as ctx:
            self.reservations.reserve(self.product, 3)

        self.assertEqual(ctx.exception.available_quantity, 2)
        self.assertEqual(StockReservation.objects.count(), 1)

    def test_reserve_allows_backorders(self):
        """Test that backorders permit over-reservation"""
        self.product.allow_backorders = True
        self.product.save()

        reservation = self.reservations.reserve(self.product, 25)
        self.assertEqual(reservation.quantity, 25)
        self.assertEqual(self.reservations.get_available_quantity(self.product), 0)

    def test_reserve_ignores_unmanaged_stock(self):
        """Test that products not managing stock always accept holds"""
        self.product.manage_stock = False
        self.product.save()

        reservation = self.reservations.reserve(self.product, 50)
        self.assertEqual(reservation.quantity, 50)

    def test_release_deletes_and_restores_availability(self):
        """Test that releasing removes the hold and logs it"""
        reservation = self.reservations.reserve(self.product, 4)

        self.assertTrue(self.reservations.release(reservation))

        self.assertFalse(StockReservation.objects.filter(pk=reservation.pk).exists())
        self.assertEqual(self.reservations.get_available_quantity(self.product), 10)
        release = StockMovement.objects.get(movement_type=MovementType.RESERVATION_RELEASE)
        self.assertEqual(release.quantity, 4)
        self.assertEqual(release.quantity_before, release.quantity_after)
        self.assertEqual(release.notes, "Liberacao de reserva")

    def test_release_twice_is_a_no_op(self):
        """Test that a second release changes nothing"""
        reservation = self.reservations.reserve(self.product, 4)
        self.reservations.release(reservation)

        self.assertFalse(self.reservations.release(reservation))
        self.assertEqual(StockMovement.objects.of_type(MovementType.RESERVATION_RELEASE).count(), 1)

    def test_release_skips_converted_reservation(self):
        """Test that converted reservations stay as the sale record"""
        reservation = self.reservations.reserve(self.product, 2)
        self.reservations.convert_to_sale(reservation, order_id=1)

        self.assertFalse(self.reservations.release(reservation))
        self.assertTrue(StockReservation.objects.filter(pk=reservation.pk).exists())

    def test_release_by_cart_releases_active_only(self):
        """Test that a cart release only touches its active reservations"""
        first = self.reservations.reserve(self.product, 1, cart_id="cart-A")
        second = self.reservations.reserve(self.variant, 2, cart_id="cart-A")
        other = self.reservations.reserve(self.product, 1, cart_id="cart-B")
        expired = self._reservation(self.product, 1, minutes=-10, cart_id="cart-A")

        released = self.reservations.release_by_cart("cart-A")

        self.assertEqual(released, 2)
        remaining = set(StockReservation.objects.values_list("pk", flat=True))
        self.assertNotIn(first.pk, remaining)
        self.assertNotIn(second.pk, remaining)
        self.assertIn(other.pk, remaining)
        self.assertIn(expired.pk, remaining)

    def test_release_by_unknown_cart(self):
        self.assertEqual(self.reservations.release_by_cart("nope"), 0)

    def test_release_by_cart_without_cart_id_releases_nothing(self):
        """Test that reservations without a cart are not released as a group"""
        first = self.reservations.reserve(self.product, 1)
        second = self.reservations.reserve(self.variant, 1)

        self.assertEqual(self.reservations.release_by_cart(None), 0)

        self.assertEqual(
            set(StockReservation.objects.values_list("pk", flat=True)),
            {first.pk, second.pk},
        )
        self.assertFalse(StockMovement.objects.of_type(MovementType.RESERVATION_RELEASE).exists())

    def test_convert_to_sale_deducts_stock_once(self):
        """Test that conversion sells the held units exactly once"""
        reservation = self.reservations.reserve(self.product, 3, cart_id="cart-1")

        self.assertTrue(self.reservations.convert_to_sale(reservation, order_id=55, actor=self.user))
        self.assertTrue(reservation.is_converted())

        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 7)
        self.assertEqual(self.reservations.get_available_quantity(self.product), 7)
        sale = StockMovement.objects.get(movement_type=MovementType.SALE)
        self.assertEqual(sale.quantity, -3)
        self.assertEqual(sale.ref_type, "reservation")
        self.assertEqual(sale.ref_id, reservation.pk)
        self.assertEqual(sale.notes, "Venda - Pedido #55")
        self.assertEqual(sale.created_by, self.user)

        self.assertFalse(self.reservations.convert_to_sale(reservation, order_id=55))
        self.assertEqual(StockMovement.objects.of_type(MovementType.SALE).count(), 1)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 7)

    def test_convert_stale_instance_does_not_double_sell(self):
        """Test that a second copy of the same reservation cannot convert again"""
        reservation = self.reservations.reserve(self.product, 2)
        stale_copy = StockReservation.objects.get(pk=reservation.pk)

        self.assertTrue(self.reservations.convert_to_sale(reservation))
        self.assertFalse(self.reservations.convert_to_sale(stale_copy))
        self.assertEqual(StockMovement.objects.of_type(MovementType.SALE).count(), 1)

    def test_convert_expired_reservation_fails(self):
        """Test that expired reservations cannot be converted"""
        reservation = self._reservation(self.product, 2, minutes=-1)

        self.assertFalse(self.reservations.convert_to_sale(reservation, order_id=1))
        self.assertFalse(StockMovement.objects.exists())
        reservation.refresh_from_db()
        self.assertFalse(reservation.is_converted())

    def test_expired_reservation_no_longer_counts(self):
        """Test that expiry alone restores availability"""
        self._reservation(self.product, 6, minutes=-1)
        self.assertEqual(self.reservations.get_available_quantity(self.product), 10)

    def test_extend_reservation(self):
        """Test that extending moves expiry without a ledger entry"""
        reservation = self.reservations.reserve(self.product, 2)
        new_expiry = timezone.now() + timedelta(hours=2)

        self.reservations.extend_reservation(reservation, new_expiry)

        reservation.refresh_from_db()
        self.assertEqual(reservation.expires_at, new_expiry)
        self.assertEqual(StockMovement.objects.count(), 1)

    def test_extend_can_revive_expired_reservation(self):
        """Test that an expired hold becomes active again when extended"""
        reservation = self._reservation(self.product, 2, minutes=-1)
        self.reservations.extend_reservation(reservation, timezone.now() + timedelta(minutes=5))
        self.assertTrue(reservation.is_active())
        self.assertEqual(self.reservations.get_available_quantity(self.product), 8)


class ReservationQuerySetTests(InventoryTestBase):
    def test_status_filters(self):
        active = self._reservation(self.product, 1)
        expired = self._reservation(self.product, 1, minutes=-1)
        converted = self._reservation(self.product, 1, converted_at=timezone.now())

        self.assertEqual(list(StockReservation.objects.active()), [active])
        self.assertEqual(list(StockReservation.objects.expired()), [expired])
        self.assertEqual(list(StockReservation.objects.converted()), [converted])
        self.assertTrue(expired.is_expired())
        self.assertFalse(converted.is_expired())
        self.assertFalse(converted.is_active())

    def test_reserved_quantity_per_stockable(self):
        self._reservation(self.product, 2)
        self._reservation(self.product, 5)
        self._reservation(self.variant, 1)

        self.assertEqual(StockReservation.objects.for_stockable(self.product).reserved_quantity(), 7)
        self.assertEqual(StockReservation.objects.for_stockable("variant", self.variant.pk).reserved_quantity(), 1)
        self.assertEqual(StockReservation.objects.for_cart("empty").reserved_quantity(), 0)
