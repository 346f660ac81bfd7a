"""
Release stock reservations that expired without being converted.

Usage:
    python manage.py clean_expired_reservations
    python manage.py clean_expired_reservations --batch-size 500
"""

from django.core.management.base import BaseCommand, CommandError

from inventory.reservations import clean_expired_reservations


class Command(BaseCommand):
    help = "Release expired, unconverted stock reservations"

    def add_arguments(self, parser):
        parser.add_argument(
            "--batch-size",
            type=int,
            help="Reservations released per batch (defaults to INVENTORY['CLEANUP_BATCH_SIZE'])",
        )

    def handle(self, *args, **options):
        batch_size = options.get("batch_size")
        if batch_size is not None and batch_size <= 0:
            raise CommandError("--batch-size must be greater than 0")

        cleaned = clean_expired_reservations(batch_size=batch_size)
        self.stdout.write(self.style.SUCCESS(f"Cleaned {cleaned} expired reservation(s)."))
