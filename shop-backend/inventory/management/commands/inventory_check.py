"""
Management command to validate the stock movement ledger.

For every stockable with movements this command walks its ledger in order
and checks that each stock-affecting row chains onto the previous one and
that the last quantity_after equals the stored stock_quantity.

Usage:
    python manage.py inventory_check
    python manage.py inventory_check --type variant
    python manage.py inventory_check --verbose

Exit codes:
    0 - Every ledger chain is consistent (clean)
    1 - One or more mismatches found
"""

from django.core.management.base import BaseCommand, CommandError

from inventory.models import StockMovement
from inventory.stockables import StockableType, stockable_model


class Command(BaseCommand):
    help = "Validate stock movement ledger chains against stored stock quantities"

    def add_arguments(self, parser):
        parser.add_argument(
            "--type",
            choices=StockableType.values,
            help="Check a single stockable type only",
        )
        parser.add_argument(
            "--verbose",
            action="store_true",
            help="Show detailed output for each stockable checked",
        )

    def handle(self, *args, **options):
        stockable_type = options.get("type")
        verbose = options.get("verbose", False)

        types = [stockable_type] if stockable_type else list(StockableType.values)
        mismatches = []
        checked = 0

        for current_type in types:
            model = stockable_model(current_type)
            ids = list(
                StockMovement.objects.filter(stockable_type=current_type)
                .order_by()
                .values_list("stockable_id", flat=True)
                .distinct()
            )
            stock_by_id = dict(model.objects.filter(pk__in=ids).values_list("pk", "stock_quantity"))

            for stockable_id in sorted(ids):
                checked += 1
                problems = self._check_chain(current_type, stockable_id, stock_by_id.get(stockable_id))
                if problems:
                    mismatches.append((current_type, stockable_id, problems))
                    if verbose:
                        for problem in problems:
                            self.stdout.write(self.style.ERROR(f"MISMATCH: {current_type}#{stockable_id} - {problem}"))
                elif verbose:
                    self.stdout.write(f"OK: {current_type}#{stockable_id}")

        self.stdout.write("")
        self.stdout.write("=" * 60)
        self.stdout.write(f"Checked: {checked} stockables")
        self.stdout.write(f"Mismatches: {len(mismatches)}")

        if mismatches:
            self.stdout.write("")
            self.stdout.write(self.style.ERROR("MISMATCHES FOUND:"))
            for current_type, stockable_id, problems in mismatches:
                self.stdout.write(self.style.ERROR(f"  - {current_type}#{stockable_id}: {'; '.join(problems)}"))
            raise CommandError(f"{len(mismatches)} stock ledger mismatch(es) found", returncode=1)

        self.stdout.write("")
        self.stdout.write(self.style.SUCCESS("All stock ledgers match stored quantities (clean)"))

    def _check_chain(self, stockable_type, stockable_id, stock_quantity):
        problems = []
        if stock_quantity is None:
            return ["stockable no longer exists"]

        movements = (
            StockMovement.objects.filter(stockable_type=stockable_type, stockable_id=stockable_id)
            .affecting_stock()
            .order_by("created_at", "id")
            .values_list("id", "quantity", "quantity_before", "quantity_after")
        )

        previous_after = None
        for movement_id, quantity, before, after in movements:
            if before + quantity != after:
                problems.append(f"movement {movement_id}: {before} {quantity:+d} != {after}")
            if previous_after is not None and before != previous_after:
                problems.append(f"movement {movement_id}: starts at {before}, previous ended at {previous_after}")
            previous_after = after

        if previous_after is not None and previous_after != stock_quantity:
            problems.append(f"ledger ends at {previous_after}, stored stock is {stock_quantity}")
        return problems
