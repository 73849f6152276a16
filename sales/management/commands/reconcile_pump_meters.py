from django.core.management.base import BaseCommand
from django.db.models import Q

from core.models import Station
from forecourt.models import Pump
from sales.services import find_meter_drift


class Command(BaseCommand):
    help = (
        "Report pumps whose current meter reading disagrees with the highest "
        "closing meter sold through them, and optionally realign pumps "
        "that read behind their sales."
    )

    def add_arguments(self, parser):
        parser.add_argument(
            "--station",
            action="append",
            default=[],
            help="Station code or id to check (repeatable; default: all stations).",
        )
        parser.add_argument(
            "--fix",
            action="store_true",
            help="Raise each pump that reads behind its sales to the highest closing meter.",
        )

    def handle(self, *args, **options):
        station_ids = None
        if options["station"]:
            lookup = Q(code__in=options["station"])
            uuid_like = [value for value in options["station"] if len(value) == 36]
            if uuid_like:
                lookup |= Q(id__in=uuid_like)
            station_ids = list(Station.objects.filter(lookup).values_list("id", flat=True))
            if not station_ids:
                self.stdout.write(self.style.WARNING("No matching stations."))
                return

        rows = find_meter_drift(station_ids)
        if not rows:
            self.stdout.write(self.style.SUCCESS("No pump meter drift detected."))
            return

        self.stdout.write(self.style.MIGRATE_HEADING("Pump meter drift"))
        fixable = [row for row in rows if row["behind"]]
        fixed = 0
        for row in rows:
            note = "" if row["behind"] else " ahead of sales, review manually"
            self.stdout.write(
                f"  {row['station_code']} pump {row['pump_number']}: "
                f"reading={row['current_meter_reading']} highest_sale_closing={row['latest_closing_meter']} "
                f"(sale {row['latest_sale_id']}){note}"
            )
            if options["fix"] and row["behind"]:
                fixed += Pump.objects.filter(
                    pk=row["pump_id"],
                    current_meter_reading=row["current_meter_reading"],
                ).update(current_meter_reading=row["latest_closing_meter"])

        if options["fix"]:
            self.stdout.write(self.style.SUCCESS(f"Realigned {fixed} of {len(fixable)} pump(s)."))
        elif fixable:
            self.stdout.write(
                self.style.WARNING(f"{len(fixable)} pump(s) behind their sales. Re-run with --fix to realign.")
            )
        skipped = len(rows) - len(fixable)
        if skipped:
            self.stdout.write(self.style.WARNING(f"{skipped} pump(s) read ahead of their sales and were left unchanged."))
