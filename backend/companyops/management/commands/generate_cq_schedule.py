from __future__ import annotations

from django.core.management.base import BaseCommand, CommandError

from companyops.domain.errors import DomainError
from companyops.services import timezone as tz
from companyops.services.cq_schedule import generate_schedule
from companyops.utils import _parse_iso_date


class Command(BaseCommand):
    help = "Round-robin the CQ roster onto the schedule, starting tomorrow by default."

    def add_arguments(self, parser):
        parser.add_argument("--start", type=str, help="First date (YYYY-MM-DD). Defaults to tomorrow in the configured zone.")
        parser.add_argument("--days", type=int, default=30, help="Number of days to fill (default: 30).")

    def handle(self, *args, **opts):
        try:
            start = _parse_iso_date(opts["start"]) if opts.get("start") else tz.tomorrow_in(tz.configured_timezone())
        except ValueError:
            raise CommandError("--start must be YYYY-MM-DD")

        try:
            result = generate_schedule(start, opts["days"])
        except DomainError as exc:
            raise CommandError(str(exc))

        self.stdout.write(
            self.style.SUCCESS(
                f"[generate] from {start}: {len(result.created)} created, "
                f"{len(result.existing)} already scheduled, {len(result.skipped)} skipped."
            )
        )
