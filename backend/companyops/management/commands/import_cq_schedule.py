from __future__ import annotations

from pathlib import Path

from django.core.management.base import BaseCommand, CommandError

from companyops.domain.errors import DomainError
from companyops.domain.models import Personnel, Role
from companyops.services.cq_schedule import import_schedule, parse_schedule_csv


class Command(BaseCommand):
    help = "Import CQ schedule rows from a CSV file (Date, Day, Shift 1, Shift 2)."

    def add_arguments(self, parser):
        parser.add_argument("path", type=str, help="CSV file to import.")
        parser.add_argument("--clear", action="store_true", help="Delete every existing entry first.")

    def handle(self, *args, **opts):
        path = Path(opts["path"])
        if not path.exists():
            raise CommandError(f"File not found: {path}")

        actor = Personnel.objects.filter(role=Role.ADMIN, active=True).first()
        if actor is None:
            raise CommandError("An active admin personnel record is required to import.")

        try:
            rows = parse_schedule_csv(path.read_text(encoding="utf-8-sig"))
            count = import_schedule(rows, actor, clear_existing=bool(opts.get("clear")))
        except DomainError as exc:
            raise CommandError(str(exc))
        self.stdout.write(self.style.SUCCESS(f"[import] {count} row(s) written from {path.name}."))
