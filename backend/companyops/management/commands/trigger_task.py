from __future__ import annotations

from django.core.management.base import BaseCommand, CommandError

from companyops.tasks import daily_cq_reminder, scheduled_weather_check

TASKS = {
    "weather_check": scheduled_weather_check,
    "cq_reminder": daily_cq_reminder,
}


class Command(BaseCommand):
    help = (
        "Trigger Celery tasks manually for testing.\n"
        "Use --sync to run the task in this process (no broker needed)."
    )

    def add_arguments(self, parser):
        parser.add_argument("name", choices=[*TASKS, "all"], help="Task to enqueue/run.")
        parser.add_argument("--date", type=str, help="ISO date for cq_reminder (default: today).")
        parser.add_argument("--sync", action="store_true", help="Run synchronously (no broker/worker).")
        parser.add_argument("--timeout", type=int, default=10, help="Seconds to wait for the async result.")

    def _args_for(self, name: str, date: str | None) -> tuple:
        return (date,) if name == "cq_reminder" and date else ()

    def _run(self, name: str, *, date: str | None, sync: bool, timeout: int) -> None:
        task = TASKS.get(name)
        if task is None:
            raise CommandError(f"Unknown task: {name}")
        args = self._args_for(name, date)

        if sync:
            result = task(*args)
            self.stdout.write(self.style.SUCCESS(f"[sync] {name} -> {result!r}"))
            return

        try:
            res = task.delay(*args)
        except Exception as e:
            self.stderr.write(self.style.ERROR(f"Failed to enqueue '{name}': {e}"))
            self.stderr.write("Hint: use --sync to run without Celery.")
            raise SystemExit(2)
        self.stdout.write(self.style.SUCCESS(f"[async] enqueued {name}: {res.id}"))
        try:
            out = res.get(timeout=timeout)
            self.stdout.write(self.style.HTTP_INFO(f"[async] result {res.id} -> {out!r}"))
        except Exception:
            # the worker may not have picked it up yet
            pass

    def handle(self, *args, **opts):
        names = list(TASKS) if opts["name"] == "all" else [opts["name"]]
        for name in names:
            self._run(name, date=opts.get("date"), sync=bool(opts.get("sync")), timeout=int(opts.get("timeout") or 10))
