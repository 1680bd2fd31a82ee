"""
Run one analytics cadence synchronously.

    python manage.py run_analytics daily
"""
from django.core.management.base import BaseCommand, CommandError

from habitpulse.integrations import scheduler


class Command(BaseCommand):
    help = "Recompute analytics for one cadence (hourly, daily, weekly or monthly)"

    def add_arguments(self, parser):
        parser.add_argument('cadence', choices=sorted(scheduler.CADENCE_JOBS))

    def handle(self, *args, **options):
        cadence = options['cadence']
        report = scheduler.CADENCE_JOBS[cadence]()

        if report is None:
            raise CommandError(f"A {cadence} run is already in progress")

        self.stdout.write(
            f"{cadence} run {report.run_id}: {report.succeeded} succeeded, {report.failed} failed"
        )
        for entity, message in report.errors:
            self.stderr.write(f"  {entity}: {message}")
        if not report.ok:
            raise CommandError(f"{report.failed} entities failed")
