import json

from django.core.management.base import BaseCommand, CommandError

from ops.scheduled import daily_checks
from ops.utils import normalize_datetime


class Command(BaseCommand):
    help = "Run the daily insurance, license, job-reminder, pending-user and rating-link checks"

    def add_arguments(self, parser):
        parser.add_argument("--now", help="Run as of this ISO date/time instead of the current time")

    def handle(self, *args, **options):
        if not daily_checks.contractors.is_available():
            raise CommandError("Firestore is not configured")

        now = None
        if options.get("now"):
            now = normalize_datetime(options["now"])
            if now is None:
                raise CommandError(f"Invalid --now value: {options['now']}")

        summary = daily_checks.run(now)
        self.stdout.write(self.style.SUCCESS(json.dumps(summary)))
