from django.core.management.base import BaseCommand, CommandError

from evaluation_engine.exceptions import EvaluationEngineError
from evaluation_engine.services.reporting import build_reporting_facade


class Command(BaseCommand):
    help = "E-mail the evaluators of an evaluation instance (reminder on re-runs)."

    def add_arguments(self, parser):
        parser.add_argument("instance_id", type=int)

    def handle(self, *args, **options):
        try:
            result = build_reporting_facade().notify_instance(options["instance_id"])
        except EvaluationEngineError as exc:
            raise CommandError(f"{exc.error_code}: {exc.message}")

        for email, error in result.failed:
            self.stdout.write(self.style.ERROR(f"✗ {email}: {error}"))

        kind = "Reminder" if result.reminder else "Notification"
        if result.sent:
            self.stdout.write(self.style.SUCCESS(f"✓ {kind} sent to {len(result.sent)} of {result.total} recipient(s)"))
        else:
            self.stdout.write(self.style.WARNING(f"{kind} not sent to anyone"))
