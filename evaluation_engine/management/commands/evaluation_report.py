import json

from django.core.management.base import BaseCommand, CommandError

from evaluation_engine.exceptions import EvaluationEngineError
from evaluation_engine.serializers.reports import (
    CompositeScoreSerializer, ParticipationSerializer, TeacherResultSerializer
)
from evaluation_engine.services.reporting import build_reporting_facade


def _fmt(value):
    return "-" if value is None else f"{value:.2f}"


class Command(BaseCommand):
    help = "Print participation and results of an evaluation period."

    def add_arguments(self, parser):
        parser.add_argument("--period", type=int, required=True, help="Academic period id")
        parser.add_argument("--cedula", help="Only this teacher's composite score")
        parser.add_argument("--json", action="store_true", help="Emit JSON instead of a table")

    def handle(self, *args, **options):
        facade = build_reporting_facade()
        period_id = options["period"]

        try:
            if options["cedula"]:
                payload = {"composite": CompositeScoreSerializer(
                    facade.get_teacher_composite(period_id, options["cedula"])
                ).data}
            else:
                payload = {
                    "participation": ParticipationSerializer(facade.get_period_participation(period_id)).data,
                    "results": TeacherResultSerializer(facade.get_detailed_results(period_id), many=True).data,
                }
            period_name = facade.period_name(period_id)
        except EvaluationEngineError as exc:
            raise CommandError(f"{exc.error_code}: {exc.message}")

        if options["json"]:
            self.stdout.write(json.dumps({"period_id": period_id, "period_name": period_name, **payload},
                                         ensure_ascii=False, indent=2))
            return

        self.stdout.write(self.style.MIGRATE_HEADING(period_name))
        if "composite" in payload:
            self._write_composite(payload["composite"])
        else:
            self._write_participation(payload["participation"])
            self._write_results(payload["results"])

    def _write_composite(self, data):
        self.stdout.write(f"Cédula {data['cedula']}: {_fmt(data['composite'])}")
        for channel, score in data["per_channel"].items():
            self.stdout.write(f"  {channel:<10} {_fmt(score)}")

    def _write_participation(self, data):
        self.stdout.write(
            f"Participación: {_fmt(data['rate'])}% ({data['completed']}/{data['expected']})"
        )
        for channel, item in data["breakdown"].items():
            self.stdout.write(
                f"  {channel:<10} {_fmt(item['rate'])}% ({item['completed']}/{item['expected']})"
            )

    def _write_results(self, rows):
        if not rows:
            self.stdout.write(self.style.WARNING("No results for this period."))
            return
        for row in rows:
            self.stdout.write(f"{row['cedula']:<12} {row['name']:<40} {_fmt(row['composite'])}")
        self.stdout.write(self.style.SUCCESS(f"{len(rows)} teacher(s) listed."))
