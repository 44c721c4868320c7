import json
from decimal import Decimal
from io import StringIO

import pytest
from django.core.management import CommandError, call_command

from evaluation_engine.models import Channel, EvaluationInstance
from evaluation_engine.repositories.base import ResponseInput, SubjectKey
from evaluation_engine.repositories.django_orm import DjangoEvaluationStore

BOTH_DATABASES = ["default", "academic"]


@pytest.fixture
def scored_period(create_period, create_teacher, create_teaching_assignment, create_instance, create_question):
    period = create_period(name="Abril - Septiembre 2025")
    ana = create_teacher(cedula="0102030405")
    assignment = create_teaching_assignment(ana, period, course_key=9)
    instance = create_instance(channel=Channel.STUDENT, period_id=period.period_id)
    question = create_question()
    DjangoEvaluationStore().save_response_set(
        instance.instance_id, 500, SubjectKey(ana.teacher_id, assignment.assignment_id),
        [ResponseInput(question.question_id, Decimal("4.5"))],
    )
    return period, instance


@pytest.mark.django_db(databases=BOTH_DATABASES)
class TestEvaluationReportCommand:
    def test_json_report(self, scored_period, create_student):
        period, _ = scored_period
        create_student(course_keys=(9,))
        create_student(course_keys=(9,), cedula="1799999999", email="otro@istla.edu.ec")
        out = StringIO()

        call_command("evaluation_report", "--period", str(period.period_id), "--json", stdout=out)

        data = json.loads(out.getvalue())
        assert data["period_name"] == "Abril - Septiembre 2025"
        assert data["participation"]["breakdown"]["STUDENT"] == {"completed": 1, "expected": 2, "rate": 50.0}
        assert data["results"] == [{
            "cedula": "0102030405",
            "name": "Ana María Pérez",
            "composite": 90.0,
            "per_channel": {"SELF": None, "STUDENT": 90.0, "PEER": None, "AUTHORITY": None},
            "contributions": {"SELF": None, "STUDENT": 36.0, "PEER": None, "AUTHORITY": None},
        }]

    def test_single_teacher_table(self, scored_period):
        period, _ = scored_period
        out = StringIO()

        call_command("evaluation_report", "--period", str(period.period_id), "--cedula", "0102030405", stdout=out)

        assert "Cédula 0102030405: 90.00" in out.getvalue()

    def test_invalid_cedula_is_a_command_error(self, scored_period):
        period, _ = scored_period
        with pytest.raises(CommandError, match="VALIDATION_ERROR"):
            call_command("evaluation_report", "--period", str(period.period_id), "--cedula", "x" * 40)


@pytest.mark.django_db(databases=BOTH_DATABASES)
class TestNotifyEvaluationCommand:
    def test_notifies_enrolled_students(self, scored_period, create_student, mailoutbox):
        _, instance = scored_period
        create_student(course_keys=(9,), full_name="eva ruiz", email="eva@istla.edu.ec")
        out = StringIO()

        call_command("notify_evaluation", str(instance.instance_id), stdout=out)

        assert [m.to for m in mailoutbox] == [["eva@istla.edu.ec"]]
        assert "Eva Ruiz" in mailoutbox[0].body
        assert "1 of 1" in out.getvalue()
        instance = EvaluationInstance.objects.get(pk=instance.instance_id)
        assert instance.notified_at is not None

    def test_unknown_instance(self):
        with pytest.raises(CommandError, match="NOT_FOUND"):
            call_command("notify_evaluation", "4242")
