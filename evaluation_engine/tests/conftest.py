import pytest
from django.utils import timezone

from academic_records.models import (
    Career, Enrollment, Period, Student, Subject, Teacher, TeachingAssignment
)
from evaluation_engine.models import Channel, EvaluationInstance, Question, QuestionCategory
from evaluation_engine.services.cache import TTLCache, reset_caches
from evaluation_engine.services.eligibility import EligibilityValidator
from evaluation_engine.services.reporting import ReportingFacade
from evaluation_engine.tests.fakes import FakeAcademicRecords, FakeClock, FakeEvaluationStore


@pytest.fixture(autouse=True)
def _fresh_caches():
    reset_caches()
    yield
    reset_caches()


# ── In-memory wiring ─────────────────────────────────────────────────────

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def academic():
    return FakeAcademicRecords()


@pytest.fixture
def store():
    return FakeEvaluationStore()


@pytest.fixture
def today():
    return timezone.localdate()


@pytest.fixture
def validator(store, today):
    return EligibilityValidator(store, today=lambda: today)


@pytest.fixture
def sent_mail():
    return []


@pytest.fixture
def facade(academic, store, validator, clock, sent_mail):
    from evaluation_engine.services.notifications import NotificationService

    def _send(subject, body, from_email, recipients, fail_silently=False):
        sent_mail.append((subject, recipients[0]))
        return 1

    return ReportingFacade(
        academic, store,
        dashboard_cache=TTLCache("dashboard", 20, clock=clock),
        lookup_cache=TTLCache("lookup", 300, clock=clock),
        validator=validator,
        notifier=NotificationService(academic, store, sender=_send),
    )


@pytest.fixture
def period_seven(academic, store):
    """
    Period 7: teacher A (cedula 0102030405) under two internal ids,
    teacher B (0908070605); self and student instances, no peer instance.
    """
    academic.add_period(7, name="Abril - Septiembre 2025")
    academic.add_career(1, "Desarrollo de Software")
    academic.add_teacher(11, "0102030405", "ana maría  PÉREZ", email="ana@istla.edu.ec")
    academic.add_teacher(12, "0102030405", "Ana María Pérez")
    academic.add_teacher(21, "0908070605", "Bruno Díaz", email="bruno@istla.edu.ec")
    academic.add_assignment(101, 11, 7, career_id=1)
    academic.add_assignment(102, 12, 7, career_id=1)
    academic.add_assignment(201, 21, 7, career_id=1)
    academic.enrollment_pairs[7] = 10
    self_inst = store.create_instance(Channel.SELF, 7)
    student_inst = store.create_instance(Channel.STUDENT, 7)
    return {"self": self_inst, "student": student_inst}


# ── Database factories ───────────────────────────────────────────────────

@pytest.fixture
def create_period(db):
    def _create_period(**kw):
        defaults = dict(name="Abril - Septiembre 2025")
        defaults.update(kw)
        return Period.objects.create(**defaults)
    return _create_period


@pytest.fixture
def create_career(db):
    def _create_career(**kw):
        defaults = dict(name="Desarrollo de Software")
        defaults.update(kw)
        return Career.objects.create(**defaults)
    return _create_career


@pytest.fixture
def create_teacher(db):
    def _create_teacher(**kw):
        defaults = dict(
            cedula="0102030405",
            first_name_1="Ana",
            first_name_2="María",
            last_name_1="Pérez",
            last_name_2="",
            email="ana@istla.edu.ec",
        )
        defaults.update(kw)
        return Teacher.objects.create(**defaults)
    return _create_teacher


@pytest.fixture
def create_teaching_assignment(db, create_career):
    def _create_teaching_assignment(teacher, period, **kw):
        subject = kw.pop("subject", None)
        if subject is None:
            career = kw.pop("career", None) or create_career()
            subject = Subject.objects.create(name="Programación I", career=career)
        defaults = dict(teacher=teacher, period=period, subject=subject, course_key=1)
        defaults.update(kw)
        return TeachingAssignment.objects.create(**defaults)
    return _create_teaching_assignment


@pytest.fixture
def create_student(db):
    def _create_student(course_keys=(1,), **kw):
        defaults = dict(cedula="1720000000", full_name="Estudiante Prueba", email="est@istla.edu.ec")
        defaults.update(kw)
        student = Student.objects.create(**defaults)
        for key in course_keys:
            Enrollment.objects.create(student=student, course_key=key)
        return student
    return _create_student


@pytest.fixture
def create_instance(db):
    def _create_instance(**kw):
        defaults = dict(channel=Channel.STUDENT, period_id=1)
        defaults.update(kw)
        return EvaluationInstance.objects.create(**defaults)
    return _create_instance


@pytest.fixture
def create_question(db):
    def _create_question(**kw):
        defaults = dict(channel=Channel.STUDENT, category=QuestionCategory.ATTITUDINAL,
                        text="¿El docente explica con claridad?")
        defaults.update(kw)
        return Question.objects.create(**defaults)
    return _create_question
