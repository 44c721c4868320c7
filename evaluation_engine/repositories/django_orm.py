"""
Django ORM implementations of the repository contracts.

The academic store is reached through the `academic_records` models (routed
to the academic database alias by AcademicRecordsRouter); the evaluation
store through the `evaluation_engine` models on the default alias.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from functools import wraps
from typing import List, Optional, Sequence, Tuple

from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import Avg, Count, Sum
from django.utils import timezone

from academic_records.models import (
    Career, Enrollment, Period, Teacher, TeachingAssignment
)
from evaluation_engine.exceptions import StoreError
from evaluation_engine.models import (
    AuthorityScore, CompletedEvaluation, EvaluationInstance, InstanceStatus,
    PeerAssignment, Question, RecordStatus, ResponseRecord
)
from evaluation_engine.repositories.base import (
    AcademicRecordRepository, AuthorityScoreRecord, CareerRecord, CategoryStats, CompletedSubject,
    DuplicateRecordError, EvaluationStoreRepository, InstanceRecord,
    ItemAverage, PeerAssignmentRecord, PeriodRecord, ResponseInput,
    ResponseStats, SubjectKey, TeacherRecord, TeachingAssignmentRecord
)

logger = logging.getLogger(__name__)


def _d(x) -> Optional[Decimal]:
    return None if x is None else Decimal(str(x))


def store_call(operation: str):
    """
    Translate database failures into engine errors.

    IntegrityError -> DuplicateRecordError (a unique constraint decided);
    any other DatabaseError -> StoreError. Nothing is retried here.
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except IntegrityError as exc:
                raise DuplicateRecordError(str(exc)) from exc
            except DatabaseError as exc:
                logger.exception("Store operation '%s' failed", operation)
                raise StoreError(operation, str(exc)) from exc
        return wrapper
    return decorator


# ── Academic record store (read-only) ───────────────────────────────────

def _teacher_record(t: Teacher) -> TeacherRecord:
    return TeacherRecord(teacher_id=t.teacher_id, cedula=t.cedula, full_name=t.full_name, email=t.email)


class DjangoAcademicRecords(AcademicRecordRepository):

    @store_call("get_period")
    def get_period(self, period_id):
        p = Period.objects.filter(period_id=period_id, deleted_at__isnull=True).first()
        if p is None:
            return None
        return PeriodRecord(period_id=p.period_id, name=p.name, status=p.status)

    @store_call("list_periods")
    def list_periods(self):
        return [
            PeriodRecord(period_id=p.period_id, name=p.name, status=p.status)
            for p in Period.objects.filter(deleted_at__isnull=True).order_by("-period_id")
        ]

    @store_call("get_teacher")
    def get_teacher(self, teacher_id):
        t = Teacher.objects.filter(teacher_id=teacher_id, deleted_at__isnull=True).first()
        return _teacher_record(t) if t else None

    @store_call("teachers_by_cedula")
    def teachers_by_cedula(self, cedula):
        qs = Teacher.objects.filter(cedula=cedula, deleted_at__isnull=True).order_by("teacher_id")
        return [_teacher_record(t) for t in qs]

    @store_call("teachers_for_ids")
    def teachers_for_ids(self, teacher_ids):
        ids = set(teacher_ids)
        if not ids:
            return []
        qs = Teacher.objects.filter(teacher_id__in=ids, deleted_at__isnull=True).order_by("teacher_id")
        return [_teacher_record(t) for t in qs]

    @store_call("get_career")
    def get_career(self, career_id):
        c = Career.objects.filter(career_id=career_id, deleted_at__isnull=True).first()
        return CareerRecord(career_id=c.career_id, name=c.name) if c else None

    def _active_assignments(self, period_id):
        return TeachingAssignment.objects.filter(
            period_id=period_id,
            deleted_at__isnull=True,
            teacher__deleted_at__isnull=True,
        )

    @store_call("count_active_teachers")
    def count_active_teachers(self, period_id):
        return (self._active_assignments(period_id)
                .values("teacher__cedula")
                .distinct()
                .count())

    @store_call("count_enrollment_pairs")
    def count_enrollment_pairs(self, period_id):
        course_keys = list(self._active_assignments(period_id).values_list("course_key", flat=True))
        if not course_keys:
            return 0
        enrolled = dict(
            Enrollment.objects
            .filter(course_key__in=set(course_keys), student__deleted_at__isnull=True)
            .values("course_key")
            .annotate(n=Count("pk"))
            .values_list("course_key", "n")
        )
        # one expected evaluation per (student, assignment) sharing the course
        return sum(enrolled.get(k, 0) for k in course_keys)

    @store_call("assignments_for_period")
    def assignments_for_period(self, period_id, career_id=None):
        qs = self._active_assignments(period_id)
        if career_id is not None:
            qs = qs.filter(subject__career_id=career_id)
        return self._assignment_records(qs)

    @store_call("assignments_for_student")
    def assignments_for_student(self, period_id, student_id):
        course_keys = (Enrollment.objects
                       .filter(student_id=student_id, student__deleted_at__isnull=True)
                       .values_list("course_key", flat=True))
        return self._assignment_records(self._active_assignments(period_id).filter(course_key__in=course_keys))

    def _assignment_records(self, qs) -> List[TeachingAssignmentRecord]:
        out = []
        for a in qs.select_related("teacher", "subject__career").order_by("assignment_id"):
            subject = a.subject
            career = subject.career if subject else None
            out.append(TeachingAssignmentRecord(
                assignment_id=a.assignment_id,
                teacher_id=a.teacher_id,
                cedula=a.teacher.cedula,
                period_id=a.period_id,
                subject_id=subject.subject_id if subject else None,
                subject_name=subject.name if subject else "",
                career_id=career.career_id if career else None,
                career_name=career.name if career else "",
            ))
        return out

    @store_call("student_emails")
    def student_emails(self, period_id):
        course_keys = set(self._active_assignments(period_id).values_list("course_key", flat=True))
        rows = (Enrollment.objects
                .filter(course_key__in=course_keys, student__deleted_at__isnull=True)
                .exclude(student__email="")
                .values_list("student__full_name", "student__email")
                .distinct()
                .order_by("student__email"))
        return [(name, email) for name, email in rows]

    @store_call("teacher_emails")
    def teacher_emails(self, period_id):
        teacher_ids = self._active_assignments(period_id).values_list("teacher_id", flat=True)
        return self._emails(Teacher.objects.filter(teacher_id__in=teacher_ids))

    @store_call("teacher_emails_for_ids")
    def teacher_emails_for_ids(self, teacher_ids):
        return self._emails(Teacher.objects.filter(teacher_id__in=set(teacher_ids)))

    def _emails(self, qs) -> List[Tuple[str, str]]:
        seen = {}
        for t in qs.filter(deleted_at__isnull=True).exclude(email="").order_by("teacher_id"):
            seen.setdefault(t.email, t.full_name)
        return [(name, email) for email, name in seen.items()]


# ── Local evaluation store ───────────────────────────────────────────────

def _instance_record(i: EvaluationInstance) -> InstanceRecord:
    return InstanceRecord(
        instance_id=i.instance_id,
        channel=i.channel,
        period_id=i.period_id,
        status=i.status,
        starts_at=i.starts_at,
        ends_at=i.ends_at,
        notified_at=i.notified_at,
    )


def _assignment_record(a: PeerAssignment) -> PeerAssignmentRecord:
    return PeerAssignmentRecord(
        assignment_id=a.assignment_id,
        period_id=a.period_id,
        evaluator_id=a.evaluator_id,
        evaluated_id=a.evaluated_id,
        subject_id=a.subject_id,
        scheduled_date=a.scheduled_date,
        start_time=a.start_time,
        end_time=a.end_time,
    )


def _authority_record(s: AuthorityScore) -> AuthorityScoreRecord:
    return AuthorityScoreRecord(
        score_id=s.score_id,
        period_id=s.period_id,
        teacher_id=s.teacher_id,
        evaluator_cedula=s.evaluator_cedula,
        score=_d(s.score),
        status=s.status,
        career_id=s.career_id,
        evaluator_name=s.evaluator_name,
        observations=s.observations,
    )


INSTANCE_EDITABLE = {"channel", "period_id", "starts_at", "ends_at"}
ASSIGNMENT_EDITABLE = {"evaluator_id", "evaluated_id", "subject_id", "scheduled_date", "start_time", "end_time"}
AUTHORITY_EDITABLE = {"score", "career_id", "evaluator_name", "observations"}


class DjangoEvaluationStore(EvaluationStoreRepository):

    # ---- instances ----------------------------------------------------
    def _active_instances(self):
        return EvaluationInstance.objects.filter(deleted_at__isnull=True)

    @store_call("get_instance")
    def get_instance(self, instance_id):
        i = self._active_instances().filter(instance_id=instance_id).first()
        return _instance_record(i) if i else None

    @store_call("find_active_instance")
    def find_active_instance(self, channel, period_id, exclude_id=None):
        qs = self._active_instances().filter(channel=channel, period_id=period_id)
        if exclude_id is not None:
            qs = qs.exclude(instance_id=exclude_id)
        i = qs.order_by("instance_id").first()
        return _instance_record(i) if i else None

    @store_call("list_instances")
    def list_instances(self, period_id):
        qs = self._active_instances().filter(period_id=period_id).order_by("instance_id")
        return [_instance_record(i) for i in qs]

    @store_call("create_instance")
    def create_instance(self, channel, period_id, starts_at=None, ends_at=None):
        with transaction.atomic():
            i = EvaluationInstance.objects.create(
                channel=channel,
                period_id=period_id,
                starts_at=starts_at or timezone.now(),
                ends_at=ends_at,
            )
        return _instance_record(i)

    @store_call("update_instance")
    def update_instance(self, instance_id, **changes):
        with transaction.atomic():
            i = self._active_instances().select_for_update().filter(instance_id=instance_id).first()
            if i is None:
                return None
            for name, value in changes.items():
                if name in INSTANCE_EDITABLE:
                    setattr(i, name, value)
            i.save()
        return _instance_record(i)

    @store_call("soft_delete_instance")
    def soft_delete_instance(self, instance_id):
        return self._active_instances().filter(instance_id=instance_id).update(deleted_at=timezone.now()) > 0

    @store_call("mark_instance_completed")
    def mark_instance_completed(self, instance_id):
        (self._active_instances()
         .filter(instance_id=instance_id, status=InstanceStatus.PENDING)
         .update(status=InstanceStatus.COMPLETED, updated_at=timezone.now()))

    @store_call("mark_instance_notified")
    def mark_instance_notified(self, instance_id, when):
        self._active_instances().filter(instance_id=instance_id).update(notified_at=when)

    @store_call("periods_with_instances")
    def periods_with_instances(self):
        return list(
            self._active_instances()
            .order_by("-period_id")
            .values_list("period_id", flat=True)
            .distinct()
        )

    # ---- questions / responses ---------------------------------------
    @store_call("existing_question_ids")
    def existing_question_ids(self, question_ids):
        return set(Question.objects.filter(question_id__in=set(question_ids)).values_list("question_id", flat=True))

    def _tuple_lookup(self, instance_id, evaluator_id, subject: SubjectKey):
        return dict(
            instance_id=instance_id,
            evaluator_id=evaluator_id,
            evaluated_id=subject.evaluated_id,
            assignment_id=subject.assignment_id,
        )

    @store_call("is_evaluation_done")
    def is_evaluation_done(self, instance_id, evaluator_id, subject):
        return CompletedEvaluation.objects.filter(**self._tuple_lookup(instance_id, evaluator_id, subject)).exists()

    @store_call("save_response_set")
    def save_response_set(self, instance_id, evaluator_id, subject, responses: Sequence[ResponseInput], *, replace=False):
        lookup = self._tuple_lookup(instance_id, evaluator_id, subject)
        with transaction.atomic():
            if replace:
                ResponseRecord.objects.filter(**lookup).delete()
                CompletedEvaluation.objects.update_or_create(**lookup, defaults={"completed_at": timezone.now()})
            else:
                # the unique constraint on the done marker arbitrates concurrent submissions
                CompletedEvaluation.objects.create(**lookup)
            ResponseRecord.objects.bulk_create([
                ResponseRecord(question_id=r.question_id, value=r.value, **lookup)
                for r in responses
            ])
        return len(responses)

    def _period_responses(self, period_id, channel=None):
        qs = ResponseRecord.objects.filter(instance__period_id=period_id, instance__deleted_at__isnull=True)
        if channel is not None:
            qs = qs.filter(instance__channel=channel)
        return qs

    def _stats(self, qs) -> ResponseStats:
        agg = qs.aggregate(n=Count("pk"), mean=Avg("value"))
        return ResponseStats(count=agg["n"] or 0, mean=_d(agg["mean"]))

    @store_call("completed_subjects")
    def completed_subjects(self, instance_id, evaluator_ids=None):
        qs = CompletedEvaluation.objects.filter(instance_id=instance_id, instance__deleted_at__isnull=True)
        if evaluator_ids is not None:
            qs = qs.filter(evaluator_id__in=set(evaluator_ids))
        return {
            CompletedSubject(evaluator_id=ev, evaluated_id=ed, assignment_id=a)
            for ev, ed, a in qs.values_list("evaluator_id", "evaluated_id", "assignment_id")
        }

    @store_call("count_completed")
    def count_completed(self, period_id, channel):
        return CompletedEvaluation.objects.filter(
            instance__period_id=period_id,
            instance__channel=channel,
            instance__deleted_at__isnull=True,
        ).count()

    @store_call("response_stats")
    def response_stats(self, period_id, channel, evaluated_ids):
        ids = set(evaluated_ids)
        if not ids:
            return ResponseStats(count=0)
        return self._stats(self._period_responses(period_id, channel).filter(evaluated_id__in=ids))

    @store_call("period_response_stats")
    def period_response_stats(self, period_id, channel=None):
        return self._stats(self._period_responses(period_id, channel))

    @store_call("evaluated_ids_with_completions")
    def evaluated_ids_with_completions(self, period_id):
        return set(
            CompletedEvaluation.objects
            .filter(instance__period_id=period_id, instance__deleted_at__isnull=True)
            .values_list("evaluated_id", flat=True)
        )

    @store_call("item_averages")
    def item_averages(self, period_id, channel):
        rows = (self._period_responses(period_id, channel)
                .values("question_id", "question__text", "question__category")
                .annotate(n=Count("pk"), mean=Avg("value"))
                .order_by("question_id"))
        return [
            ItemAverage(
                question_id=r["question_id"],
                text=r["question__text"],
                category=r["question__category"],
                count=r["n"],
                mean=_d(r["mean"]),
            )
            for r in rows
        ]

    @store_call("category_stats")
    def category_stats(self, period_id, channel):
        rows = (self._period_responses(period_id, channel)
                .values("assignment_id", "evaluated_id", "question__category")
                .annotate(n=Count("pk"), total=Sum("value"))
                .order_by("assignment_id", "evaluated_id", "question__category"))
        return [
            CategoryStats(
                assignment_id=r["assignment_id"],
                evaluated_id=r["evaluated_id"],
                category=r["question__category"],
                count=r["n"],
                total=_d(r["total"]),
            )
            for r in rows
        ]

    # ---- peer assignments --------------------------------------------
    @store_call("get_assignment")
    def get_assignment(self, assignment_id):
        a = PeerAssignment.objects.filter(assignment_id=assignment_id).first()
        return _assignment_record(a) if a else None

    @store_call("find_assignment")
    def find_assignment(self, period_id, evaluator_id, evaluated_id, subject_id, exclude_id=None):
        qs = PeerAssignment.objects.filter(
            period_id=period_id, evaluator_id=evaluator_id, evaluated_id=evaluated_id
        )
        if subject_id is None:
            qs = qs.filter(subject_id__isnull=True)
        else:
            qs = qs.filter(subject_id=subject_id)
        if exclude_id is not None:
            qs = qs.exclude(assignment_id=exclude_id)
        a = qs.first()
        return _assignment_record(a) if a else None

    @store_call("create_assignment")
    def create_assignment(self, period_id, evaluator_id, evaluated_id, subject_id=None,
                          scheduled_date=None, start_time=None, end_time=None):
        with transaction.atomic():
            a = PeerAssignment.objects.create(
                period_id=period_id,
                evaluator_id=evaluator_id,
                evaluated_id=evaluated_id,
                subject_id=subject_id,
                scheduled_date=scheduled_date,
                start_time=start_time,
                end_time=end_time,
            )
        return _assignment_record(a)

    @store_call("update_assignment")
    def update_assignment(self, assignment_id, **changes):
        with transaction.atomic():
            a = PeerAssignment.objects.select_for_update().filter(assignment_id=assignment_id).first()
            if a is None:
                return None
            for name, value in changes.items():
                if name in ASSIGNMENT_EDITABLE:
                    setattr(a, name, value)
            a.save()
        return _assignment_record(a)

    @store_call("delete_assignment")
    def delete_assignment(self, assignment_id):
        deleted, _ = PeerAssignment.objects.filter(assignment_id=assignment_id).delete()
        return deleted > 0

    @store_call("list_assignments")
    def list_assignments(self, period_id):
        qs = PeerAssignment.objects.filter(period_id=period_id).order_by("assignment_id")
        return [_assignment_record(a) for a in qs]

    @store_call("count_assignments")
    def count_assignments(self, period_id):
        return PeerAssignment.objects.filter(period_id=period_id).count()

    # ---- authority scores ----------------------------------------------
    def _active_scores(self):
        return AuthorityScore.objects.filter(status=RecordStatus.ACTIVE)

    @store_call("authority_scores")
    def authority_scores(self, period_id, teacher_ids):
        ids = set(teacher_ids)
        if not ids:
            return []
        qs = self._active_scores().filter(period_id=period_id, teacher_id__in=ids).order_by("score_id")
        return [_d(v) for v in qs.values_list("score", flat=True)]

    @store_call("authority_scored_teacher_ids")
    def authority_scored_teacher_ids(self, period_id):
        return set(self._active_scores().filter(period_id=period_id).values_list("teacher_id", flat=True))

    @store_call("upsert_authority_score")
    def upsert_authority_score(self, period_id, teacher_id, evaluator_cedula, score, *,
                               career_id=None, evaluator_name="", observations=""):
        with transaction.atomic():
            s = (self._active_scores()
                 .select_for_update()
                 .filter(period_id=period_id, teacher_id=teacher_id, evaluator_cedula=evaluator_cedula)
                 .first())
            created = s is None
            if created:
                s = AuthorityScore.objects.create(
                    period_id=period_id,
                    teacher_id=teacher_id,
                    evaluator_cedula=evaluator_cedula,
                    score=score,
                    career_id=career_id,
                    evaluator_name=evaluator_name,
                    observations=observations,
                )
            else:
                s.score = score
                s.career_id = career_id if career_id is not None else s.career_id
                s.evaluator_name = evaluator_name or s.evaluator_name
                s.observations = observations
                s.save(update_fields=["score", "career_id", "evaluator_name", "observations", "updated_at"])
        return _authority_record(s), created

    @store_call("soft_delete_authority_score")
    def soft_delete_authority_score(self, score_id):
        return self._active_scores().filter(score_id=score_id).update(
            status=RecordStatus.DELETED, updated_at=timezone.now()
        ) > 0
