"""In-memory repositories for component tests (no database involved)."""
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from django.utils import timezone

from evaluation_engine.models import InstanceStatus, RecordStatus
from evaluation_engine.repositories.base import (
    AcademicRecordRepository, AuthorityScoreRecord, CareerRecord, CategoryStats, CompletedSubject,
    DuplicateRecordError, EvaluationStoreRepository, InstanceRecord,
    ItemAverage, PeerAssignmentRecord, PeriodRecord, ResponseStats,
    TeacherRecord, TeachingAssignmentRecord
)


def _mean(values) -> Optional[Decimal]:
    values = [Decimal(str(v)) for v in values]
    if not values:
        return None
    return sum(values, Decimal("0")) / len(values)


class FakeAcademicRecords(AcademicRecordRepository):

    def __init__(self):
        self.periods: Dict[int, PeriodRecord] = {}
        self.teachers: Dict[int, TeacherRecord] = {}
        self.careers: Dict[int, CareerRecord] = {}
        self.assignments: List[TeachingAssignmentRecord] = []
        self.enrollment_pairs: Dict[int, int] = {}
        self.students: Dict[int, list] = {}
        self.student_courses: Dict[int, set] = {}    # student id -> teaching assignment ids
        self.calls: Dict[str, int] = {}
        self.fail_with = None       # exception raised by get_period when set

    def _hit(self, name):
        self.calls[name] = self.calls.get(name, 0) + 1

    # builders
    def add_period(self, period_id, name="2025-1", status="ACTIVE"):
        self.periods[period_id] = PeriodRecord(period_id=period_id, name=name, status=status)
        return self.periods[period_id]

    def add_teacher(self, teacher_id, cedula, full_name="Docente Prueba", email=""):
        self.teachers[teacher_id] = TeacherRecord(teacher_id=teacher_id, cedula=cedula,
                                                  full_name=full_name, email=email)
        return self.teachers[teacher_id]

    def add_career(self, career_id, name):
        self.careers[career_id] = CareerRecord(career_id=career_id, name=name)
        return self.careers[career_id]

    def add_assignment(self, assignment_id, teacher_id, period_id, career_id=None, subject_id=None,
                       subject_name=""):
        record = TeachingAssignmentRecord(
            assignment_id=assignment_id,
            teacher_id=teacher_id,
            cedula=self.teachers[teacher_id].cedula,
            period_id=period_id,
            subject_id=subject_id,
            subject_name=subject_name,
            career_id=career_id,
            career_name=self.careers[career_id].name if career_id in self.careers else "",
        )
        self.assignments.append(record)
        return record

    # contract
    def get_period(self, period_id):
        self._hit("get_period")
        if self.fail_with is not None:
            raise self.fail_with
        return self.periods.get(period_id)

    def list_periods(self):
        return sorted(self.periods.values(), key=lambda p: -p.period_id)

    def get_teacher(self, teacher_id):
        return self.teachers.get(teacher_id)

    def teachers_by_cedula(self, cedula):
        self._hit("teachers_by_cedula")
        return [t for _, t in sorted(self.teachers.items()) if t.cedula == cedula]

    def teachers_for_ids(self, teacher_ids):
        ids = set(teacher_ids)
        return [t for tid, t in sorted(self.teachers.items()) if tid in ids]

    def get_career(self, career_id):
        return self.careers.get(career_id)

    def count_active_teachers(self, period_id):
        return len({a.cedula for a in self.assignments if a.period_id == period_id})

    def count_enrollment_pairs(self, period_id):
        return self.enrollment_pairs.get(period_id, 0)

    def assignments_for_period(self, period_id, career_id=None):
        return [
            a for a in self.assignments
            if a.period_id == period_id and (career_id is None or a.career_id == career_id)
        ]

    def assignments_for_student(self, period_id, student_id):
        enrolled = self.student_courses.get(student_id, set())
        return [a for a in self.assignments_for_period(period_id) if a.assignment_id in enrolled]

    def student_emails(self, period_id):
        return list(self.students.get(period_id, []))

    def teacher_emails(self, period_id):
        ids = {a.teacher_id for a in self.assignments if a.period_id == period_id}
        return self.teacher_emails_for_ids(ids)

    def teacher_emails_for_ids(self, teacher_ids):
        return [(t.full_name, t.email) for t in self.teachers_for_ids(teacher_ids) if t.email]


class FakeEvaluationStore(EvaluationStoreRepository):

    def __init__(self):
        self.instances: Dict[int, dict] = {}
        self.questions: Dict[int, dict] = {}
        self.responses: List[dict] = []
        self.completions: Dict[tuple, datetime] = {}
        self.assignments: Dict[int, dict] = {}
        self.authority: Dict[int, dict] = {}
        self._seq = 0

    def _next_id(self):
        self._seq += 1
        return self._seq

    # builders
    def add_question(self, question_id, channel, category="ACTITUDINAL", text="Pregunta"):
        self.questions[question_id] = {"channel": channel, "category": category, "text": text}

    def add_response_set(self, instance_id, evaluator_id, evaluated_id, assignment_id, values):
        """values: {question_id: value}; marks the tuple done like a real submission."""
        for qid, value in values.items():
            if qid not in self.questions:
                self.add_question(qid, self.instances[instance_id]["channel"])
            self.responses.append(dict(
                instance_id=instance_id, evaluator_id=evaluator_id, evaluated_id=evaluated_id,
                assignment_id=assignment_id, question_id=qid, value=Decimal(str(value)),
            ))
        self.completions[(instance_id, evaluator_id, evaluated_id, assignment_id)] = timezone.now()

    # instances
    def _record(self, row):
        return InstanceRecord(**{k: row[k] for k in (
            "instance_id", "channel", "period_id", "status", "starts_at", "ends_at", "notified_at")})

    def _active(self):
        return [row for row in self.instances.values() if row["deleted_at"] is None]

    def get_instance(self, instance_id):
        row = self.instances.get(instance_id)
        return self._record(row) if row and row["deleted_at"] is None else None

    def find_active_instance(self, channel, period_id, exclude_id=None):
        for row in sorted(self._active(), key=lambda r: r["instance_id"]):
            if row["channel"] == channel and row["period_id"] == period_id and row["instance_id"] != exclude_id:
                return self._record(row)
        return None

    def list_instances(self, period_id):
        return [self._record(r) for r in self._active() if r["period_id"] == period_id]

    def create_instance(self, channel, period_id, starts_at=None, ends_at=None):
        if self.find_active_instance(channel, period_id) is not None:
            raise DuplicateRecordError("uniq_active_instance_per_channel_period")
        iid = self._next_id()
        self.instances[iid] = dict(
            instance_id=iid, channel=str(channel), period_id=period_id, status=InstanceStatus.PENDING,
            starts_at=starts_at or timezone.now(), ends_at=ends_at, notified_at=None, deleted_at=None,
        )
        return self._record(self.instances[iid])

    def update_instance(self, instance_id, **changes):
        row = self.instances.get(instance_id)
        if row is None or row["deleted_at"] is not None:
            return None
        candidate = {**row, **changes}
        if self.find_active_instance(candidate["channel"], candidate["period_id"], exclude_id=instance_id):
            raise DuplicateRecordError("uniq_active_instance_per_channel_period")
        row.update(changes)
        return self._record(row)

    def soft_delete_instance(self, instance_id):
        row = self.instances.get(instance_id)
        if row is None or row["deleted_at"] is not None:
            return False
        row["deleted_at"] = timezone.now()
        return True

    def mark_instance_completed(self, instance_id):
        self.instances[instance_id]["status"] = InstanceStatus.COMPLETED

    def mark_instance_notified(self, instance_id, when):
        self.instances[instance_id]["notified_at"] = when

    def periods_with_instances(self):
        return sorted({r["period_id"] for r in self._active()}, reverse=True)

    # responses
    def existing_question_ids(self, question_ids):
        return {q for q in question_ids if q in self.questions}

    def is_evaluation_done(self, instance_id, evaluator_id, subject):
        return (instance_id, evaluator_id, subject.evaluated_id, subject.assignment_id) in self.completions

    def save_response_set(self, instance_id, evaluator_id, subject, responses, *, replace=False):
        key = (instance_id, evaluator_id, subject.evaluated_id, subject.assignment_id)
        if key in self.completions and not replace:
            raise DuplicateRecordError("uniq_completion_per_tuple")
        self.responses = [
            r for r in self.responses
            if (r["instance_id"], r["evaluator_id"], r["evaluated_id"], r["assignment_id"]) != key
        ]
        for item in responses:
            self.responses.append(dict(
                instance_id=instance_id, evaluator_id=evaluator_id, evaluated_id=subject.evaluated_id,
                assignment_id=subject.assignment_id, question_id=item.question_id, value=item.value,
            ))
        self.completions[key] = timezone.now()
        return len(responses)

    def _period_responses(self, period_id, channel=None):
        out = []
        for r in self.responses:
            inst = self.instances[r["instance_id"]]
            if inst["deleted_at"] is None and inst["period_id"] == period_id \
                    and (channel is None or inst["channel"] == channel):
                out.append(r)
        return out

    def completed_subjects(self, instance_id, evaluator_ids=None):
        row = self.instances.get(instance_id)
        if row is None or row["deleted_at"] is not None:
            return set()
        wanted = None if evaluator_ids is None else set(evaluator_ids)
        return {
            CompletedSubject(evaluator_id=ev, evaluated_id=ed, assignment_id=a)
            for (iid, ev, ed, a) in self.completions
            if iid == instance_id and (wanted is None or ev in wanted)
        }

    def count_completed(self, period_id, channel):
        return sum(
            1 for (iid, *_rest) in self.completions
            if self.instances[iid]["deleted_at"] is None
            and self.instances[iid]["period_id"] == period_id
            and self.instances[iid]["channel"] == channel
        )

    def response_stats(self, period_id, channel, evaluated_ids):
        ids = set(evaluated_ids)
        values = [r["value"] for r in self._period_responses(period_id, channel) if r["evaluated_id"] in ids]
        return ResponseStats(count=len(values), mean=_mean(values))

    def period_response_stats(self, period_id, channel=None):
        values = [r["value"] for r in self._period_responses(period_id, channel)]
        return ResponseStats(count=len(values), mean=_mean(values))

    def evaluated_ids_with_completions(self, period_id):
        return {
            evaluated for (iid, _evaluator, evaluated, _assignment) in self.completions
            if self.instances[iid]["deleted_at"] is None and self.instances[iid]["period_id"] == period_id
        }

    def item_averages(self, period_id, channel):
        grouped: Dict[int, list] = {}
        for r in self._period_responses(period_id, channel):
            grouped.setdefault(r["question_id"], []).append(r["value"])
        return [
            ItemAverage(
                question_id=qid,
                text=self.questions[qid]["text"],
                category=self.questions[qid]["category"],
                count=len(values),
                mean=_mean(values),
            )
            for qid, values in sorted(grouped.items())
        ]

    def category_stats(self, period_id, channel):
        grouped: Dict[tuple, list] = {}
        for r in self._period_responses(period_id, channel):
            key = (r["assignment_id"], r["evaluated_id"], self.questions[r["question_id"]]["category"])
            grouped.setdefault(key, []).append(r["value"])
        return [
            CategoryStats(assignment_id=a, evaluated_id=ed, category=cat,
                          count=len(values), total=sum(values, Decimal("0")))
            for (a, ed, cat), values in sorted(grouped.items())
        ]

    # peer assignments
    def _assignment(self, row):
        return PeerAssignmentRecord(**row)

    def get_assignment(self, assignment_id):
        row = self.assignments.get(assignment_id)
        return self._assignment(row) if row else None

    def find_assignment(self, period_id, evaluator_id, evaluated_id, subject_id, exclude_id=None):
        for row in self.assignments.values():
            if (row["period_id"], row["evaluator_id"], row["evaluated_id"], row["subject_id"]) == \
                    (period_id, evaluator_id, evaluated_id, subject_id) and row["assignment_id"] != exclude_id:
                return self._assignment(row)
        return None

    def create_assignment(self, period_id, evaluator_id, evaluated_id, subject_id=None,
                          scheduled_date=None, start_time=None, end_time=None):
        if self.find_assignment(period_id, evaluator_id, evaluated_id, subject_id):
            raise DuplicateRecordError("uniq_peer_assignment")
        aid = self._next_id()
        self.assignments[aid] = dict(
            assignment_id=aid, period_id=period_id, evaluator_id=evaluator_id, evaluated_id=evaluated_id,
            subject_id=subject_id, scheduled_date=scheduled_date, start_time=start_time, end_time=end_time,
        )
        return self._assignment(self.assignments[aid])

    def update_assignment(self, assignment_id, **changes):
        row = self.assignments.get(assignment_id)
        if row is None:
            return None
        candidate = {**row, **changes}
        if self.find_assignment(candidate["period_id"], candidate["evaluator_id"], candidate["evaluated_id"],
                                candidate["subject_id"], exclude_id=assignment_id):
            raise DuplicateRecordError("uniq_peer_assignment")
        row.update(changes)
        return self._assignment(row)

    def delete_assignment(self, assignment_id):
        return self.assignments.pop(assignment_id, None) is not None

    def list_assignments(self, period_id):
        return [self._assignment(r) for _, r in sorted(self.assignments.items()) if r["period_id"] == period_id]

    def count_assignments(self, period_id):
        return len(self.list_assignments(period_id))

    # authority scores
    def _active_scores(self, period_id):
        return [
            r for _, r in sorted(self.authority.items())
            if r["period_id"] == period_id and r["status"] == RecordStatus.ACTIVE
        ]

    def authority_scores(self, period_id, teacher_ids):
        ids = set(teacher_ids)
        return [r["score"] for r in self._active_scores(period_id) if r["teacher_id"] in ids]

    def authority_scored_teacher_ids(self, period_id):
        return {r["teacher_id"] for r in self._active_scores(period_id)}

    def upsert_authority_score(self, period_id, teacher_id, evaluator_cedula, score, *,
                               career_id=None, evaluator_name="", observations=""):
        for row in self._active_scores(period_id):
            if row["teacher_id"] == teacher_id and row["evaluator_cedula"] == evaluator_cedula:
                row.update(score=Decimal(str(score)), observations=observations)
                if career_id is not None:
                    row["career_id"] = career_id
                if evaluator_name:
                    row["evaluator_name"] = evaluator_name
                return AuthorityScoreRecord(**row), False

        sid = self._next_id()
        self.authority[sid] = dict(
            score_id=sid, period_id=period_id, teacher_id=teacher_id, evaluator_cedula=evaluator_cedula,
            score=Decimal(str(score)), status=RecordStatus.ACTIVE, career_id=career_id,
            evaluator_name=evaluator_name, observations=observations,
        )
        return AuthorityScoreRecord(**self.authority[sid]), True

    def soft_delete_authority_score(self, score_id):
        row = self.authority.get(score_id)
        if row is None or row["status"] != RecordStatus.ACTIVE:
            return False
        row["status"] = RecordStatus.DELETED
        return True


class FakeClock:
    """Manually advanced monotonic clock for TTLCache."""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds
