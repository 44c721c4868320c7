"""
Repository contracts for the two data stores the engine talks to.

  * AcademicRecordRepository: read-only view of the institutional
    academic record store.
  * EvaluationStoreRepository: read/write access to the local evaluation
    store (system of record for the engine).

Components depend only on these interfaces, never on ORM querysets or raw
SQL, so they can run against the in-memory fakes used in the tests.
Implementations raise `StoreError` when a round trip fails and
`DuplicateRecordError` when a unique constraint rejects a write.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Set, Tuple


class DuplicateRecordError(Exception):
    """A unique constraint in the store rejected the write."""


# ── Records: academic store ──────────────────────────────────────────────

@dataclass(frozen=True)
class PeriodRecord:
    period_id: int
    name: str
    status: str


@dataclass(frozen=True)
class TeacherRecord:
    teacher_id: int
    cedula: str
    full_name: str
    email: str = ""


@dataclass(frozen=True)
class CareerRecord:
    career_id: int
    name: str


@dataclass(frozen=True)
class TeachingAssignmentRecord:
    assignment_id: int
    teacher_id: int
    cedula: str
    period_id: int
    subject_id: Optional[int] = None
    subject_name: str = ""
    career_id: Optional[int] = None
    career_name: str = ""


# ── Records: evaluation store ────────────────────────────────────────────

@dataclass(frozen=True)
class InstanceRecord:
    instance_id: int
    channel: str
    period_id: int
    status: str
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    notified_at: Optional[datetime] = None


@dataclass(frozen=True)
class SubjectKey:
    """Who/what a response set is about: the evaluated teacher id and the teaching assignment."""
    evaluated_id: int
    assignment_id: int


@dataclass(frozen=True)
class CompletedSubject:
    """A done marker of one instance: who evaluated whom, on which teaching assignment."""
    evaluator_id: int
    evaluated_id: int
    assignment_id: int


@dataclass(frozen=True)
class ResponseInput:
    question_id: int
    value: Decimal


@dataclass(frozen=True)
class PeerAssignmentRecord:
    assignment_id: int
    period_id: int
    evaluator_id: int
    evaluated_id: int
    subject_id: Optional[int] = None
    scheduled_date: Optional[date] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None


@dataclass(frozen=True)
class AuthorityScoreRecord:
    score_id: int
    period_id: int
    teacher_id: int
    evaluator_cedula: str
    score: Decimal
    status: str
    career_id: Optional[int] = None
    evaluator_name: str = ""
    observations: str = ""


@dataclass(frozen=True)
class ResponseStats:
    count: int
    mean: Optional[Decimal] = None     # raw Likert mean (0..5), None when count == 0


@dataclass(frozen=True)
class ItemAverage:
    question_id: int
    text: str
    category: str
    count: int
    mean: Decimal


@dataclass(frozen=True)
class CategoryStats:
    assignment_id: int
    evaluated_id: int
    category: str
    count: int
    total: Decimal      # sum of raw Likert answers


# ── Interfaces ───────────────────────────────────────────────────────────

class AcademicRecordRepository(ABC):

    @abstractmethod
    def get_period(self, period_id: int) -> Optional[PeriodRecord]: ...

    @abstractmethod
    def list_periods(self) -> List[PeriodRecord]: ...

    @abstractmethod
    def get_teacher(self, teacher_id: int) -> Optional[TeacherRecord]: ...

    @abstractmethod
    def teachers_by_cedula(self, cedula: str) -> List[TeacherRecord]: ...

    @abstractmethod
    def teachers_for_ids(self, teacher_ids: Iterable[int]) -> List[TeacherRecord]: ...

    @abstractmethod
    def get_career(self, career_id: int) -> Optional[CareerRecord]: ...

    @abstractmethod
    def count_active_teachers(self, period_id: int) -> int:
        """Distinct cedulas holding at least one non-deleted teaching assignment in the period."""

    @abstractmethod
    def count_enrollment_pairs(self, period_id: int) -> int:
        """(enrolled student, teaching assignment) pairs in the period."""

    @abstractmethod
    def assignments_for_period(
        self, period_id: int, career_id: Optional[int] = None
    ) -> List[TeachingAssignmentRecord]: ...

    @abstractmethod
    def assignments_for_student(self, period_id: int, student_id: int) -> List[TeachingAssignmentRecord]:
        """Teaching assignments of the period whose course the student is enrolled in."""

    @abstractmethod
    def student_emails(self, period_id: int) -> List[Tuple[str, str]]:
        """(name, email) of students enrolled in the period."""

    @abstractmethod
    def teacher_emails(self, period_id: int) -> List[Tuple[str, str]]:
        """(name, email) of teachers with an assignment in the period."""

    @abstractmethod
    def teacher_emails_for_ids(self, teacher_ids: Iterable[int]) -> List[Tuple[str, str]]: ...


class EvaluationStoreRepository(ABC):

    # instances
    @abstractmethod
    def get_instance(self, instance_id: int) -> Optional[InstanceRecord]: ...

    @abstractmethod
    def find_active_instance(
        self, channel: str, period_id: int, exclude_id: Optional[int] = None
    ) -> Optional[InstanceRecord]: ...

    @abstractmethod
    def list_instances(self, period_id: int) -> List[InstanceRecord]: ...

    @abstractmethod
    def create_instance(
        self, channel: str, period_id: int,
        starts_at: Optional[datetime] = None, ends_at: Optional[datetime] = None,
    ) -> InstanceRecord: ...

    @abstractmethod
    def update_instance(self, instance_id: int, **changes) -> Optional[InstanceRecord]: ...

    @abstractmethod
    def soft_delete_instance(self, instance_id: int) -> bool: ...

    @abstractmethod
    def mark_instance_completed(self, instance_id: int) -> None: ...

    @abstractmethod
    def mark_instance_notified(self, instance_id: int, when: datetime) -> None: ...

    @abstractmethod
    def periods_with_instances(self) -> List[int]:
        """Period ids that have at least one active instance, newest first."""

    # questions / responses
    @abstractmethod
    def existing_question_ids(self, question_ids: Iterable[int]) -> Set[int]: ...

    @abstractmethod
    def is_evaluation_done(self, instance_id: int, evaluator_id: int, subject: SubjectKey) -> bool: ...

    @abstractmethod
    def save_response_set(
        self, instance_id: int, evaluator_id: int, subject: SubjectKey,
        responses: Sequence[ResponseInput], *, replace: bool = False,
    ) -> int:
        """
        Persist a response set and mark the tuple done, atomically.
        replace=False raises DuplicateRecordError if the tuple is already done;
        replace=True swaps the previous set for the new one.
        Returns the number of responses written.
        """

    @abstractmethod
    def completed_subjects(
        self, instance_id: int, evaluator_ids: Optional[Iterable[int]] = None
    ) -> Set[CompletedSubject]:
        """Done markers of the instance, optionally only those of the given evaluators."""

    @abstractmethod
    def count_completed(self, period_id: int, channel: str) -> int: ...

    @abstractmethod
    def response_stats(self, period_id: int, channel: str, evaluated_ids: Iterable[int]) -> ResponseStats: ...

    @abstractmethod
    def period_response_stats(self, period_id: int, channel: Optional[str] = None) -> ResponseStats: ...

    @abstractmethod
    def evaluated_ids_with_completions(self, period_id: int) -> Set[int]: ...

    @abstractmethod
    def item_averages(self, period_id: int, channel: str) -> List[ItemAverage]: ...

    @abstractmethod
    def category_stats(self, period_id: int, channel: str) -> List[CategoryStats]:
        """Answer count and sum per (teaching assignment, evaluated teacher, question category)."""

    # peer assignments
    @abstractmethod
    def get_assignment(self, assignment_id: int) -> Optional[PeerAssignmentRecord]: ...

    @abstractmethod
    def find_assignment(
        self, period_id: int, evaluator_id: int, evaluated_id: int,
        subject_id: Optional[int], exclude_id: Optional[int] = None,
    ) -> Optional[PeerAssignmentRecord]: ...

    @abstractmethod
    def create_assignment(
        self, period_id: int, evaluator_id: int, evaluated_id: int,
        subject_id: Optional[int] = None, scheduled_date: Optional[date] = None,
        start_time: Optional[time] = None, end_time: Optional[time] = None,
    ) -> PeerAssignmentRecord: ...

    @abstractmethod
    def update_assignment(self, assignment_id: int, **changes) -> Optional[PeerAssignmentRecord]: ...

    @abstractmethod
    def delete_assignment(self, assignment_id: int) -> bool: ...

    @abstractmethod
    def list_assignments(self, period_id: int) -> List[PeerAssignmentRecord]: ...

    @abstractmethod
    def count_assignments(self, period_id: int) -> int: ...

    # authority scores
    @abstractmethod
    def authority_scores(self, period_id: int, teacher_ids: Iterable[int]) -> List[Decimal]: ...

    @abstractmethod
    def authority_scored_teacher_ids(self, period_id: int) -> Set[int]: ...

    @abstractmethod
    def upsert_authority_score(
        self, period_id: int, teacher_id: int, evaluator_cedula: str, score: Decimal, *,
        career_id: Optional[int] = None, evaluator_name: str = "", observations: str = "",
    ) -> Tuple[AuthorityScoreRecord, bool]: ...

    @abstractmethod
    def soft_delete_authority_score(self, score_id: int) -> bool: ...
