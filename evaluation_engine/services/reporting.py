"""
Reporting facade: the single entry point surface collaborators
(controllers, report renderers, management commands) call.

Writes go through the EligibilityValidator before touching the store and
map store-level unique violations back to typed conflicts. Reads are
assembled from the ScoreAggregator and ParticipationCalculator and are
cache-backed; each returns a value or a well-defined "no data" result.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from django.conf import settings
from django.utils import timezone

from evaluation_engine.exceptions import (
    ConflictError, NotFoundError, StoreError, ValidationError
)
from evaluation_engine.models import Channel, QuestionCategory, RESPONSE_CHANNELS
from evaluation_engine.repositories.base import (
    AcademicRecordRepository, AuthorityScoreRecord, DuplicateRecordError,
    EvaluationStoreRepository, InstanceRecord, PeerAssignmentRecord,
    ResponseInput, SubjectKey, TeacherRecord
)
from evaluation_engine.serializers.inputs import (
    AssignmentInputSerializer, AuthorityScoreInputSerializer,
    InstanceInputSerializer, ReportQuerySerializer, ResponseSubmissionSerializer
)
from evaluation_engine.services.cache import DASHBOARD, LOOKUP, MISS, TTLCache, get_cache, make_key
from evaluation_engine.services.eligibility import (
    ALREADY_EVALUATED, DUPLICATE_ASSIGNMENT, DUPLICATE_INSTANCE, EligibilityValidator
)
from evaluation_engine.services.identity import (
    MISSING_TEACHER_NAME, TeacherIdentityResolver, clean_name
)
from evaluation_engine.services.notifications import NotificationResult, NotificationService
from evaluation_engine.services.participation import (
    ParticipationCalculator, ParticipationReport, participation_rate
)
from evaluation_engine.services.score_math import (
    CompositeScore, LIKERT_TO_PERCENT, ScoreAggregator
)

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 6


def _round2(x) -> float:
    """Round to 2 decimal places."""
    return float(Decimal(x).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


# dashboard keys all start with "<kind>:<period_id>"
_PERIOD_KEY_KINDS = (
    "channel_score", "composite", "period_channel_avg", "general_avg", "participation",
    "detailed_results", "summary", "career_results", "item_averages",
    "peer_report", "career_channel_avg",
)

DEFAULT_EXTREMES = 3


# ── Result types ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class PeerAssignmentView:
    assignment: PeerAssignmentRecord
    evaluator_name: str
    evaluated_name: str


@dataclass(frozen=True)
class SubmissionResult:
    instance_id: int
    evaluator_id: int
    evaluated_id: int
    assignment_id: int
    saved: int
    replaced: bool


@dataclass(frozen=True)
class TeacherResult:
    cedula: str
    name: str
    composite: Optional[float]
    per_channel: Mapping[str, Optional[float]] = field(default_factory=dict)
    contributions: Mapping[str, Optional[float]] = field(default_factory=dict)


@dataclass(frozen=True)
class SummaryMetrics:
    teachers_evaluated: int = 0
    completed_evaluations: int = 0
    general_average: float = 0.0
    participation_rate: float = 0.0


@dataclass(frozen=True)
class PeriodSummary:
    period_id: int
    period_name: str
    current: SummaryMetrics
    previous: SummaryMetrics
    previous_period_id: Optional[int] = None


@dataclass(frozen=True)
class CareerReport:
    period_id: int
    period_name: str
    career_id: int
    career_name: str
    teachers: Tuple[TeacherResult, ...] = ()


@dataclass(frozen=True)
class HistoryPoint:
    period_id: int
    period_name: str
    general_average: Optional[float]


@dataclass(frozen=True)
class ItemAverageView:
    question_id: int
    text: str
    count: int
    mean: float         # raw 0..5
    percent: float      # 0..100


@dataclass(frozen=True)
class WorklistItem:
    evaluated_id: int
    evaluated_name: str
    assignment_id: int
    subject_name: str
    done: bool


@dataclass(frozen=True)
class EvaluatorWorklist:
    instance_id: int
    channel: str
    evaluator_id: int
    pending: Tuple[WorklistItem, ...] = ()
    completed: Tuple[WorklistItem, ...] = ()


@dataclass(frozen=True)
class PeerReportRow:
    assignment: PeerAssignmentRecord
    evaluator_name: str
    evaluated_name: str
    subject_name: str
    completed: bool


@dataclass(frozen=True)
class PeerAssignmentReport:
    period_id: int
    period_name: str
    career_id: Optional[int]
    rows: Tuple[PeerReportRow, ...] = ()
    total_assignments: int = 0
    total_evaluators: int = 0
    total_evaluated: int = 0
    completed: int = 0
    pending: int = 0
    completion_rate: float = 0.0


@dataclass(frozen=True)
class QuestionExtremes:
    category: str
    best: Tuple[ItemAverageView, ...] = ()
    worst: Tuple[ItemAverageView, ...] = ()


@dataclass(frozen=True)
class CareerChannelAverage:
    career_id: int
    career_name: str
    teachers: int
    responses: int
    categories: Mapping[str, Optional[float]]   # 0..100 per question category
    average: Optional[float]


@dataclass(frozen=True)
class CareerAveragesReport:
    period_id: int
    channel: str
    careers: Tuple[CareerChannelAverage, ...] = ()
    institutional_average: Optional[float] = None


def _validated(serializer_class, data, partial=False):
    """Run a DRF input serializer; malformed input never reaches a store."""
    serializer = serializer_class(data=data, partial=partial)
    if not serializer.is_valid():
        raise ValidationError("Invalid input", detail=dict(serializer.errors))
    return serializer.validated_data


def _sort_results(results: List[TeacherResult]) -> Tuple[TeacherResult, ...]:
    # composite descending, teachers without data last
    return tuple(sorted(results, key=lambda r: (r.composite is None, -(r.composite or 0.0), r.name)))


def _mean2(values) -> Optional[float]:
    values = [Decimal(str(v)) for v in values]
    if not values:
        return None
    return _round2(sum(values, Decimal("0")) / len(values))


class ReportingFacade:

    def __init__(
        self,
        academic: AcademicRecordRepository,
        store: EvaluationStoreRepository,
        *,
        dashboard_cache: Optional[TTLCache] = None,
        lookup_cache: Optional[TTLCache] = None,
        validator: Optional[EligibilityValidator] = None,
        notifier: Optional[NotificationService] = None,
    ):
        self.academic = academic
        self.store = store
        self.dashboard_cache = dashboard_cache or get_cache(DASHBOARD)
        self.lookup_cache = lookup_cache or get_cache(LOOKUP)
        self.validator = validator or EligibilityValidator(store)
        self.identity = TeacherIdentityResolver(academic, self.lookup_cache)
        self.aggregator = ScoreAggregator(store, self.identity, self.dashboard_cache)
        self.participation = ParticipationCalculator(academic, store, self.dashboard_cache)
        self.notifier = notifier or NotificationService(academic, store)

    # ── Lookups ──────────────────────────────────────────────────────────
    def period_name(self, period_id: int) -> str:
        """Display name of a period; degrades to "Período <id>" instead of failing."""
        fallback = f"Período {period_id}"
        key = make_key("period_name", period_id)
        cached = self.lookup_cache.get(key)
        if cached is not MISS:
            return cached

        try:
            period = self.academic.get_period(period_id)
        except StoreError:
            # not cached: the next call retries the store
            logger.warning("Period name lookup failed for %s, using placeholder", period_id)
            return fallback

        if period is None or not (period.name or "").strip():
            logger.warning("Period %s has no name in the academic store", period_id)
            name = fallback
        else:
            name = period.name.strip()
        self.lookup_cache.set(key, name)
        return name

    def _require_period(self, period_id: int) -> None:
        if self.academic.get_period(period_id) is None:
            raise NotFoundError("Period", period_id)

    def _require_teacher(self, teacher_id: int) -> TeacherRecord:
        teacher = self.academic.get_teacher(teacher_id)
        if teacher is None:
            raise NotFoundError("Teacher", teacher_id)
        return teacher

    def _require_instance(self, instance_id: int) -> InstanceRecord:
        instance = self.store.get_instance(instance_id)
        if instance is None:
            raise NotFoundError("EvaluationInstance", instance_id)
        return instance

    def _invalidate_period(self, period_id: int) -> None:
        for kind in _PERIOD_KEY_KINDS:
            key = make_key(kind, period_id)
            self.dashboard_cache.invalidate(key)
            self.dashboard_cache.invalidate_prefix(key + ":")
        self.dashboard_cache.invalidate_prefix("history:")

    # ── Instances ────────────────────────────────────────────────────────
    def create_instance(
        self, channel: str, period_id: int,
        starts_at: Optional[datetime] = None, ends_at: Optional[datetime] = None,
    ) -> InstanceRecord:
        data = _validated(InstanceInputSerializer, {
            "channel": channel, "period_id": period_id, "starts_at": starts_at, "ends_at": ends_at,
        })
        channel, period_id = data["channel"], data["period_id"]

        self._require_period(period_id)
        self.validator.check_instance_window(data.get("starts_at"), data.get("ends_at"))
        self.validator.can_create_instance(channel, period_id)

        try:
            instance = self.store.create_instance(
                channel, period_id, starts_at=data.get("starts_at"), ends_at=data.get("ends_at")
            )
        except DuplicateRecordError:
            self._raise_duplicate_instance(channel, period_id)

        self._invalidate_period(period_id)
        logger.info("Instance %s created: %s, period %s", instance.instance_id, channel, period_id)
        return instance

    def _raise_duplicate_instance(self, channel, period_id, exclude_id=None):
        # lost a race against a concurrent create; the store constraint decided
        existing = self.store.find_active_instance(channel, period_id, exclude_id=exclude_id)
        raise ConflictError(
            DUPLICATE_INSTANCE,
            f"An active {channel} instance already exists for period {period_id}",
            existing_instance_id=existing.instance_id if existing else None,
            channel=channel,
            period_id=period_id,
        )

    def update_instance(self, instance_id: int, **changes) -> InstanceRecord:
        current = self._require_instance(instance_id)
        merged = {
            "channel": current.channel,
            "period_id": current.period_id,
            "starts_at": current.starts_at,
            "ends_at": current.ends_at,
            **changes,
        }
        data = _validated(InstanceInputSerializer, merged)

        if data["period_id"] != current.period_id:
            self._require_period(data["period_id"])
        self.validator.check_instance_window(data.get("starts_at"), data.get("ends_at"))
        self.validator.can_create_instance(data["channel"], data["period_id"], exclude_id=instance_id)

        try:
            updated = self.store.update_instance(
                instance_id, **{k: v for k, v in data.items() if k in changes}
            )
        except DuplicateRecordError:
            self._raise_duplicate_instance(data["channel"], data["period_id"], exclude_id=instance_id)
        if updated is None:
            raise NotFoundError("EvaluationInstance", instance_id)

        self._invalidate_period(current.period_id)
        self._invalidate_period(updated.period_id)
        logger.info("Instance %s updated: %s", instance_id, sorted(changes))
        return updated

    def delete_instance(self, instance_id: int) -> None:
        """Soft delete; frees (channel, period) for a new instance."""
        instance = self._require_instance(instance_id)
        if not self.store.soft_delete_instance(instance_id):
            raise NotFoundError("EvaluationInstance", instance_id)
        self._invalidate_period(instance.period_id)
        logger.info("Instance %s deleted", instance_id)

    def list_instances(self, period_id: int) -> List[InstanceRecord]:
        period_id = _validated(ReportQuerySerializer, {"period_id": period_id})["period_id"]
        return self.store.list_instances(period_id)

    # ── Peer assignments ─────────────────────────────────────────────────
    def create_assignment(
        self, period_id: int, evaluator_id: int, evaluated_id: int, subject_id: Optional[int] = None,
        scheduled_date=None, start_time=None, end_time=None,
    ) -> PeerAssignmentRecord:
        data = _validated(AssignmentInputSerializer, {
            "period_id": period_id,
            "evaluator_id": evaluator_id,
            "evaluated_id": evaluated_id,
            "subject_id": subject_id,
            "scheduled_date": scheduled_date,
            "start_time": start_time,
            "end_time": end_time,
        })
        # rejected whatever the period or subject
        self.validator.check_not_self(data["evaluator_id"], data["evaluated_id"])

        self._require_period(data["period_id"])
        evaluator = self._require_teacher(data["evaluator_id"])
        evaluated = self._require_teacher(data["evaluated_id"])
        self.validator.can_create_assignment(
            data["period_id"], data["evaluator_id"], data["evaluated_id"], data.get("subject_id"),
            scheduled_date=data.get("scheduled_date"),
            start_time=data.get("start_time"),
            end_time=data.get("end_time"),
            evaluator_cedula=evaluator.cedula,
            evaluated_cedula=evaluated.cedula,
        )

        try:
            assignment = self.store.create_assignment(**data)
        except DuplicateRecordError:
            raise self._duplicate_assignment(data)

        self._invalidate_period(assignment.period_id)
        logger.info("Peer assignment %s created: %s -> %s, period %s",
                    assignment.assignment_id, assignment.evaluator_id,
                    assignment.evaluated_id, assignment.period_id)
        return assignment

    def _duplicate_assignment(self, data, exclude_id=None) -> ConflictError:
        existing = self.store.find_assignment(
            data["period_id"], data["evaluator_id"], data["evaluated_id"],
            data.get("subject_id"), exclude_id=exclude_id,
        )
        return ConflictError(
            DUPLICATE_ASSIGNMENT,
            "This peer assignment already exists for the period",
            existing_assignment_id=existing.assignment_id if existing else None,
            period_id=data["period_id"],
            evaluator_id=data["evaluator_id"],
            evaluated_id=data["evaluated_id"],
            subject_id=data.get("subject_id"),
        )

    def update_assignment(self, assignment_id: int, **changes) -> PeerAssignmentRecord:
        current = self.store.get_assignment(assignment_id)
        if current is None:
            raise NotFoundError("PeerAssignment", assignment_id)

        merged = {
            "period_id": current.period_id,
            "evaluator_id": current.evaluator_id,
            "evaluated_id": current.evaluated_id,
            "subject_id": current.subject_id,
            "scheduled_date": current.scheduled_date,
            "start_time": current.start_time,
            "end_time": current.end_time,
            **changes,
        }
        data = _validated(AssignmentInputSerializer, merged)
        self.validator.check_not_self(data["evaluator_id"], data["evaluated_id"])
        cedulas = {}
        for key in ("evaluator_id", "evaluated_id"):
            if key in changes:
                teacher = self._require_teacher(data[key])
            else:
                # an untouched side may have left the academic store since
                teacher = self.academic.get_teacher(data[key])
            cedulas[key] = teacher.cedula if teacher else None

        self.validator.can_create_assignment(
            data["period_id"], data["evaluator_id"], data["evaluated_id"], data.get("subject_id"),
            # an untouched date stays valid even once it is in the past
            scheduled_date=data.get("scheduled_date") if "scheduled_date" in changes else None,
            start_time=data.get("start_time"),
            end_time=data.get("end_time"),
            exclude_id=assignment_id,
            evaluator_cedula=cedulas["evaluator_id"],
            evaluated_cedula=cedulas["evaluated_id"],
        )

        try:
            updated = self.store.update_assignment(
                assignment_id, **{k: v for k, v in data.items() if k in changes}
            )
        except DuplicateRecordError:
            raise self._duplicate_assignment(data, exclude_id=assignment_id)
        if updated is None:
            raise NotFoundError("PeerAssignment", assignment_id)

        self._invalidate_period(updated.period_id)
        logger.info("Peer assignment %s updated: %s", assignment_id, sorted(changes))
        return updated

    def delete_assignment(self, assignment_id: int) -> None:
        current = self.store.get_assignment(assignment_id)
        if current is None or not self.store.delete_assignment(assignment_id):
            raise NotFoundError("PeerAssignment", assignment_id)
        self._invalidate_period(current.period_id)
        logger.info("Peer assignment %s deleted", assignment_id)

    def list_assignments(self, period_id: int) -> List[PeerAssignmentView]:
        period_id = _validated(ReportQuerySerializer, {"period_id": period_id})["period_id"]
        assignments = self.store.list_assignments(period_id)
        if not assignments:
            return []

        ids = {a.evaluator_id for a in assignments} | {a.evaluated_id for a in assignments}
        names = {t.teacher_id: clean_name(t.full_name) for t in self.academic.teachers_for_ids(ids)}
        return [
            PeerAssignmentView(
                assignment=a,
                evaluator_name=names.get(a.evaluator_id) or MISSING_TEACHER_NAME,
                evaluated_name=names.get(a.evaluated_id) or MISSING_TEACHER_NAME,
            )
            for a in assignments
        ]

    # ── Responses ────────────────────────────────────────────────────────
    def submit_responses(self, instance_id: int, responses: List[dict], evaluator_id: int,
                         edit: bool = False) -> SubmissionResult:
        """
        Store one response set and finalize the instance (pending -> completed).

        Without `edit` a second submission for the same (instance, evaluator,
        subject) fails with ALREADY_EVALUATED; with `edit` the previous set
        is replaced, so exactly one set remains.
        """
        data = _validated(ResponseSubmissionSerializer, {
            "instance_id": instance_id, "evaluator_id": evaluator_id,
            "responses": responses, "edit": edit,
        })
        instance_id, evaluator_id, edit = data["instance_id"], data["evaluator_id"], data["edit"]
        items = data["responses"]
        subject = SubjectKey(evaluated_id=items[0]["evaluated_id"], assignment_id=items[0]["assignment_id"])

        instance = self._require_instance(instance_id)
        question_ids = {i["question_id"] for i in items}
        missing = question_ids - self.store.existing_question_ids(question_ids)
        if missing:
            raise NotFoundError("Question", sorted(missing)[0])

        if instance.channel == Channel.PEER:
            self._require_peer_grant(instance.period_id, evaluator_id, subject.evaluated_id)

        self.validator.can_submit_response(evaluator_id, subject, instance_id, edit=edit)

        try:
            saved = self.store.save_response_set(
                instance_id, evaluator_id, subject,
                [ResponseInput(question_id=i["question_id"], value=i["value"]) for i in items],
                replace=edit,
            )
        except DuplicateRecordError:
            raise ConflictError(
                ALREADY_EVALUATED,
                "This evaluation has already been submitted",
                instance_id=instance_id,
                evaluator_id=evaluator_id,
                evaluated_id=subject.evaluated_id,
                assignment_id=subject.assignment_id,
            )

        self.store.mark_instance_completed(instance_id)
        self._invalidate_period(instance.period_id)
        logger.info("%s response(s) %s for instance %s by evaluator %s (teacher %s, assignment %s)",
                    saved, "replaced" if edit else "stored", instance_id, evaluator_id,
                    subject.evaluated_id, subject.assignment_id)
        return SubmissionResult(
            instance_id=instance_id,
            evaluator_id=evaluator_id,
            evaluated_id=subject.evaluated_id,
            assignment_id=subject.assignment_id,
            saved=saved,
            replaced=edit,
        )

    def _require_peer_grant(self, period_id: int, evaluator_id: int, evaluated_id: int) -> None:
        granted = any(
            a.evaluator_id == evaluator_id and a.evaluated_id == evaluated_id
            for a in self.store.list_assignments(period_id)
        )
        if not granted:
            raise NotFoundError("PeerAssignment", f"{evaluator_id}->{evaluated_id}")

    # ── Authority scores ─────────────────────────────────────────────────
    def record_authority_score(
        self, period_id: int, teacher_id: int, evaluator_cedula: str, score,
        career_id: Optional[int] = None, evaluator_name: str = "", observations: str = "",
    ) -> Tuple[AuthorityScoreRecord, bool]:
        """Create or update the single active score for (period, teacher, evaluator)."""
        data = _validated(AuthorityScoreInputSerializer, {
            "period_id": period_id,
            "teacher_id": teacher_id,
            "evaluator_cedula": evaluator_cedula,
            "score": score,
            "career_id": career_id,
            "evaluator_name": evaluator_name,
            "observations": observations,
        })
        self._require_period(data["period_id"])
        self._require_teacher(data["teacher_id"])

        try:
            record, created = self.store.upsert_authority_score(
                data["period_id"], data["teacher_id"], data["evaluator_cedula"].strip(), data["score"],
                career_id=data.get("career_id"),
                evaluator_name=clean_name(data.get("evaluator_name")) or "",
                observations=data.get("observations", ""),
            )
        except DuplicateRecordError:
            raise ConflictError(
                ALREADY_EVALUATED,
                "This authority already rated the teacher for the period",
                period_id=data["period_id"],
                teacher_id=data["teacher_id"],
                evaluator_cedula=data["evaluator_cedula"],
            )

        self._invalidate_period(record.period_id)
        logger.info("Authority score %s %s: teacher %s, period %s, score %s",
                    record.score_id, "created" if created else "updated",
                    record.teacher_id, record.period_id, record.score)
        return record, created

    def delete_authority_score(self, score_id: int, period_id: Optional[int] = None) -> None:
        if not self.store.soft_delete_authority_score(score_id):
            raise NotFoundError("AuthorityScore", score_id)
        if period_id is not None:
            self._invalidate_period(period_id)
        else:
            self.dashboard_cache.clear()
        logger.info("Authority score %s deleted", score_id)

    # ── Reads ────────────────────────────────────────────────────────────
    def get_teacher_composite(self, period_id: int, cedula: str) -> CompositeScore:
        data = _validated(ReportQuerySerializer, {"period_id": period_id, "cedula": cedula})
        return self.aggregator.compute_composite(data["period_id"], data["cedula"].strip())

    def get_period_participation(self, period_id: int) -> ParticipationReport:
        period_id = _validated(ReportQuerySerializer, {"period_id": period_id})["period_id"]
        return self.participation.compute_participation(period_id)

    def _teacher_result(self, period_id: int, cedula: str, name: Optional[str] = None) -> TeacherResult:
        score = self.aggregator.compute_composite(period_id, cedula)
        return TeacherResult(
            cedula=cedula,
            name=name or self.identity.name_for_cedula(cedula),
            composite=score.composite,
            per_channel=score.per_channel,
            contributions=score.contributions,
        )

    def get_detailed_results(self, period_id: int) -> List[TeacherResult]:
        """Every teacher with evaluation data in the period, best composite first."""
        period_id = _validated(ReportQuerySerializer, {"period_id": period_id})["period_id"]

        def compute():
            evaluated = self.store.evaluated_ids_with_completions(period_id)
            evaluated |= self.store.authority_scored_teacher_ids(period_id)
            if not evaluated:
                return ()
            grouped = self.identity.group_by_cedula(evaluated)
            results = []
            for cedula, teachers in grouped.items():
                name = next((clean_name(t.full_name) for t in teachers if clean_name(t.full_name)), None)
                results.append(self._teacher_result(period_id, cedula, name))
            return _sort_results(results)

        # cached as a tuple; callers get their own list
        return list(self.dashboard_cache.get_or_compute(make_key("detailed_results", period_id), compute))

    def _metrics(self, period_id: int) -> SummaryMetrics:
        evaluated = self.store.evaluated_ids_with_completions(period_id)
        teachers = len(self.identity.group_by_cedula(evaluated)) if evaluated else 0
        completed = sum(self.store.count_completed(period_id, c) for c in RESPONSE_CHANNELS)
        average = self.aggregator.period_general_average(period_id)
        return SummaryMetrics(
            teachers_evaluated=teachers,
            completed_evaluations=completed,
            general_average=average if average is not None else 0.0,
            participation_rate=self.participation.compute_participation(period_id).rate,
        )

    def previous_period_id(self, period_id: int) -> Optional[int]:
        """The next older period that has at least one instance."""
        for candidate in self.store.periods_with_instances():
            if candidate < period_id:
                return candidate
        return None

    def get_period_summary(self, period_id: int) -> PeriodSummary:
        period_id = _validated(ReportQuerySerializer, {"period_id": period_id})["period_id"]

        def compute():
            previous_id = self.previous_period_id(period_id)
            return PeriodSummary(
                period_id=period_id,
                period_name=self.period_name(period_id),
                current=self._metrics(period_id),
                previous=self._metrics(previous_id) if previous_id is not None else SummaryMetrics(),
                previous_period_id=previous_id,
            )

        return self.dashboard_cache.get_or_compute(make_key("summary", period_id), compute)

    def get_channel_averages(self, period_id: int) -> Dict[str, float]:
        """Period-wide 0..100 average per channel; channels without data are left out."""
        period_id = _validated(ReportQuerySerializer, {"period_id": period_id})["period_id"]
        averages = {}
        for channel in Channel:
            value = self.aggregator.period_channel_average(period_id, channel)
            if value is not None:
                averages[channel.value] = value
        return averages

    def get_career_results(self, period_id: int, career_id: int) -> CareerReport:
        data = _validated(ReportQuerySerializer, {"period_id": period_id, "career_id": career_id})
        period_id, career_id = data["period_id"], data["career_id"]

        career = self.academic.get_career(career_id)
        if career is None:
            raise NotFoundError("Career", career_id)

        def compute():
            cedulas = []
            for a in self.academic.assignments_for_period(period_id, career_id=career_id):
                if a.cedula not in cedulas:
                    cedulas.append(a.cedula)
            teachers = [self._teacher_result(period_id, cedula) for cedula in cedulas]
            return CareerReport(
                period_id=period_id,
                period_name=self.period_name(period_id),
                career_id=career_id,
                career_name=career.name,
                teachers=tuple(sorted(teachers, key=lambda t: t.name)),
            )

        return self.dashboard_cache.get_or_compute(make_key("career_results", period_id, career_id), compute)

    def get_history(self, limit: Optional[int] = None) -> List[HistoryPoint]:
        """The last `limit` periods with instances, oldest first."""
        if limit is None:
            limit = getattr(settings, "EVALUATION_ENGINE", {}).get("HISTORY_LIMIT", DEFAULT_HISTORY_LIMIT)
        limit = _validated(ReportQuerySerializer, {"limit": limit})["limit"]

        def compute():
            recent = self.store.periods_with_instances()[:limit]
            return tuple(
                HistoryPoint(
                    period_id=pid,
                    period_name=self.period_name(pid),
                    general_average=self.aggregator.period_general_average(pid),
                )
                for pid in reversed(recent)
            )

        return list(self.dashboard_cache.get_or_compute(make_key("history", limit), compute))

    def _questionnaire_query(self, period_id, channel):
        data = _validated(ReportQuerySerializer, {"period_id": period_id, "channel": channel})
        if data["channel"] not in RESPONSE_CHANNELS:
            raise ValidationError("Authority ratings have no questionnaire", detail={"channel": [channel]})
        return data["period_id"], data["channel"]

    def get_item_averages(self, period_id: int, channel: str) -> Mapping[str, Tuple[ItemAverageView, ...]]:
        """Mean answer per question, grouped by question category (read-only)."""
        period_id, channel = self._questionnaire_query(period_id, channel)

        def compute():
            grouped: Dict[str, List[ItemAverageView]] = {}
            for item in self.store.item_averages(period_id, channel):
                grouped.setdefault(item.category, []).append(ItemAverageView(
                    question_id=item.question_id,
                    text=item.text,
                    count=item.count,
                    mean=_round2(item.mean),
                    percent=_round2(item.mean * LIKERT_TO_PERCENT),
                ))
            order = [c.value for c in QuestionCategory]
            return MappingProxyType({
                c: tuple(grouped[c])
                for c in sorted(grouped, key=lambda c: order.index(c) if c in order else len(order))
            })

        return self.dashboard_cache.get_or_compute(make_key("item_averages", period_id, channel), compute)

    def get_question_extremes(
        self, period_id: int, channel: str, top: int = DEFAULT_EXTREMES
    ) -> Dict[str, QuestionExtremes]:
        """
        Best and worst rated questions of each category.

        best is sorted by mean descending, worst by mean ascending; equal
        means keep question order. A category with fewer than 2 × top
        questions shows some of them in both lists.
        """
        top = _validated(ReportQuerySerializer, {"top": top})["top"]
        extremes = {}
        for category, items in self.get_item_averages(period_id, channel).items():
            extremes[category] = QuestionExtremes(
                category=category,
                best=tuple(sorted(items, key=lambda i: (-i.mean, i.question_id))[:top]),
                worst=tuple(sorted(items, key=lambda i: (i.mean, i.question_id))[:top]),
            )
        return extremes

    def get_career_channel_averages(self, period_id: int, channel: str) -> CareerAveragesReport:
        """
        Per career: 0..100 average of each question category, the career
        average (mean of the categories with answers), the distinct
        teachers (cedulas) and the answers behind it. The institutional
        average is the mean of the careers with data.

        Careers with teaching assignments but no answers are listed with a
        None average, after the rest.
        """
        period_id, channel = self._questionnaire_query(period_id, channel)

        def compute():
            teaching = {a.assignment_id: a for a in self.academic.assignments_for_period(period_id)}
            careers: Dict[int, dict] = {}
            for a in teaching.values():
                if a.career_id is not None:
                    careers.setdefault(a.career_id, {
                        "name": a.career_name, "cedulas": set(), "responses": 0, "categories": {},
                    })

            skipped = 0
            for stat in self.store.category_stats(period_id, channel):
                a = teaching.get(stat.assignment_id)
                if a is None or a.career_id is None:
                    skipped += 1
                    continue
                bucket = careers[a.career_id]
                bucket["cedulas"].add(a.cedula)
                bucket["responses"] += stat.count
                count, total = bucket["categories"].get(stat.category, (0, Decimal("0")))
                bucket["categories"][stat.category] = (count + stat.count, total + stat.total)
            if skipped:
                logger.warning("%s answer group(s) of period %s (%s) have no career, left out",
                               skipped, period_id, channel)

            rows = []
            for career_id, bucket in careers.items():
                categories = {}
                for category in QuestionCategory:
                    count, total = bucket["categories"].get(category.value, (0, Decimal("0")))
                    categories[category.value] = (
                        _round2(total / count * LIKERT_TO_PERCENT) if count else None
                    )
                rows.append(CareerChannelAverage(
                    career_id=career_id,
                    career_name=bucket["name"],
                    teachers=len(bucket["cedulas"]),
                    responses=bucket["responses"],
                    categories=MappingProxyType(categories),
                    average=_mean2(v for v in categories.values() if v is not None),
                ))

            rows.sort(key=lambda r: (r.average is None, -(r.average or 0.0), r.career_name))
            return CareerAveragesReport(
                period_id=period_id,
                channel=channel,
                careers=tuple(rows),
                institutional_average=_mean2(r.average for r in rows if r.average is not None),
            )

        return self.dashboard_cache.get_or_compute(make_key("career_channel_avg", period_id, channel), compute)

    # ── Evaluator views ──────────────────────────────────────────────────
    def get_evaluator_worklist(self, instance_id: int, evaluator_id: int) -> EvaluatorWorklist:
        """
        What one evaluator still has to answer in an instance, and what is
        already done:

            STUDENT -> the teaching assignments of the courses the student is enrolled in
            SELF    -> the teaching assignments of every id sharing the evaluator's cedula
            PEER    -> the teaching assignments of each teacher the evaluator was
                       assigned, narrowed to the subject when the grant names one

        Not cached: status must reflect a submission made a moment ago.
        """
        data = _validated(ReportQuerySerializer, {"instance_id": instance_id, "evaluator_id": evaluator_id})
        instance = self._require_instance(data["instance_id"])
        evaluator_id = data["evaluator_id"]
        period_id = instance.period_id

        evaluator_ids = [evaluator_id]
        if instance.channel == Channel.STUDENT:
            teaching = self.academic.assignments_for_student(period_id, evaluator_id)
        elif instance.channel == Channel.SELF:
            evaluator = self._require_teacher(evaluator_id)
            evaluator_ids = list(self.identity.ids_for_cedula(evaluator.cedula)) or evaluator_ids
            teaching = [a for a in self.academic.assignments_for_period(period_id) if a.cedula == evaluator.cedula]
        else:
            grants = [a for a in self.store.list_assignments(period_id) if a.evaluator_id == evaluator_id]
            period_teaching = self.academic.assignments_for_period(period_id)
            teaching = [
                a for a in period_teaching
                if any(g.evaluated_id == a.teacher_id and g.subject_id in (None, a.subject_id) for g in grants)
            ]

        done = {
            (c.evaluated_id, c.assignment_id)
            for c in self.store.completed_subjects(instance.instance_id, evaluator_ids)
        }
        names = {
            t.teacher_id: clean_name(t.full_name)
            for t in self.academic.teachers_for_ids({a.teacher_id for a in teaching})
        }
        items = [
            WorklistItem(
                evaluated_id=a.teacher_id,
                evaluated_name=names.get(a.teacher_id) or MISSING_TEACHER_NAME,
                assignment_id=a.assignment_id,
                subject_name=a.subject_name,
                done=(a.teacher_id, a.assignment_id) in done,
            )
            for a in teaching
        ]
        return EvaluatorWorklist(
            instance_id=instance.instance_id,
            channel=instance.channel,
            evaluator_id=evaluator_id,
            pending=tuple(i for i in items if not i.done),
            completed=tuple(i for i in items if i.done),
        )

    def get_peer_assignment_report(self, period_id: int, career_id: Optional[int] = None) -> PeerAssignmentReport:
        """
        Every peer assignment of the period with its completion status.

        An assignment is completed once the PEER instance of the period
        holds a done marker from its evaluator about its evaluated teacher;
        a subject-specific grant also needs the marker's teaching
        assignment to be of that subject. With `career_id`, only grants on
        the career's subjects are kept, plus general grants on teachers who
        teach in the career.
        """
        query = {"period_id": period_id}
        if career_id is not None:
            query["career_id"] = career_id
        data = _validated(ReportQuerySerializer, query)
        period_id, career_id = data["period_id"], data.get("career_id")
        if career_id is not None and self.academic.get_career(career_id) is None:
            raise NotFoundError("Career", career_id)

        def compute():
            teaching = self.academic.assignments_for_period(period_id)
            subject_of = {a.assignment_id: a.subject_id for a in teaching}
            subject_names = {a.subject_id: a.subject_name for a in teaching if a.subject_id is not None}

            views = self.list_assignments(period_id)
            if career_id is not None:
                career_teaching = [a for a in teaching if a.career_id == career_id]
                subjects = {a.subject_id for a in career_teaching if a.subject_id is not None}
                teachers = {a.teacher_id for a in career_teaching}
                views = [
                    v for v in views
                    if v.assignment.subject_id in subjects
                    or (v.assignment.subject_id is None and v.assignment.evaluated_id in teachers)
                ]

            instance = self.store.find_active_instance(Channel.PEER, period_id)
            markers = self.store.completed_subjects(instance.instance_id) if instance else set()

            def is_completed(a: PeerAssignmentRecord) -> bool:
                return any(
                    m.evaluator_id == a.evaluator_id and m.evaluated_id == a.evaluated_id
                    and (a.subject_id is None or subject_of.get(m.assignment_id) == a.subject_id)
                    for m in markers
                )

            rows = tuple(
                PeerReportRow(
                    assignment=v.assignment,
                    evaluator_name=v.evaluator_name,
                    evaluated_name=v.evaluated_name,
                    subject_name=subject_names.get(v.assignment.subject_id, ""),
                    completed=is_completed(v.assignment),
                )
                for v in views
            )
            completed = sum(1 for r in rows if r.completed)
            return PeerAssignmentReport(
                period_id=period_id,
                period_name=self.period_name(period_id),
                career_id=career_id,
                rows=rows,
                total_assignments=len(rows),
                total_evaluators=len({r.assignment.evaluator_id for r in rows}),
                total_evaluated=len({r.assignment.evaluated_id for r in rows}),
                completed=completed,
                pending=len(rows) - completed,
                completion_rate=participation_rate(completed, len(rows)),
            )

        return self.dashboard_cache.get_or_compute(make_key("peer_report", period_id, career_id), compute)

    # ── Notifications ────────────────────────────────────────────────────
    def notify_instance(self, instance_id: int) -> NotificationResult:
        """Mail every evaluator of the instance; re-runs are sent as reminders."""
        instance = self._require_instance(instance_id)
        result = self.notifier.notify(instance, self.period_name(instance.period_id))
        if result.sent:
            self.store.mark_instance_notified(instance_id, timezone.now())
        return result


def build_reporting_facade() -> ReportingFacade:
    """Facade wired to the Django ORM stores and the process-wide caches."""
    from evaluation_engine.repositories.django_orm import DjangoAcademicRecords, DjangoEvaluationStore
    return ReportingFacade(DjangoAcademicRecords(), DjangoEvaluationStore())
