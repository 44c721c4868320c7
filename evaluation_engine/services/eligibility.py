"""
Write-side gate: decides whether a proposed instance, peer assignment or
response set may be created.

Every check returns None when the write is allowed and raises
ConflictError otherwise. These are fast-path pre-checks; the unique
constraints in the evaluation store remain the final arbiter.
"""
import logging
from datetime import date, datetime, time
from typing import Callable, Optional

from django.utils import timezone

from evaluation_engine.exceptions import ConflictError
from evaluation_engine.repositories.base import EvaluationStoreRepository, SubjectKey

logger = logging.getLogger(__name__)

DUPLICATE_INSTANCE = "DUPLICATE_INSTANCE"
DUPLICATE_ASSIGNMENT = "DUPLICATE_ASSIGNMENT"
SELF_EVALUATION = "SELF_EVALUATION"
ALREADY_EVALUATED = "ALREADY_EVALUATED"
STALE_DATE = "STALE_DATE"
INVALID_TIME_RANGE = "INVALID_TIME_RANGE"


class EligibilityValidator:

    def __init__(self, store: EvaluationStoreRepository, today: Optional[Callable[[], date]] = None):
        self.store = store
        self._today = today or timezone.localdate

    # ── Instances ────────────────────────────────────────────────────────
    def can_create_instance(self, channel: str, period_id: int, *, exclude_id: Optional[int] = None) -> None:
        """
        At most one non-deleted instance per (channel, period).

        Raises:
            ConflictError(DUPLICATE_INSTANCE) carrying `existing_instance_id`
        """
        existing = self.store.find_active_instance(channel, period_id, exclude_id=exclude_id)
        if existing is not None:
            raise ConflictError(
                DUPLICATE_INSTANCE,
                f"An active {channel} instance already exists for period {period_id}",
                existing_instance_id=existing.instance_id,
                channel=channel,
                period_id=period_id,
            )

    def check_instance_window(self, starts_at: Optional[datetime], ends_at: Optional[datetime]) -> None:
        if starts_at is not None and ends_at is not None and ends_at <= starts_at:
            raise ConflictError(INVALID_TIME_RANGE, "The instance must end after it starts")

    # ── Peer assignments ─────────────────────────────────────────────────
    def can_create_assignment(
        self,
        period_id: int,
        evaluator_id: int,
        evaluated_id: int,
        subject_id: Optional[int] = None,
        *,
        scheduled_date: Optional[date] = None,
        start_time: Optional[time] = None,
        end_time: Optional[time] = None,
        exclude_id: Optional[int] = None,
        evaluator_cedula: Optional[str] = None,
        evaluated_cedula: Optional[str] = None,
    ) -> None:
        """
        Rules, in order:
            1. evaluator and evaluated are different people -> SELF_EVALUATION
            2. scheduled_date not before today (local)    -> STALE_DATE
            3. end_time strictly after start_time         -> INVALID_TIME_RANGE
            4. unique per (period, evaluator, evaluated, subject-or-null)
                                                          -> DUPLICATE_ASSIGNMENT

        A subject-specific grant and a general (no subject) grant for the
        same pair are different rows and never collide.
        """
        self.check_not_self(evaluator_id, evaluated_id, evaluator_cedula, evaluated_cedula)
        self.check_schedule(scheduled_date, start_time, end_time)

        existing = self.store.find_assignment(
            period_id, evaluator_id, evaluated_id, subject_id, exclude_id=exclude_id
        )
        if existing is not None:
            raise ConflictError(
                DUPLICATE_ASSIGNMENT,
                "This peer assignment already exists for the period",
                existing_assignment_id=existing.assignment_id,
                period_id=period_id,
                evaluator_id=evaluator_id,
                evaluated_id=evaluated_id,
                subject_id=subject_id,
            )

    def check_not_self(
        self,
        evaluator_id: int,
        evaluated_id: int,
        evaluator_cedula: Optional[str] = None,
        evaluated_cedula: Optional[str] = None,
    ) -> None:
        """
        Same internal id, or two ids of the same person (same cedula),
        is a self evaluation. Cedulas are compared only when both are known.
        """
        same_person = bool(evaluator_cedula) and evaluator_cedula == evaluated_cedula
        if evaluator_id == evaluated_id or same_person:
            raise ConflictError(
                SELF_EVALUATION,
                "A teacher cannot be assigned to evaluate themselves",
                evaluator_id=evaluator_id,
                evaluated_id=evaluated_id,
            )

    def check_schedule(
        self,
        scheduled_date: Optional[date],
        start_time: Optional[time],
        end_time: Optional[time],
    ) -> None:
        # compared as calendar days in the configured local time zone
        if scheduled_date is not None:
            today = self._today()
            if scheduled_date < today:
                raise ConflictError(
                    STALE_DATE,
                    "The assignment date cannot be earlier than today",
                    scheduled_date=scheduled_date.isoformat(),
                    today=today.isoformat(),
                )

        if start_time is not None and end_time is not None and end_time <= start_time:
            raise ConflictError(
                INVALID_TIME_RANGE,
                "The end time must be after the start time",
                start_time=start_time.isoformat(),
                end_time=end_time.isoformat(),
            )

    # ── Responses ────────────────────────────────────────────────────────
    def can_submit_response(
        self, evaluator_id: int, subject: SubjectKey, instance_id: int, *, edit: bool = False
    ) -> None:
        """
        A response set is accepted once per (instance, evaluator, subject).
        On the edit path the existing set is replaced, so no check applies.
        """
        if edit:
            return
        if self.store.is_evaluation_done(instance_id, evaluator_id, subject):
            raise ConflictError(
                ALREADY_EVALUATED,
                "This evaluation has already been submitted",
                instance_id=instance_id,
                evaluator_id=evaluator_id,
                evaluated_id=subject.evaluated_id,
                assignment_id=subject.assignment_id,
            )
