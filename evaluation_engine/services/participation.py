"""
Participation: completed evaluations against the expected count, per
channel and aggregated, for one period.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Set

from evaluation_engine.models import Channel, RESPONSE_CHANNELS
from evaluation_engine.repositories.base import AcademicRecordRepository, EvaluationStoreRepository
from evaluation_engine.services.cache import DASHBOARD, TTLCache, get_cache, make_key

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def participation_rate(completed: int, expected: int) -> float:
    """
    Formula:
        rate = round(completed / expected × 100, 2), capped at 100

    expected == 0 yields 0.0; callers omit such channels before calling.
    """
    if expected <= 0:
        return 0.0
    rate = Decimal(completed) / Decimal(expected) * HUNDRED
    rate = min(rate, HUNDRED)
    return float(rate.quantize(CENT, rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class ChannelParticipation:
    completed: int
    expected: int
    rate: float


@dataclass(frozen=True)
class ParticipationReport:
    period_id: int
    rate: float
    completed: int
    expected: int
    breakdown: Mapping[str, ChannelParticipation] = field(default_factory=dict)


class ParticipationCalculator:
    """
    Expected count per channel (only when the channel has an active
    instance in the period, otherwise the channel contributes nothing):

        SELF    -> teachers (distinct cedulas) with a teaching assignment
        STUDENT -> (enrolled student, teaching assignment) pairs
        PEER    -> declared peer assignments

    Completed count -> response groups marked done for the channel; for SELF
    the distinct expected cedulas with a done marker.
    """

    def __init__(
        self,
        academic: AcademicRecordRepository,
        store: EvaluationStoreRepository,
        cache: Optional[TTLCache] = None,
    ):
        self.academic = academic
        self.store = store
        self.cache = cache or get_cache(DASHBOARD)

    def expected_for(self, channel: str, period_id: int) -> int:
        if self.store.find_active_instance(channel, period_id) is None:
            return 0
        if channel == Channel.SELF:
            return self.academic.count_active_teachers(period_id)
        if channel == Channel.STUDENT:
            return self.academic.count_enrollment_pairs(period_id)
        if channel == Channel.PEER:
            return self.store.count_assignments(period_id)
        raise ValueError(f"Channel {channel} has no participation count")

    def completed_for(self, channel: str, period_id: int, instance_id: int) -> int:
        if channel == Channel.SELF:
            return len(self.self_evaluated_cedulas(period_id, instance_id))
        return self.store.count_completed(period_id, channel)

    def self_evaluated_cedulas(self, period_id: int, instance_id: int) -> Set[str]:
        """
        People (cedulas) with at least one self evaluation done, limited to
        those expected in the period. A teacher who answers under several
        internal ids or assignments still counts once.
        """
        evaluated_ids = {c.evaluated_id for c in self.store.completed_subjects(instance_id)}
        if not evaluated_ids:
            return set()
        done = {t.cedula for t in self.academic.teachers_for_ids(evaluated_ids)}
        expected = {a.cedula for a in self.academic.assignments_for_period(period_id)}
        return done & expected

    def channel_participation(self, channel: str, period_id: int) -> Optional[ChannelParticipation]:
        """None when nothing is expected for the channel in the period."""
        instance = self.store.find_active_instance(channel, period_id)
        if instance is None:
            return None
        expected = self.expected_for(channel, period_id)
        if expected == 0:
            return None
        completed = self.completed_for(channel, period_id, instance.instance_id)
        return ChannelParticipation(
            completed=completed,
            expected=expected,
            rate=participation_rate(completed, expected),
        )

    def compute_participation(self, period_id: int) -> ParticipationReport:
        def compute():
            breakdown: Dict[str, ChannelParticipation] = {}
            for channel in RESPONSE_CHANNELS:
                item = self.channel_participation(channel, period_id)
                if item is not None:
                    breakdown[channel] = item

            # summed before dividing, not an average of channel rates
            completed = sum(item.completed for item in breakdown.values())
            expected = sum(item.expected for item in breakdown.values())
            return ParticipationReport(
                period_id=period_id,
                rate=participation_rate(completed, expected),
                completed=completed,
                expected=expected,
                breakdown=MappingProxyType(breakdown),
            )

        return self.cache.get_or_compute(make_key("participation", period_id), compute)
