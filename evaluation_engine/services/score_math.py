"""
Score aggregation: per-channel averages on a 0-100 scale and the weighted
composite per teacher (cedula) and period.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional

from evaluation_engine.models import Channel
from evaluation_engine.repositories.base import EvaluationStoreRepository
from evaluation_engine.services.cache import DASHBOARD, TTLCache, get_cache, make_key
from evaluation_engine.services.identity import TeacherIdentityResolver

logger = logging.getLogger(__name__)


def _d(x) -> Decimal:
    """Convert to Decimal safely."""
    return Decimal(str(x))


def _round2(x) -> float:
    """Round to 2 decimal places."""
    return float(Decimal(x).quantize(CENT, rounding=ROUND_HALF_UP))


CENT = Decimal("0.01")
LIKERT_TO_PERCENT = Decimal("20")     # 0..5 answers -> 0..100

CHANNEL_WEIGHTS: Dict[str, Decimal] = {
    Channel.SELF:      Decimal("0.10"),
    Channel.STUDENT:   Decimal("0.40"),
    Channel.PEER:      Decimal("0.30"),
    Channel.AUTHORITY: Decimal("0.20"),
}


def likert_to_percent(mean) -> Optional[Decimal]:
    return None if mean is None else _d(mean) * LIKERT_TO_PERCENT


def mean(values: Iterable) -> Optional[Decimal]:
    values = [_d(v) for v in values]
    if not values:
        return None
    return sum(values, Decimal("0")) / len(values)


def weighted_composite(per_channel: Dict[str, Optional[Decimal]]) -> Optional[Decimal]:
    """
    Combine channel scores into one 0-100 composite.

    Formula:
        composite = Σ(score_c × weight_c) / Σ(weight_c)   over channels c with data

    Channels with no data (None) contribute to neither sum, so a teacher
    missing a channel is rescaled over the remaining weights instead of
    being divided by all four. No channel with data -> None (never 0).

    Returns:
        Unrounded Decimal composite, or None
    """
    numerator = Decimal("0")
    weight_sum = Decimal("0")
    for channel, score in per_channel.items():
        if score is None:
            continue
        weight = CHANNEL_WEIGHTS[channel]
        numerator += _d(score) * weight
        weight_sum += weight

    if weight_sum == 0:
        return None
    return numerator / weight_sum


def channel_contributions(per_channel: Dict[str, Optional[Decimal]]) -> Dict[str, Optional[float]]:
    """score × weight per channel (the points each channel adds before renormalizing)."""
    return {
        channel: None if score is None else _round2(_d(score) * CHANNEL_WEIGHTS[channel])
        for channel, score in per_channel.items()
    }


@dataclass(frozen=True)
class CompositeScore:
    period_id: int
    cedula: str
    composite: Optional[float]
    per_channel: Mapping[str, Optional[float]] = field(default_factory=dict)
    contributions: Mapping[str, Optional[float]] = field(default_factory=dict)

    @property
    def has_data(self) -> bool:
        return self.composite is not None


class ScoreAggregator:
    """
    Reads persisted responses / authority scores through the evaluation
    store and aggregates them per cedula. Results are recomputed from
    source on every cache miss; nothing is accumulated in memory.
    """

    def __init__(
        self,
        store: EvaluationStoreRepository,
        identity: TeacherIdentityResolver,
        cache: Optional[TTLCache] = None,
    ):
        self.store = store
        self.identity = identity
        self.cache = cache or get_cache(DASHBOARD)

    def _raw_channel_score(self, channel: str, period_id: int, cedula: str) -> Optional[Decimal]:
        def compute():
            teacher_ids = self.identity.ids_for_cedula(cedula)
            if not teacher_ids:
                return None
            if channel == Channel.AUTHORITY:
                # authority ratings are already on the 0-100 scale
                return mean(self.store.authority_scores(period_id, teacher_ids))
            stats = self.store.response_stats(period_id, channel, teacher_ids)
            if stats.count == 0:
                return None
            return likert_to_percent(stats.mean)

        return self.cache.get_or_compute(make_key("channel_score", period_id, channel, cedula), compute)

    def compute_channel_average(self, channel: str, period_id: int, cedula: str) -> Optional[float]:
        """Channel score 0..100 rounded to 2 decimals, or None when the channel has no data."""
        raw = self._raw_channel_score(channel, period_id, cedula)
        return None if raw is None else _round2(raw)

    def compute_composite(self, period_id: int, cedula: str) -> CompositeScore:
        def compute():
            raw = {
                channel: self._raw_channel_score(channel, period_id, cedula)
                for channel in CHANNEL_WEIGHTS
            }
            composite = weighted_composite(raw)
            return CompositeScore(
                period_id=period_id,
                cedula=cedula,
                # rounded once, from the unrounded channel scores
                composite=None if composite is None else _round2(composite),
                per_channel=MappingProxyType({c: None if v is None else _round2(v) for c, v in raw.items()}),
                contributions=MappingProxyType(channel_contributions(raw)),
            )

        return self.cache.get_or_compute(make_key("composite", period_id, cedula), compute)

    # ── Period-wide averages (no per-teacher grouping) ───────────────────
    def period_channel_average(self, period_id: int, channel: str) -> Optional[float]:
        def compute():
            if channel == Channel.AUTHORITY:
                teacher_ids = self.store.authority_scored_teacher_ids(period_id)
                raw = mean(self.store.authority_scores(period_id, teacher_ids)) if teacher_ids else None
            else:
                stats = self.store.period_response_stats(period_id, channel)
                raw = likert_to_percent(stats.mean) if stats.count else None
            return None if raw is None else _round2(raw)

        return self.cache.get_or_compute(make_key("period_channel_avg", period_id, channel), compute)

    def period_general_average(self, period_id: int) -> Optional[float]:
        """Mean of every response of the period (all response channels) × 20."""
        def compute():
            stats = self.store.period_response_stats(period_id)
            return _round2(likert_to_percent(stats.mean)) if stats.count else None

        return self.cache.get_or_compute(make_key("general_avg", period_id), compute)

