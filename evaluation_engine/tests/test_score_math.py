from decimal import Decimal

import pytest

from evaluation_engine.models import Channel
from evaluation_engine.services.cache import TTLCache
from evaluation_engine.services.identity import TeacherIdentityResolver
from evaluation_engine.services.score_math import (
    CHANNEL_WEIGHTS, ScoreAggregator, channel_contributions, weighted_composite
)
from evaluation_engine.tests.fakes import FakeClock

CEDULA_A = "0102030405"


@pytest.fixture
def aggregator(academic, store):
    clock = FakeClock()
    identity = TeacherIdentityResolver(academic, TTLCache("lookup", 300, clock=clock))
    return ScoreAggregator(store, identity, TTLCache("dashboard", 20, clock=clock))


class TestWeightedComposite:
    def test_weights_sum_to_one(self):
        assert sum(CHANNEL_WEIGHTS.values()) == Decimal("1.00")

    def test_missing_channel_is_renormalized_not_divided_by_four(self):
        composite = weighted_composite({
            Channel.SELF: Decimal("80"),
            Channel.STUDENT: Decimal("90"),
            Channel.PEER: None,
            Channel.AUTHORITY: Decimal("70"),
        })
        assert composite == pytest.approx(Decimal("58") / Decimal("0.70"))

    def test_single_channel_composite_equals_that_channel(self):
        assert weighted_composite({Channel.PEER: Decimal("64"), Channel.SELF: None}) == Decimal("64")

    def test_no_data_is_none_not_zero(self):
        assert weighted_composite({c: None for c in CHANNEL_WEIGHTS}) is None
        assert weighted_composite({}) is None

    def test_zero_scores_are_data(self):
        assert weighted_composite({Channel.SELF: Decimal("0")}) == Decimal("0")

    def test_contributions_are_score_times_weight(self):
        contributions = channel_contributions({Channel.STUDENT: Decimal("90"), Channel.PEER: None})
        assert contributions == {Channel.STUDENT: 36.0, Channel.PEER: None}


class TestScoreAggregator:
    def test_period_seven_scenario(self, academic, store, aggregator, period_seven):
        store.add_response_set(period_seven["self"].instance_id, 11, 11, 101, {1: 4, 2: 4})
        store.add_response_set(period_seven["student"].instance_id, 500, 11, 101, {3: 5, 4: 4})
        store.upsert_authority_score(7, 11, "1711111111", Decimal("70"))

        result = aggregator.compute_composite(7, CEDULA_A)

        assert result.per_channel == {
            Channel.SELF: 80.0,
            Channel.STUDENT: 90.0,
            Channel.PEER: None,
            Channel.AUTHORITY: 70.0,
        }
        assert result.composite == 82.86
        assert result.has_data

    def test_all_ids_of_a_cedula_are_unioned(self, store, aggregator, period_seven):
        # same person answered under two internal ids (11 and 12)
        store.add_response_set(period_seven["student"].instance_id, 500, 11, 101, {1: 5})
        store.add_response_set(period_seven["student"].instance_id, 501, 12, 102, {1: 3})

        assert aggregator.compute_channel_average(Channel.STUDENT, 7, CEDULA_A) == 80.0

    def test_other_teachers_do_not_leak_in(self, store, aggregator, period_seven):
        store.add_response_set(period_seven["student"].instance_id, 500, 21, 201, {1: 1})
        assert aggregator.compute_channel_average(Channel.STUDENT, 7, CEDULA_A) is None

    def test_authority_uses_plain_mean_of_scores(self, store, aggregator, period_seven):
        store.upsert_authority_score(7, 11, "1711111111", Decimal("70"))
        store.upsert_authority_score(7, 12, "1722222222", Decimal("85"))
        assert aggregator.compute_channel_average(Channel.AUTHORITY, 7, CEDULA_A) == 77.5

    def test_deleted_authority_score_is_ignored(self, store, aggregator, period_seven):
        record, _ = store.upsert_authority_score(7, 11, "1711111111", Decimal("70"))
        store.soft_delete_authority_score(record.score_id)
        assert aggregator.compute_channel_average(Channel.AUTHORITY, 7, CEDULA_A) is None

    def test_teacher_without_data_has_null_composite(self, aggregator, period_seven):
        result = aggregator.compute_composite(7, "0908070605")
        assert result.composite is None
        assert set(result.per_channel.values()) == {None}

    def test_unknown_cedula_is_no_data(self, aggregator, period_seven):
        assert aggregator.compute_composite(7, "9999999999").composite is None

    def test_composite_is_null_iff_every_channel_is_null(self, store, aggregator, period_seven):
        store.add_response_set(period_seven["self"].instance_id, 21, 21, 201, {1: 2.5})
        result = aggregator.compute_composite(7, "0908070605")
        assert result.per_channel[Channel.SELF] == 50.0
        assert result.composite == 50.0

    def test_deleted_instance_responses_do_not_count(self, store, aggregator, period_seven):
        store.add_response_set(period_seven["student"].instance_id, 500, 11, 101, {1: 5})
        store.soft_delete_instance(period_seven["student"].instance_id)
        assert aggregator.compute_channel_average(Channel.STUDENT, 7, CEDULA_A) is None

    def test_period_general_average(self, store, aggregator, period_seven):
        store.add_response_set(period_seven["self"].instance_id, 11, 11, 101, {1: 4})
        store.add_response_set(period_seven["student"].instance_id, 500, 21, 201, {2: 3})
        assert aggregator.period_general_average(7) == 70.0
        assert aggregator.period_general_average(8) is None
