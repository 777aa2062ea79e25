"""Risk scoring engine tests: exact values, clamping and monotonicity."""

from datetime import datetime, timedelta, timezone

import pytest

from codshield.models.profile import RiskCounters
from codshield.models.risk_config import RiskConfiguration
from codshield.services import risk_scoring

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def _counters(**kwargs) -> RiskCounters:
    return RiskCounters(**kwargs)


class TestScoreValues:
    def test_empty_profile_scores_zero(self, risk_config):
        assert risk_scoring.score(RiskCounters(), NOW, risk_config) == 0.0

    def test_fresh_high_value_cancellation_on_first_order(self, risk_config):
        """created then a high-value cancel: min(40, 40*2/1)*0.7 + 20."""
        counters = _counters(
            total_orders=1,
            failed_attempts=1,
            cancelled_events=1,
            high_value_failures=1,
            failure_times=[NOW],
        )
        breakdown = risk_scoring.score_breakdown(counters, NOW, risk_config)
        assert breakdown.decayed_failures == 2.0
        assert breakdown.failure == 40.0
        assert breakdown.grace_multiplier == 0.7
        assert breakdown.high_value == 20.0
        assert breakdown.score == 48.0

    def test_failure_weight_halves_each_half_life(self, risk_config):
        half_life = risk_config.decay_half_life_days * risk_scoring.SECONDS_PER_DAY
        assert risk_scoring.failure_weight(0, half_life, 2.0) == 2.0
        assert risk_scoring.failure_weight(half_life, half_life, 2.0) == pytest.approx(1.0)
        assert risk_scoring.failure_weight(2 * half_life, half_life, 2.0) == pytest.approx(0.5)

    def test_old_failure_counts_less_than_recent(self, risk_config):
        base = dict(total_orders=10, failed_attempts=1, successful_deliveries=9)
        recent = _counters(failure_times=[NOW], **base)
        old = _counters(failure_times=[NOW - timedelta(days=90)], **base)
        assert risk_scoring.score(old, NOW, risk_config) < risk_scoring.score(recent, NOW, risk_config)

    def test_untimed_failures_weigh_one(self, risk_config):
        counters = _counters(total_orders=10, failed_attempts=2, successful_deliveries=8)
        breakdown = risk_scoring.score_breakdown(counters, NOW, risk_config)
        assert breakdown.decayed_failures == 2.0
        assert breakdown.failure == 8.0
        assert breakdown.grace_multiplier == 1.0
        assert breakdown.score == 8.0

    def test_return_factor(self, risk_config):
        counters = _counters(total_orders=10, successful_deliveries=6, return_events=4)
        breakdown = risk_scoring.score_breakdown(counters, NOW, risk_config)
        assert breakdown.returns == 12.0
        assert breakdown.score == 12.0

    def test_serial_offender_penalty(self, risk_config):
        counters = _counters(total_orders=20, failed_attempts=5, successful_deliveries=15)
        breakdown = risk_scoring.score_breakdown(counters, NOW, risk_config)
        assert breakdown.serial_offender == 20.0
        assert breakdown.score == 30.0

    def test_score_is_rounded_to_two_decimals(self, risk_config):
        counters = _counters(total_orders=3, failed_attempts=1)
        assert risk_scoring.score(counters, NOW, risk_config) == 13.33

    def test_breakdown_as_dict(self, risk_config):
        data = risk_scoring.score_breakdown(RiskCounters(), NOW, risk_config).as_dict()
        assert set(data) == {
            "decayed_failures",
            "failure",
            "returns",
            "grace_multiplier",
            "high_value",
            "serial_offender",
            "score",
        }


class TestScoreBounds:
    @pytest.mark.parametrize(
        "counters",
        [
            RiskCounters(),
            RiskCounters(failed_attempts=50, high_value_failures=50, return_events=50),
            RiskCounters(total_orders=1, failed_attempts=40, failure_times=[NOW] * 40),
            RiskCounters(total_orders=1000, successful_deliveries=1000),
        ],
    )
    def test_score_is_clamped(self, counters, risk_config):
        value = risk_scoring.score(counters, NOW, risk_config)
        assert 0.0 <= value <= 100.0

    def test_penalties_cannot_push_past_ceiling(self):
        config = RiskConfiguration(
            decay_half_life_days=30,
            grace_dampening=1.0,
            failure_weight=100,
            return_weight=100,
            high_value_penalty=100,
        )
        counters = _counters(
            total_orders=1, failed_attempts=5, return_events=5, high_value_failures=1
        )
        assert risk_scoring.score(counters, NOW, config) == 100.0

    @pytest.mark.parametrize("total_orders", [0, 1, 2, 5, 20])
    def test_one_more_failure_never_lowers_score(self, total_orders, risk_config):
        for failed in range(0, 8):
            before = _counters(total_orders=total_orders, failed_attempts=failed)
            after = _counters(total_orders=total_orders, failed_attempts=failed + 1)
            assert risk_scoring.score(after, NOW, risk_config) >= risk_scoring.score(
                before, NOW, risk_config
            )
