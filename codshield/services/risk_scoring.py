"""
Risk Scoring Engine.

A deterministic, side-effect-free formula over a profile's counters:

    failure   = min(Wf, Wf * decayed_failures / max(total_orders, 1))
    returns   = min(Wr, Wr * return_events / max(deliveries + returns, 1))
    base      = (failure + returns) * grace_dampening   if new customer
    score     = base + high_value_penalty + serial_offender_penalty

clamped to [0, 100]. Each recorded failure weighs
``recency_boost * 2 ** (-age / half_life)``: a failure that just happened
counts double, one half-life old counts once, and it fades from there.
Failures without a recorded time weigh exactly 1. Every coefficient comes
from RiskConfiguration.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Iterable

from codshield.models.profile import RiskCounters
from codshield.models.risk_config import RiskConfiguration

SECONDS_PER_DAY = 86400.0
SCORE_FLOOR = 0.0
SCORE_CEILING = 100.0
SCORE_PRECISION = 2


@dataclass(frozen=True)
class ScoreBreakdown:
    """Every factor that went into a score, for audit and explanation."""

    decayed_failures: float
    failure: float
    returns: float
    grace_multiplier: float
    high_value: float
    serial_offender: float
    score: float

    def as_dict(self) -> dict:
        return asdict(self)


def failure_weight(age_seconds: float, half_life_seconds: float, recency_boost: float) -> float:
    """Exponential decay weight for one failure of the given age."""
    age = max(0.0, age_seconds)
    return recency_boost * 2 ** (-age / half_life_seconds)


def decayed_failures(counters: RiskCounters, now: datetime, config: RiskConfiguration) -> float:
    """Time-weighted failure count used in place of the raw counter."""
    failed = counters.failed_attempts
    if failed == 0:
        return 0.0

    half_life_seconds = config.decay_half_life_days * SECONDS_PER_DAY
    # Only the most recent ``failed`` timestamps belong to the live counter.
    timed: Iterable[datetime] = counters.failure_times[-failed:]
    weighted = sum(
        failure_weight((now - occurred).total_seconds(), half_life_seconds, config.recency_boost)
        for occurred in timed
    )
    untimed = max(0, failed - len(counters.failure_times))
    return weighted + untimed


def score_breakdown(counters: RiskCounters, now: datetime, config: RiskConfiguration) -> ScoreBreakdown:
    """Compute the score and keep every intermediate factor."""
    weighted_failures = decayed_failures(counters, now, config)

    failure = min(
        config.failure_weight,
        config.failure_weight * weighted_failures / max(counters.total_orders, 1),
    )
    settled = counters.successful_deliveries + counters.return_events
    returns = min(
        config.return_weight,
        config.return_weight * counters.return_events / max(settled, 1),
    )

    grace = config.grace_dampening if counters.total_orders < config.grace_order_threshold else 1.0
    high_value = config.high_value_penalty if counters.high_value_failures > 0 else 0.0
    serial = (
        config.serial_offender_penalty
        if counters.failed_attempts >= config.serial_offender_threshold
        else 0.0
    )

    raw = (failure + returns) * grace + high_value + serial
    score = round(min(SCORE_CEILING, max(SCORE_FLOOR, raw)), SCORE_PRECISION)

    return ScoreBreakdown(
        decayed_failures=round(weighted_failures, 4),
        failure=round(failure, 4),
        returns=round(returns, 4),
        grace_multiplier=grace,
        high_value=high_value,
        serial_offender=serial,
        score=score,
    )


def score(counters: RiskCounters, now: datetime, config: RiskConfiguration) -> float:
    """Risk score in [0, 100]."""
    return score_breakdown(counters, now, config).score
