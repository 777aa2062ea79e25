"""Tier classification and checkout enforcement mapping. Pure functions."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Tuple

from codshield.models.api import EnforcementDecision
from codshield.models.profile import ManualOverride, RiskCounters, RiskTier
from codshield.models.risk_config import EnforcementAction, RiskConfiguration
from codshield.utils.clock import utc_now

LIMITED_HISTORY_ORDERS = 5

TIER_MESSAGES = {
    RiskTier.HIGH_RISK: (
        "Risk score is {score}/100. Cash-on-delivery orders may require advance "
        "payment or additional verification."
    ),
    RiskTier.MEDIUM_RISK: (
        "Risk score is {score}/100. Some orders may require confirmation before shipping."
    ),
    RiskTier.ZERO_RISK: "Risk score is {score}/100. Trusted customer with full COD access.",
}


def classify(
    score: float,
    override: Optional[ManualOverride],
    config: RiskConfiguration,
    now: Optional[datetime] = None,
) -> RiskTier:
    """An unexpired override wins; otherwise compare against the ascending thresholds."""
    if override is not None and override.is_active(now or utc_now()):
        return override.tier
    if score <= config.zero_max:
        return RiskTier.ZERO_RISK
    if score <= config.medium_max:
        return RiskTier.MEDIUM_RISK
    return RiskTier.HIGH_RISK


def decide(tier: RiskTier, config: RiskConfiguration) -> EnforcementDecision:
    """Map a tier to the store's configured checkout action."""
    if not config.enable_cod_restriction:
        return EnforcementDecision(action=EnforcementAction.ALLOW, risk_tier=tier)

    action = config.tier_actions[tier]
    deposit = config.deposit_percent if action is EnforcementAction.REQUIRE_DEPOSIT else None
    return EnforcementDecision(action=action, deposit_percent=deposit, risk_tier=tier)


def explain(counters: RiskCounters, tier: RiskTier, score: float) -> Tuple[List[str], str]:
    """Human-readable risk factors and a tier message for merchants."""
    factors: List[str] = []
    if counters.failed_attempts > 0:
        rate = round(100 * counters.failed_attempts / max(counters.total_orders, 1))
        factors.append(
            f"{rate}% delivery failure rate "
            f"({counters.failed_attempts}/{counters.total_orders} orders)"
        )
    settled = counters.successful_deliveries + counters.return_events
    if counters.return_events > 0:
        factors.append(f"{round(100 * counters.return_events / max(settled, 1))}% return rate")
    if counters.high_value_failures > 0:
        factors.append(f"{counters.high_value_failures} failed high-value order(s)")
    if counters.total_orders < LIMITED_HISTORY_ORDERS:
        factors.append("Limited order history available")
    if not factors:
        factors.append("Strong delivery acceptance record")

    return factors, TIER_MESSAGES[tier].format(score=score)
