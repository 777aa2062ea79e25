"""
Profile Service.

Read and administrative operations on customer profiles: the risk profile
query, manual overrides, the administrative counter reset, and data-rights
deletion. Every mutation recomputes score and tier in the same versioned
commit, so ``risk_tier`` always follows from ``risk_score`` and the override.
"""

from __future__ import annotations

import time
from datetime import datetime
from typing import Callable, Dict, List, Optional

from codshield.models.api import ProfileSummary
from codshield.models.identity import IdentityCandidates, IdentityKind
from codshield.models.profile import CustomerProfile, ManualOverride, RiskCounters, RiskTier
from codshield.models.risk_config import RiskConfiguration
from codshield.repositories.profile_store import ProfileStore
from codshield.services import risk_scoring
from codshield.services.event_processor import rescored
from codshield.services.identity_hasher import IdentityHasher
from codshield.services.tier_classifier import classify, explain
from codshield.utils.clock import utc_now
from codshield.utils.error_handling import NotFoundError
from codshield.utils.logging_config import get_logger, hash_prefix
from codshield.utils.retry import retry_on_conflict

logger = get_logger(__name__)


class ProfileService:
    """Query, override, reset and deletion over the Profile Store."""

    def __init__(
        self,
        hasher: IdentityHasher,
        store: ProfileStore,
        default_config: RiskConfiguration,
        clock: Callable[[], datetime] = utc_now,
        max_attempts: int = 5,
        sleep: Callable[[float], object] = time.sleep,
    ):
        self.hasher = hasher
        self.store = store
        self.default_config = default_config
        self.clock = clock
        self.max_attempts = max_attempts
        self.sleep = sleep

    def query_profile(
        self, identity_candidates: IdentityCandidates, config: Optional[RiskConfiguration] = None
    ) -> ProfileSummary:
        """Aggregate risk view for a customer; unknown customers read as new."""
        config = config or self.default_config
        identity = self.hasher.resolve(identity_candidates)
        profile = self.store.find_any(identity.ordered())
        now = self.clock()

        if profile is None:
            counters = RiskCounters()
            factors, message = explain(counters, RiskTier.ZERO_RISK, 0.0)
            return ProfileSummary(
                risk_tier=RiskTier.ZERO_RISK,
                risk_score=0.0,
                total_orders=0,
                failed_attempts=0,
                successful_deliveries=0,
                is_new_customer=True,
                risk_factors=factors,
                message=message,
            )

        # Scored at read time with the caller's config, as the checkout decision is.
        score = risk_scoring.score(profile.counters, now, config)
        tier = classify(score, profile.manual_override, config, now)
        factors, message = explain(profile.counters, tier, score)
        return ProfileSummary(
            risk_tier=tier,
            risk_score=score,
            total_orders=profile.counters.total_orders,
            failed_attempts=profile.counters.failed_attempts,
            successful_deliveries=profile.counters.successful_deliveries,
            is_new_customer=profile.counters.total_orders < config.grace_order_threshold,
            override_active=profile.active_override(now) is not None,
            risk_factors=factors,
            message=message,
        )

    def get_profile(self, identity_hash: str) -> CustomerProfile:
        profile = self.store.find(identity_hash)
        if profile is None:
            raise NotFoundError("Customer profile not found")
        return profile

    def _mutate(self, identity_hash: str, action: str, **changes_for) -> CustomerProfile:
        """Read, change, rescore and commit with conflict retries."""

        def _attempt() -> CustomerProfile:
            profile = self.get_profile(identity_hash)
            changes = {key: build(profile) for key, build in changes_for.items()}
            # Profiles span stores, so the persisted score uses the platform
            # default; queries and checkout decisions rescore per store.
            updated = rescored(profile, self.default_config, self.clock(), **changes)
            return self.store.commit(updated, profile.version)

        stored = retry_on_conflict(
            _attempt,
            logger=logger,
            max_attempts=self.max_attempts,
            sleep=self.sleep,
            context={"identity_hash": hash_prefix(identity_hash), "action": action},
        )
        logger.info(
            f"Profile {action}",
            extra={
                "identity_hash": hash_prefix(stored.identity_hash),
                "risk_score": stored.risk_score,
                "risk_tier": stored.risk_tier.value,
            },
        )
        return stored

    def set_override(
        self,
        identity_hash: str,
        tier: RiskTier,
        reason: str,
        expires_at: Optional[datetime] = None,
    ) -> CustomerProfile:
        override = ManualOverride(tier=tier, reason=reason, expires_at=expires_at)
        return self._mutate(identity_hash, "override set", manual_override=lambda _p: override)

    def clear_override(self, identity_hash: str) -> CustomerProfile:
        return self._mutate(identity_hash, "override cleared", manual_override=lambda _p: None)

    def reset_counters(self, identity_hash: str, reason: str) -> CustomerProfile:
        """
        Administrative forgiveness: zero the failure-related counters.

        The only operation that ever decreases a counter. Order and delivery
        totals are history, not risk, and are kept.
        """
        logger.info(
            "Administrative counter reset requested",
            extra={"identity_hash": hash_prefix(identity_hash), "reason": reason},
        )
        return self._mutate(
            identity_hash,
            "counters reset",
            counters=lambda p: p.counters.model_copy(
                update={
                    "failed_attempts": 0,
                    "return_events": 0,
                    "cancelled_events": 0,
                    "high_value_failures": 0,
                    "failure_times": [],
                }
            ),
        )

    def delete_profile(self, identity_hash: str) -> bool:
        """Delete the profile reachable from ``identity_hash`` (primary or secondary)."""
        profile = self.store.find(identity_hash)
        if profile is None:
            return False
        deleted = self.store.delete(profile.identity_hash)
        if deleted:
            logger.info("Customer profile deleted", extra={"identity_hash": hash_prefix(profile.identity_hash)})
        return deleted

    def delete_by_raw_identity(self, raw_value: str, kind: Optional[IdentityKind] = None) -> int:
        """Hash a raw phone/email internally and delete its profile."""
        kind = kind or self.hasher.guess_kind(raw_value)
        identity_hash = self.hasher.hash(kind, raw_value)
        return int(self.delete_profile(identity_hash))

    def redact(self, identity_candidates: IdentityCandidates) -> int:
        """Delete every profile reachable from any candidate identifier."""
        identity = self.hasher.resolve(identity_candidates)
        return sum(int(self.delete_profile(h)) for h in identity.ordered())

    def export(self, identity_candidates: IdentityCandidates) -> List[CustomerProfile]:
        """Every profile reachable from any candidate identifier, for a data request."""
        identity = self.hasher.resolve(identity_candidates)
        found: Dict[str, CustomerProfile] = {}
        for identity_hash in identity.ordered():
            profile = self.store.find(identity_hash)
            if profile is not None:
                found.setdefault(profile.identity_hash, profile)
        logger.info("Customer data export prepared", extra={"profiles": len(found)})
        return list(found.values())
