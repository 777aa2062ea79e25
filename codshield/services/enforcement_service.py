"""
Enforcement Service.

Checkout-time decision on the synchronous critical path. The only I/O is one
profile lookup, bounded by a timeout; on timeout, backend failure or an
unresolvable identity the decision fails open to ALLOW with an advisory.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from datetime import datetime
from typing import Callable, List, Optional

from codshield.models.api import EnforcementDecision
from codshield.models.identity import IdentityCandidates
from codshield.models.profile import CustomerProfile, RiskTier
from codshield.models.risk_config import EnforcementAction, RiskConfiguration
from codshield.repositories.profile_store import ProfileStore
from codshield.services import risk_scoring
from codshield.services.identity_hasher import IdentityHasher
from codshield.services.tier_classifier import classify, decide
from codshield.utils.clock import utc_now
from codshield.utils.error_handling import UnidentifiableEvent
from codshield.utils.logging_config import get_logger

logger = get_logger(__name__)

ADVISORY_IDENTITY_UNRESOLVABLE = "identity_unresolvable"
ADVISORY_LOOKUP_TIMEOUT = "risk_lookup_timeout"
ADVISORY_BACKEND_UNAVAILABLE = "risk_service_unavailable"


def fail_open(advisory: str) -> EnforcementDecision:
    return EnforcementDecision(action=EnforcementAction.ALLOW, advisory=advisory, degraded=True)


class EnforcementService:
    """Bounded-latency ``decide_for_checkout``."""

    def __init__(
        self,
        hasher: IdentityHasher,
        store: ProfileStore,
        timeout_seconds: float = 0.8,
        clock: Callable[[], datetime] = utc_now,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        self.hasher = hasher
        self.store = store
        self.timeout_seconds = timeout_seconds
        self.clock = clock
        self.executor = executor or ThreadPoolExecutor(
            max_workers=4, thread_name_prefix="risk-lookup"
        )

    def _lookup(self, hashes: List[str]) -> Optional[CustomerProfile]:
        return self.store.find_any(hashes)

    def decide_for_checkout(
        self, identity_candidates: IdentityCandidates, store_config: RiskConfiguration
    ) -> EnforcementDecision:
        try:
            identity = self.hasher.resolve(identity_candidates)
        except UnidentifiableEvent:
            logger.warning("Checkout decision without usable identity; allowing")
            return fail_open(ADVISORY_IDENTITY_UNRESOLVABLE)

        future = self.executor.submit(self._lookup, identity.ordered())
        try:
            profile = future.result(timeout=self.timeout_seconds)
        except FutureTimeout:
            future.cancel()
            logger.warning(
                "Risk lookup timed out; allowing",
                extra={"timeout_ms": int(self.timeout_seconds * 1000)},
            )
            return fail_open(ADVISORY_LOOKUP_TIMEOUT)
        except Exception:
            logger.exception("Risk lookup failed; allowing")
            return fail_open(ADVISORY_BACKEND_UNAVAILABLE)

        now = self.clock()
        if profile is None:
            tier = RiskTier.ZERO_RISK
        else:
            # Rescore with this store's coefficients; the stored score used
            # whichever store's configuration ingested the last event.
            score = risk_scoring.score(profile.counters, now, store_config)
            tier = classify(score, profile.manual_override, store_config, now)

        decision = decide(tier, store_config)
        logger.info(
            "Checkout decision",
            extra={
                "risk_tier": tier.value,
                "action": decision.action.value,
                "known_customer": profile is not None,
            },
        )
        return decision
