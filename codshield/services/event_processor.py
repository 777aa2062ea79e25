"""
Event Processor.

Applies one order lifecycle event to the customer's shared profile:

1. hash the identity candidates (optionally repaired from the checkout
   correlation); nothing resolvable -> UNIDENTIFIABLE + review item;
2. resolve the profile by primary hash, then secondary hashes, or create it;
3. skip if the event's dedupe key was already applied;
4. apply counter deltas for the event type;
5. rescore, reclassify, and commit everything in one versioned write.

Conflicting writers are retried with bounded backoff, so a retry from the
transport is always safe.
"""

from __future__ import annotations

import time
import uuid
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from codshield.models.correlation import CorrelationMatchResult
from codshield.models.events import (
    IngestStatus,
    OrderEvent,
    OrderEventType,
    ProfileUpdateResult,
    ReviewItem,
)
from codshield.models.identity import HashedIdentity, IdentityCandidates
from codshield.models.profile import CustomerProfile, RiskCounters
from codshield.models.risk_config import RiskConfiguration
from codshield.repositories.profile_store import ProfileStore
from codshield.repositories.review_queue import ReviewQueue
from codshield.services import risk_scoring
from codshield.services.correlation_matcher import CorrelationMatcher
from codshield.services.identity_hasher import IdentityHasher
from codshield.services.tier_classifier import classify
from codshield.utils.clock import utc_now
from codshield.utils.error_handling import (
    CorrelationExpired,
    CorrelationNotFound,
    UnidentifiableEvent,
)
from codshield.utils.logging_config import get_logger, hash_prefix, token_suffix
from codshield.utils.retry import retry_on_conflict

logger = get_logger(__name__)


def apply_counters(counters: RiskCounters, event: OrderEvent, config: RiskConfiguration) -> RiskCounters:
    """Counter deltas for one event. Exhaustive over OrderEventType."""
    updated = counters.model_copy(deep=True)
    high_value = event.order_value >= config.high_value_threshold

    if event.event_type is OrderEventType.CREATED:
        updated.total_orders += 1
    elif event.event_type is OrderEventType.PAID:
        pass
    elif event.event_type is OrderEventType.FULFILLED:
        updated.successful_deliveries += 1
    elif event.event_type is OrderEventType.CANCELLED:
        updated.failed_attempts += 1
        updated.cancelled_events += 1
        updated.failure_times = sorted([*updated.failure_times, event.occurred_at])
        if high_value:
            updated.high_value_failures += 1
    elif event.event_type is OrderEventType.RETURNED:
        updated.return_events += 1
        if high_value:
            updated.high_value_failures += 1
    else:
        raise ValueError(f"Unhandled event type: {event.event_type}")
    return updated


def rescored(profile: CustomerProfile, config: RiskConfiguration, now: datetime, **changes) -> CustomerProfile:
    """Copy of ``profile`` with ``changes`` applied and score/tier recomputed."""
    candidate = profile.model_copy(update=changes, deep=True)
    risk_score = risk_scoring.score(candidate.counters, now, config)
    risk_tier = classify(risk_score, candidate.manual_override, config, now)
    return candidate.model_copy(
        update={"risk_score": risk_score, "risk_tier": risk_tier, "updated_at": now}
    )


class EventProcessor:
    """Idempotent ingestion of order lifecycle events into profiles."""

    def __init__(
        self,
        hasher: IdentityHasher,
        store: ProfileStore,
        config_provider: Callable[[str], RiskConfiguration],
        correlation_matcher: Optional[CorrelationMatcher] = None,
        review_queue: Optional[ReviewQueue] = None,
        clock: Callable[[], datetime] = utc_now,
        max_attempts: int = 5,
        initial_delay_seconds: float = 0.02,
        max_delay_seconds: float = 0.5,
        sleep: Callable[[float], object] = time.sleep,
    ):
        self.hasher = hasher
        self.store = store
        self.config_provider = config_provider
        self.correlation_matcher = correlation_matcher
        self.review_queue = review_queue
        self.clock = clock
        self._retry = dict(
            max_attempts=max_attempts,
            initial_delay_seconds=initial_delay_seconds,
            max_delay_seconds=max_delay_seconds,
            sleep=sleep,
        )

    def ingest(
        self,
        event: OrderEvent,
        identity_candidates: IdentityCandidates,
        checkout_token: Optional[str] = None,
    ) -> ProfileUpdateResult:
        """Apply ``event`` exactly once to the profile it resolves to."""
        config = self.config_provider(event.store_id)
        identity, rejected = self._hash_event_identity(identity_candidates)
        correlation_status, extra_hashes = None, []
        repaired = False

        if checkout_token and self.correlation_matcher is not None:
            correlation_status, correlated = self._correlate(checkout_token, event)
            if correlated is not None:
                before = identity.ordered()
                identity = identity.merged_with(correlated)
                repaired = identity.ordered() != before
                extra_hashes = [h for h in correlated.ordered() if h not in identity.ordered()]

        hashes = identity.ordered() + extra_hashes
        if not hashes:
            review_id = self._flag_for_review(event, rejected)
            return ProfileUpdateResult(
                status=IngestStatus.UNIDENTIFIABLE,
                review_id=review_id,
                correlation_status=correlation_status,
            )

        result = retry_on_conflict(
            lambda: self._apply_once(event, hashes, config),
            logger=logger,
            context={"source_order_id": event.source_order_id, "event_type": event.event_type.value},
            **self._retry,
        )
        result.correlation_status = correlation_status
        result.identity_repaired = repaired
        return result

    def rescore(self, identity_hash: str, config: RiskConfiguration) -> Optional[CustomerProfile]:
        """Recompute one profile's score and tier from its stored counters."""

        def _attempt() -> Optional[CustomerProfile]:
            profile = self.store.find(identity_hash)
            if profile is None:
                return None
            return self.store.commit(rescored(profile, config, self.clock()), profile.version)

        return retry_on_conflict(
            _attempt, logger=logger, context={"identity_hash": hash_prefix(identity_hash)}, **self._retry
        )

    def _hash_event_identity(self, candidates: IdentityCandidates) -> Tuple[HashedIdentity, List[str]]:
        try:
            return self.hasher.resolve(candidates).hashed, []
        except UnidentifiableEvent as exc:
            return HashedIdentity(), exc.rejected

    def _correlate(
        self, checkout_token: str, event: OrderEvent
    ) -> Tuple[str, Optional[HashedIdentity]]:
        """Identity captured at checkout, if the token belongs to this order."""
        try:
            match: CorrelationMatchResult = self.correlation_matcher.match(
                checkout_token, event.source_order_id
            )
        except CorrelationExpired:
            logger.info(
                "Correlation expired; resolving from event",
                extra={"checkout_token": token_suffix(checkout_token)},
            )
            return "expired", None
        except CorrelationNotFound:
            logger.info(
                "Correlation not found; resolving from event",
                extra={"checkout_token": token_suffix(checkout_token)},
            )
            return "not_found", None

        if match.order_id != event.source_order_id:
            logger.warning(
                "Checkout token already matched to another order",
                extra={"checkout_token": token_suffix(checkout_token), "order_id": event.source_order_id},
            )
            return "mismatched", None
        return match.outcome.value, match.correlation.identity

    def _flag_for_review(self, event: OrderEvent, rejected: List[str]) -> str:
        now = self.clock()
        review_id = f"{now.strftime('%Y%m%dT%H%M%S')}#{uuid.uuid4().hex[:12]}"
        reason = "unresolvable_identity" if rejected else "no_identity_candidates"
        if self.review_queue is not None:
            self.review_queue.put(
                ReviewItem(
                    review_id=review_id,
                    reason=reason,
                    store_id=event.store_id,
                    source_order_id=event.source_order_id,
                    event_type=event.event_type,
                    rejected_kinds=rejected,
                    created_at=now,
                )
            )
        logger.warning(
            "Unidentifiable event flagged for review",
            extra={
                "review_id": review_id,
                "reason": reason,
                "store_id": event.store_id,
                "source_order_id": event.source_order_id,
            },
        )
        return review_id

    def _resolve(self, hashes: List[str], now: datetime) -> CustomerProfile:
        """Existing profile for any hash (with new hashes linked), or a fresh one."""
        profile = self.store.find_any(hashes)
        if profile is None:
            primary, *rest = hashes
            return CustomerProfile(
                identity_hash=primary,
                secondary_hashes=set(rest),
                created_at=now,
                updated_at=now,
            )

        for candidate in hashes:
            if candidate in profile.all_hashes:
                continue
            owner = self.store.find(candidate)
            if owner is not None:
                # Linking would merge two customers; keep them apart.
                logger.warning(
                    "Identity hash already belongs to another profile",
                    extra={
                        "identity_hash": hash_prefix(profile.identity_hash),
                        "other_profile": hash_prefix(owner.identity_hash),
                    },
                )
                continue
            profile.secondary_hashes.add(candidate)
        return profile

    def _apply_once(
        self, event: OrderEvent, hashes: List[str], config: RiskConfiguration
    ) -> ProfileUpdateResult:
        now = self.clock()
        profile = self._resolve(hashes, now)
        created = profile.version == 0

        if event.dedupe_key in profile.applied_events:
            logger.warning(
                "Duplicate event ignored",
                extra={
                    "identity_hash": hash_prefix(profile.identity_hash),
                    "dedupe_key": event.dedupe_key,
                },
            )
            return ProfileUpdateResult(
                status=IngestStatus.DUPLICATE,
                identity_hash=profile.identity_hash,
                risk_score=profile.risk_score,
                risk_tier=profile.risk_tier,
                previous_tier=profile.risk_tier,
            )

        last_event_at = max(filter(None, [profile.last_event_at, event.occurred_at]))
        updated = rescored(
            profile,
            config,
            now,
            counters=apply_counters(profile.counters, event, config),
            applied_events=profile.applied_events | {event.dedupe_key},
            last_event_at=last_event_at,
        )
        stored = self.store.commit(updated, profile.version)

        extra = {
            "identity_hash": hash_prefix(stored.identity_hash),
            "store_id": event.store_id,
            "event_type": event.event_type.value,
            "risk_score": stored.risk_score,
            "risk_tier": stored.risk_tier.value,
        }
        if created:
            logger.info("Customer profile created", extra=extra)
        logger.info("Order event applied", extra=extra)
        if not created and stored.risk_tier != profile.risk_tier:
            logger.info("Risk tier changed", extra={**extra, "previous_tier": profile.risk_tier.value})

        return ProfileUpdateResult(
            status=IngestStatus.APPLIED,
            identity_hash=stored.identity_hash,
            risk_score=stored.risk_score,
            risk_tier=stored.risk_tier,
            previous_tier=None if created else profile.risk_tier,
            profile_created=created,
        )
