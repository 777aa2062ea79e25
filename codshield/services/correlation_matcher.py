"""
Checkout Correlation Matcher.

Links a checkout session, captured before any order exists, to the order
event that eventually arrives. Per entry: OPEN -> MATCHED | EXPIRED.

Correlation is an optimisation: when an entry is missing or expired the
caller resolves identity from the order event itself.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Optional

from codshield.models.correlation import (
    CheckoutCorrelation,
    CorrelationMatchResult,
    CorrelationState,
    MatchOutcome,
    SweepResult,
)
from codshield.models.identity import IdentityCandidates
from codshield.repositories.correlation_store import CorrelationStore
from codshield.services.identity_hasher import IdentityHasher
from codshield.utils.clock import utc_now
from codshield.utils.error_handling import (
    ConcurrentUpdateConflict,
    CorrelationExpired,
    CorrelationNotFound,
)
from codshield.utils.logging_config import get_logger, token_suffix
from codshield.utils.retry import retry_on_conflict

logger = get_logger(__name__)


class CorrelationMatcher:
    """Opens, matches and expires checkout correlations."""

    def __init__(
        self,
        hasher: IdentityHasher,
        store: CorrelationStore,
        clock: Callable[[], datetime] = utc_now,
        default_ttl_seconds: int = 24 * 3600,
        retention_seconds: int = 3600,
    ):
        self.hasher = hasher
        self.store = store
        self.clock = clock
        self.default_ttl_seconds = default_ttl_seconds
        self.retention = timedelta(seconds=retention_seconds)

    def open(
        self,
        checkout_token: str,
        identity_candidates: IdentityCandidates,
        ttl_seconds: Optional[int] = None,
    ) -> CheckoutCorrelation:
        """
        Record the checkout-time identity under ``checkout_token``.

        Re-opening an OPEN token with identical hashes is a no-op. A MATCHED
        token is never reopened. An OPEN token whose identity changed (the
        shopper edited contact details) gets the new hashes and a fresh TTL;
        an expired token starts over.
        """
        identity = self.hasher.resolve(identity_candidates).hashed
        ttl = timedelta(seconds=ttl_seconds or self.default_ttl_seconds)

        def _attempt() -> CheckoutCorrelation:
            now = self.clock()
            existing = self.store.get(checkout_token)
            if existing is not None and not existing.is_past_expiry(now):
                if existing.state is CorrelationState.MATCHED:
                    return existing
                if existing.state is CorrelationState.OPEN and existing.identity == identity:
                    return existing

            entry = CheckoutCorrelation(
                checkout_token=checkout_token,
                identity=identity,
                created_at=now,
                expires_at=now + ttl,
            )
            self.store.create(entry, replacing=existing)
            logger.info(
                "Checkout correlation opened",
                extra={
                    "checkout_token": token_suffix(checkout_token),
                    "has_phone": bool(identity.phone_hash),
                    "has_email": bool(identity.email_hash),
                    "replaced": existing is not None,
                },
            )
            return entry

        return retry_on_conflict(
            _attempt,
            logger=logger,
            max_attempts=3,
            context={"checkout_token": token_suffix(checkout_token)},
        )

    def match(self, checkout_token: str, order_id: str) -> CorrelationMatchResult:
        """
        Compare-and-set the entry's order id from empty to ``order_id``.

        Already matched entries report ALREADY_MATCHED (whatever order they
        hold). Missing entries raise CorrelationNotFound, expired ones
        CorrelationExpired; an OPEN entry found past expiry is expired on
        the spot.
        """
        now = self.clock()
        entry = self.store.get(checkout_token)
        if entry is None:
            raise CorrelationNotFound()

        if entry.is_past_expiry(now) or entry.state is CorrelationState.EXPIRED:
            if entry.state is CorrelationState.OPEN:
                self.store.mark_expired(checkout_token, now)
                logger.info(
                    "Checkout correlation expired on read",
                    extra={"checkout_token": token_suffix(checkout_token)},
                )
            raise CorrelationExpired()

        if entry.state is CorrelationState.MATCHED:
            return CorrelationMatchResult(outcome=MatchOutcome.ALREADY_MATCHED, correlation=entry)

        try:
            matched = self.store.mark_matched(checkout_token, order_id, now)
        except ConcurrentUpdateConflict:
            # Lost the race: someone matched, expired or deleted it first.
            current = self.store.get(checkout_token)
            if current is None:
                raise CorrelationNotFound() from None
            if current.state is CorrelationState.MATCHED:
                return CorrelationMatchResult(
                    outcome=MatchOutcome.ALREADY_MATCHED, correlation=current
                )
            raise CorrelationExpired() from None

        logger.info(
            "Checkout correlation matched",
            extra={"checkout_token": token_suffix(checkout_token), "order_id": order_id},
        )
        return CorrelationMatchResult(outcome=MatchOutcome.MATCHED, correlation=matched)

    def get(self, checkout_token: str) -> Optional[CheckoutCorrelation]:
        return self.store.get(checkout_token)

    def sweep(self, now: Optional[datetime] = None) -> SweepResult:
        """Expire overdue entries and reclaim retired ones."""
        result = self.store.sweep(now or self.clock(), self.retention)
        logger.info("Correlation sweep", extra=result.model_dump())
        return result
