"""Checkout correlation models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from codshield.models.identity import HashedIdentity, IdentityCandidates
from codshield.utils.clock import ensure_utc


class CorrelationState(str, Enum):
    """OPEN -> MATCHED | EXPIRED; both targets are terminal."""

    OPEN = "OPEN"
    MATCHED = "MATCHED"
    EXPIRED = "EXPIRED"


class CheckoutCorrelation(BaseModel):
    """Short-lived link between a checkout session and its eventual order."""

    checkout_token: str
    identity: HashedIdentity
    state: CorrelationState = CorrelationState.OPEN
    matched_order_id: Optional[str] = None
    created_at: datetime
    expires_at: datetime
    matched_at: Optional[datetime] = None

    @field_validator("created_at", "expires_at", "matched_at")
    @classmethod
    def to_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value else None

    def is_past_expiry(self, now: datetime) -> bool:
        return now >= self.expires_at

    def is_matchable(self, now: datetime) -> bool:
        return self.state is CorrelationState.OPEN and not self.is_past_expiry(now)


class MatchOutcome(str, Enum):
    MATCHED = "matched"
    ALREADY_MATCHED = "already_matched"


class CorrelationMatchResult(BaseModel):
    outcome: MatchOutcome
    correlation: CheckoutCorrelation

    @property
    def order_id(self) -> Optional[str]:
        return self.correlation.matched_order_id


class SweepResult(BaseModel):
    expired: int = 0
    purged: int = 0


class OpenCorrelationRequest(BaseModel):
    checkout_token: str
    identity_candidates: IdentityCandidates = Field(default_factory=IdentityCandidates)
    ttl_seconds: Optional[int] = Field(None, gt=0, le=7 * 24 * 3600)

    @field_validator("checkout_token")
    @classmethod
    def token_required(cls, value: str) -> str:
        cleaned = (value or "").strip()
        if not cleaned:
            raise ValueError("checkout_token must be provided")
        return cleaned


class MatchCorrelationRequest(BaseModel):
    order_id: str

    @field_validator("order_id", mode="before")
    @classmethod
    def order_id_text(cls, value) -> str:
        cleaned = str(value if value is not None else "").strip()
        if not cleaned:
            raise ValueError("order_id must be provided")
        return cleaned


class CorrelationView(BaseModel):
    """What the correlation API returns; identity hashes stay server-side."""

    checkout_token: str
    state: CorrelationState
    matched_order_id: Optional[str] = None
    outcome: Optional[MatchOutcome] = None
    expires_at: datetime

    @classmethod
    def from_correlation(
        cls, correlation: CheckoutCorrelation, outcome: Optional[MatchOutcome] = None
    ) -> "CorrelationView":
        return cls(
            checkout_token=correlation.checkout_token[-8:],
            state=correlation.state,
            matched_order_id=correlation.matched_order_id,
            outcome=outcome,
            expires_at=correlation.expires_at,
        )
