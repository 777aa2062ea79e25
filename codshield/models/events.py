"""Order lifecycle event models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from codshield.models.identity import IdentityCandidates
from codshield.models.profile import RiskTier
from codshield.utils.clock import ensure_utc


class OrderEventType(str, Enum):
    """Closed set of lifecycle events the processor understands."""

    CREATED = "created"
    PAID = "paid"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"
    RETURNED = "returned"


class OrderEvent(BaseModel):
    """A single order lifecycle event from one storefront."""

    source_order_id: str
    event_type: OrderEventType
    order_value: float = Field(0.0, ge=0)
    occurred_at: datetime
    store_id: str

    @field_validator("source_order_id", "store_id", mode="before")
    @classmethod
    def required_text(cls, value) -> str:
        cleaned = str(value if value is not None else "").strip()
        if not cleaned:
            raise ValueError("source_order_id and store_id must be provided")
        return cleaned

    @field_validator("event_type", mode="before")
    @classmethod
    def lower_event_type(cls, value):
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("occurred_at")
    @classmethod
    def occurred_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @property
    def dedupe_key(self) -> str:
        return f"{self.source_order_id}:{self.event_type.value}"


class IngestStatus(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    UNIDENTIFIABLE = "unidentifiable"


class ProfileUpdateResult(BaseModel):
    """Outcome of ingesting one event."""

    status: IngestStatus
    identity_hash: Optional[str] = None
    risk_score: Optional[float] = None
    risk_tier: Optional[RiskTier] = None
    previous_tier: Optional[RiskTier] = None
    profile_created: bool = False
    correlation_status: Optional[str] = None
    identity_repaired: bool = False
    review_id: Optional[str] = None


class SubmitEventRequest(BaseModel):
    """Inbound payload for the event ingestion interface."""

    source_order_id: str
    event_type: OrderEventType
    order_value: float = Field(0.0, ge=0)
    occurred_at: datetime
    store_id: str
    identity_candidates: IdentityCandidates = Field(default_factory=IdentityCandidates)
    checkout_token: Optional[str] = None
    order: Optional[dict] = None

    @field_validator("event_type", mode="before")
    @classmethod
    def lower_event_type(cls, value):
        return value.strip().lower() if isinstance(value, str) else value

    def to_event(self) -> OrderEvent:
        return OrderEvent(
            source_order_id=self.source_order_id,
            event_type=self.event_type,
            order_value=self.order_value,
            occurred_at=self.occurred_at,
            store_id=self.store_id,
        )


class ReviewItem(BaseModel):
    """Event set aside for manual review. Carries no raw identifiers."""

    review_id: str
    reason: str
    store_id: str
    source_order_id: str
    event_type: OrderEventType
    rejected_kinds: List[str] = Field(default_factory=list)
    created_at: datetime
