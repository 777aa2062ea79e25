"""Customer profile models keyed by identity hash."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional, Set

from pydantic import BaseModel, Field, field_validator

from codshield.utils.clock import ensure_utc, utc_now


class RiskTier(str, Enum):
    """Discrete risk classification derived from the score."""

    ZERO_RISK = "ZERO_RISK"
    MEDIUM_RISK = "MEDIUM_RISK"
    HIGH_RISK = "HIGH_RISK"


class ManualOverride(BaseModel):
    """Merchant-set tier that wins over the computed score until it expires."""

    tier: RiskTier
    reason: str
    expires_at: Optional[datetime] = None

    @field_validator("reason")
    @classmethod
    def reason_required(cls, value: str) -> str:
        cleaned = (value or "").strip()
        if not cleaned:
            raise ValueError("override reason must be provided")
        return cleaned

    @field_validator("expires_at")
    @classmethod
    def expires_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value else None

    def is_active(self, now: datetime) -> bool:
        """None expiry means active until cleared."""
        return self.expires_at is None or now < self.expires_at


class RiskCounters(BaseModel):
    """Aggregate behaviour counters fed to the scoring engine."""

    total_orders: int = Field(0, ge=0)
    failed_attempts: int = Field(0, ge=0)
    successful_deliveries: int = Field(0, ge=0)
    return_events: int = Field(0, ge=0)
    cancelled_events: int = Field(0, ge=0)
    high_value_failures: int = Field(0, ge=0)
    failure_times: List[datetime] = Field(default_factory=list)

    @field_validator("failure_times")
    @classmethod
    def failure_times_utc(cls, value: List[datetime]) -> List[datetime]:
        return sorted(ensure_utc(t) for t in value)


class CustomerProfile(BaseModel):
    """One per resolved identity; shared by every storefront."""

    identity_hash: str
    secondary_hashes: Set[str] = Field(default_factory=set)
    counters: RiskCounters = Field(default_factory=RiskCounters)
    risk_score: float = Field(0.0, ge=0, le=100)
    risk_tier: RiskTier = RiskTier.ZERO_RISK
    manual_override: Optional[ManualOverride] = None
    applied_events: Set[str] = Field(default_factory=set)
    last_event_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    version: int = Field(0, ge=0)

    @property
    def all_hashes(self) -> Set[str]:
        return {self.identity_hash, *self.secondary_hashes}

    def active_override(self, now: datetime) -> Optional[ManualOverride]:
        if self.manual_override and self.manual_override.is_active(now):
            return self.manual_override
        return None
