"""Envelope returned by the merchant admin endpoints."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel

from codshield.models.profile import CustomerProfile, ManualOverride, RiskTier


class ProfileSnapshot(BaseModel):
    """Hash-keyed state after an admin action."""

    identity_hash: str
    risk_score: float
    risk_tier: RiskTier
    manual_override: Optional[ManualOverride] = None

    @classmethod
    def of(cls, profile: CustomerProfile) -> "ProfileSnapshot":
        return cls(
            identity_hash=profile.identity_hash,
            risk_score=profile.risk_score,
            risk_tier=profile.risk_tier,
            manual_override=profile.manual_override,
        )


class ApiResponse(BaseModel):
    message: str
    data: Optional[ProfileSnapshot] = None
    correlation_id: Optional[str] = None
