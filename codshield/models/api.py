"""Request/response payloads for the query, enforcement and admin interfaces."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from codshield.models.identity import IdentityCandidates
from codshield.models.profile import CustomerProfile, RiskTier
from codshield.models.risk_config import EnforcementAction


class ProfileQueryRequest(BaseModel):
    identity_candidates: IdentityCandidates
    store_id: Optional[str] = None


class ProfileSummary(BaseModel):
    """Hash-keyed aggregate view; never includes raw identifiers."""

    risk_tier: RiskTier
    risk_score: float
    total_orders: int
    failed_attempts: int
    successful_deliveries: int
    is_new_customer: bool
    override_active: bool = False
    risk_factors: List[str] = Field(default_factory=list)
    message: Optional[str] = None


class CheckoutDecisionRequest(BaseModel):
    store_id: str
    identity_candidates: IdentityCandidates = Field(default_factory=IdentityCandidates)


class EnforcementDecision(BaseModel):
    """Checkout-time verdict. ``degraded`` marks a fail-open ALLOW."""

    action: EnforcementAction
    deposit_percent: Optional[float] = None
    risk_tier: Optional[RiskTier] = None
    advisory: Optional[str] = None
    degraded: bool = False


class OverrideRequest(BaseModel):
    tier: RiskTier
    reason: str
    expires_at: Optional[datetime] = None


class ResetRequest(BaseModel):
    reason: str


class RedactionRequest(BaseModel):
    """Raw identifiers to erase; either flat or in a storefront ``customer`` block."""

    phone: Optional[str] = None
    email: Optional[str] = None
    customer: Optional[dict] = None

    def candidates(self) -> IdentityCandidates:
        customer = self.customer or {}
        return IdentityCandidates(
            phone=self.phone or customer.get("phone"),
            email=self.email or customer.get("email"),
        )


class DeletionResult(BaseModel):
    deleted: int


class DataExport(BaseModel):
    """Everything held for a customer: hash-keyed profiles, no raw identifiers."""

    profiles: List[CustomerProfile] = Field(default_factory=list)
