"""Pydantic models for profiles, events, correlations and API payloads."""

from codshield.models.api import (  # noqa: F401
    CheckoutDecisionRequest,
    DataExport,
    DeletionResult,
    EnforcementDecision,
    OverrideRequest,
    ProfileQueryRequest,
    ProfileSummary,
    RedactionRequest,
    ResetRequest,
)
from codshield.models.correlation import (  # noqa: F401
    CheckoutCorrelation,
    CorrelationMatchResult,
    CorrelationState,
    CorrelationView,
    MatchCorrelationRequest,
    MatchOutcome,
    OpenCorrelationRequest,
    SweepResult,
)
from codshield.models.events import (  # noqa: F401
    IngestStatus,
    OrderEvent,
    OrderEventType,
    ProfileUpdateResult,
    ReviewItem,
    SubmitEventRequest,
)
from codshield.models.identity import HashedIdentity, IdentityCandidates, IdentityKind  # noqa: F401
from codshield.models.profile import CustomerProfile, ManualOverride, RiskCounters, RiskTier  # noqa: F401
from codshield.models.response import ApiResponse, ProfileSnapshot  # noqa: F401
from codshield.models.risk_config import EnforcementAction, RiskConfiguration  # noqa: F401
