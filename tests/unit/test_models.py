"""
Pydantic model validation tests.

Ensures models normalize and reject invalid data.
No AWS connection required.

Run with: pytest tests/unit/test_models.py -v
"""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from codshield.models.api import RedactionRequest
from codshield.models.correlation import (
    CheckoutCorrelation,
    CorrelationState,
    OpenCorrelationRequest,
)
from codshield.models.events import OrderEvent, OrderEventType, SubmitEventRequest
from codshield.models.identity import HashedIdentity, IdentityCandidates
from codshield.models.profile import ManualOverride, RiskTier


class TestIdentityModels:
    def test_blank_candidates_become_none(self):
        candidates = IdentityCandidates(phone="  ", email="")
        assert candidates.phone is None
        assert candidates.email is None
        assert candidates.is_empty()

    def test_candidates_repr_hides_raw_values(self):
        text = repr(IdentityCandidates(phone="+923001234567", email="a@example.com"))
        assert "923001234567" not in text
        assert "example.com" not in text

    def test_hashed_identity_prefers_phone(self):
        identity = HashedIdentity(phone_hash="p", email_hash="e")
        assert identity.ordered() == ["p", "e"]
        assert identity.primary == "p"
        assert HashedIdentity(email_hash="e").primary == "e"
        assert HashedIdentity().is_empty()

    def test_merged_with_fills_gaps_only(self):
        merged = HashedIdentity(phone_hash="p").merged_with(HashedIdentity(phone_hash="x", email_hash="e"))
        assert merged.phone_hash == "p"
        assert merged.email_hash == "e"


class TestOrderEvent:
    def test_event_type_is_normalized(self):
        event = OrderEvent(
            source_order_id="1001",
            event_type=" Cancelled ",
            order_value=100,
            occurred_at=datetime(2024, 3, 1, 12, 0),
            store_id="store-a",
        )
        assert event.event_type is OrderEventType.CANCELLED
        assert event.dedupe_key == "1001:cancelled"
        assert event.occurred_at.tzinfo is not None

    @pytest.mark.parametrize(
        "overrides",
        [
            {"event_type": "shipped"},
            {"order_value": -1},
            {"source_order_id": "  "},
            {"store_id": None},
        ],
    )
    def test_invalid_events_are_rejected(self, overrides):
        data = {
            "source_order_id": "1001",
            "event_type": "paid",
            "order_value": 10,
            "occurred_at": "2024-03-01T12:00:00Z",
            "store_id": "store-a",
        }
        data.update(overrides)
        with pytest.raises(ValidationError):
            OrderEvent(**data)

    def test_submit_request_to_event(self):
        request = SubmitEventRequest(
            source_order_id="1001",
            event_type="FULFILLED",
            occurred_at="2024-03-01T12:00:00Z",
            store_id="store-a",
        )
        event = request.to_event()
        assert event.event_type is OrderEventType.FULFILLED
        assert request.identity_candidates.is_empty()


class TestManualOverride:
    def test_reason_required(self):
        with pytest.raises(ValidationError):
            ManualOverride(tier=RiskTier.HIGH_RISK, reason="   ")

    def test_activity_window(self):
        now = datetime(2024, 3, 1, tzinfo=timezone.utc)
        override = ManualOverride(tier=RiskTier.ZERO_RISK, reason="vip", expires_at=now + timedelta(days=1))
        assert override.is_active(now)
        assert not override.is_active(now + timedelta(days=1))
        assert ManualOverride(tier=RiskTier.ZERO_RISK, reason="vip").is_active(now + timedelta(days=365))


class TestCorrelationModels:
    def test_matchable_only_while_open_and_fresh(self):
        now = datetime(2024, 3, 1, tzinfo=timezone.utc)
        correlation = CheckoutCorrelation(
            checkout_token="tok",
            identity=HashedIdentity(phone_hash="p"),
            created_at=now,
            expires_at=now + timedelta(hours=24),
        )
        assert correlation.is_matchable(now)
        assert not correlation.is_matchable(now + timedelta(hours=24))

        matched = correlation.model_copy(update={"state": CorrelationState.MATCHED})
        assert not matched.is_matchable(now)

    def test_open_request_requires_token(self):
        with pytest.raises(ValidationError):
            OpenCorrelationRequest(checkout_token=" ")
        with pytest.raises(ValidationError):
            OpenCorrelationRequest(checkout_token="tok", ttl_seconds=0)


class TestRedactionRequest:
    def test_flat_fields_win_over_customer_block(self):
        request = RedactionRequest(
            phone="+923001234567",
            customer={"phone": "0300 0000000", "email": "c@example.com"},
        )
        candidates = request.candidates()
        assert candidates.phone == "+923001234567"
        assert candidates.email == "c@example.com"
