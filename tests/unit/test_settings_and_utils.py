"""Settings, registry wiring and shared utility tests."""

import json
import logging
from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest

from codshield.config.settings import DEV_SALT, Settings
from codshield.services.identity_extraction import extract_identity_candidates, merge_candidates
from codshield.models.identity import IdentityCandidates
from codshield.utils.cache_service import LRUCache
from codshield.utils.error_handling import (
    ConcurrentUpdateConflict,
    ConfigurationInvalid,
    CorrelationExpired,
    CorrelationNotFound,
    NotFoundError,
    ServiceUnavailableError,
    ValidationError,
    to_response,
)
from codshield.utils.logging_config import get_logger, hash_prefix, token_suffix
from codshield.utils.retry import retry_on_conflict
from codshield.utils.validators import parse_json_body, path_param


class TestSettings:
    def test_from_environment(self, monkeypatch):
        monkeypatch.setenv("CORRELATION_TTL_SECONDS", "3600")
        monkeypatch.setenv("DECISION_TIMEOUT_MS", "250")
        settings = Settings.from_environment()
        assert settings.environment == "test"
        assert settings.correlation_ttl_seconds == 3600
        assert settings.decision_timeout_ms == 250
        assert settings.uses_dynamodb is False

        config = settings.default_risk_config()
        assert config.decay_half_life_days == 30
        assert config.grace_dampening == 0.7

    def test_prod_requires_real_salt(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "prod")
        monkeypatch.delenv("IDENTITY_HASH_SALT", raising=False)
        with pytest.raises(ConfigurationInvalid):
            Settings.from_environment()

        with pytest.raises(ConfigurationInvalid):
            Settings(environment="prod", identity_hash_salt=DEV_SALT)

    def test_prod_overrides(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "prod")
        monkeypatch.setenv("IDENTITY_HASH_SALT", "prod-salt-abcdefghijklmnop")
        monkeypatch.setenv("PROFILES_TABLE", "profiles")
        monkeypatch.setenv("CORRELATIONS_TABLE", "correlations")
        settings = Settings.from_environment()
        assert settings.decision_timeout_ms == 500
        assert settings.cache_ttl_seconds == 600

    def test_prod_requires_dynamodb_tables(self):
        salt = "prod-salt-abcdefghijklmnop"
        with pytest.raises(ConfigurationInvalid):
            Settings(environment="prod", identity_hash_salt=salt)
        with pytest.raises(ConfigurationInvalid):
            Settings(environment="prod", identity_hash_salt=salt, profiles_table="profiles")

        settings = Settings(
            environment="prod",
            identity_hash_salt=salt,
            profiles_table="profiles",
            correlations_table="correlations",
        )
        assert settings.uses_dynamodb is True

    def test_half_configured_tables_rejected_everywhere(self):
        with pytest.raises(ConfigurationInvalid):
            Settings(environment="dev", correlations_table="correlations")

    def test_short_salt_rejected(self):
        with pytest.raises(ConfigurationInvalid):
            Settings(identity_hash_salt="short")

    def test_country_code_must_be_digits(self):
        with pytest.raises(ConfigurationInvalid):
            Settings(default_country_code="+92")

    def test_non_numeric_env_rejected(self, monkeypatch):
        monkeypatch.setenv("DECISION_TIMEOUT_MS", "fast")
        with pytest.raises(ConfigurationInvalid):
            Settings.from_environment()

    def test_missing_scoring_parameters_fail_loudly(self):
        with pytest.raises(ConfigurationInvalid):
            Settings().default_risk_config()

    def test_default_config_json(self):
        settings = Settings(
            default_risk_config_json=json.dumps({"zero_max": 20, "decay_half_life_days": 14}),
            grace_dampening=0.5,
        )
        config = settings.default_risk_config()
        assert config.zero_max == 20
        assert config.decay_half_life_days == 14
        assert config.grace_dampening == 0.5

    def test_bad_default_config_json(self):
        with pytest.raises(ConfigurationInvalid):
            Settings(default_risk_config_json="{oops").default_risk_config()


class TestRegistry:
    def test_in_memory_wiring(self):
        from codshield.repositories.correlation_store import InMemoryCorrelationStore
        from codshield.repositories.profile_store import InMemoryProfileStore
        from codshield.services import registry

        services = registry.build_services(Settings.from_environment())
        assert isinstance(services.profile_store, InMemoryProfileStore)
        assert isinstance(services.correlation_store, InMemoryCorrelationStore)
        assert services.event_processor.store is services.profile_store
        assert services.enforcement.timeout_seconds == 0.8

    def test_dynamodb_wiring(self):
        from codshield.services import registry

        settings = Settings(
            decay_half_life_days=30,
            grace_dampening=0.7,
            profiles_table="profiles",
            correlations_table="correlations",
            review_table="reviews",
        )
        with patch.object(registry, "DynamoDbProfileStore") as profile_store, patch.object(
            registry, "DynamoDbCorrelationStore"
        ) as correlation_store, patch.object(registry, "DynamoDbReviewQueue") as review_queue:
            services = registry.build_services(settings)

        profile_store.assert_called_once_with(
            "profiles", "profiles-identity-index", region_name="eu-west-2"
        )
        correlation_store.assert_called_once_with(
            "correlations", retention=timedelta(hours=1), region_name="eu-west-2"
        )
        review_queue.assert_called_once_with("reviews", region_name="eu-west-2")
        assert services.profile_store is profile_store.return_value

    def test_get_services_is_cached(self):
        from codshield.services import registry

        registry.set_services(None)
        try:
            assert registry.get_services() is registry.get_services()
        finally:
            registry.set_services(None)


class TestIdentityExtraction:
    def test_preference_order(self):
        order = {
            "email": "order@example.com",
            "customer": {"phone": None, "email": ""},
            "billing_address": {"phone": "0300 1111111", "email": "billing@example.com"},
            "shipping_address": {"phone": "0300 2222222"},
        }
        candidates = extract_identity_candidates(order)
        assert candidates.phone == "0300 1111111"
        assert candidates.email == "billing@example.com"

    def test_falls_through_to_shipping_and_order_email(self):
        order = {"email": "order@example.com", "shipping_address": {"phone": "0300 2222222"}}
        candidates = extract_identity_candidates(order)
        assert candidates.phone == "0300 2222222"
        assert candidates.email == "order@example.com"

    def test_empty_payload(self):
        assert extract_identity_candidates(None).is_empty()

    def test_explicit_candidates_win(self):
        merged = merge_candidates(
            IdentityCandidates(phone="1"), IdentityCandidates(phone="2", email="e@example.com")
        )
        assert merged.phone == "1"
        assert merged.email == "e@example.com"


class TestRetryOnConflict:
    def test_backoff_is_bounded(self):
        sleep = MagicMock()
        operation = MagicMock(side_effect=[ConcurrentUpdateConflict()] * 4 + ["done"])
        result = retry_on_conflict(
            operation,
            logger=logging.getLogger("test"),
            max_attempts=5,
            initial_delay_seconds=0.1,
            max_delay_seconds=0.3,
            sleep=sleep,
        )
        assert result == "done"
        assert [c.args[0] for c in sleep.call_args_list] == pytest.approx([0.1, 0.2, 0.3, 0.3])

    def test_other_errors_are_not_retried(self):
        operation = MagicMock(side_effect=NotFoundError())
        with pytest.raises(NotFoundError):
            retry_on_conflict(operation, logger=logging.getLogger("test"), sleep=MagicMock())
        assert operation.call_count == 1

    def test_exhaustion(self):
        operation = MagicMock(side_effect=ConcurrentUpdateConflict())
        with pytest.raises(ServiceUnavailableError) as exc_info:
            retry_on_conflict(operation, logger=logging.getLogger("test"), max_attempts=2, sleep=MagicMock())
        assert exc_info.value.status_code == 503


class TestLRUCache:
    def test_ttl_expiry(self, clock):
        cache = LRUCache(max_size=2, ttl_seconds=60, clock=clock)
        cache.set("a", 1)
        assert cache.get("a") == 1
        clock.advance(seconds=61)
        assert cache.get("a") is None

    def test_eviction(self, clock):
        cache = LRUCache(max_size=2, ttl_seconds=60, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)
        assert cache.get("b") is None
        assert cache.get("a") == 1
        assert cache.stats()["size"] == 2

    def test_get_or_load(self, clock):
        cache = LRUCache(clock=clock)
        loader = MagicMock(return_value="value")
        assert cache.get_or_load("k", loader) == "value"
        assert cache.get_or_load("k", loader) == "value"
        loader.assert_called_once()
        assert cache.delete("k") is True
        assert cache.delete("k") is False


class TestErrorsAndValidators:
    def test_to_response(self):
        resp = to_response(CorrelationExpired(), correlation_id="cid-1")
        assert resp["statusCode"] == 410
        body = json.loads(resp["body"])
        assert body == {
            "message": "Checkout correlation expired",
            "status": "error",
            "error": "CorrelationExpired",
            "correlation_id": "cid-1",
        }

    def test_expired_is_a_not_found(self):
        assert isinstance(CorrelationExpired(), CorrelationNotFound)

    def test_parse_json_body(self):
        assert parse_json_body({"body": '{"a": 1}'}) == {"a": 1}
        assert parse_json_body({"body": {"a": 1}}) == {"a": 1}
        assert parse_json_body({"a": 1, "requestContext": {}}) == {"a": 1}
        with pytest.raises(ValidationError):
            parse_json_body({"body": "[1, 2]"})

    def test_path_param(self):
        assert path_param({"pathParameters": {"hash": "abc"}}, "hash") == "abc"
        event = {"requestContext": {"http": {"path": "/profiles/abc/reset"}}}
        assert path_param(event, "hash", position=1) == "abc"
        with pytest.raises(ValidationError):
            path_param({"requestContext": {"http": {"path": "/profiles"}}}, "hash", position=1)


class TestLogging:
    def test_redaction_helpers(self):
        assert hash_prefix("abcdef0123456789") == "abcdef01"
        assert hash_prefix(None) is None
        assert token_suffix("checkout-token-12345678") == "12345678"

    def test_logger_is_configured_once(self):
        logger = get_logger("codshield.test")
        again = get_logger("codshield.test")
        assert logger is again
        assert len(logger.handlers) == 1
        assert logger.propagate is False
