"""
Environment-specific configuration settings.

Everything is read from environment variables so the same bundle runs in
every stage; ``prod`` tightens the defaults.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Optional

from codshield.models.risk_config import RiskConfiguration
from codshield.utils.error_handling import ConfigurationInvalid

SALT_MIN_LENGTH = 16
DEV_ENVIRONMENTS = ("dev", "test")
DEV_SALT = "codshield-dev-salt-not-for-production"


@dataclass
class Settings:
    """Application settings."""

    environment: str = "dev"
    aws_region: str = "eu-west-2"

    # Identity hashing
    identity_hash_salt: str = DEV_SALT
    default_country_code: str = "92"

    # DynamoDB tables; unset means in-memory stores (local runs and tests)
    profiles_table: Optional[str] = None
    identity_index_table: Optional[str] = None
    correlations_table: Optional[str] = None
    review_table: Optional[str] = None

    # Relational store for per-store risk configuration
    database_url: Optional[str] = None

    # Checkout correlation
    correlation_ttl_seconds: int = 24 * 3600
    correlation_retention_seconds: int = 3600

    # Checkout decision latency budget
    decision_timeout_ms: int = 800

    # Optimistic concurrency retry budget
    update_max_attempts: int = 5
    update_initial_delay_ms: int = 20
    update_max_delay_ms: int = 500

    # Risk configuration cache
    cache_ttl_seconds: int = 300
    cache_max_size: int = 256

    # Platform default risk configuration (JSON); the two required scoring
    # parameters come from their own variables.
    default_risk_config_json: Optional[str] = None
    decay_half_life_days: Optional[float] = None
    grace_dampening: Optional[float] = None

    def __post_init__(self) -> None:
        if self.environment not in DEV_ENVIRONMENTS:
            if not self.identity_hash_salt or self.identity_hash_salt == DEV_SALT:
                raise ConfigurationInvalid("IDENTITY_HASH_SALT must be set outside dev/test")
        if len(self.identity_hash_salt or "") < SALT_MIN_LENGTH:
            raise ConfigurationInvalid("IDENTITY_HASH_SALT is too short")
        if bool(self.profiles_table) != bool(self.correlations_table):
            raise ConfigurationInvalid("PROFILES_TABLE and CORRELATIONS_TABLE must be set together")
        if self.environment not in DEV_ENVIRONMENTS and not self.uses_dynamodb:
            raise ConfigurationInvalid("DynamoDB tables must be configured outside dev/test")
        if not self.default_country_code.isdigit():
            raise ConfigurationInvalid("DEFAULT_COUNTRY_CODE must be digits only")
        if self.decision_timeout_ms <= 0 or self.update_max_attempts <= 0:
            raise ConfigurationInvalid("Timeouts and retry budgets must be positive")

    @property
    def uses_dynamodb(self) -> bool:
        return bool(self.profiles_table and self.correlations_table)

    def default_risk_config(self) -> RiskConfiguration:
        """Build and validate the platform default risk configuration."""
        data = {}
        if self.default_risk_config_json:
            try:
                data = json.loads(self.default_risk_config_json)
            except json.JSONDecodeError as exc:
                raise ConfigurationInvalid("DEFAULT_RISK_CONFIG is not valid JSON") from exc
        if self.decay_half_life_days is not None:
            data["decay_half_life_days"] = self.decay_half_life_days
        if self.grace_dampening is not None:
            data["grace_dampening"] = self.grace_dampening
        return RiskConfiguration.from_mapping(data)

    @classmethod
    def from_environment(cls) -> "Settings":
        """Load settings from environment variables."""
        env = os.environ.get("ENVIRONMENT", "dev")

        def _int(name: str, default: int) -> int:
            raw = os.environ.get(name)
            try:
                return int(raw) if raw else default
            except ValueError as exc:
                raise ConfigurationInvalid(f"{name} must be an integer") from exc

        def _float(name: str) -> Optional[float]:
            raw = os.environ.get(name)
            try:
                return float(raw) if raw else None
            except ValueError as exc:
                raise ConfigurationInvalid(f"{name} must be a number") from exc

        settings = cls(
            environment=env,
            aws_region=os.environ.get("AWS_REGION", "eu-west-2"),
            identity_hash_salt=os.environ.get(
                "IDENTITY_HASH_SALT", DEV_SALT if env in DEV_ENVIRONMENTS else ""
            ),
            default_country_code=os.environ.get("DEFAULT_COUNTRY_CODE", "92"),
            profiles_table=os.environ.get("PROFILES_TABLE"),
            identity_index_table=os.environ.get("IDENTITY_INDEX_TABLE"),
            correlations_table=os.environ.get("CORRELATIONS_TABLE"),
            review_table=os.environ.get("REVIEW_TABLE"),
            database_url=os.environ.get("DATABASE_URL"),
            correlation_ttl_seconds=_int("CORRELATION_TTL_SECONDS", 24 * 3600),
            correlation_retention_seconds=_int("CORRELATION_RETENTION_SECONDS", 3600),
            decision_timeout_ms=_int("DECISION_TIMEOUT_MS", 800),
            update_max_attempts=_int("UPDATE_MAX_ATTEMPTS", 5),
            update_initial_delay_ms=_int("UPDATE_INITIAL_DELAY_MS", 20),
            update_max_delay_ms=_int("UPDATE_MAX_DELAY_MS", 500),
            cache_ttl_seconds=_int("CACHE_TTL_SECONDS", 300),
            cache_max_size=_int("CACHE_MAX_SIZE", 256),
            default_risk_config_json=os.environ.get("DEFAULT_RISK_CONFIG"),
            decay_half_life_days=_float("RISK_DECAY_HALF_LIFE_DAYS"),
            grace_dampening=_float("RISK_GRACE_DAMPENING"),
        )

        # Production overrides
        if env == "prod":
            settings.decision_timeout_ms = min(settings.decision_timeout_ms, 500)
            settings.cache_ttl_seconds = max(settings.cache_ttl_seconds, 600)

        return settings
