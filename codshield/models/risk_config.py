"""Per-store risk configuration."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from codshield.models.profile import RiskTier
from codshield.utils.error_handling import ConfigurationInvalid


class EnforcementAction(str, Enum):
    """Checkout-time actions, least to most restrictive."""

    ALLOW = "ALLOW"
    REQUIRE_CONFIRMATION = "REQUIRE_CONFIRMATION"
    REQUIRE_DEPOSIT = "REQUIRE_DEPOSIT"
    BLOCK_COD = "BLOCK_COD"


def _default_tier_actions() -> Dict[RiskTier, EnforcementAction]:
    return {
        RiskTier.ZERO_RISK: EnforcementAction.ALLOW,
        RiskTier.MEDIUM_RISK: EnforcementAction.REQUIRE_CONFIRMATION,
        RiskTier.HIGH_RISK: EnforcementAction.REQUIRE_DEPOSIT,
    }


class RiskConfiguration(BaseModel):
    """
    Scoring coefficients, tier thresholds and the tier->action mapping.

    ``decay_half_life_days`` and ``grace_dampening`` have no defaults: a
    store (or the platform default) must choose them.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    zero_max: float = Field(25.0, ge=0, le=100)
    medium_max: float = Field(60.0, ge=0, le=100)

    failure_weight: float = Field(40.0, ge=0)
    return_weight: float = Field(30.0, ge=0)

    decay_half_life_days: float = Field(..., gt=0)
    recency_boost: float = Field(2.0, ge=1)

    grace_order_threshold: int = Field(3, ge=0)
    grace_dampening: float = Field(..., gt=0, le=1)

    high_value_threshold: float = Field(5000.0, ge=0)
    high_value_penalty: float = Field(20.0, ge=0)

    serial_offender_threshold: int = Field(5, ge=1)
    serial_offender_penalty: float = Field(20.0, ge=0)

    enable_cod_restriction: bool = True
    tier_actions: Dict[RiskTier, EnforcementAction] = Field(default_factory=_default_tier_actions)
    deposit_percent: float = Field(50.0, gt=0, le=100)

    @model_validator(mode="after")
    def check_consistency(self) -> "RiskConfiguration":
        if self.medium_max <= self.zero_max:
            raise ValueError("medium_max must be greater than zero_max")
        missing = [tier.value for tier in RiskTier if tier not in self.tier_actions]
        if missing:
            raise ValueError(f"tier_actions missing tiers: {', '.join(missing)}")
        return self

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "RiskConfiguration":
        """Validate a raw mapping, reporting any problem as ConfigurationInvalid."""
        try:
            return cls.model_validate(dict(data))
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}"
                for err in exc.errors()
            )
            raise ConfigurationInvalid(f"Invalid risk configuration: {problems}") from exc

    def merged(self, overrides: Mapping[str, Any]) -> "RiskConfiguration":
        """Apply partial overrides on top of this configuration."""
        data = self.model_dump()
        data.update(overrides)
        return RiskConfiguration.from_mapping(data)
