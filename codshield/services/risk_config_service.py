"""
Risk Configuration Service.

Resolves the effective RiskConfiguration for a store: the store's own
document layered over the platform default, validated, and cached between
warm invocations. Without a database every store gets the default.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from codshield.models.risk_config import RiskConfiguration
from codshield.repositories.postgres_repo import RiskConfigRepository
from codshield.utils.cache_service import LRUCache
from codshield.utils.logging_config import get_logger

logger = get_logger(__name__)


class RiskConfigService:
    """Per-store configuration lookups with caching."""

    def __init__(
        self,
        default_config: RiskConfiguration,
        repository: Optional[RiskConfigRepository] = None,
        cache: Optional[LRUCache] = None,
    ):
        self.default_config = default_config
        self.repository = repository
        self.cache = cache or LRUCache(max_size=256, ttl_seconds=300)
        if repository is None:
            logger.warning("No risk configuration database; all stores use the default")

    def get(self, store_id: Optional[str]) -> RiskConfiguration:
        """
        Effective configuration for ``store_id``.

        A stored document that fails validation raises ConfigurationInvalid
        rather than quietly falling back to the default thresholds.
        """
        if not store_id or self.repository is None:
            return self.default_config
        return self.cache.get_or_load(f"risk-config:{store_id}", lambda: self._load(store_id))

    def _load(self, store_id: str) -> RiskConfiguration:
        document = self.repository.fetch(store_id)
        if document is None:
            return self.default_config
        config = self.default_config.merged(document)
        logger.info("Store risk configuration loaded", extra={"store_id": store_id})
        return config

    def put(self, store_id: str, overrides: Mapping[str, Any]) -> RiskConfiguration:
        """Validate and persist a store's configuration document."""
        if self.repository is None:
            raise RuntimeError("Risk configuration database is not configured")
        config = self.default_config.merged(overrides)
        self.repository.upsert(store_id, dict(config.model_dump(mode="json")))
        self.cache.delete(f"risk-config:{store_id}")
        logger.info(
            "Store risk configuration updated",
            extra={"store_id": store_id, "fields": sorted(overrides)},
        )
        return config
