"""
Lazy service wiring shared by every handler.

Built once per warm Lambda container from Settings: DynamoDB stores when the
tables are configured, in-memory stores otherwise.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from codshield.config.settings import Settings
from codshield.repositories.correlation_store import (
    CorrelationStore,
    DynamoDbCorrelationStore,
    InMemoryCorrelationStore,
)
from codshield.repositories.dynamodb_repo import DynamoDbProfileStore
from codshield.repositories.postgres_repo import RiskConfigRepository, build_engine
from codshield.repositories.profile_store import InMemoryProfileStore, ProfileStore
from codshield.repositories.review_queue import DynamoDbReviewQueue, InMemoryReviewQueue, ReviewQueue
from codshield.services.correlation_matcher import CorrelationMatcher
from codshield.services.enforcement_service import EnforcementService
from codshield.services.event_processor import EventProcessor
from codshield.services.identity_hasher import IdentityHasher
from codshield.services.profile_service import ProfileService
from codshield.services.risk_config_service import RiskConfigService
from codshield.utils.cache_service import LRUCache
from codshield.utils.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class Services:
    settings: Settings
    hasher: IdentityHasher
    profile_store: ProfileStore
    correlation_store: CorrelationStore
    review_queue: ReviewQueue
    risk_configs: RiskConfigService
    correlation_matcher: CorrelationMatcher
    event_processor: EventProcessor
    profiles: ProfileService
    enforcement: EnforcementService


def build_services(
    settings: Settings,
    profile_store: Optional[ProfileStore] = None,
    correlation_store: Optional[CorrelationStore] = None,
    review_queue: Optional[ReviewQueue] = None,
    config_repository: Optional[RiskConfigRepository] = None,
) -> Services:
    """Wire every service; explicit stores win over what Settings implies."""
    default_config = settings.default_risk_config()
    hasher = IdentityHasher(settings.identity_hash_salt, settings.default_country_code)

    if profile_store is None:
        if settings.uses_dynamodb:
            profile_store = DynamoDbProfileStore(
                settings.profiles_table,
                settings.identity_index_table or f"{settings.profiles_table}-identity-index",
                region_name=settings.aws_region,
            )
        else:
            profile_store = InMemoryProfileStore()
    if correlation_store is None:
        if settings.uses_dynamodb:
            correlation_store = DynamoDbCorrelationStore(
                settings.correlations_table,
                retention=timedelta(seconds=settings.correlation_retention_seconds),
                region_name=settings.aws_region,
            )
        else:
            correlation_store = InMemoryCorrelationStore()
    if review_queue is None:
        review_queue = (
            DynamoDbReviewQueue(settings.review_table, region_name=settings.aws_region)
            if settings.review_table
            else InMemoryReviewQueue()
        )
    if config_repository is None and settings.database_url:
        config_repository = RiskConfigRepository(build_engine(settings.database_url))
        config_repository.ensure_schema()

    risk_configs = RiskConfigService(
        default_config,
        repository=config_repository,
        cache=LRUCache(max_size=settings.cache_max_size, ttl_seconds=settings.cache_ttl_seconds),
    )
    matcher = CorrelationMatcher(
        hasher,
        correlation_store,
        default_ttl_seconds=settings.correlation_ttl_seconds,
        retention_seconds=settings.correlation_retention_seconds,
    )
    processor = EventProcessor(
        hasher,
        profile_store,
        risk_configs.get,
        correlation_matcher=matcher,
        review_queue=review_queue,
        max_attempts=settings.update_max_attempts,
        initial_delay_seconds=settings.update_initial_delay_ms / 1000,
        max_delay_seconds=settings.update_max_delay_ms / 1000,
    )
    profiles = ProfileService(
        hasher, profile_store, default_config, max_attempts=settings.update_max_attempts
    )
    enforcement = EnforcementService(
        hasher, profile_store, timeout_seconds=settings.decision_timeout_ms / 1000
    )

    logger.info(
        "Services wired",
        extra={
            "environment": settings.environment,
            "dynamodb": settings.uses_dynamodb,
            "config_db": config_repository is not None,
        },
    )
    return Services(
        settings=settings,
        hasher=hasher,
        profile_store=profile_store,
        correlation_store=correlation_store,
        review_queue=review_queue,
        risk_configs=risk_configs,
        correlation_matcher=matcher,
        event_processor=processor,
        profiles=profiles,
        enforcement=enforcement,
    )


_services: Optional[Services] = None


def get_services() -> Services:
    """Build services on first use (one per warm container)."""
    global _services
    if _services is None:
        _services = build_services(Settings.from_environment())
    return _services


def set_services(services: Optional[Services]) -> None:
    """Install (or with None, drop) the shared services; used by tests."""
    global _services
    _services = services
