"""
Pytest configuration: import path, offline AWS defaults and shared fixtures.

Tests run against the in-memory stores; DynamoDB and SQL repositories are
exercised with mocked boto3 objects and an in-memory SQLite engine.
"""

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import boto3
import pytest


def _ensure_repo_root_on_sys_path() -> None:
    """Make ``codshield`` importable without an editable install."""
    repo_root = str(Path(__file__).resolve().parents[1])
    if repo_root not in sys.path:
        sys.path.insert(0, repo_root)


_ensure_repo_root_on_sys_path()

# Ensure boto3 has offline-friendly defaults so tests do not require AWS access.
os.environ.setdefault("AWS_REGION", "eu-west-2")
os.environ.setdefault("AWS_DEFAULT_REGION", "eu-west-2")
os.environ.setdefault("AWS_ACCESS_KEY_ID", "test")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "test")
os.environ.setdefault("AWS_SESSION_TOKEN", "test")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")

# Required scoring parameters; no table names so every store is in-memory.
os.environ.setdefault("IDENTITY_HASH_SALT", "unit-test-salt-0123456789")
os.environ.setdefault("RISK_DECAY_HALF_LIFE_DAYS", "30")
os.environ.setdefault("RISK_GRACE_DAMPENING", "0.7")

# Create a default boto3 session so resources/clients do not error during import.
boto3.setup_default_session(region_name="eu-west-2")

TEST_SALT = "unit-test-salt-0123456789"
T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock shared by services under test."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def risk_config():
    from codshield.models.risk_config import RiskConfiguration

    return RiskConfiguration(decay_half_life_days=30, grace_dampening=0.7)


@pytest.fixture
def hasher():
    from codshield.services.identity_hasher import IdentityHasher

    return IdentityHasher(TEST_SALT, "92")


@pytest.fixture
def profile_store():
    from codshield.repositories.profile_store import InMemoryProfileStore

    return InMemoryProfileStore()


@pytest.fixture
def correlation_store():
    from codshield.repositories.correlation_store import InMemoryCorrelationStore

    return InMemoryCorrelationStore()


@pytest.fixture
def review_queue():
    from codshield.repositories.review_queue import InMemoryReviewQueue

    return InMemoryReviewQueue()


@pytest.fixture
def matcher(hasher, correlation_store, clock):
    from codshield.services.correlation_matcher import CorrelationMatcher

    return CorrelationMatcher(hasher, correlation_store, clock=clock)


@pytest.fixture
def processor(hasher, profile_store, matcher, review_queue, risk_config, clock):
    from codshield.services.event_processor import EventProcessor

    return EventProcessor(
        hasher,
        profile_store,
        lambda store_id: risk_config,
        correlation_matcher=matcher,
        review_queue=review_queue,
        clock=clock,
        sleep=lambda _seconds: None,
    )


@pytest.fixture
def services():
    """Fresh in-memory service container installed for the handlers."""
    from codshield.config.settings import Settings
    from codshield.services import registry

    built = registry.build_services(Settings.from_environment())
    registry.set_services(built)
    yield built
    registry.set_services(None)
