"""
Profile Store contract and an in-memory implementation.

Profiles are keyed by their primary identity hash. Secondary hashes (email
hash and the like) resolve through an identity index. Every write is a
version-checked commit: a profile loaded at version N can only be committed
over version N, so two racing writers for one customer never lose an update.
The applied-event dedupe keys live on the profile itself and are therefore
committed atomically with the counters they guard.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from threading import RLock
from typing import Dict, Iterable, Optional

from codshield.models.profile import CustomerProfile
from codshield.utils.error_handling import ConcurrentUpdateConflict


class ProfileStore(ABC):
    """Logical key/aggregate store keyed by identity hash."""

    @abstractmethod
    def get(self, identity_hash: str) -> Optional[CustomerProfile]:
        """Profile whose primary hash is ``identity_hash``."""

    @abstractmethod
    def owner_of(self, identity_hash: str) -> Optional[str]:
        """Primary hash of the profile that lists ``identity_hash`` as secondary."""

    @abstractmethod
    def commit(self, profile: CustomerProfile, expected_version: int) -> CustomerProfile:
        """
        Persist ``profile`` if the stored version still equals
        ``expected_version`` (0 means "must not exist yet").

        Secondary hashes are claimed in the same write: a hash already indexed
        to, or used as the primary of, another profile is a conflict, as is a
        primary hash indexed elsewhere.

        Returns the stored profile with its bumped version; raises
        ConcurrentUpdateConflict otherwise.
        """

    @abstractmethod
    def delete(self, identity_hash: str) -> bool:
        """Remove a profile and its identity index entries."""

    def find(self, identity_hash: str) -> Optional[CustomerProfile]:
        """Resolve by primary hash, falling back to the secondary index."""
        profile = self.get(identity_hash)
        if profile is not None:
            return profile
        primary = self.owner_of(identity_hash)
        return self.get(primary) if primary else None

    def find_any(self, identity_hashes: Iterable[str]) -> Optional[CustomerProfile]:
        """First profile reachable from the hashes, in preference order."""
        for identity_hash in identity_hashes:
            profile = self.find(identity_hash)
            if profile is not None:
                return profile
        return None


class InMemoryProfileStore(ProfileStore):
    """Thread-safe store for local runs and tests, same semantics as DynamoDB."""

    def __init__(self) -> None:
        self._profiles: Dict[str, CustomerProfile] = {}
        self._index: Dict[str, str] = {}
        self._lock = RLock()

    def get(self, identity_hash: str) -> Optional[CustomerProfile]:
        with self._lock:
            profile = self._profiles.get(identity_hash)
            return profile.model_copy(deep=True) if profile else None

    def owner_of(self, identity_hash: str) -> Optional[str]:
        with self._lock:
            return self._index.get(identity_hash)

    def commit(self, profile: CustomerProfile, expected_version: int) -> CustomerProfile:
        with self._lock:
            current = self._profiles.get(profile.identity_hash)
            current_version = current.version if current else 0
            if current_version != expected_version:
                raise ConcurrentUpdateConflict(
                    f"expected version {expected_version}, found {current_version}"
                )
            if profile.identity_hash in self._index:
                raise ConcurrentUpdateConflict("primary hash is indexed to another profile")
            for secondary in profile.secondary_hashes:
                owner = self._index.get(secondary, profile.identity_hash)
                if owner != profile.identity_hash or secondary in self._profiles:
                    raise ConcurrentUpdateConflict("identity hash belongs to another profile")

            stored = profile.model_copy(update={"version": expected_version + 1}, deep=True)
            self._profiles[stored.identity_hash] = stored
            if current:
                for dropped in current.secondary_hashes - stored.secondary_hashes:
                    self._index.pop(dropped, None)
            for secondary in stored.secondary_hashes:
                self._index[secondary] = stored.identity_hash
            return stored.model_copy(deep=True)

    def delete(self, identity_hash: str) -> bool:
        with self._lock:
            profile = self._profiles.pop(identity_hash, None)
            if profile is None:
                return False
            for secondary in profile.secondary_hashes:
                if self._index.get(secondary) == identity_hash:
                    del self._index[secondary]
            return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._profiles)
