"""
Identity normalization and keyed hashing.

Phones are reduced to digits and coerced to E.164; emails are trimmed and
lower-cased. The normalized value is HMAC-SHA256'd under a secret salt with
the identifier kind as namespace, so a phone and an email can never collide
and tokens cannot be reversed without the salt. Raw values are never logged.
"""

from __future__ import annotations

import hashlib
import hmac
import re
from dataclasses import dataclass, field
from typing import List, Optional

from codshield.models.identity import HashedIdentity, IdentityCandidates, IdentityKind
from codshield.utils.error_handling import (
    ConfigurationInvalid,
    UnidentifiableEvent,
    UnresolvableIdentity,
)
from codshield.utils.logging_config import get_logger

logger = get_logger(__name__)

E164_MIN_DIGITS = 8
E164_MAX_DIGITS = 15
NATIONAL_NUMBER_MAX_DIGITS = 10
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
NON_DIGITS = re.compile(r"\D")


def normalize_phone(raw_value: Optional[str], default_country_code: str) -> str:
    """
    Canonical ``+<digits>`` form of a phone number.

    ``+92-300-1234567``, ``0092 300 1234567``, ``0300-1234567`` and
    ``3001234567`` all normalize to ``+923001234567`` when the default
    country code is ``92``.
    """
    text = (raw_value or "").strip()
    digits = NON_DIGITS.sub("", text)
    if not digits:
        raise UnresolvableIdentity(IdentityKind.PHONE.value, "has no digits")

    if text.startswith("+"):
        canonical = digits
    elif digits.startswith("00"):
        canonical = digits[2:]
    elif digits.startswith("0"):
        canonical = default_country_code + digits[1:]
    elif digits.startswith(default_country_code) and len(digits) > NATIONAL_NUMBER_MAX_DIGITS:
        canonical = digits
    else:
        canonical = default_country_code + digits

    if canonical.startswith("0") or not E164_MIN_DIGITS <= len(canonical) <= E164_MAX_DIGITS:
        raise UnresolvableIdentity(IdentityKind.PHONE.value, "has no canonical international form")
    return f"+{canonical}"


def normalize_email(raw_value: Optional[str]) -> str:
    normalized = (raw_value or "").strip().lower()
    if not normalized:
        raise UnresolvableIdentity(IdentityKind.EMAIL.value, "is empty")
    if not EMAIL_PATTERN.match(normalized):
        raise UnresolvableIdentity(IdentityKind.EMAIL.value, "is not a valid address")
    return normalized


def normalize(kind: IdentityKind, raw_value: Optional[str], default_country_code: str = "92") -> str:
    if kind is IdentityKind.PHONE:
        return normalize_phone(raw_value, default_country_code)
    if kind is IdentityKind.EMAIL:
        return normalize_email(raw_value)
    raise ValueError(f"Unsupported identity kind: {kind}")


def compute_hmac(value: str, salt: str, *, namespace: str) -> str:
    """Namespaced hex HMAC-SHA256 digest."""
    scoped = f"{namespace}:{value}"
    return hmac.new(salt.encode("utf-8"), scoped.encode("utf-8"), hashlib.sha256).hexdigest()


def hash_identity(
    kind: IdentityKind, raw_value: Optional[str], salt: str, default_country_code: str = "92"
) -> str:
    """Normalize then hash one raw identifier."""
    if not salt:
        raise ConfigurationInvalid("Identity hash salt is not configured")
    normalized = normalize(kind, raw_value, default_country_code)
    return compute_hmac(normalized, salt, namespace=kind.value)


@dataclass
class ResolvedIdentity:
    """Hashes that could be derived from a candidate set, plus what was rejected."""

    hashed: HashedIdentity
    rejected: List[IdentityKind] = field(default_factory=list)

    def ordered(self) -> List[str]:
        return self.hashed.ordered()


class IdentityHasher:
    """Salted hasher bound to one deployment's salt and default country."""

    def __init__(self, salt: str, default_country_code: str = "92"):
        if not salt:
            raise ConfigurationInvalid("Identity hash salt is not configured")
        self._salt = salt
        self.default_country_code = default_country_code

    def hash(self, kind: IdentityKind, raw_value: Optional[str]) -> str:
        return hash_identity(kind, raw_value, self._salt, self.default_country_code)

    def guess_kind(self, raw_value: str) -> IdentityKind:
        return IdentityKind.EMAIL if "@" in (raw_value or "") else IdentityKind.PHONE

    def resolve(self, candidates: IdentityCandidates) -> ResolvedIdentity:
        """
        Hash every usable candidate.

        Individually unresolvable candidates are skipped and reported; only
        when nothing resolves does this raise UnidentifiableEvent.
        """
        hashes = {}
        rejected: List[IdentityKind] = []
        for kind, raw in ((IdentityKind.PHONE, candidates.phone), (IdentityKind.EMAIL, candidates.email)):
            if raw is None:
                continue
            try:
                hashes[kind] = self.hash(kind, raw)
            except UnresolvableIdentity as exc:
                rejected.append(kind)
                logger.warning(
                    "Identity candidate rejected",
                    extra={"kind": kind.value, "reason": exc.reason},
                )

        hashed = HashedIdentity(
            phone_hash=hashes.get(IdentityKind.PHONE),
            email_hash=hashes.get(IdentityKind.EMAIL),
        )
        if hashed.is_empty():
            raise UnidentifiableEvent(rejected=[kind.value for kind in rejected])
        return ResolvedIdentity(hashed=hashed, rejected=rejected)
