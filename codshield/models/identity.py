"""Identity models. Only hashes ever leave the hasher."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, field_validator


class IdentityKind(str, Enum):
    """Identifier kinds, in resolution preference order."""

    PHONE = "phone"
    EMAIL = "email"


class IdentityCandidates(BaseModel):
    """Raw identifiers as supplied by a storefront. Never persisted."""

    phone: Optional[str] = None
    email: Optional[str] = None

    @field_validator("phone", "email", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    def is_empty(self) -> bool:
        return self.phone is None and self.email is None

    def __repr__(self) -> str:
        # Keep raw values out of tracebacks and debug output.
        return f"IdentityCandidates(phone={'***' if self.phone else None}, email={'***' if self.email else None})"

    __str__ = __repr__


class HashedIdentity(BaseModel):
    """Salted identity tokens for one customer, phone preferred."""

    phone_hash: Optional[str] = None
    email_hash: Optional[str] = None

    def ordered(self) -> List[str]:
        """Hashes in preference order (phone first), without blanks."""
        return [h for h in (self.phone_hash, self.email_hash) if h]

    def is_empty(self) -> bool:
        return not self.ordered()

    @property
    def primary(self) -> Optional[str]:
        hashes = self.ordered()
        return hashes[0] if hashes else None

    def merged_with(self, other: "HashedIdentity") -> "HashedIdentity":
        """Fill gaps from ``other`` without overriding known hashes."""
        return HashedIdentity(
            phone_hash=self.phone_hash or other.phone_hash,
            email_hash=self.email_hash or other.email_hash,
        )
