"""Pull raw identity candidates out of a storefront order payload."""

from typing import Any, Dict, Iterable, Optional

from codshield.models.identity import IdentityCandidates


def _first(values: Iterable[Any]) -> Optional[str]:
    for value in values:
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def extract_identity_candidates(order: Optional[Dict[str, Any]]) -> IdentityCandidates:
    """
    Phone from customer, then billing, then shipping address; email from
    customer, billing address, then the order itself.
    """
    order = order or {}
    customer = order.get("customer") or {}
    billing = order.get("billing_address") or {}
    shipping = order.get("shipping_address") or {}
    return IdentityCandidates(
        phone=_first([customer.get("phone"), billing.get("phone"), shipping.get("phone"), order.get("phone")]),
        email=_first([customer.get("email"), billing.get("email"), order.get("email")]),
    )


def merge_candidates(primary: IdentityCandidates, fallback: IdentityCandidates) -> IdentityCandidates:
    """Explicit candidates win; the payload only fills the gaps."""
    return IdentityCandidates(
        phone=primary.phone or fallback.phone,
        email=primary.email or fallback.email,
    )
