"""
Handler for POST /checkout/decision.

On the checkout critical path: any failure short of a malformed request
yields ALLOW with an advisory instead of an error.
"""

from codshield.models.api import CheckoutDecisionRequest
from codshield.services.enforcement_service import ADVISORY_BACKEND_UNAVAILABLE, fail_open
from codshield.utils.error_handling import handle_errors, json_response
from codshield.utils.logging_config import get_logger
from codshield.utils.validators import parse_json_body

logger = get_logger(__name__)


def _get_services():
    """Lazy-load the shared services."""
    from codshield.services.registry import get_services

    return get_services()


@handle_errors
def lambda_handler(event, context):
    request = CheckoutDecisionRequest.model_validate(parse_json_body(event))
    try:
        services = _get_services()
        store_config = services.risk_configs.get(request.store_id)
        decision = services.enforcement.decide_for_checkout(request.identity_candidates, store_config)
    except Exception:
        logger.exception("Checkout decision unavailable; allowing", extra={"store_id": request.store_id})
        decision = fail_open(ADVISORY_BACKEND_UNAVAILABLE)
    return json_response(200, decision.model_dump_json())
