"""Handler for POST /profiles/query. Identifiers travel in the body, never the URL."""

from codshield.models.api import ProfileQueryRequest
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
    """Return the hash-keyed aggregate risk view for a customer."""
    request = ProfileQueryRequest.model_validate(parse_json_body(event))
    services = _get_services()
    config = services.risk_configs.get(request.store_id)
    summary = services.profiles.query_profile(request.identity_candidates, config)
    logger.info(
        "Risk profile served",
        extra={"store_id": request.store_id, "risk_tier": summary.risk_tier.value},
    )
    return json_response(200, summary.model_dump_json())
