"""Checkout correlation handlers: open, match, and the scheduled sweep."""

from codshield.models.correlation import (
    CorrelationView,
    MatchCorrelationRequest,
    MatchOutcome,
    OpenCorrelationRequest,
)
from codshield.utils.error_handling import handle_errors, json_response
from codshield.utils.logging_config import get_logger
from codshield.utils.validators import parse_json_body, path_param

logger = get_logger(__name__)


def _get_services():
    """Lazy-load the shared services."""
    from codshield.services.registry import get_services

    return get_services()


@handle_errors
def open_handler(event, context):
    """Handle POST /correlations."""
    request = OpenCorrelationRequest.model_validate(parse_json_body(event))
    correlation = _get_services().correlation_matcher.open(
        request.checkout_token, request.identity_candidates, request.ttl_seconds
    )
    return json_response(201, CorrelationView.from_correlation(correlation).model_dump_json())


@handle_errors
def match_handler(event, context):
    """Handle POST /correlations/{token}/match."""
    token = path_param(event, "token", position=1)
    request = MatchCorrelationRequest.model_validate(parse_json_body(event))
    result = _get_services().correlation_matcher.match(token, request.order_id)
    status = 200 if result.outcome is MatchOutcome.MATCHED else 409
    return json_response(
        status, CorrelationView.from_correlation(result.correlation, result.outcome).model_dump_json()
    )


def sweep_handler(event, context):
    """Scheduled (EventBridge) sweep of overdue and retired correlations."""
    result = _get_services().correlation_matcher.sweep()
    return result.model_dump()
