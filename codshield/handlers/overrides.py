"""Manual override and administrative reset handlers for /profiles/{hash}/..."""

from codshield.models.api import OverrideRequest, ResetRequest
from codshield.models.profile import CustomerProfile
from codshield.models.response import ApiResponse, ProfileSnapshot
from codshield.utils.error_handling import handle_errors, json_response
from codshield.utils.validators import parse_json_body, path_param


def _get_services():
    """Lazy-load the shared services."""
    from codshield.services.registry import get_services

    return get_services()


def _profile_response(message: str, profile: CustomerProfile):
    return json_response(
        200,
        ApiResponse(message=message, data=ProfileSnapshot.of(profile)).model_dump_json(),
    )


@handle_errors
def set_override_handler(event, context):
    """Handle PUT /profiles/{hash}/override."""
    identity_hash = path_param(event, "hash", position=1)
    request = OverrideRequest.model_validate(parse_json_body(event))
    profile = _get_services().profiles.set_override(
        identity_hash, request.tier, request.reason, request.expires_at
    )
    return _profile_response("Override set", profile)


@handle_errors
def clear_override_handler(event, context):
    """Handle DELETE /profiles/{hash}/override."""
    identity_hash = path_param(event, "hash", position=1)
    profile = _get_services().profiles.clear_override(identity_hash)
    return _profile_response("Override cleared", profile)


@handle_errors
def reset_handler(event, context):
    """Handle POST /profiles/{hash}/reset."""
    identity_hash = path_param(event, "hash", position=1)
    request = ResetRequest.model_validate(parse_json_body(event))
    profile = _get_services().profiles.reset_counters(identity_hash, request.reason)
    return _profile_response("Counters reset", profile)
