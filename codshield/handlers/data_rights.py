"""
Data-rights handlers.

DELETE /profiles/{hash} erases one profile. POST /data-rights/redact and
POST /data-rights/export take raw identifiers (flat, or a storefront
``customer`` block) and erase or return every profile reachable from them.
"""

from codshield.models.api import DataExport, DeletionResult, RedactionRequest
from codshield.utils.error_handling import NotFoundError, handle_errors, json_response
from codshield.utils.logging_config import get_logger
from codshield.utils.validators import parse_json_body, path_param

logger = get_logger(__name__)


def _get_services():
    """Lazy-load the shared services."""
    from codshield.services.registry import get_services

    return get_services()


@handle_errors
def delete_handler(event, context):
    """Handle DELETE /profiles/{hash}."""
    identity_hash = path_param(event, "hash", position=1)
    if not _get_services().profiles.delete_profile(identity_hash):
        raise NotFoundError("Customer profile not found")
    return json_response(200, DeletionResult(deleted=1).model_dump_json())


@handle_errors
def redact_handler(event, context):
    """Handle POST /data-rights/redact."""
    request = RedactionRequest.model_validate(parse_json_body(event))
    deleted = _get_services().profiles.redact(request.candidates())
    logger.info("Redaction request processed", extra={"deleted": deleted})
    return json_response(200, DeletionResult(deleted=deleted).model_dump_json())


@handle_errors
def export_handler(event, context):
    """Handle POST /data-rights/export."""
    request = RedactionRequest.model_validate(parse_json_body(event))
    profiles = _get_services().profiles.export(request.candidates())
    return json_response(200, DataExport(profiles=profiles).model_dump_json())
