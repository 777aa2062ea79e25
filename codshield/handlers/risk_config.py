"""Handlers for GET/PUT /stores/{store_id}/risk-config."""

from codshield.utils.error_handling import (
    AppError,
    ConfigurationInvalid,
    ValidationError,
    handle_errors,
    json_response,
)
from codshield.utils.validators import parse_json_body, path_param


def _get_services():
    """Lazy-load the shared services."""
    from codshield.services.registry import get_services

    return get_services()


def _config_body(store_id: str, config) -> dict:
    return {"store_id": store_id, "config": config.model_dump(mode="json")}


@handle_errors
def get_handler(event, context):
    store_id = path_param(event, "store_id", position=1)
    config = _get_services().risk_configs.get(store_id)
    return json_response(200, _config_body(store_id, config))


@handle_errors
def put_handler(event, context):
    store_id = path_param(event, "store_id", position=1)
    overrides = parse_json_body(event)
    service = _get_services().risk_configs
    if service.repository is None:
        raise AppError("Risk configuration storage is not configured", status_code=501)
    try:
        config = service.put(store_id, overrides)
    except ConfigurationInvalid as exc:
        raise ValidationError(str(exc)) from exc
    return json_response(200, _config_body(store_id, config))
