"""
Single entrypoint Lambda that routes HTTP API requests to thin handler modules.

One Lambda keeps the warm service container (stores, config cache) shared
across routes while the code stays organized by delegating to modules.
"""

import re
from typing import Pattern, Tuple

from codshield.handlers import (
    correlation,
    data_rights,
    enforcement,
    health_check,
    order_events,
    overrides,
    risk_config,
    risk_profile,
)
from codshield.utils.error_handling import json_response
from codshield.utils.validators import request_path

_SEGMENT = r"[^/]+"

# (method, path pattern, module, handler name); most specific first.
_ROUTES = (
    ("GET", "/health", health_check, "lambda_handler"),
    ("POST", "/events", order_events, "lambda_handler"),
    ("POST", "/correlations", correlation, "open_handler"),
    ("POST", f"/correlations/{_SEGMENT}/match", correlation, "match_handler"),
    ("POST", "/profiles/query", risk_profile, "lambda_handler"),
    ("POST", "/checkout/decision", enforcement, "lambda_handler"),
    ("PUT", f"/profiles/{_SEGMENT}/override", overrides, "set_override_handler"),
    ("DELETE", f"/profiles/{_SEGMENT}/override", overrides, "clear_override_handler"),
    ("POST", f"/profiles/{_SEGMENT}/reset", overrides, "reset_handler"),
    ("DELETE", f"/profiles/{_SEGMENT}", data_rights, "delete_handler"),
    ("POST", "/data-rights/redact", data_rights, "redact_handler"),
    ("POST", "/data-rights/export", data_rights, "export_handler"),
    ("GET", f"/stores/{_SEGMENT}/risk-config", risk_config, "get_handler"),
    ("PUT", f"/stores/{_SEGMENT}/risk-config", risk_config, "put_handler"),
)

ROUTE_TABLE: Tuple[Tuple[str, Pattern, object, str], ...] = tuple(
    (method, re.compile(f"^{pattern}/?$"), module, name) for method, pattern, module, name in _ROUTES
)


def lambda_handler(event, context):
    """
    Entry point invoked by API Gateway HTTP API.

    The event carries the HTTP method and path; we route it to the matching
    handler, which owns parsing and error translation.
    """
    method = event.get("requestContext", {}).get("http", {}).get("method", "").upper()
    path = request_path(event)

    for route_method, pattern, module, name in ROUTE_TABLE:
        if route_method == method and pattern.match(path):
            return getattr(module, name)(event, context)

    return json_response(404, {"message": "Route not found", "route": f"{method} {path}"})
