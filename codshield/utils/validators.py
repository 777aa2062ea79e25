"""Request parsing helpers shared by handlers."""

import json
from typing import Any, Dict, List, Optional

from codshield.utils.error_handling import ValidationError


def ensure_present(value: Any, field: str) -> None:
    """Raise ValidationError if value is falsy."""
    if value in (None, "", []):
        raise ValidationError(f"{field} is required")


def parse_json_body(event: Dict[str, Any]) -> Dict[str, Any]:
    """Decode an API Gateway body, tolerating direct invocation with a dict."""
    body = event.get("body")
    if body is None:
        return {k: v for k, v in event.items() if k not in ("requestContext", "pathParameters", "headers")}
    if isinstance(body, dict):
        return body
    try:
        payload = json.loads(body or "{}")
    except json.JSONDecodeError as exc:
        raise ValidationError("Request body is not valid JSON") from exc
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


def request_path(event: Dict[str, Any]) -> str:
    """HTTP path from an API Gateway v2 event."""
    return (
        event.get("requestContext", {}).get("http", {}).get("path")
        or event.get("rawPath")
        or ""
    )


def path_segments(event: Dict[str, Any]) -> List[str]:
    return [segment for segment in request_path(event).split("/") if segment]


def path_param(event: Dict[str, Any], name: str, position: Optional[int] = None) -> str:
    """
    Read a path parameter from ``pathParameters`` or, behind a proxy route,
    from its position in the request path.
    """
    params = event.get("pathParameters") or {}
    value = params.get(name)
    if not value and position is not None:
        segments = path_segments(event)
        if len(segments) > position:
            value = segments[position]
    ensure_present(value, name)
    return value
