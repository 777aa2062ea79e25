"""Lightweight health check handler."""

import os
from datetime import datetime, timezone

from codshield import __version__
from codshield.utils.error_handling import json_response


def lambda_handler(event, context):
    """Return a simple 200 response to verify the service is alive."""
    return json_response(
        200,
        {
            "status": "ok",
            "environment": os.environ.get("ENVIRONMENT", "dev"),
            "version": __version__,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )
