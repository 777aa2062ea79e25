"""
Order event ingestion handlers.

``lambda_handler`` serves POST /events synchronously. ``sqs_handler`` consumes
the same payloads from an SQS queue and reports failed records through
``batchItemFailures``; ingestion is idempotent, so redelivery is safe.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List

import pydantic

from codshield.models.events import IngestStatus, ProfileUpdateResult, SubmitEventRequest
from codshield.services.identity_extraction import extract_identity_candidates, merge_candidates
from codshield.utils.error_handling import AppError, handle_errors, json_response
from codshield.utils.logging_config import get_logger
from codshield.utils.validators import parse_json_body

logger = get_logger(__name__)


def _get_services():
    """Lazy-load the shared services."""
    from codshield.services.registry import get_services

    return get_services()


def submit_event(payload: Dict[str, Any]) -> ProfileUpdateResult:
    """Validate one event payload and ingest it."""
    request = SubmitEventRequest.model_validate(payload)
    candidates = merge_candidates(
        request.identity_candidates, extract_identity_candidates(request.order)
    )
    return _get_services().event_processor.ingest(
        request.to_event(), candidates, checkout_token=request.checkout_token
    )


@handle_errors
def lambda_handler(event, context):
    """Handle POST /events."""
    result = submit_event(parse_json_body(event))
    status = 202 if result.status is IngestStatus.UNIDENTIFIABLE else 200
    return json_response(status, result.model_dump_json())


def sqs_handler(event, context):
    """Consume a batch of order events; failed records are redelivered by SQS."""
    failures: List[Dict[str, str]] = []
    records = event.get("Records") or []

    for record in records:
        message_id = record.get("messageId")
        try:
            result = submit_event(json.loads(record.get("body") or "{}"))
        except (json.JSONDecodeError, pydantic.ValidationError):
            # Malformed payloads never succeed on redelivery.
            logger.error("Discarding malformed order event", extra={"message_id": message_id})
            continue
        except AppError as exc:
            if exc.status_code < 500:
                logger.error(
                    "Discarding rejected order event",
                    extra={"message_id": message_id, "error": type(exc).__name__},
                )
                continue
            logger.warning(
                "Order event will be retried",
                extra={"message_id": message_id, "error": type(exc).__name__},
            )
            failures.append({"itemIdentifier": message_id})
            continue
        except Exception:
            logger.exception("Order event failed", extra={"message_id": message_id})
            failures.append({"itemIdentifier": message_id})
            continue

        logger.info(
            "Order event consumed",
            extra={"message_id": message_id, "status": result.status.value},
        )

    logger.info(
        "Order event batch processed",
        extra={"records": len(records), "failures": len(failures)},
    )
    return {"batchItemFailures": failures}
