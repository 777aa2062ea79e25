"""Bounded exponential backoff for optimistic-concurrency conflicts."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Optional, TypeVar

from codshield.utils.error_handling import ConcurrentUpdateConflict, ServiceUnavailableError

T = TypeVar("T")


def retry_on_conflict(
    operation: Callable[[], T],
    *,
    logger: logging.Logger,
    max_attempts: int = 5,
    initial_delay_seconds: float = 0.02,
    max_delay_seconds: float = 0.5,
    backoff_multiplier: float = 2.0,
    sleep: Callable[[float], Any] = time.sleep,
    context: Optional[Dict[str, Any]] = None,
) -> T:
    """
    Run ``operation`` until it stops raising ConcurrentUpdateConflict.

    Conflicts are never surfaced: once the attempt budget is spent the caller
    gets ServiceUnavailableError, which the external transport retries.
    """
    delay = initial_delay_seconds
    extra = dict(context or {})
    for attempt in range(1, max_attempts + 1):
        try:
            return operation()
        except ConcurrentUpdateConflict:
            if attempt >= max_attempts:
                logger.error(
                    "Concurrent update retries exhausted",
                    extra={**extra, "attempts": attempt},
                )
                raise ServiceUnavailableError("Profile is busy; retry later") from None
            logger.warning(
                "Concurrent update conflict, retrying",
                extra={**extra, "attempt": attempt, "delay_seconds": round(delay, 3)},
            )
            sleep(delay)
            delay = min(delay * backoff_multiplier, max_delay_seconds)
    raise ServiceUnavailableError("Profile is busy; retry later")
