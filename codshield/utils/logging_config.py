"""Structured logger setup shared across Lambdas."""

import logging
import os
from typing import Optional

from pythonjsonlogger import jsonlogger

HASH_PREFIX_LENGTH = 8


def get_logger(name: str) -> logging.Logger:
    """
    Configure a JSON logger once and reuse it.

    Context goes through ``extra`` so every field lands as its own JSON key.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    handler = logging.StreamHandler()
    formatter = jsonlogger.JsonFormatter(
        "%(levelname)s %(name)s %(message)s %(asctime)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(os.environ.get("LOG_LEVEL", "INFO").upper())
    logger.propagate = False
    return logger


def hash_prefix(identity_hash: Optional[str]) -> Optional[str]:
    """Shorten an identity hash for log lines; full hashes stay out of logs."""
    if not identity_hash:
        return None
    return identity_hash[:HASH_PREFIX_LENGTH]


def token_suffix(checkout_token: Optional[str]) -> Optional[str]:
    """Last characters of a checkout token, enough to correlate log lines."""
    if not checkout_token:
        return None
    return checkout_token[-HASH_PREFIX_LENGTH:]
