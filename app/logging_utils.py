"""
Structured logging helpers for pipeline stages.
"""

from __future__ import annotations

import json
import logging
from typing import Any


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    **fields: Any,
) -> None:
    """
    Emit one structured log line as compact JSON.
    """

    payload = {"event": event, **fields}
    logger.log(level, json.dumps(payload, default=str, sort_keys=True))


def payload_size(value: Any) -> int:
    """
    Approximate serialized size of a stage payload in bytes.
    """

    if hasattr(value, "model_dump"):
        value = value.model_dump(by_alias=True)
    return len(json.dumps(value, default=str))
