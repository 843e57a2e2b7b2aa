"""Cleanup utilities applied to raw model output before parsing."""

from __future__ import annotations

import logging
import math
import re
from typing import Any

logger = logging.getLogger(__name__)

_SCRIPT_RE = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_STYLE_RE = re.compile(r"<style\b[^<]*(?:(?!</style>)<[^<]*)*</style>", re.IGNORECASE)
_TAG_RE = re.compile(r"</?[A-Za-z][^<>]*>")
_PROTOCOL_RE = re.compile(r"javascript:|data:text/html|vbscript:", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")
_FENCE_RE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)


def sanitize_text(text: str | None) -> str:
    """Strip markup and dangerous protocols, then collapse whitespace.

    Args:
        text: Raw text from the model.

    Returns:
        Single-line text safe to hand to a client.
    """
    if not text:
        return ""

    sanitized = _SCRIPT_RE.sub("", text)
    sanitized = _STYLE_RE.sub("", sanitized)
    sanitized = _TAG_RE.sub("", sanitized)
    sanitized = _PROTOCOL_RE.sub("", sanitized)
    return _WHITESPACE_RE.sub(" ", sanitized).strip()


def strip_markdown_fences(text: str) -> str:
    """Remove ```json / ``` markers wherever the model placed them."""
    return _FENCE_RE.sub("", text)


def truncate_text(text: str | None, max_length: int) -> str:
    """Cut ``text`` to ``max_length`` characters, ending with an ellipsis."""
    if not text:
        return ""
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def sanitize_number(value: Any, default: float = 0.0) -> float:
    """Coerce ``value`` to a finite float, or return ``default``."""
    if isinstance(value, bool) or value is None:
        return default
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(parsed) or math.isinf(parsed):
        return default
    return parsed


def sanitize_array(value: Any, max_length: int = 100) -> list[Any]:
    """Return ``value`` as a list capped at ``max_length``; non-lists become []."""
    if not isinstance(value, list):
        return []
    return value[:max_length]


def extract_first_json(text: str) -> str:
    """Return the first complete JSON object or array embedded in ``text``.

    Tracks bracket depth outside string literals so trailing prose after
    valid JSON is discarded.

    Raises:
        ValueError: If no opening bracket exists or the structure never closes.
    """
    candidates = [pos for pos in (text.find("{"), text.find("[")) if pos != -1]
    if not candidates:
        raise ValueError("No JSON object or array found in response")
    start = min(candidates)

    depth = 0
    in_string = False
    escape = False
    for position in range(start, len(text)):
        char = text[position]
        if escape:
            escape = False
            continue
        if char == "\\":
            escape = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char in "{[":
            depth += 1
        elif char in "}]":
            depth -= 1
            if depth == 0:
                return text[start : position + 1]

    raise ValueError("Unclosed JSON structure")


def sanitize_ai_response(response: str | None) -> str:
    """Prepare a raw model response for ``json.loads``.

    Steps:
        1. Strip markdown code fences.
        2. Drop stray comment markers the model emits around JSON.
        3. Unwrap the response if it was quoted as a whole string.
        4. Keep only the first complete JSON value.
    """
    if not response:
        return "{}"

    cleaned = strip_markdown_fences(response.strip())
    cleaned = re.sub(r"^\*+/\*?\s*", "", cleaned)
    cleaned = re.sub(r"^\*+\s*", "", cleaned)
    cleaned = re.sub(r"^/\*+\s*", "", cleaned)
    cleaned = re.sub(r"\s*\*+/?\s*$", "", cleaned).strip()

    if len(cleaned) >= 2 and cleaned.startswith('"') and cleaned.endswith('"'):
        cleaned = cleaned[1:-1].replace('\\"', '"')

    try:
        cleaned = extract_first_json(cleaned)
    except ValueError as exc:
        logger.warning("Could not isolate JSON in model response: %s", exc)

    return cleaned.strip()
