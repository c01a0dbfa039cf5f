"""Lenient JSON extraction from LLM output.

Models asked for strict JSON still occasionally wrap it in markdown fences or prose. These
helpers recover the first JSON object without raising.
"""

from __future__ import annotations

import json
import re
from typing import Any

from assessor.logging import get_logger

logger = get_logger(__name__)

_FENCE_JSON_RE = re.compile(r"```json\s*\n?(.*?)\n?```", re.DOTALL | re.IGNORECASE)
_FENCE_ANY_RE = re.compile(r"```\s*\n?(.*?)\n?```", re.DOTALL)


def extract_json_object(text: str) -> dict[str, Any] | None:
    """Extract a JSON object from text.

    Strategies, strictest first:
        1. A markdown code fence (```json ... ``` or ``` ... ```) containing an object.
        2. The whole text, when it looks like an object.
        3. The span between the first ``{`` and the last ``}``.

    Returns:
        The parsed object, or ``None`` if nothing parses to a JSON object.
    """

    if not text:
        return None

    cleaned = text.strip()

    m = _FENCE_JSON_RE.search(cleaned) or _FENCE_ANY_RE.search(cleaned)
    if m:
        obj = _loads_object(m.group(1).strip())
        if obj is not None:
            return obj
        logger.debug("extract_json_object: fenced JSON parse failed")

    if cleaned.startswith("{") and cleaned.endswith("}"):
        obj = _loads_object(cleaned)
        if obj is not None:
            return obj
        logger.debug("extract_json_object: whole-text JSON parse failed")

    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start != -1 and end > start:
        obj = _loads_object(cleaned[start : end + 1])
        if obj is not None:
            return obj
        logger.debug("extract_json_object: brace-span JSON parse failed")

    return None


def _loads_object(candidate: str) -> dict[str, Any] | None:
    try:
        data = json.loads(candidate)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None
