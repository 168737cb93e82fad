"""
JSON utilities for cleaning model responses.
"""

import json
import re
from typing import Any, Dict

_FENCE_RE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)
_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


def clean_json_response(response: str) -> str:
    """Remove markdown code fences from a model response.

    Args:
        response: Raw model response

    Returns:
        Response text without fences, stripped
    """
    return _FENCE_RE.sub("", response or "").strip()


def extract_json_object(response: str) -> Dict[str, Any]:
    """Parse the first JSON object embedded in a model response.

    Raises:
        ValueError: If no JSON object can be parsed
    """
    cleaned = clean_json_response(response)
    match = _OBJECT_RE.search(cleaned)
    candidate = match.group(0) if match else cleaned
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise ValueError(f"response is not valid JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise ValueError("response JSON is not an object")
    return parsed
