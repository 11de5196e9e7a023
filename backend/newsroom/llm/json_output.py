"""Parsing of JSON objects embedded in model output."""

import json
import re
from typing import Any

CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def parse_json_object(text: str) -> dict[str, Any]:
    """
    Extract the JSON object from a model response.

    Handles markdown code fences and prose around the object. Raises
    ValueError when no object can be decoded.
    """
    cleaned = (text or "").strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.split("\n", 1)[1] if "\n" in cleaned else ""
        cleaned = cleaned.rsplit("```", 1)[0]

    cleaned = CONTROL_CHARS_RE.sub(" ", cleaned)

    match = OBJECT_RE.search(cleaned)
    if not match:
        raise ValueError(f"No JSON object in model output: {text[:200]!r}")

    data = json.loads(match.group(0), strict=False)
    if not isinstance(data, dict):
        raise ValueError("Model output JSON is not an object")
    return data
