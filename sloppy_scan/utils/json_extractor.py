"""Utility for pulling a JSON object out of model replies."""

import json
import re
from typing import Any, Dict

# ```json ... ``` or ``` ... ```
_FENCED = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL | re.IGNORECASE)


def _balanced_object(text: str, start: int) -> str:
    """Return the brace-balanced object starting at `start`, or ""."""
    depth = 0
    in_string = False
    escape_next = False
    for i in range(start, len(text)):
        char = text[i]
        if escape_next:
            escape_next = False
            continue
        if char == "\\":
            escape_next = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return ""


def extract_json_object(content: str) -> Dict[str, Any]:
    """Extract the first JSON object from a reply.

    Tries the reply as-is, then a fenced code block, then every embedded
    `{...}` span in order.

    Raises:
        ValueError: If no JSON object can be extracted
    """
    if not content or not content.strip():
        raise ValueError("Empty content")

    content = content.strip()
    candidates = [content]
    candidates.extend(_FENCED.findall(content))
    pos = content.find("{")
    while pos != -1:
        span = _balanced_object(content, pos)
        if span:
            candidates.append(span)
        pos = content.find("{", pos + 1)

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed

    raise ValueError(f"Could not extract a JSON object from content: {content[:200]}...")
