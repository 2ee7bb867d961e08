"""
Pull JSON out of free-text model replies.

Gemini often wraps its JSON in prose or markdown fences. Extraction here is a
bracket heuristic, not a parser: `json.loads` downstream is the real check.
"""

import json
import re
from typing import Any, Optional

_FENCED_JSON = re.compile(r"```json\s*([\s\S]*?)\s*```")


class MalformedOutputError(ValueError):
    """The model reply did not contain usable JSON."""


def extract_json_from_text(text: Optional[str]) -> Optional[str]:
    """
    Return the JSON-looking part of a reply, or None.

    1. A ```json fenced block wins and is returned trimmed, verbatim.
    2. Otherwise take the first '[' or '{' and the last matching closer.
    """
    if not text:
        return None

    fenced = _FENCED_JSON.search(text)
    if fenced:
        return fenced.group(1).strip()

    start = -1
    for i, ch in enumerate(text):
        if ch in "[{":
            start = i
            break
    if start == -1:
        return None

    closer = "]" if text[start] == "[" else "}"
    end = text.rfind(closer, start)
    if end == -1:
        return None

    return text[start:end + 1]


def parse_json_response(text: Optional[str]) -> Optional[Any]:
    """Extract and decode JSON from a reply; None when either step fails."""
    json_str = extract_json_from_text(text)
    if json_str is None:
        return None
    try:
        return json.loads(json_str)
    except json.JSONDecodeError:
        return None


def require_json(text: Optional[str], what: str) -> Any:
    """Like parse_json_response, but raise MalformedOutputError on failure."""
    json_str = extract_json_from_text(text)
    if json_str is None:
        raise MalformedOutputError(f"No valid JSON response for {what}")
    try:
        return json.loads(json_str)
    except json.JSONDecodeError as e:
        raise MalformedOutputError(f"Could not parse JSON for {what}: {e}") from e
