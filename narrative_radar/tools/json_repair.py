"""
JSON repair for LLM text output.

The synthesis and idea prompts ask for a single JSON object. When a provider
cannot do native structured output the reply comes back as text, usually with
one of these defects:
- wrapped in a ```json fence, or prefixed with prose
- truncated mid-object (token limit hit)
- raw newlines/tabs inside string values

parse_json_object() undoes all three and raises LLMJSONError when the text
still does not decode to an object.
"""

import json
import logging
import re
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

_FENCE_OPEN = re.compile(r"^```(?:json|JSON)?\s*")
_FENCE_CLOSE = re.compile(r"\s*```$")
_CLOSERS = {"{": "}", "[": "]"}


class LLMJSONError(ValueError):
    """LLM output could not be decoded into a JSON object."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw[:500]


def strip_code_fence(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = _FENCE_OPEN.sub("", cleaned)
        cleaned = _FENCE_CLOSE.sub("", cleaned)
    return cleaned.strip()


def _scan(text: str, start: int = 0):
    """Yield (index, char) for characters outside JSON string literals."""
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if escaped:
            escaped = False
            continue
        if in_string:
            if ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
            continue
        yield i, ch


def extract_json_string(text: str) -> str:
    """Return the outermost object/array in ``text``, repairing truncation."""
    starts = [pos for pos in (text.find("{"), text.find("[")) if pos != -1]
    if not starts:
        return text
    start = min(starts)

    stack: List[str] = []
    for i, ch in _scan(text, start):
        if ch in _CLOSERS:
            stack.append(ch)
        elif stack and ch == _CLOSERS[stack[-1]]:
            stack.pop()
            if not stack:
                return text[start:i + 1]
    logger.debug(f"Unbalanced JSON ({len(stack)} open brackets), repairing")
    return repair_truncated_json(text[start:])


def repair_truncated_json(text: str) -> str:
    """Close an open string, drop a dangling comma, then close open brackets."""
    in_string = False
    escaped = False
    for ch in text:
        if escaped:
            escaped = False
        elif ch == "\\" and in_string:
            escaped = True
        elif ch == '"':
            in_string = not in_string
    if in_string:
        text += '"'

    stack: List[str] = []
    for _, ch in _scan(text):
        if ch in _CLOSERS:
            stack.append(ch)
        elif stack and ch == _CLOSERS[stack[-1]]:
            stack.pop()

    text = text.rstrip().rstrip(",")
    # A key with no value yet ("title":) cannot be closed meaningfully
    text = re.sub(r',?\s*"[^"]*"\s*:\s*$', "", text)
    return text + "".join(_CLOSERS[b] for b in reversed(stack))


def parse_json_object(response: str) -> Dict[str, Any]:
    """Decode an LLM reply into a dict.

    A bare top-level list is wrapped as {"items": [...]}, so callers always
    receive a mapping.

    Raises:
        LLMJSONError: nothing decodable was found.
    """
    json_str = extract_json_string(strip_code_fence(response))

    data: Any = None
    for attempt in (
        lambda s: json.loads(s),
        lambda s: json.loads(s, strict=False),  # literal control chars inside strings
        lambda s: json.loads(re.sub(r"[\x00-\x1f\x7f]", " ", s)),
    ):
        try:
            data = attempt(json_str)
            break
        except json.JSONDecodeError:
            continue
    else:
        raise LLMJSONError("Failed to parse JSON from LLM response", raw=json_str)

    if isinstance(data, list):
        return {"items": data}
    if not isinstance(data, dict):
        raise LLMJSONError(f"Expected a JSON object, got {type(data).__name__}", raw=json_str)
    return data
