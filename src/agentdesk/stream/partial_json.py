"""Best-effort parsing of tool arguments that are still streaming in."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional


def parse_partial_object(text: str) -> Optional[Dict[str, Any]]:
    """Parse a possibly truncated JSON object.

    Returns the parsed dict, or None when this increment cannot be
    interpreted yet. Never raises.
    """

    if not isinstance(text, str):
        return None
    raw = text.strip()
    if not raw.startswith("{"):
        return None

    for candidate in (raw, repair_truncated_json(raw)):
        if candidate is None:
            continue
        try:
            parsed = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(parsed, dict):
            return parsed
    return None


def repair_truncated_json(text: str) -> Optional[str]:
    """Close an unterminated string and any open containers.

    A dangling key, colon or comma at the cut point is dropped.
    """

    stack: List[str] = []
    in_string = False
    escaped = False
    for char in text:
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in "{[":
            stack.append("}" if char == "{" else "]")
        elif char in "}]":
            if not stack or stack[-1] != char:
                return None
            stack.pop()

    repaired = text
    if in_string:
        if escaped:
            repaired = repaired[:-1]
        repaired += '"'

    repaired = _drop_dangling_tail(repaired, stack)
    if repaired is None:
        return None
    return repaired + "".join(reversed(stack))


def _drop_dangling_tail(text: str, stack: List[str]) -> Optional[str]:
    stripped = text.rstrip()
    if stripped.endswith(","):
        return stripped[:-1]
    if stripped.endswith(":"):
        return _drop_last_key(stripped[:-1].rstrip())
    if stack and stack[-1] == "}" and stripped.endswith('"'):
        # A bare string directly after "{" or "," is a key without a value.
        start = _string_start(stripped)
        if start is None:
            return None
        before = stripped[:start].rstrip()
        if before.endswith("{") or before.endswith(","):
            return before[:-1] if before.endswith(",") else before
    return stripped


def _drop_last_key(text: str) -> Optional[str]:
    if not text.endswith('"'):
        return None
    start = _string_start(text)
    if start is None:
        return None
    before = text[:start].rstrip()
    if before.endswith(","):
        return before[:-1]
    return before


def _string_start(text: str) -> Optional[int]:
    """Index of the opening quote of the string literal ending ``text``."""

    index = len(text) - 2
    while index >= 0:
        if text[index] == '"':
            backslashes = 0
            cursor = index - 1
            while cursor >= 0 and text[cursor] == "\\":
                backslashes += 1
                cursor -= 1
            if backslashes % 2 == 0:
                return index
        index -= 1
    return None
