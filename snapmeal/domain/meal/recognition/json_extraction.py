"""
JSON extraction from free-form model output.

Models wrap payloads in explanatory prose or fenced code blocks. The
extractor locates the first balanced {...} or [...] that parses, then
tries fenced blocks, then gives up with ParseError.
"""

from __future__ import annotations

import json
import re
from typing import Any, Iterator, Optional

from snapmeal.domain.shared.errors import ParseError

_CLOSERS = {"{": "}", "[": "]"}

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)


def _balanced_span(text: str, start: int) -> Optional[str]:
    """
    Return the balanced substring opening at `start`, if any.

    String literals and escapes are honoured so brackets inside strings
    do not count. A mismatched closer aborts the candidate.
    """
    stack = [_CLOSERS[text[start]]]
    in_string = False
    escaped = False

    for index in range(start + 1, len(text)):
        char = text[index]

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
        elif char in _CLOSERS:
            stack.append(_CLOSERS[char])
        elif char in "}]":
            if char != stack.pop():
                return None
            if not stack:
                return text[start : index + 1]

    return None


def _candidates(text: str, openers: str) -> Iterator[str]:
    for index, char in enumerate(text):
        if char in openers:
            span = _balanced_span(text, index)
            if span is not None:
                yield span


def extract_json(text: str, openers: str = "{[") -> Any:
    """
    Extract the first parseable JSON value from text.

    Args:
        text: Raw model output
        openers: Which containers to look for ("{", "[" or both)

    Returns:
        Parsed JSON value (dict or list)

    Raises:
        ParseError: If nothing parseable is found

    Example:
        >>> extract_json('Sure! Here it is: {"items": []} Enjoy.')
        {'items': []}
    """
    if not text or not text.strip():
        raise ParseError("Empty response content")

    for candidate in _candidates(text, openers):
        try:
            value = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        except RecursionError as e:
            raise ParseError("JSON nested too deeply") from e
        return value

    for match in _FENCED_BLOCK.finditer(text):
        block = match.group(1)
        if not block or block[0] not in openers:
            continue
        try:
            return json.loads(block)
        except json.JSONDecodeError:
            continue
        except RecursionError as e:
            raise ParseError("JSON nested too deeply") from e

    raise ParseError("No valid JSON found in response")


def extract_json_object(text: str) -> dict[str, Any]:
    """Extract the first JSON object from text."""
    value = extract_json(text, openers="{")
    if not isinstance(value, dict):
        raise ParseError("Expected a JSON object")
    return value


def extract_json_array(text: str) -> list[Any]:
    """Extract the first JSON array from text."""
    value = extract_json(text, openers="[")
    if not isinstance(value, list):
        raise ParseError("Expected a JSON array")
    return value
