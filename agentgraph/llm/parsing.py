"""Tolerant JSON extraction from model output."""

import json
import re
from typing import Any, Iterator, Optional

from ..errors import ParseError

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)

_CLOSERS = {"{": "}", "[": "]"}


def extract_json(text: Optional[str]) -> Any:
    """Parse JSON out of an LLM response.

    Tries, in order: the whole text, the first fenced code block, and the
    outermost balanced ``{...}`` or ``[...]`` span.  Raises ``ParseError``
    when nothing parses.
    """
    if not text or not text.strip():
        raise ParseError("Empty response cannot be parsed as JSON")

    stripped = text.strip()
    try:
        return json.loads(stripped)
    except json.JSONDecodeError:
        pass

    match = _FENCE_RE.search(stripped)
    if match:
        try:
            return json.loads(match.group(1).strip())
        except json.JSONDecodeError:
            pass

    spans = list(iter_balanced_spans(stripped))
    if not spans:
        raise ParseError("No JSON object or array found in response")
    last_error = None
    for span in spans:
        try:
            return json.loads(span)
        except json.JSONDecodeError as exc:
            last_error = exc
    raise ParseError(f"Invalid JSON in response: {last_error}") from last_error


def find_balanced_span(text: str) -> Optional[str]:
    """Return the first outermost balanced ``{...}`` / ``[...]`` substring.

    Brackets inside JSON string literals (including escaped quotes) are
    ignored.  Returns None if no opener is found or none ever closes.
    """
    return next(iter_balanced_spans(text), None)


def iter_balanced_spans(text: str) -> Iterator[str]:
    """Yield outermost balanced bracket spans from left to right."""
    start = _first_opener(text)
    while start is not None:
        end = _matching_close(text, start)
        if end is None:
            start = _first_opener(text, start + 1)
            continue
        yield text[start:end + 1]
        start = _first_opener(text, end + 1)


def _first_opener(text: str, offset: int = 0) -> Optional[int]:
    positions = [p for p in (text.find("{", offset), text.find("[", offset)) if p != -1]
    return min(positions) if positions else None


def _matching_close(text: str, start: int) -> Optional[int]:
    stack = [_CLOSERS[text[start]]]
    in_string = False
    escaped = False
    for i in range(start + 1, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in _CLOSERS:
            stack.append(_CLOSERS[ch])
        elif ch in ("}", "]"):
            if ch != stack[-1]:
                return None
            stack.pop()
            if not stack:
                return i
    return None
