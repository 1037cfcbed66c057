"""Recover a JSON value from free-form language-model output.

Models frequently wrap the payload in narration ("Sure! Here you go: ...") or a
markdown fence, and sometimes append commentary after it. ``extract_json``
returns the JSON text only, or ``None`` when nothing parses. It never raises.

Search order:

1. A fenced block tagged ``json`` whose body parses.
2. Each ``{`` / ``[`` in turn, decoded in place. A JSON value starting at a
   given position has exactly one extent, so one decode per opener finds the
   same span a balanced-bracket scan would, in a single pass.

``NaN`` and ``Infinity`` are rejected: they are not JSON.
"""

from __future__ import annotations

import json
import re
from typing import Any, Optional

__all__ = ["decode_json", "extract_json", "parse_json"]

_FENCE_RE = re.compile(r"```json\s*([\s\S]*?)\s*```", re.IGNORECASE)
_OPENER_RE = re.compile(r"[{\[]")


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not valid JSON")


_DECODER = json.JSONDecoder(parse_constant=_reject_constant)


def decode_json(text: str) -> Any:
    """Strict ``json.loads``. Raises ValueError on anything that is not JSON."""
    return json.loads(text, parse_constant=_reject_constant)


def _parses(candidate: str) -> bool:
    try:
        decode_json(candidate)
    except (ValueError, RecursionError):
        return False
    return True


def _value_at(text: str, start: int) -> Optional[str]:
    try:
        _, end = _DECODER.raw_decode(text, start)
    except (ValueError, RecursionError):
        return None
    return text[start:end]


def extract_json(raw_text: Optional[str]) -> Optional[str]:
    """Return the first JSON object/array embedded in ``raw_text``, or None."""
    if not raw_text or not isinstance(raw_text, str):
        return None

    # Phase 1: fenced ```json block
    for match in _FENCE_RE.finditer(raw_text):
        body = match.group(1).strip()
        if body and _parses(body):
            return body

    # Phase 2: decode from each opening bracket
    for match in _OPENER_RE.finditer(raw_text):
        candidate = _value_at(raw_text, match.start())
        if candidate is not None:
            return candidate

    return None


def parse_json(raw_text: Optional[str]) -> Optional[Any]:
    """Extract and decode in one step. Returns None when nothing is recoverable."""
    extracted = extract_json(raw_text)
    if extracted is None:
        return None
    return decode_json(extracted)
