"""Structured extraction from free-text model output.

Generative models are asked to reply with a single JSON object but often wrap
it in prose or code fences. ``extract_json_object`` locates the first ``{``
and decodes exactly one object from there, ignoring whatever follows. It never
raises: callers get either a dict or a ``ParseFailure`` and apply their own
fail-soft policy.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True)
class ParseFailure:
    """Why a model reply could not be read as a JSON object."""

    reason: str
    raw: str = ""


ParseResult = Union[dict[str, Any], ParseFailure]

_decoder = json.JSONDecoder()


def extract_json_object(text: Any) -> ParseResult:
    """Parse the first ``{...}`` span found in ``text``."""
    if not isinstance(text, str):
        return ParseFailure("non-text model output", raw=repr(text)[:200])

    start = text.find("{")
    if start == -1:
        return ParseFailure("no JSON object found", raw=text[:200])

    try:
        value, _ = _decoder.raw_decode(text, start)
    except json.JSONDecodeError as e:
        return ParseFailure(f"invalid JSON: {e.msg}", raw=text[start:start + 200])

    if not isinstance(value, dict):
        return ParseFailure("JSON value is not an object", raw=text[start:start + 200])
    return value
