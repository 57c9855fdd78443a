# Copyright (c) Animica.
# SPDX-License-Identifier: MIT
"""
Transcript validation and engine-result decoding.

The transcript is opaque: we only check that it is well-formed structured
JSON (an object or an array) and then pass it through as text. Nothing here
reads the ceremony fields.

Engines return either the updated transcript directly or a structured value
that carries it under ``contribution`` next to extra fields (e.g. ``proofs``).
:func:`decode_engine_result` turns both into one tagged union so callers
never re-detect the shape.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Union

from .errors import InvalidTranscript

CONTRIBUTION_FIELD = "contribution"

__all__ = [
    "CONTRIBUTION_FIELD",
    "RawResult",
    "StructuredResult",
    "EngineResult",
    "UnrecognizedResult",
    "normalize_transcript",
    "decode_engine_result",
    "dumps_compact",
]


def dumps_compact(obj: Any) -> str:
    """Compact JSON text, the same shape a browser's JSON.stringify produces."""
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False)


def normalize_transcript(doc: Any) -> str:
    """
    Validate a transcript and return it as JSON text.

    Accepts JSON text (str/bytes) or an already-decoded object/array. Text is
    returned unchanged once it has been checked; decoded documents are
    serialized compactly.
    """
    if doc is None:
        raise InvalidTranscript("missing")

    if isinstance(doc, (dict, list)):
        try:
            return dumps_compact(doc)
        except (TypeError, ValueError) as e:
            raise InvalidTranscript(f"not-serializable: {e}") from e

    if isinstance(doc, (bytes, bytearray)):
        try:
            doc = bytes(doc).decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidTranscript("not-utf8") from e

    if not isinstance(doc, str):
        raise InvalidTranscript(f"unsupported-type: {type(doc).__name__}")
    if not doc.strip():
        raise InvalidTranscript("empty")

    try:
        decoded = json.loads(doc)
    except json.JSONDecodeError as e:
        raise InvalidTranscript(f"not-json: {e.msg} at {e.pos}") from e
    if not isinstance(decoded, (dict, list)):
        raise InvalidTranscript("not-structured")
    return doc


@dataclass(frozen=True)
class RawResult:
    """Engine returned the updated transcript as bare text."""

    transcript: str

    @property
    def metadata(self) -> Dict[str, Any]:
        return {}


@dataclass(frozen=True)
class StructuredResult:
    """Engine returned ``{"contribution": ..., **metadata}``."""

    transcript: str
    metadata: Dict[str, Any] = field(default_factory=dict)


EngineResult = Union[RawResult, StructuredResult]


class UnrecognizedResult(ValueError):
    """The engine returned a value that is neither text nor a structured result."""


def decode_engine_result(value: Any) -> EngineResult:
    if isinstance(value, (bytes, bytearray)):
        value = bytes(value).decode("utf-8")
    if isinstance(value, str):
        return RawResult(value)

    if isinstance(value, Mapping):
        if CONTRIBUTION_FIELD not in value:
            raise UnrecognizedResult(
                f"structured result lacks {CONTRIBUTION_FIELD!r} (keys: {sorted(value)})"
            )
        contribution = value[CONTRIBUTION_FIELD]
        if isinstance(contribution, (bytes, bytearray)):
            contribution = bytes(contribution).decode("utf-8")
        elif isinstance(contribution, (dict, list)):
            contribution = dumps_compact(contribution)
        elif not isinstance(contribution, str):
            raise UnrecognizedResult(
                f"{CONTRIBUTION_FIELD!r} has unsupported type {type(contribution).__name__}"
            )
        metadata = {k: v for k, v in value.items() if k != CONTRIBUTION_FIELD}
        return StructuredResult(contribution, metadata)

    raise UnrecognizedResult(f"unsupported engine result type {type(value).__name__}")
