# Copyright (c) Animica.
# SPDX-License-Identifier: MIT
"""
Ceremony contribution errors.

A small, typed hierarchy of exceptions raised by the contribution pipeline
(entropy → secrets → contribute → verify). Callers can catch the base
`CeremonyError` to handle every failure of a round, or catch the concrete
subclasses to tell the phases apart:

- `InvalidEntropy` / `InvalidTranscript` are local validation failures. The
  engine was never called, so nothing could have been mutated.
- `EngineFailure` means the engine call itself failed or timed out. The
  ceremony state is possibly unchanged; retry with *fresh* entropy.
- `AuxiliaryFailure` is never raised out of a round. It is recorded on the
  report when an optional step (public keys, verification) fails after or
  around a successful contribution.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .constants import AuxiliaryStep


class CeremonyError(Exception):
    """Base class for all ceremony contribution errors."""
    pass


@dataclass(frozen=True)
class InvalidEntropy(CeremonyError):
    """
    Raised when entropy is missing or cannot be encoded as bytes.

    Attributes:
        reason: Short machine-friendly explanation (e.g. 'missing', 'slot-count').
    """
    reason: str

    def __str__(self) -> str:  # pragma: no cover - trivial formatting
        return f"InvalidEntropy: {self.reason}"


@dataclass(frozen=True)
class InvalidTranscript(CeremonyError):
    """
    Raised when the transcript is missing or is not well-formed JSON.

    Attributes:
        reason: Short explanation (e.g. 'empty', 'not-json', 'not-structured').
    """
    reason: str

    def __str__(self) -> str:  # pragma: no cover - trivial formatting
        return f"InvalidTranscript: {self.reason}"


@dataclass(frozen=True)
class EngineFailure(CeremonyError):
    """
    Raised when a crypto engine capability fails during a fatal phase.

    Attributes:
        phase: Which phase failed ('contribute', 'decode', 'bootstrap').
        cause: The underlying exception, if any.
        timed_out: True when the call exceeded the configured timeout.
    """
    phase: str
    cause: Optional[BaseException] = None
    timed_out: bool = False

    def __str__(self) -> str:  # pragma: no cover - trivial formatting
        if self.timed_out:
            return f"EngineFailure: phase={self.phase} timed out"
        if self.cause is not None:
            return f"EngineFailure: phase={self.phase} cause={self.cause!r}"
        return f"EngineFailure: phase={self.phase}"


@dataclass(frozen=True)
class AuxiliaryFailure(CeremonyError):
    """
    Non-fatal failure of an optional step of a round.

    Attributes:
        step: Which optional step failed (an :class:`AuxiliaryStep`).
        cause: The underlying exception.
    """
    step: AuxiliaryStep
    cause: Optional[BaseException] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "step", AuxiliaryStep(self.step))

    def __str__(self) -> str:  # pragma: no cover - trivial formatting
        return f"AuxiliaryFailure: step={self.step.value} cause={self.cause!r}"


@dataclass(frozen=True)
class EngineUnavailable(CeremonyError):
    """Raised when an engine cannot be imported or constructed."""
    target: str
    reason: str

    def __str__(self) -> str:  # pragma: no cover - trivial formatting
        return f"EngineUnavailable: {self.target}: {self.reason}"


@dataclass(frozen=True)
class TranscriptUnavailable(CeremonyError):
    """Raised when the transcript cannot be fetched or read from its source."""
    source: str
    reason: str

    def __str__(self) -> str:  # pragma: no cover - trivial formatting
        return f"TranscriptUnavailable: {self.source}: {self.reason}"


__all__ = [
    "CeremonyError",
    "InvalidEntropy",
    "InvalidTranscript",
    "EngineFailure",
    "AuxiliaryFailure",
    "EngineUnavailable",
    "TranscriptUnavailable",
]
