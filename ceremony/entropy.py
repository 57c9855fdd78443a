# Copyright (c) Animica.
# SPDX-License-Identifier: MIT
"""
ceremony.entropy
================

Turns raw, caller-supplied entropy into the hex secrets handed to the crypto
engine. The derivation is fixed and auditable:

    secret = hex( SHA-256( utf8(value) ) )

* `str` values are encoded as UTF-8 (strict). Bytes-like values are hashed
  as-is. Anything else (including ``None``) is rejected with
  :class:`~ceremony.errors.InvalidEntropy` before any hashing happens.
* The digest is rendered as lowercase hex, two digits per byte, no separators.

Shape dispatch
--------------
The *shape* of the entropy picks the engine convention, never a flag:

* a single value      → one secret, **no** prefix  (``SecretMode.SINGLE``)
* a sequence of N     → N secrets, each ``0x``-prefixed, input order kept
                        (``SecretMode.MULTI``)

The single-secret engine call takes a bare 64-digit hex string; the N-secret
call takes ``0x``-prefixed hex strings, one per entropy slot.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Sequence, Tuple, Union

from .errors import InvalidEntropy

DEFAULT_SLOTS = 4
MULTI_PREFIX = "0x"

EntropyValue = Union[str, bytes, bytearray, memoryview]

__all__ = [
    "DEFAULT_SLOTS",
    "MULTI_PREFIX",
    "SecretMode",
    "SecretSet",
    "EntropyDeriver",
    "entropy_bytes",
    "derive_secret",
]


class SecretMode(str, Enum):
    SINGLE = "single"
    MULTI = "multi"


@dataclass(frozen=True)
class SecretSet:
    """
    Secrets derived for one round.

    ``values`` is excluded from ``repr`` so a report or a log line can never
    leak it by accident.
    """

    mode: SecretMode
    values: Tuple[str, ...] = field(repr=False)

    def __len__(self) -> int:
        return len(self.values)

    def for_engine(self) -> Union[str, Tuple[str, ...]]:
        """Argument passed to engine capabilities: a str in single mode, a tuple otherwise."""
        if self.mode is SecretMode.SINGLE:
            return self.values[0]
        return self.values


def entropy_bytes(value: Any) -> bytes:
    """Canonical byte encoding of one entropy value."""
    if value is None:
        raise InvalidEntropy("missing")
    if isinstance(value, str):
        try:
            return value.encode("utf-8")
        except UnicodeEncodeError as e:
            raise InvalidEntropy(f"not-utf8: {e.reason}") from e
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    raise InvalidEntropy(f"unsupported-type: {type(value).__name__}")


def derive_secret(value: Any, *, prefixed: bool = False) -> str:
    """Return SHA-256(value) as lowercase hex, optionally ``0x``-prefixed."""
    digest = hashlib.sha256(entropy_bytes(value)).hexdigest()
    return MULTI_PREFIX + digest if prefixed else digest


class EntropyDeriver:
    """
    Derives a :class:`SecretSet` from single-valued or N-slot entropy.

    Stateless: the same input always yields the same secrets and calling it
    never mutates the deriver.
    """

    __slots__ = ("slots",)

    def __init__(self, slots: int = DEFAULT_SLOTS):
        if not isinstance(slots, int) or slots < 2:
            raise ValueError("slots must be an integer >= 2")
        self.slots = slots

    @staticmethod
    def is_collection(entropy: Any) -> bool:
        return isinstance(entropy, (list, tuple))

    def derive(self, entropy: Union[EntropyValue, Sequence[EntropyValue]]) -> SecretSet:
        if not self.is_collection(entropy):
            return SecretSet(SecretMode.SINGLE, (derive_secret(entropy),))

        if len(entropy) != self.slots:
            raise InvalidEntropy(
                f"slot-count: expected {self.slots} values, got {len(entropy)}"
            )
        # Encode every slot first so a bad slot fails before any hashing.
        encoded = [entropy_bytes(v) for v in entropy]
        secrets = tuple(derive_secret(b, prefixed=True) for b in encoded)
        return SecretSet(SecretMode.MULTI, secrets)
