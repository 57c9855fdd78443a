# Copyright (c) Animica.
# SPDX-License-Identifier: MIT
"""
Ceremony constants.

Fixed tag vocabularies shared by the coordinator, the error types and the
metrics layer. Both enums are ``str`` subclasses so they compare equal to
their wire/label spelling.
"""

from __future__ import annotations

from enum import Enum


class VerificationTarget(str, Enum):
    """Which transcript a subgroup check ran against."""

    PRE = "pre"    # input transcript, before contribute
    POST = "post"  # updated transcript, after contribute


class AuxiliaryStep(str, Enum):
    """Optional round steps whose failures are recorded, never raised."""

    PUBLIC_KEYS = "public_keys"
    VERIFY_PRE = "verify_pre"
    VERIFY_POST = "verify_post"

    @classmethod
    def for_target(cls, target: VerificationTarget) -> "AuxiliaryStep":
        return cls(f"verify_{target.value}")


__all__ = ["VerificationTarget", "AuxiliaryStep"]
