# Copyright (c) Animica.
# SPDX-License-Identifier: MIT
"""
Ceremony contribution configuration.

One dataclass drives every round:

- Optional steps: public-key derivation, pre/post subgroup verification.
- Engine: import target (``module:attr``), worker-pool size, call timeout.
- Source: where the current transcript is read from, fetch timeout.
- Entropy: number of slots expected from multi-value entropy.

Loaders:
- :meth:`CeremonyConfig.from_env` (prefix configurable, default ``POT_``)
- :meth:`CeremonyConfig.from_file` (JSON or YAML)
"""

from __future__ import annotations

import dataclasses
import json
import os
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

import yaml

from .entropy import DEFAULT_SLOTS


_BOOL_FIELDS = ("derive_public_keys", "verify_pre", "verify_post", "spread_secrets")
_STR_FIELDS = ("engine", "transcript_uri", "identity")


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass
class CeremonyConfig:
    """
    Optional steps:
      - derive_public_keys: call the engine's public-key derivation before contributing
      - verify_pre:  subgroup-check the input transcript before contributing
      - verify_post: subgroup-check the updated transcript after contributing

    Engine:
      - engine: ``package.module:attr`` import target (CLI only)
      - spread_secrets: pass multi-mode secrets as separate positional arguments
        to binding-module functions (``contribute(transcript, identity, s0, s1, ...)``)
      - concurrency: worker-pool size hint (None → all cores)
      - engine_timeout_s: bound on the contribute call (None → unbounded)

    Source:
      - transcript_uri: http(s)://, file:// or plain path of the current transcript
      - fetch_timeout_s: HTTP timeout when fetching the transcript
      - identity: default contributor identity (e.g. ``eth|0x...``)
    """

    secret_slots: int = DEFAULT_SLOTS

    derive_public_keys: bool = False
    verify_pre: bool = False
    verify_post: bool = False

    engine: Optional[str] = None
    spread_secrets: bool = False
    concurrency: Optional[int] = None
    engine_timeout_s: Optional[float] = None

    transcript_uri: Optional[str] = None
    fetch_timeout_s: float = 30.0
    identity: Optional[str] = None

    def validate(self) -> None:
        for name in _BOOL_FIELDS:
            if not isinstance(getattr(self, name), bool):
                raise ValueError(f"{name} must be true or false, got {getattr(self, name)!r}")
        for name in _STR_FIELDS:
            value = getattr(self, name)
            if value is not None and not isinstance(value, str):
                raise ValueError(f"{name} must be a string, got {value!r}")
        if not _is_int(self.secret_slots) or self.secret_slots < 2:
            raise ValueError("secret_slots must be an integer >= 2")
        if self.concurrency is not None and (not _is_int(self.concurrency) or self.concurrency <= 0):
            raise ValueError("concurrency must be an integer > 0")
        if self.engine_timeout_s is not None and (not _is_number(self.engine_timeout_s) or self.engine_timeout_s <= 0):
            raise ValueError("engine_timeout_s must be a number > 0")
        if not _is_number(self.fetch_timeout_s) or self.fetch_timeout_s <= 0:
            raise ValueError("fetch_timeout_s must be a number > 0")
        if self.engine is not None and ":" not in self.engine:
            raise ValueError("engine must look like 'package.module:attr'")
        if self.identity is not None and not self.identity.strip():
            raise ValueError("identity must not be blank")

    def replace(self, **overrides: Any) -> "CeremonyConfig":
        """Copy with the non-None overrides applied, validated."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        cfg = dataclasses.replace(self, **changes)
        cfg.validate()
        return cfg

    # -------------------------
    # Serialization helpers
    # -------------------------

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, sort_keys=True)

    # -------------------------
    # Loaders
    # -------------------------

    @staticmethod
    def from_env(prefix: str = "POT_") -> "CeremonyConfig":
        """
        Load configuration from environment variables. All variables are optional.

          - POT_SECRET_SLOTS=4
          - POT_DERIVE_PUBLIC_KEYS=true
          - POT_VERIFY_PRE=true
          - POT_VERIFY_POST=true
          - POT_ENGINE=my_engine.bindings:engine
          - POT_SPREAD_SECRETS=true
          - POT_CONCURRENCY=8
          - POT_ENGINE_TIMEOUT_S=600
          - POT_TRANSCRIPT_URI=https://seq.example.org/info/current_state
          - POT_FETCH_TIMEOUT_S=30
          - POT_IDENTITY=eth|0x000000000000000000000000000000000000dead
        """

        def _get(name: str, cast: Any, default: Any) -> Any:
            key = prefix + name
            raw = os.getenv(key)
            if raw is None or raw == "":
                return default
            try:
                if cast is bool:
                    return raw.lower() in {"1", "true", "yes", "on"}
                return cast(raw)
            except Exception as e:
                raise ValueError(f"Invalid value for {key}: {raw!r}") from e

        cfg = CeremonyConfig(
            secret_slots=_get("SECRET_SLOTS", int, DEFAULT_SLOTS),
            derive_public_keys=_get("DERIVE_PUBLIC_KEYS", bool, False),
            verify_pre=_get("VERIFY_PRE", bool, False),
            verify_post=_get("VERIFY_POST", bool, False),
            engine=_get("ENGINE", str, None),
            spread_secrets=_get("SPREAD_SECRETS", bool, False),
            concurrency=_get("CONCURRENCY", int, None),
            engine_timeout_s=_get("ENGINE_TIMEOUT_S", float, None),
            transcript_uri=_get("TRANSCRIPT_URI", str, None),
            fetch_timeout_s=_get("FETCH_TIMEOUT_S", float, 30.0),
            identity=_get("IDENTITY", str, None),
        )
        cfg.validate()
        return cfg

    @staticmethod
    def from_file(path: str) -> "CeremonyConfig":
        """
        Load configuration from a JSON or YAML file. Keys mirror the dataclass
        fields; unknown keys are rejected. Example (YAML):

            derive_public_keys: true
            verify_pre: true
            verify_post: true
            engine: my_engine.bindings:engine
            engine_timeout_s: 600
            transcript_uri: ./initialContribution.json
        """
        with open(path, "r", encoding="utf-8") as f:
            text = f.read()
        data = _parse_json_or_yaml(text, path)
        if not isinstance(data, dict):
            raise ValueError(f"{path!r} must contain a mapping at the top level")

        known = {f.name for f in dataclasses.fields(CeremonyConfig)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"unknown config keys in {path!r}: {', '.join(unknown)}")

        cfg = CeremonyConfig(**data)
        cfg.validate()
        return cfg


def _parse_json_or_yaml(text: str, path_hint: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    try:
        return yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Failed to parse {path_hint!r} as JSON or YAML: {e}") from e


DEFAULT: CeremonyConfig = CeremonyConfig()

__all__ = ["CeremonyConfig", "DEFAULT"]
