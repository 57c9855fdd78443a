"""
Powers-of-tau ceremony participant client.

This package turns caller entropy into ceremony secrets and drives one
contribution round against a pluggable crypto engine:

- entropy      → SHA-256 secret derivation and single/multi-slot dispatch
- transcript   → transcript validation and engine-result decoding
- engine       → engine protocol, binding adapter, worker-pool bootstrap
- coordinator  → the round itself (contribute + optional keys/verification)
- source       → transcript fetch (http/file) and persistence
- cli          → `pot-contrib` command line

Only light, stable exports are surfaced here.
"""

from __future__ import annotations

from .version import __version__
from .config import CeremonyConfig
from .constants import AuxiliaryStep, VerificationTarget
from .coordinator import (
    ContributionCoordinator,
    ContributionReport,
    VerificationOutcome,
    VerificationStatus,
)
from .engine import CryptoEngine, FunctionEngine, bootstrap_engine, load_engine
from .entropy import EntropyDeriver, SecretMode, SecretSet, derive_secret
from .errors import (
    AuxiliaryFailure,
    CeremonyError,
    EngineFailure,
    InvalidEntropy,
    InvalidTranscript,
)

__all__ = [
    "__version__",
    "CeremonyConfig",
    "ContributionCoordinator",
    "ContributionReport",
    "VerificationOutcome",
    "VerificationStatus",
    "VerificationTarget",
    "AuxiliaryStep",
    "CryptoEngine",
    "FunctionEngine",
    "bootstrap_engine",
    "load_engine",
    "EntropyDeriver",
    "SecretMode",
    "SecretSet",
    "derive_secret",
    "AuxiliaryFailure",
    "CeremonyError",
    "EngineFailure",
    "InvalidEntropy",
    "InvalidTranscript",
]
