# Copyright (c) Animica.
# SPDX-License-Identifier: MIT
"""
Contribution coordinator.

Drives one ceremony round end-to-end:

    validate transcript → derive secret(s) → [public keys] → [verify pre]
        → contribute (once, timed, bounded) → decode result → [verify post]
        → ContributionReport

Behaviour is parameterized by the *shape* of the entropy (single value vs
N slots) and by three switches on :class:`~ceremony.config.CeremonyConfig`
(``derive_public_keys``, ``verify_pre``, ``verify_post``). There is one code
path for every protocol variant.

Failure model
-------------
* Transcript/entropy problems raise before the engine is touched.
* A failing or timed-out ``contribute`` raises :class:`EngineFailure`. It is
  never retried here: a second call would reuse the same entropy against an
  engine that may be half-way through a mutation.
* Optional steps never raise. Their failures land on the report as
  :class:`AuxiliaryFailure` entries and the round still succeeds.

Precondition: at most one round is in flight against a given transcript.
That is a ceremony-server invariant and is not enforced locally.

Example
-------
    coord = ContributionCoordinator(engine, CeremonyConfig(verify_post=True))
    report = await coord.run_contribution(["a", "b", "c", "d"], "eth|0x...", transcript)
    save_transcript("out.json", report.transcript)
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from .config import CeremonyConfig
from .constants import AuxiliaryStep, VerificationTarget
from .engine import CryptoEngine, bootstrap_engine, call_detached
from .entropy import EntropyDeriver, EntropyValue, SecretMode, SecretSet
from .errors import AuxiliaryFailure, EngineFailure, InvalidEntropy, InvalidTranscript
from .metrics import METRICS, Metrics
from .transcript import UnrecognizedResult, decode_engine_result, normalize_transcript

logger = logging.getLogger(__name__)

Entropy = Union[EntropyValue, Sequence[EntropyValue]]

__all__ = [
    "VerificationStatus",
    "VerificationOutcome",
    "ContributionReport",
    "ContributionCoordinator",
]


class VerificationStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    UNAVAILABLE = "unavailable"  # the check itself errored


@dataclass(frozen=True)
class VerificationOutcome:
    target: VerificationTarget
    status: VerificationStatus
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is VerificationStatus.PASSED


@dataclass(frozen=True)
class ContributionReport:
    """Outcome of a successful round. Never carries the secrets."""

    transcript: str
    identity: str
    mode: SecretMode
    secret_count: int
    duration_s: float
    metadata: Dict[str, Any] = field(default_factory=dict)
    public_keys: Any = None
    verifications: Tuple[VerificationOutcome, ...] = ()
    auxiliary_failures: Tuple[AuxiliaryFailure, ...] = ()

    @property
    def succeeded(self) -> bool:
        return True

    def verification(self, target: Union[VerificationTarget, str]) -> Optional[VerificationOutcome]:
        return next((v for v in self.verifications if v.target == VerificationTarget(target)), None)

    def to_dict(self, *, include_transcript: bool = False) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "identity": self.identity,
            "mode": self.mode.value,
            "secret_count": self.secret_count,
            "duration_s": self.duration_s,
            "metadata_keys": sorted(self.metadata),
            "public_keys": self.public_keys,
            "verifications": [
                {"target": v.target.value, "status": v.status.value, "error": v.error}
                for v in self.verifications
            ],
            "auxiliary_failures": [
                {"step": a.step.value, "error": repr(a.cause)} for a in self.auxiliary_failures
            ],
        }
        if include_transcript:
            out["transcript"] = self.transcript
        return out


class ContributionCoordinator:
    """
    Runs contribution rounds against one engine.

    Args:
        engine:  object implementing :class:`~ceremony.engine.CryptoEngine`.
        config:  round switches and timeouts (defaults to ``CeremonyConfig()``).
        metrics: Prometheus instruments (defaults to the module singleton).
    """

    def __init__(
        self,
        engine: CryptoEngine,
        config: Optional[CeremonyConfig] = None,
        *,
        metrics: Optional[Metrics] = None,
    ):
        self.engine = engine
        self.config = config or CeremonyConfig()
        self.config.validate()
        self.metrics = metrics or METRICS
        self.deriver = EntropyDeriver(self.config.secret_slots)

    def bootstrap(self) -> int:
        """Initialize the engine worker pool (once per process)."""
        return bootstrap_engine(self.engine, self.config.concurrency)

    def run_contribution_sync(self, entropy: Entropy, identity: str, transcript: Any) -> ContributionReport:
        """Blocking wrapper around :meth:`run_contribution`; returns as soon as a timeout fires."""
        return asyncio.run(self.run_contribution(entropy, identity, transcript))

    async def run_contribution(self, entropy: Entropy, identity: str, transcript: Any) -> ContributionReport:
        # 1. transcript
        try:
            text = normalize_transcript(transcript)
        except InvalidTranscript:
            self.metrics.record_round("invalid_transcript")
            raise

        # 2. secrets
        try:
            secrets: Optional[SecretSet] = await asyncio.to_thread(self.deriver.derive, entropy)
        except InvalidEntropy:
            self.metrics.record_round("invalid_entropy")
            raise
        mode, count = secrets.mode, len(secrets)
        logger.info(
            "starting contribution identity=%s mode=%s slots=%d transcript_bytes=%d",
            identity, mode.value, count, len(text),
        )

        aux: List[AuxiliaryFailure] = []
        verifications: List[VerificationOutcome] = []

        # 3. public keys (observational only)
        public_keys = None
        if self.config.derive_public_keys:
            public_keys = await self._public_keys(secrets, aux)

        # 4. pre-verification completes before the engine mutates anything
        if self.config.verify_pre:
            verifications.append(await self._check(VerificationTarget.PRE, text, aux))

        # 5. the single mutating call
        try:
            raw, duration = await self._contribute(text, identity, secrets)
        finally:
            secrets = None

        try:
            result = decode_engine_result(raw)
        except (UnrecognizedResult, UnicodeDecodeError) as e:
            self.metrics.record_round("engine_failure")
            logger.error("engine returned an unrecognised result: %s", e)
            raise EngineFailure("decode", e) from e

        # 6. post-verification strictly after contribute returned
        if self.config.verify_post:
            verifications.append(await self._check(VerificationTarget.POST, result.transcript, aux))

        self.metrics.record_round("ok")
        logger.info(
            "contribution finished in %.3fs identity=%s aux_failures=%d",
            duration, identity, len(aux),
        )
        return ContributionReport(
            transcript=result.transcript,
            identity=identity,
            mode=mode,
            secret_count=count,
            duration_s=duration,
            metadata=dict(result.metadata),
            public_keys=public_keys,
            verifications=tuple(verifications),
            auxiliary_failures=tuple(aux),
        )

    # ----- phases -------------------------------------------------------------

    async def _contribute(self, text: str, identity: str, secrets: SecretSet) -> Tuple[Any, float]:
        timeout = self.config.engine_timeout_s
        start = time.perf_counter()
        try:
            raw = await call_detached(self.engine.contribute, text, identity, secrets.for_engine(), timeout=timeout)
        except asyncio.TimeoutError as e:
            self.metrics.record_round("timeout")
            logger.error("contribute timed out after %ss", timeout)
            raise EngineFailure("contribute", e, timed_out=True) from e
        except Exception as e:
            self.metrics.record_round("engine_failure")
            logger.error("contribute failed: %r", e)
            raise EngineFailure("contribute", e) from e
        duration = time.perf_counter() - start
        self.metrics.observe_contribute(duration)
        return raw, duration

    async def _public_keys(self, secrets: SecretSet, aux: List[AuxiliaryFailure]) -> Any:
        derive: Optional[Callable[..., Any]] = getattr(self.engine, "derive_public_keys", None)
        try:
            if derive is None:
                raise NotImplementedError("engine does not derive public keys")
            return await asyncio.to_thread(derive, secrets.for_engine())
        except Exception as e:
            logger.warning("public key derivation failed: %r", e)
            self._aux(aux, AuxiliaryStep.PUBLIC_KEYS, e)
            return None

    async def _check(self, target: VerificationTarget, text: str, aux: List[AuxiliaryFailure]) -> VerificationOutcome:
        try:
            valid = await asyncio.to_thread(self.engine.check_subgroup, text)
        except Exception as e:
            logger.warning("subgroup check (%s) errored: %r", target.value, e)
            self._aux(aux, AuxiliaryStep.for_target(target), e)
            outcome = VerificationOutcome(target, VerificationStatus.UNAVAILABLE, repr(e))
        else:
            status = VerificationStatus.PASSED if valid else VerificationStatus.FAILED
            if not valid:
                logger.warning("subgroup check (%s) failed", target.value)
            outcome = VerificationOutcome(target, status)
        self.metrics.record_verification(target, outcome.status.value)
        return outcome

    def _aux(self, aux: List[AuxiliaryFailure], step: AuxiliaryStep, cause: BaseException) -> None:
        aux.append(AuxiliaryFailure(step, cause))
        self.metrics.record_auxiliary_failure(step)
