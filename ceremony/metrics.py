# Copyright (c) Animica.
# SPDX-License-Identifier: MIT
"""
Prometheus metrics for ceremony contributions.

Instruments:
  • contributions_total        — rounds per outcome
  • contribute_seconds         — wall-clock time of the engine contribute call
  • verifications_total        — subgroup checks per target (pre/post) and outcome
  • auxiliary_failures_total   — non-fatal failures per optional step

Label vocabularies are fixed and small. Nothing derived from entropy or
secrets is ever used as a label or observed value.

Usage
-----
    from ceremony.metrics import METRICS

    METRICS.record_round("ok")
    METRICS.observe_contribute(12.7)

Tests (or embedders with their own registry) construct a `Metrics` with a
private `CollectorRegistry`.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Union

from prometheus_client import REGISTRY, Counter, Histogram

from .constants import AuxiliaryStep, VerificationTarget

_ROUND_OUTCOMES = (
    "ok",                   # contribution applied
    "invalid_entropy",      # rejected before hashing
    "invalid_transcript",   # rejected before any engine call
    "engine_failure",       # contribute raised / result undecodable
    "timeout",              # contribute exceeded engine_timeout_s
)

_VERIFY_TARGETS = tuple(t.value for t in VerificationTarget)
_VERIFY_OUTCOMES = ("passed", "failed", "unavailable")
_AUX_STEPS = tuple(s.value for s in AuxiliaryStep)

# Contributions take seconds to minutes depending on transcript size and cores.
_CONTRIBUTE_BUCKETS = (
    0.01, 0.05, 0.1, 0.5,
    1.0, 2.5, 5.0, 10.0,
    30.0, 60.0, 120.0, 300.0,
)


def _label(value: Union[Enum, str]) -> str:
    return value.value if isinstance(value, Enum) else value


class Metrics:
    """
    Container for all ceremony Prometheus instruments.

    Args:
        namespace: Prometheus metric namespace (prefix).
        subsystem: Prometheus metric subsystem.
        registry:  Registry the instruments are registered with.
    """

    def __init__(
        self,
        *,
        namespace: str = "pot",
        subsystem: str = "ceremony",
        registry=REGISTRY,
        contribute_buckets: Iterable[float] = _CONTRIBUTE_BUCKETS,
    ) -> None:
        self.contributions_total = Counter(
            "contributions_total",
            "Contribution rounds run, labeled by outcome.",
            labelnames=("outcome",),
            namespace=namespace,
            subsystem=subsystem,
            registry=registry,
        )
        self.verifications_total = Counter(
            "verifications_total",
            "Subgroup checks run, labeled by target transcript and outcome.",
            labelnames=("target", "outcome"),
            namespace=namespace,
            subsystem=subsystem,
            registry=registry,
        )
        self.auxiliary_failures_total = Counter(
            "auxiliary_failures_total",
            "Non-fatal failures of optional round steps.",
            labelnames=("step",),
            namespace=namespace,
            subsystem=subsystem,
            registry=registry,
        )
        self.contribute_seconds = Histogram(
            "contribute_seconds",
            "Time spent in the engine contribute call (seconds).",
            buckets=tuple(contribute_buckets),
            namespace=namespace,
            subsystem=subsystem,
            registry=registry,
        )

    def record_round(self, outcome: str) -> None:
        if outcome not in _ROUND_OUTCOMES:
            outcome = "engine_failure"
        self.contributions_total.labels(outcome=outcome).inc()

    def record_verification(self, target: Union[VerificationTarget, str], outcome: str) -> None:
        target = _label(target)
        if target not in _VERIFY_TARGETS or outcome not in _VERIFY_OUTCOMES:
            raise ValueError(f"unknown verification label: {target}/{outcome}")
        self.verifications_total.labels(target=target, outcome=outcome).inc()

    def record_auxiliary_failure(self, step: Union[AuxiliaryStep, str]) -> None:
        step = _label(step)
        if step not in _AUX_STEPS:
            raise ValueError(f"unknown auxiliary step: {step}")
        self.auxiliary_failures_total.labels(step=step).inc()

    def observe_contribute(self, seconds: float) -> None:
        self.contribute_seconds.observe(float(seconds))


# Singleton used by the coordinator unless one is injected
METRICS = Metrics()

__all__ = ["Metrics", "METRICS"]
