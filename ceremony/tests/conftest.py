from __future__ import annotations

import pytest
from prometheus_client import CollectorRegistry

from ceremony.metrics import Metrics


@pytest.fixture
def registry() -> CollectorRegistry:
    return CollectorRegistry()


@pytest.fixture
def metrics(registry: CollectorRegistry) -> Metrics:
    return Metrics(registry=registry)


@pytest.fixture
def transcript_text() -> str:
    return '{"x":1}'
