"""Shared fixtures for pin_gateway tests."""

from __future__ import annotations

import pytest

from pin_gateway.models.config import (
    GatewayConfig,
    ReconcileConfig,
    TaskConfig,
    UploadConfig,
)
from pin_gateway.pins.reconcile import PinReconciler
from pin_gateway.pins.service import PinService
from pin_gateway.pins.upload import UploadOrchestrator
from pin_gateway.storage.sqlite import SQLiteStore

from tests.mocks import MockCluster, MockTaskQueue


def make_test_config(**overrides) -> GatewayConfig:
    """Build a GatewayConfig suitable for testing."""
    defaults = dict(
        log_level="debug",
        db_path=":memory:",
        upload=UploadConfig(create_upload_min_timeout=0.001, create_upload_max_timeout=0.004),
        reconcile=ReconcileConfig(poll_interval=0.01, max_wait=0.05),
        tasks=TaskConfig(workers=2, max_queued=10),
    )
    defaults.update(overrides)
    return GatewayConfig(**defaults)


class FakeClock:
    """Deterministic clock: sleeping advances time instead of waiting."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def test_config():
    """Default GatewayConfig for tests."""
    return make_test_config()


@pytest.fixture
async def store():
    """Initialized in-memory SQLiteStore."""
    s = SQLiteStore(":memory:")
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture
def mock_cluster():
    return MockCluster()


@pytest.fixture
def mock_tasks():
    return MockTaskQueue()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def reconciler(mock_cluster, store, clock):
    return PinReconciler(
        mock_cluster, store, poll_interval=5.0, max_wait=30.0,
        clock=clock, sleep=clock.sleep,
    )


@pytest.fixture
def orchestrator(test_config, mock_cluster, store, mock_tasks, reconciler):
    return UploadOrchestrator(mock_cluster, store, mock_tasks, reconciler, test_config.upload)


@pytest.fixture
def pin_service(mock_cluster, store, mock_tasks, reconciler):
    return PinService(mock_cluster, store, mock_tasks, reconciler)
