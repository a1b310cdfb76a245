"""
Pytest fixtures for the Canary Rollout test suite.

The controller and shifter take a clock callable; `FakeClock` lets tests move
time forward explicitly instead of sleeping.
"""
import pytest

from canary_rollout.core.config import CanaryConfig, HealthThresholds
from canary_rollout.core.custom_types import HealthMetrics
from canary_rollout.deployment.canary import CanaryController
from canary_rollout.deployment.traffic_shifter import TrafficShifter

T0 = 1_700_000_000_000


class FakeClock:
    def __init__(self, start_ms: int = T0):
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def shifter(clock) -> TrafficShifter:
    return TrafficShifter(clock=clock)


@pytest.fixture
def controller(clock) -> CanaryController:
    return CanaryController(clock=clock)


@pytest.fixture
def canary_config() -> CanaryConfig:
    """Default production-like policy: 10% start, +20% steps, standard thresholds."""
    return CanaryConfig(
        initial_percentage=10,
        increment_percentage=20,
        max_percentage=100,
        increment_interval_ms=60_000,
        rollback_on=HealthThresholds(error_rate=5, latency_p95=3000, latency_p99=5000, success_rate=95),
    )


def make_metrics(**overrides) -> HealthMetrics:
    """Healthy baseline sample; override individual fields per test."""
    values = dict(
        timestamp_ms=T0,
        error_rate=0.5,
        latency_p95=800.0,
        latency_p99=1200.0,
        latency_avg=300.0,
        success_rate=99.5,
        request_count=1000,
        error_count=5,
    )
    values.update(overrides)
    return HealthMetrics(**values)


@pytest.fixture
def metrics_factory():
    return make_metrics
