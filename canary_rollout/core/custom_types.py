"""
Custom Type Definitions
-----------------------

Centralized data shapes shared by the traffic shifter and the canary
controller.

- TrafficStatus / HealthStatus: two independent closed enumerations. Traffic
  status tracks where the percentage schedule is; health status tracks what
  the latest metrics say. A deployment can be healthy at 40% or rolled back
  while metrics keep arriving, so the two are never merged.
- HealthMetrics: caller-supplied snapshot, never computed here.
- TrafficShiftState / CanaryState: per-deployment records owned by their
  respective components.
"""
from __future__ import annotations
from enum import Enum
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field, asdict

from canary_rollout.core.timeutils import now_ms

# A simple type alias for a deployment identifier (e.g., "api-2024-10-01").
DeploymentId = str


class TrafficStatus(str, Enum):
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    ROLLED_BACK = "rolled-back"


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    ROLLED_BACK = "rolled-back"


@dataclass
class HealthMetrics:
    """
    Timestamped health snapshot for the green version.

    Rates are percentages (0-100), latencies milliseconds. Any field may be
    None when the collector had nothing to report; thresholds on a missing
    metric are not evaluated.
    """

    timestamp_ms: int = field(default_factory=now_ms)
    error_rate: Optional[float] = None
    latency_p95: Optional[float] = None
    latency_p99: Optional[float] = None
    latency_avg: Optional[float] = None
    success_rate: Optional[float] = None
    request_count: int = 0
    error_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TrafficShiftEvent:
    """Audit entry for one percentage change."""

    timestamp_ms: int
    from_percentage: int
    to_percentage: int
    reason: str


@dataclass
class TrafficShiftState:
    deployment_id: DeploymentId
    blue_version: str
    green_version: str
    current_percentage: int
    status: TrafficStatus
    start_time_ms: int
    last_change_time_ms: int
    history: List[TrafficShiftEvent] = field(default_factory=list)


@dataclass
class CanaryState:
    deployment_id: DeploymentId
    config: Any  # CanaryConfig
    traffic_state: TrafficShiftState
    current_metrics: Optional[HealthMetrics] = None
    health_check_failures: int = 0
    should_rollback: bool = False
    rollback_reason: Optional[str] = None
    status: HealthStatus = HealthStatus.HEALTHY
