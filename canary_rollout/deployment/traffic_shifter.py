"""Traffic shifting for blue/green rollouts.

Keeps, per deployment id, the percentage of traffic routed to the green
version and the history of how it got there. The shifter never touches real
infrastructure: callers read `current_percentage` (or `traffic_weights`) and
apply it to their load balancer, DNS or CDN routing.

Progression is gated only by `is_ready_for_next_increment`; there are no
timers or background threads here.
"""
from __future__ import annotations
import threading
from typing import Dict, List, Optional
from loguru import logger

from canary_rollout.core.config import TrafficShiftConfig
from canary_rollout.core.custom_types import (
    DeploymentId, TrafficShiftEvent, TrafficShiftState, TrafficStatus,
)
from canary_rollout.core.errors import DeploymentExistsError, DeploymentNotFoundError
from canary_rollout.core.timeutils import Clock, elapsed_ms, now_ms


def traffic_weights(green_percentage: int) -> Dict[str, int]:
    """Split 100 weight units between blue and green.

    Suitable for weighted origins, target group weights or weighted DNS
    records where the two weights must sum to 100.
    """
    if green_percentage < 0 or green_percentage > 100:
        raise ValueError(f"Invalid target percentage: {green_percentage}")
    return {"blue_weight": 100 - green_percentage, "green_weight": green_percentage}


class TrafficShifter:
    def __init__(self, clock: Optional[Clock] = None):
        self._clock: Clock = clock or now_ms
        self._shifts: Dict[DeploymentId, TrafficShiftState] = {}
        self._lock = threading.RLock()

    def _get(self, deployment_id: DeploymentId) -> TrafficShiftState:
        state = self._shifts.get(deployment_id)
        if state is None:
            raise DeploymentNotFoundError(deployment_id, component="Shift")
        return state

    def start_shift(self, deployment_id: DeploymentId, blue_version: str, green_version: str,
                    config: TrafficShiftConfig) -> TrafficShiftState:
        """Register a new shift at `config.initial_percentage` green traffic."""
        with self._lock:
            if deployment_id in self._shifts:
                raise DeploymentExistsError(deployment_id, component="Shift")
            ts = self._clock()
            initial = config.initial_percentage or 0
            state = TrafficShiftState(
                deployment_id=deployment_id,
                blue_version=blue_version,
                green_version=green_version,
                current_percentage=initial,
                status=TrafficStatus.IN_PROGRESS,
                start_time_ms=ts,
                last_change_time_ms=ts,
                history=[TrafficShiftEvent(ts, 0, initial, 'Initial canary traffic shift')],
            )
            self._shifts[deployment_id] = state
        logger.info(f"[TrafficShifter] {deployment_id}: started {blue_version} -> {green_version} at {initial}%")
        return state

    def get_next_target(self, deployment_id: DeploymentId, config: TrafficShiftConfig) -> Optional[int]:
        """Next percentage on the schedule, or None when there is nothing to advance.

        None once `max_percentage` is reached, and also for a zero increment.
        """
        with self._lock:
            state = self._get(deployment_id)
            if state.current_percentage >= config.max_percentage:
                return None
            target = min(state.current_percentage + config.increment_percentage, config.max_percentage)
            return None if target == state.current_percentage else target

    def update_traffic(self, deployment_id: DeploymentId, percentage: int, reason: str) -> TrafficShiftState:
        if isinstance(percentage, bool) or not isinstance(percentage, (int, float)) \
                or not 0 <= percentage <= 100 or percentage != int(percentage):
            raise ValueError(f"Invalid target percentage: {percentage}")
        with self._lock:
            state = self._get(deployment_id)
            ts = self._clock()
            from_pct = state.current_percentage
            state.current_percentage = int(percentage)
            state.last_change_time_ms = ts
            state.status = TrafficStatus.COMPLETED if percentage == 100 else TrafficStatus.IN_PROGRESS
            state.history.append(TrafficShiftEvent(ts, from_pct, state.current_percentage, reason))
        logger.info(f"[TrafficShifter] {deployment_id}: {from_pct}% -> {percentage}% ({reason})")
        return state

    def rollback(self, deployment_id: DeploymentId, reason: str) -> TrafficShiftState:
        """Send all traffic back to blue."""
        with self._lock:
            state = self._get(deployment_id)
            ts = self._clock()
            from_pct = state.current_percentage
            state.current_percentage = 0
            state.status = TrafficStatus.ROLLED_BACK
            state.last_change_time_ms = ts
            state.history.append(TrafficShiftEvent(ts, from_pct, 0, reason))
        logger.error(f"[TrafficShifter] {deployment_id}: rolled back {from_pct}% -> 0% ({reason})")
        return state

    def get_state(self, deployment_id: DeploymentId) -> TrafficShiftState:
        with self._lock:
            return self._get(deployment_id)

    def get_time_since_last_update(self, deployment_id: DeploymentId) -> int:
        with self._lock:
            state = self._get(deployment_id)
            return elapsed_ms(state.last_change_time_ms, self._clock())

    def is_ready_for_next_increment(self, deployment_id: DeploymentId, interval_ms: int) -> bool:
        return self.get_time_since_last_update(deployment_id) >= interval_ms

    def get_summary(self, deployment_id: DeploymentId) -> Dict[str, object]:
        with self._lock:
            state = self._get(deployment_id)
            return {
                'current_percentage': state.current_percentage,
                'status': state.status.value,
                'duration_ms': elapsed_ms(state.start_time_ms, self._clock()),
                'events_count': len(state.history),
            }

    def deployments(self) -> List[DeploymentId]:
        with self._lock:
            return list(self._shifts)

    def clear(self, deployment_id: DeploymentId) -> None:
        with self._lock:
            self._get(deployment_id)
            del self._shifts[deployment_id]
        logger.debug(f"[TrafficShifter] {deployment_id}: cleared")


__all__ = ['TrafficShifter', 'traffic_weights']
