"""Canary controller: debounced health evaluation on top of a TrafficShifter.

Per deployment the controller keeps the latest metrics, a consecutive
violation counter and a coarse health status:

    healthy <-> degraded -> unhealthy (should_rollback=True) -> rolled-back

Only consecutive violations count. Any clean sample resets the counter to
zero. `rolled-back` is reached only through an explicit `rollback` call; the
controller recommends, the caller acts.
"""
from __future__ import annotations
import threading
from typing import Any, Dict, List, Optional
from loguru import logger

from canary_rollout.core.config import CanaryConfig, HealthThresholds
from canary_rollout.core.custom_types import (
    CanaryState, DeploymentId, HealthMetrics, HealthStatus, TrafficStatus,
)
from canary_rollout.core.errors import DeploymentExistsError, DeploymentNotFoundError
from canary_rollout.core.timeutils import Clock, elapsed_ms, format_duration, now_ms
from canary_rollout.deployment.traffic_shifter import TrafficShifter


def check_health_thresholds(metrics: HealthMetrics, thresholds: HealthThresholds) -> List[str]:
    """Return one message per violated threshold.

    Unset thresholds and missing metric values are skipped.
    """
    violations: List[str] = []

    if thresholds.error_rate is not None and metrics.error_rate is not None \
            and metrics.error_rate > thresholds.error_rate:
        violations.append(f"Error rate {metrics.error_rate:.1f}% exceeds threshold {thresholds.error_rate:g}%")

    if thresholds.latency_p95 is not None and metrics.latency_p95 is not None \
            and metrics.latency_p95 > thresholds.latency_p95:
        violations.append(f"P95 latency {metrics.latency_p95:g}ms exceeds threshold {thresholds.latency_p95:g}ms")

    if thresholds.latency_p99 is not None and metrics.latency_p99 is not None \
            and metrics.latency_p99 > thresholds.latency_p99:
        violations.append(f"P99 latency {metrics.latency_p99:g}ms exceeds threshold {thresholds.latency_p99:g}ms")

    if thresholds.success_rate is not None and metrics.success_rate is not None \
            and metrics.success_rate < thresholds.success_rate:
        violations.append(f"Success rate {metrics.success_rate:.1f}% below threshold {thresholds.success_rate:g}%")

    return violations


class CanaryController:
    def __init__(self, shifter: Optional[TrafficShifter] = None, clock: Optional[Clock] = None):
        self._clock: Clock = clock or now_ms
        self.shifter = shifter or TrafficShifter(clock=self._clock)
        self._states: Dict[DeploymentId, CanaryState] = {}
        self._lock = threading.RLock()

    def _get(self, deployment_id: DeploymentId) -> CanaryState:
        state = self._states.get(deployment_id)
        if state is None:
            raise DeploymentNotFoundError(deployment_id, component="Canary")
        return state

    # ---------------- Lifecycle ----------------
    def start_canary(self, deployment_id: DeploymentId, blue_version: str, green_version: str,
                     config: CanaryConfig) -> CanaryState:
        with self._lock:
            if deployment_id in self._states:
                raise DeploymentExistsError(deployment_id, component="Canary")
            traffic_state = self.shifter.start_shift(deployment_id, blue_version, green_version, config)
            state = CanaryState(deployment_id=deployment_id, config=config, traffic_state=traffic_state)
            self._states[deployment_id] = state
        logger.info(
            f"[Canary] {deployment_id}: started (step {config.increment_percentage}% every "
            f"{format_duration(config.increment_interval_ms)}, rollback after "
            f"{config.failure_threshold_count} consecutive failures)"
        )
        return state

    def update_metrics(self, deployment_id: DeploymentId, metrics: HealthMetrics) -> CanaryState:
        """Record a metrics sample and re-evaluate health."""
        with self._lock:
            state = self._get(deployment_id)
            state.current_metrics = metrics
            if state.status == HealthStatus.ROLLED_BACK:
                logger.debug(f"[Canary] {deployment_id}: metrics recorded after rollback; not evaluated")
                return state

            violations = check_health_thresholds(metrics, state.config.rollback_on)
            if not violations:
                if state.health_check_failures:
                    logger.info(f"[Canary] {deployment_id}: clean sample, failure streak of "
                                f"{state.health_check_failures} reset")
                state.health_check_failures = 0
                state.status = HealthStatus.HEALTHY
                return state

            state.health_check_failures += 1
            limit = state.config.failure_threshold_count
            if state.health_check_failures >= limit:
                state.should_rollback = True
                state.rollback_reason = "; ".join(violations)
                state.status = HealthStatus.UNHEALTHY
                logger.error(f"[Canary] {deployment_id}: rollback recommended after "
                             f"{state.health_check_failures} consecutive failures: {state.rollback_reason}")
            else:
                state.status = HealthStatus.DEGRADED
                logger.warning(f"[Canary] {deployment_id}: degraded ({state.health_check_failures}/{limit}): "
                               f"{'; '.join(violations)}")
            return state

    def advance_traffic(self, deployment_id: DeploymentId, reason: str = 'Canary progression') -> CanaryState:
        """Move to the next step on the schedule.

        No-op once at `max_percentage` or after a rollback. Does not check the
        interval; see `is_ready_for_progression`.
        """
        with self._lock:
            state = self._get(deployment_id)
            if state.traffic_state.status == TrafficStatus.ROLLED_BACK:
                logger.warning(f"[Canary] {deployment_id}: advance ignored, deployment was rolled back")
                return state
            target = self.shifter.get_next_target(deployment_id, state.config)
            if target is None:
                logger.debug(f"[Canary] {deployment_id}: already at {state.config.max_percentage}%, nothing to advance")
                return state
            self.shifter.update_traffic(deployment_id, target, reason)
            state.traffic_state = self.shifter.get_state(deployment_id)
            return state

    def rollback(self, deployment_id: DeploymentId, reason: str = 'Manual rollback') -> CanaryState:
        with self._lock:
            state = self._get(deployment_id)
            self.shifter.rollback(deployment_id, reason)
            state.traffic_state = self.shifter.get_state(deployment_id)
            state.should_rollback = False
            state.rollback_reason = reason
            state.status = HealthStatus.ROLLED_BACK
        logger.error(f"[Canary] {deployment_id}: rolled back ({reason})")
        return state

    def complete(self, deployment_id: DeploymentId) -> CanaryState:
        """Promote green to 100% of traffic."""
        with self._lock:
            state = self._get(deployment_id)
            self.shifter.update_traffic(deployment_id, 100, 'Canary deployment completed')
            state.traffic_state = self.shifter.get_state(deployment_id)
            state.status = HealthStatus.HEALTHY
        logger.success(f"[Canary] {deployment_id}: completed, {state.traffic_state.green_version} at 100%")
        return state

    def clear(self, deployment_id: DeploymentId) -> None:
        with self._lock:
            self._get(deployment_id)
            self.shifter.clear(deployment_id)
            del self._states[deployment_id]
        logger.info(f"[Canary] {deployment_id}: cleared")

    # ---------------- Queries ----------------
    def is_ready_for_progression(self, deployment_id: DeploymentId) -> bool:
        with self._lock:
            state = self._get(deployment_id)
            return self.shifter.is_ready_for_next_increment(deployment_id, state.config.increment_interval_ms)

    def get_state(self, deployment_id: DeploymentId) -> CanaryState:
        with self._lock:
            return self._get(deployment_id)

    def get_summary(self, deployment_id: DeploymentId) -> Dict[str, Any]:
        with self._lock:
            state = self._get(deployment_id)
            ts = state.traffic_state
            return {
                'status': ts.status.value,
                'current_traffic': ts.current_percentage,
                'health_status': state.status.value,
                'metrics': state.current_metrics,
                'should_rollback': state.should_rollback,
                'rollback_reason': state.rollback_reason,
                'health_check_failures': state.health_check_failures,
                'duration_ms': elapsed_ms(ts.start_time_ms, self._clock()),
            }

    def deployments(self) -> List[DeploymentId]:
        with self._lock:
            return list(self._states)


__all__ = ['CanaryController', 'check_health_thresholds']
