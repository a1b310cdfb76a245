"""Canary Rollout package.

Progressive blue/green rollout decision engine: a traffic shifter that owns the
per-deployment percentage schedule and a canary controller that debounces
health-threshold violations into a rollback recommendation.
"""
from canary_rollout.core.errors import CanaryError, DeploymentExistsError, DeploymentNotFoundError
from canary_rollout.deployment.canary import CanaryController
from canary_rollout.deployment.traffic_shifter import TrafficShifter, traffic_weights

__all__ = [
    'CanaryController', 'TrafficShifter', 'traffic_weights',
    'CanaryError', 'DeploymentExistsError', 'DeploymentNotFoundError',
]
