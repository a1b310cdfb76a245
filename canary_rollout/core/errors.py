"""Exceptions raised by the rollout components."""


class CanaryError(Exception):
    """Base class for rollout controller errors."""
    pass


class DeploymentNotFoundError(CanaryError, KeyError):
    """No active record exists for the given deployment id."""

    def __init__(self, deployment_id: str, component: str = "Deployment"):
        self.deployment_id = deployment_id
        self.component = component
        super().__init__(f"{component} {deployment_id} not found")

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return self.args[0]


class DeploymentExistsError(CanaryError):
    """A record already exists; it must be cleared before starting again."""

    def __init__(self, deployment_id: str, component: str = "Deployment"):
        self.deployment_id = deployment_id
        super().__init__(f"{component} {deployment_id} already exists; clear it first")
