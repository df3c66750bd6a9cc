"""
Error taxonomy for the deployment planner

Local errors never reach the network. Remote errors are raised by the backend
client and mapped by the session onto a defined fallback state.
"""

from typing import Optional


class DeploymentError(Exception):
    """Base class for every planner error"""


class InvalidTransition(DeploymentError):
    """An action is not permitted in the current deployment phase"""

    def __init__(self, action: str, phase: str, reason: str = ""):
        self.action = action
        self.phase = phase
        message = f"{action} is not allowed while {phase}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class ConfigurationInvalid(DeploymentError):
    """Submitted configuration failed local validation"""


class PlacementError(DeploymentError):
    """Invalid placement mode request"""


class RemoteCallError(DeploymentError):
    """A call to the backend failed"""


class RemoteTimeout(RemoteCallError):
    """The backend did not answer within the configured timeout"""


class RemoteUnavailable(RemoteCallError):
    """The backend could not be reached"""


class RemoteRejected(RemoteCallError):
    """The backend answered with an error status"""

    def __init__(self, detail: str, status: Optional[int] = None):
        self.detail = detail
        self.status = status
        super().__init__(detail if status is None else f"[{status}] {detail}")
