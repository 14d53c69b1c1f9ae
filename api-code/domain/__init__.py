from .deploy_states import (
    IN_FLIGHT_STATUSES,
    RELEASED_STATUSES,
    TERMINAL_STATUSES,
    DeploymentStatus,
    is_valid_transition,
)
from .errors import (
    AuthorizationError,
    ConflictError,
    ExecutionFailure,
    GitDeployError,
    NotFoundError,
    SecretMismatchError,
    ValidationError,
)
from .git import DeploymentTrigger, Framework, GitProvider, default_deploy_script

__all__ = [
    "IN_FLIGHT_STATUSES",
    "RELEASED_STATUSES",
    "TERMINAL_STATUSES",
    "DeploymentStatus",
    "is_valid_transition",
    "AuthorizationError",
    "ConflictError",
    "ExecutionFailure",
    "GitDeployError",
    "NotFoundError",
    "SecretMismatchError",
    "ValidationError",
    "DeploymentTrigger",
    "Framework",
    "GitProvider",
    "default_deploy_script",
]
