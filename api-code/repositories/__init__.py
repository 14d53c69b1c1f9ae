from .git_deployments import GitDeploymentRepository
from .in_memory import InMemoryGitDeploymentRepository

__all__ = ["GitDeploymentRepository", "InMemoryGitDeploymentRepository"]
