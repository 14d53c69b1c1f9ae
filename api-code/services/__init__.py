from .access import SiteAccessPolicy
from .auth_service import AuthService
from .deployment_guard import DeploymentGuard
from .deployment_service import DeploymentService
from .executor import ExecutorDispatcher
from .link_service import RepositoryLinkService
from .progress import DeploymentProgressService
from .rollback import RollbackCoordinator
from .vault import DeployKeyVault
from .webhook_ingester import WebhookIngester, WebhookOutcome, parse_push_event

__all__ = [
    "SiteAccessPolicy",
    "AuthService",
    "DeploymentGuard",
    "DeploymentService",
    "ExecutorDispatcher",
    "RepositoryLinkService",
    "DeploymentProgressService",
    "RollbackCoordinator",
    "DeployKeyVault",
    "WebhookIngester",
    "WebhookOutcome",
    "parse_push_event",
]
