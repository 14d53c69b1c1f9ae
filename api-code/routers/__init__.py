from .auth import build_auth_router
from .executor import build_executor_router
from .git import build_git_router
from .health import build_health_router
from .webhook import build_webhook_router

__all__ = [
    "build_auth_router",
    "build_executor_router",
    "build_git_router",
    "build_health_router",
    "build_webhook_router",
]
