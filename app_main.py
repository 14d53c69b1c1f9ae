from __future__ import annotations

import logging
import sys
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware


PROJECT_ROOT = Path(__file__).resolve().parent
API_CODE_PATH = PROJECT_ROOT / "api-code"
if str(API_CODE_PATH) not in sys.path:
    sys.path.insert(0, str(API_CODE_PATH))

from db.mongo import close_mongo_client  # noqa: E402
from env_loader import load_local_env  # noqa: E402
from repositories import GitDeploymentRepository, InMemoryGitDeploymentRepository  # noqa: E402
from routers import (  # noqa: E402
    build_auth_router,
    build_executor_router,
    build_git_router,
    build_health_router,
    build_webhook_router,
)
from services import (  # noqa: E402
    AuthService,
    DeployKeyVault,
    DeploymentGuard,
    DeploymentProgressService,
    DeploymentService,
    ExecutorDispatcher,
    RepositoryLinkService,
    RollbackCoordinator,
    SiteAccessPolicy,
    WebhookIngester,
)
from settings import get_settings  # noqa: E402


load_local_env()
settings = get_settings()

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("gitdeploy")

app = FastAPI(
    title="Git Deploy API",
    version="0.1.0",
    description="Git-driven deployment control plane: repository links, webhooks, releases and rollbacks.",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

auth_service = AuthService(settings)
auth_dependency = auth_service.build_auth_dependency()
vault = DeployKeyVault(settings.deploy_key_encryption_key)
dispatcher = ExecutorDispatcher(settings)

repository: GitDeploymentRepository | InMemoryGitDeploymentRepository = GitDeploymentRepository()
access_policy = SiteAccessPolicy(repository, auth_service.admin_users)
link_service = RepositoryLinkService(repository, access_policy, vault, settings)
guard = DeploymentGuard(repository, dispatcher, vault)
rollback_coordinator = RollbackCoordinator(
    repository, guard, verify_release_paths=settings.verify_release_paths
)
deployment_service = DeploymentService(
    repository,
    link_service,
    guard,
    rollback_coordinator,
    history_page_size=settings.history_page_size,
)
webhook_ingester = WebhookIngester(repository, guard)
progress_service = DeploymentProgressService(repository)

app.include_router(build_auth_router(auth_service))
app.include_router(build_git_router(link_service, deployment_service, auth_dependency))
app.include_router(build_webhook_router(webhook_ingester))
app.include_router(build_executor_router(progress_service, settings.executor_callback_token))
app.include_router(build_health_router(lambda: repository))


@app.on_event("startup")
async def on_startup() -> None:
    global repository  # pylint: disable=global-statement
    if not settings.executor_callback_token:
        logger.warning("EXECUTOR_CALLBACK_TOKEN is not set; executor reports will be rejected.")
    try:
        await repository.ensure_indexes()
        logger.info("MongoDB repository initialized successfully.")
    except Exception as exc:  # pylint: disable=broad-except
        logger.warning(
            "MongoDB unavailable (%s); falling back to in-memory repository.", exc
        )
        repository = InMemoryGitDeploymentRepository()
        for service in (
            access_policy,
            link_service,
            guard,
            rollback_coordinator,
            deployment_service,
            webhook_ingester,
            progress_service,
        ):
            service.repository = repository  # type: ignore[assignment]


@app.on_event("shutdown")
async def on_shutdown() -> None:
    close_mongo_client()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app_main:app", host="0.0.0.0", port=9001, reload=True)
