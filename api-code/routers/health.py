from __future__ import annotations

from typing import Any, Callable, Dict

from fastapi import APIRouter

from repositories import GitDeploymentRepository


def build_health_router(get_repository: Callable[[], GitDeploymentRepository]) -> APIRouter:
    router = APIRouter()

    @router.get("/healthz")
    async def healthcheck() -> Dict[str, Any]:
        repository = get_repository()
        mongo_ok = await repository.ping()
        latest = await repository.get_latest_deployment() if mongo_ok else None

        issues = [] if mongo_ok else ["MongoDB ping failed."]
        return {
            "status": "healthy" if not issues else "degraded",
            "mongo": "ok" if mongo_ok else "unreachable",
            "repository": type(repository).__name__,
            "last_deployment_id": latest.deployment_id if latest else None,
            "last_deployment_status": latest.status if latest else None,
            "issues": issues,
        }

    return router
