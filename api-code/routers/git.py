from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from fastapi import APIRouter, Depends, Query, status

from domain import DeploymentStatus, Framework, GitDeployError, default_deploy_script
from models import DeploymentRecord
from routers.errors import to_http_exception
from schemas import (
    ConnectRequest,
    DeployScriptResponse,
    DeployTriggerResponse,
    DeploymentLogResponse,
    DeploymentSummary,
    DisconnectResponse,
    LinkResponse,
    UpdateRequest,
    WebhookSecretResponse,
)
from services import DeploymentService, RepositoryLinkService


def _secret_value(secret: Any) -> Optional[str]:
    return secret.get_secret_value() if secret is not None else None


def _trigger_response(record: DeploymentRecord, started: str) -> DeployTriggerResponse:
    if record.status_value == DeploymentStatus.FAILED:
        message = record.error_message or "Deployment could not be started."
    else:
        message = started
    return DeployTriggerResponse(
        deployment_id=record.deployment_id,
        status=record.status_value,
        message=message,
    )


def build_git_router(
    link_service: RepositoryLinkService,
    deployment_service: DeploymentService,
    auth_dependency: Callable[..., Any],
) -> APIRouter:
    router = APIRouter(prefix="/api/v1/git", tags=["git"])

    @router.get(
        "/links",
        response_model=list[LinkResponse],
        summary="List repository links visible to the caller with their latest deployment.",
    )
    async def list_links(user: Dict[str, Any] = Depends(auth_dependency)) -> list[LinkResponse]:
        try:
            rows = await deployment_service.list_links(user["username"])
        except GitDeployError as exc:
            raise to_http_exception(exc) from exc
        return [
            LinkResponse.from_link(link, link_service.webhook_url(link), latest)
            for link, latest in rows
        ]

    @router.post(
        "/links",
        response_model=LinkResponse,
        status_code=status.HTTP_201_CREATED,
        summary="Connect a git repository to a site.",
    )
    async def connect(
        payload: ConnectRequest,
        user: Dict[str, Any] = Depends(auth_dependency),
    ) -> LinkResponse:
        try:
            link = await link_service.connect(
                payload.site_id,
                user["username"],
                repository_url=payload.repository_url,
                provider=payload.provider,
                branch=payload.branch,
                framework=payload.framework,
                deploy_key=_secret_value(payload.deploy_key),
                auto_deploy=payload.auto_deploy,
                zero_downtime=payload.zero_downtime,
                keep_releases=payload.keep_releases,
                deploy_script=payload.deploy_script,
            )
        except GitDeployError as exc:
            raise to_http_exception(exc) from exc
        return LinkResponse.from_link(link, link_service.webhook_url(link))

    @router.get(
        "/links/{link_id}",
        response_model=LinkResponse,
        summary="Show a repository link.",
    )
    async def get_link(
        link_id: str, user: Dict[str, Any] = Depends(auth_dependency)
    ) -> LinkResponse:
        try:
            link = await link_service.get_link(link_id, user["username"])
        except GitDeployError as exc:
            raise to_http_exception(exc) from exc
        latest = await deployment_service.repository.get_latest_deployment(link.link_id)
        return LinkResponse.from_link(link, link_service.webhook_url(link), latest)

    @router.patch(
        "/links/{link_id}",
        response_model=LinkResponse,
        summary="Update branch, framework, script, deploy key or release settings.",
    )
    async def update_link(
        link_id: str,
        payload: UpdateRequest,
        user: Dict[str, Any] = Depends(auth_dependency),
    ) -> LinkResponse:
        try:
            link = await link_service.update(
                link_id,
                user["username"],
                branch=payload.branch,
                framework=payload.framework,
                auto_deploy=payload.auto_deploy,
                zero_downtime=payload.zero_downtime,
                keep_releases=payload.keep_releases,
                deploy_script=payload.deploy_script,
                deploy_key=_secret_value(payload.deploy_key),
            )
        except GitDeployError as exc:
            raise to_http_exception(exc) from exc
        return LinkResponse.from_link(link, link_service.webhook_url(link))

    @router.delete(
        "/links/{link_id}",
        response_model=DisconnectResponse,
        summary="Disconnect the repository and delete its deployment history.",
    )
    async def disconnect(
        link_id: str, user: Dict[str, Any] = Depends(auth_dependency)
    ) -> DisconnectResponse:
        try:
            removed = await link_service.disconnect(link_id, user["username"])
        except GitDeployError as exc:
            raise to_http_exception(exc) from exc
        return DisconnectResponse(link_id=link_id, deployments_removed=removed)

    @router.post(
        "/links/{link_id}/deploy",
        response_model=DeployTriggerResponse,
        status_code=status.HTTP_202_ACCEPTED,
        summary="Deploy the tracked branch now.",
    )
    async def deploy(
        link_id: str, user: Dict[str, Any] = Depends(auth_dependency)
    ) -> DeployTriggerResponse:
        try:
            record = await deployment_service.trigger_deploy(link_id, user["username"])
        except GitDeployError as exc:
            raise to_http_exception(exc) from exc
        return _trigger_response(record, "Deployment started")

    @router.get(
        "/links/{link_id}/deployments",
        response_model=list[DeploymentSummary],
        summary="Deployment history, most recent first.",
    )
    async def history(
        link_id: str,
        limit: Optional[int] = Query(default=None, ge=1),
        user: Dict[str, Any] = Depends(auth_dependency),
    ) -> list[DeploymentSummary]:
        try:
            records = await deployment_service.history(link_id, user["username"], limit)
        except GitDeployError as exc:
            raise to_http_exception(exc) from exc
        return [DeploymentSummary.from_record(record) for record in records]

    @router.post(
        "/links/{link_id}/webhook-secret",
        response_model=WebhookSecretResponse,
        summary="Rotate the webhook secret; the previous webhook URL stops working.",
    )
    async def regenerate_webhook_secret(
        link_id: str, user: Dict[str, Any] = Depends(auth_dependency)
    ) -> WebhookSecretResponse:
        try:
            link = await link_service.regenerate_webhook_secret(link_id, user["username"])
        except GitDeployError as exc:
            raise to_http_exception(exc) from exc
        return WebhookSecretResponse(link_id=link.link_id, webhook_url=link_service.webhook_url(link))

    @router.get(
        "/deployments/{deployment_id}",
        response_model=DeploymentSummary,
        summary="Status of a single deployment.",
    )
    async def get_deployment(
        deployment_id: str, user: Dict[str, Any] = Depends(auth_dependency)
    ) -> DeploymentSummary:
        try:
            record = await deployment_service.get_deployment(deployment_id, user["username"])
        except GitDeployError as exc:
            raise to_http_exception(exc) from exc
        return DeploymentSummary.from_record(record)

    @router.get(
        "/deployments/{deployment_id}/logs",
        response_model=DeploymentLogResponse,
        summary="Executor log of a deployment.",
    )
    async def get_logs(
        deployment_id: str, user: Dict[str, Any] = Depends(auth_dependency)
    ) -> DeploymentLogResponse:
        try:
            record = await deployment_service.get_deployment(deployment_id, user["username"])
        except GitDeployError as exc:
            raise to_http_exception(exc) from exc
        return DeploymentLogResponse.from_record(record)

    @router.post(
        "/deployments/{deployment_id}/rollback",
        response_model=DeployTriggerResponse,
        status_code=status.HTTP_202_ACCEPTED,
        summary="Re-activate the release produced by a completed deployment.",
    )
    async def rollback(
        deployment_id: str, user: Dict[str, Any] = Depends(auth_dependency)
    ) -> DeployTriggerResponse:
        try:
            record = await deployment_service.rollback(deployment_id, user["username"])
        except GitDeployError as exc:
            raise to_http_exception(exc) from exc
        return _trigger_response(record, "Rollback started")

    @router.get(
        "/deploy-script",
        response_model=DeployScriptResponse,
        summary="Default deploy script for a framework.",
    )
    async def deploy_script(
        framework: Framework = Query(default=Framework.CUSTOM),
        user: Dict[str, Any] = Depends(auth_dependency),
    ) -> DeployScriptResponse:
        return DeployScriptResponse(framework=framework, script=default_deploy_script(framework))

    return router
