from __future__ import annotations

import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Header, HTTPException, status

from domain import GitDeployError
from routers.errors import to_http_exception
from schemas import DeploymentLogResponse, ExecutorReport
from services import DeploymentProgressService


logger = logging.getLogger("gitdeploy.executor")


def build_executor_router(
    progress_service: DeploymentProgressService, callback_token: Optional[str]
) -> APIRouter:
    router = APIRouter(prefix="/api/v1/executor", tags=["executor"])
    expected = (callback_token or "").encode("utf-8")

    def _check_token(presented: Optional[str]) -> None:
        # an unset token disables the channel entirely
        if not expected or not hmac.compare_digest(expected, (presented or "").encode("utf-8")):
            logger.warning("Rejected executor report with invalid token.")
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid executor token.")

    @router.post(
        "/deployments/{deployment_id}/report",
        response_model=DeploymentLogResponse,
        summary="Progress, log lines and result reported by the release executor.",
    )
    async def report(
        deployment_id: str,
        payload: ExecutorReport,
        x_executor_token: Optional[str] = Header(default=None),
    ) -> DeploymentLogResponse:
        _check_token(x_executor_token)
        try:
            record = await progress_service.apply_report(
                deployment_id,
                status=payload.status,
                log_lines=payload.log,
                commit_hash=payload.commit_hash,
                commit_message=payload.commit_message,
                commit_author=payload.commit_author,
                release_path=payload.release_path,
                error_message=payload.error_message,
            )
        except GitDeployError as exc:
            raise to_http_exception(exc) from exc
        return DeploymentLogResponse.from_record(record)

    return router
