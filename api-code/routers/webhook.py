from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request, status

from domain import SecretMismatchError
from schemas import WebhookResponse
from services import WebhookIngester


logger = logging.getLogger("gitdeploy.webhook")


async def _read_payload(request: Request) -> Any:
    body = await request.body()
    if not body:
        return {}
    try:
        return json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError):
        logger.info("Webhook body is not JSON; treating it as an empty payload.")
        return {}


def build_webhook_router(ingester: WebhookIngester) -> APIRouter:
    router = APIRouter(tags=["webhook"])

    @router.post(
        "/git/webhook/{link_id}/{secret}",
        response_model=WebhookResponse,
        response_model_exclude_none=True,
        summary="Push notification endpoint for GitHub, GitLab, Bitbucket or custom senders.",
    )
    async def receive_push(link_id: str, secret: str, request: Request) -> WebhookResponse:
        payload = await _read_payload(request)
        try:
            outcome = await ingester.handle(link_id, secret, payload)
        except SecretMismatchError as exc:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
        return WebhookResponse(message=outcome.message, deployment_id=outcome.deployment_id)

    return router
