from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from domain import (
    ConflictError,
    DeploymentStatus,
    DeploymentTrigger,
    GitProvider,
    SecretMismatchError,
)
from models import CommitMeta
from repositories import GitDeploymentRepository
from services.deployment_guard import DeploymentGuard


logger = logging.getLogger("gitdeploy.webhook")


@dataclass(frozen=True)
class PushEvent:
    branch: Optional[str]
    commit: CommitMeta = field(default_factory=CommitMeta)


@dataclass(frozen=True)
class WebhookOutcome:
    message: str
    deployment_id: Optional[str] = None

    @property
    def triggered(self) -> bool:
        return self.deployment_id is not None


def _dig(payload: Any, *path: Any) -> Any:
    """Walk nested dicts/lists, returning None as soon as a step is missing."""
    current = payload
    for step in path:
        if isinstance(step, int):
            if not isinstance(current, list) or len(current) <= step:
                return None
        elif not isinstance(current, dict):
            return None
        current = current[step] if isinstance(step, int) else current.get(step)
        if current is None:
            return None
    return current


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def parse_github_push(payload: Dict[str, Any]) -> PushEvent:
    ref = _text(_dig(payload, "ref"))
    return PushEvent(
        branch=ref.removeprefix("refs/heads/") if ref is not None else None,
        commit=CommitMeta(
            hash=_text(_dig(payload, "head_commit", "id")),
            message=_text(_dig(payload, "head_commit", "message")),
            author=_text(_dig(payload, "head_commit", "author", "name")),
        ),
    )


def parse_gitlab_push(payload: Dict[str, Any]) -> PushEvent:
    return PushEvent(
        branch=_text(_dig(payload, "ref")),
        commit=CommitMeta(
            hash=_text(_dig(payload, "checkout_sha")),
            message=_text(_dig(payload, "commits", 0, "message")),
            author=_text(_dig(payload, "commits", 0, "author", "name")),
        ),
    )


def parse_bitbucket_push(payload: Dict[str, Any]) -> PushEvent:
    new = _dig(payload, "push", "changes", 0, "new")
    return PushEvent(
        branch=_text(_dig(new, "name")),
        commit=CommitMeta(
            hash=_text(_dig(new, "target", "hash")),
            message=_text(_dig(new, "target", "message")),
            author=_text(_dig(new, "target", "author", "raw")),
        ),
    )


def parse_custom_push(payload: Dict[str, Any]) -> PushEvent:
    # ref is compared verbatim; no refs/heads/ stripping for custom senders
    return PushEvent(branch=_text(_dig(payload, "ref")))


PUSH_PARSERS: Dict[GitProvider, Callable[[Dict[str, Any]], PushEvent]] = {
    GitProvider.GITHUB: parse_github_push,
    GitProvider.GITLAB: parse_gitlab_push,
    GitProvider.BITBUCKET: parse_bitbucket_push,
    GitProvider.CUSTOM: parse_custom_push,
}


def parse_push_event(provider: GitProvider | str, payload: Any) -> PushEvent:
    if not isinstance(payload, dict):
        payload = {}
    try:
        parser = PUSH_PARSERS[GitProvider(provider)]
    except (KeyError, ValueError):
        parser = parse_custom_push
    return parser(payload)


def secrets_match(expected: str, presented: str) -> bool:
    return hmac.compare_digest(
        (expected or "").encode("utf-8"),
        (presented or "").encode("utf-8"),
    )


class WebhookIngester:
    """Turns provider push notifications into webhook-triggered deployments.

    Only a bad secret is an error. Every business refusal comes back as a
    message so providers do not treat it as a failed delivery and retry.
    """

    def __init__(self, repository: GitDeploymentRepository, guard: DeploymentGuard):
        self.repository = repository
        self.guard = guard

    async def handle(self, link_id: str, secret: str, payload: Any) -> WebhookOutcome:
        link = await self.repository.get_link(link_id)
        if link is None or not secrets_match(link.webhook_secret, secret):
            logger.warning("Rejected webhook with invalid secret link=%s", link_id)
            raise SecretMismatchError("Invalid webhook secret")

        if not link.auto_deploy:
            return WebhookOutcome(message="Auto-deploy is disabled")

        event = parse_push_event(link.provider, payload)
        if event.branch != link.branch:
            logger.info(
                "Ignoring push to branch=%s link=%s (tracking %s)",
                event.branch,
                link.link_id,
                link.branch,
            )
            return WebhookOutcome(message="Push to different branch, skipping")

        try:
            record = await self.guard.deploy(
                link,
                DeploymentTrigger.WEBHOOK,
                actor=None,
                commit_meta=event.commit,
            )
        except ConflictError:
            logger.info("Webhook push skipped; deployment in progress link=%s", link.link_id)
            return WebhookOutcome(message="Deployment already in progress")

        if record.status_value == DeploymentStatus.FAILED:
            return WebhookOutcome(
                message=record.error_message or "Deployment could not be started",
                deployment_id=record.deployment_id,
            )
        return WebhookOutcome(message="Deployment triggered", deployment_id=record.deployment_id)
