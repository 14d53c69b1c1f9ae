from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional
from uuid import uuid4

from domain import ConflictError, DeploymentStatus, DeploymentTrigger, NotFoundError, ValidationError
from models import DeploymentRecord, RepositoryLink
from repositories import GitDeploymentRepository
from services.deployment_guard import DeploymentGuard


logger = logging.getLogger("gitdeploy.rollback")


class RollbackCoordinator:
    """Opens a deployment that re-activates a previously completed release."""

    def __init__(
        self,
        repository: GitDeploymentRepository,
        guard: DeploymentGuard,
        *,
        verify_release_paths: bool = True,
    ):
        self.repository = repository
        self.guard = guard
        self.verify_release_paths = verify_release_paths

    async def rollback(self, target: DeploymentRecord, actor: Optional[str]) -> DeploymentRecord:
        if not target.can_rollback_to():
            raise ValidationError("Cannot rollback to this deployment.")

        link = await self.repository.get_link(target.link_id)
        if link is None:
            raise NotFoundError(f"repository link not found: {target.link_id}")

        await self._ensure_release_available(target, link)
        await self.guard.ensure_idle(link)

        live = await self.repository.get_latest_completed(link.link_id)
        superseded_id = (
            live.deployment_id if live and live.deployment_id != target.deployment_id else None
        )

        record = await self.guard.open_deployment(
            DeploymentRecord(
                deployment_id=uuid4().hex,
                link_id=link.link_id,
                actor=actor,
                branch=target.branch,
                commit_hash=target.commit_hash,
                commit_message=f"Rollback to {target.short_commit_hash or 'previous release'}",
                commit_author=target.commit_author,
                status=DeploymentStatus.PENDING,
                trigger=DeploymentTrigger.ROLLBACK,
                rollback_target_id=target.deployment_id,
                rolled_back_from_id=superseded_id,
            )
        )
        logger.info(
            "Rollback queued deployment=%s link=%s target=%s release=%s",
            record.deployment_id,
            link.link_id,
            target.deployment_id,
            target.release_path,
        )
        release_path = target.release_path or ""
        return await self.guard.dispatch(
            record,
            lambda: self.guard.dispatcher.launch_rollback(record, link, release_path),
        )

    async def _ensure_release_available(
        self, target: DeploymentRecord, link: RepositoryLink
    ) -> None:
        newer_releases = await self.repository.count_releases_after(
            link.link_id, target.created_at
        )
        if newer_releases >= link.keep_releases:
            raise ConflictError(
                "Release has been pruned by the retention policy "
                f"(keep_releases={link.keep_releases})."
            )
        if self.verify_release_paths and not Path(target.release_path or "").exists():
            raise ConflictError(f"Release directory no longer exists: {target.release_path}")
