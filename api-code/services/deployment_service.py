from __future__ import annotations

import logging
from typing import Optional, Tuple

from domain import DeploymentTrigger, NotFoundError
from models import DeploymentRecord, RepositoryLink
from repositories import GitDeploymentRepository
from services.deployment_guard import DeploymentGuard
from services.link_service import RepositoryLinkService
from services.rollback import RollbackCoordinator


logger = logging.getLogger("gitdeploy.deployments")


class DeploymentService:
    """Operator-facing deployment operations, always scoped to the caller's sites."""

    def __init__(
        self,
        repository: GitDeploymentRepository,
        links: RepositoryLinkService,
        guard: DeploymentGuard,
        rollbacks: RollbackCoordinator,
        *,
        history_page_size: int = 20,
    ):
        self.repository = repository
        self.links = links
        self.guard = guard
        self.rollbacks = rollbacks
        self.history_page_size = max(1, history_page_size)

    async def list_links(
        self, actor: str
    ) -> list[Tuple[RepositoryLink, Optional[DeploymentRecord]]]:
        links = await self.links.list_links(actor)
        return [
            (link, await self.repository.get_latest_deployment(link.link_id)) for link in links
        ]

    async def trigger_deploy(self, link_id: str, actor: str) -> DeploymentRecord:
        link = await self.links.get_link(link_id, actor)
        record = await self.guard.deploy(link, DeploymentTrigger.MANUAL, actor=actor)
        logger.info(
            "Manual deployment requested deployment=%s link=%s actor=%s",
            record.deployment_id,
            link.link_id,
            actor,
        )
        return record

    async def get_deployment(self, deployment_id: str, actor: str) -> DeploymentRecord:
        record = await self.repository.get_deployment(deployment_id)
        if record is None:
            raise NotFoundError(f"deployment not found: {deployment_id}")
        # authorizes through the owning link
        await self.links.get_link(record.link_id, actor)
        return record

    async def rollback(self, deployment_id: str, actor: str) -> DeploymentRecord:
        target = await self.get_deployment(deployment_id, actor)
        record = await self.rollbacks.rollback(target, actor)
        logger.info(
            "Rollback requested deployment=%s target=%s actor=%s",
            record.deployment_id,
            target.deployment_id,
            actor,
        )
        return record

    async def history(
        self, link_id: str, actor: str, limit: Optional[int] = None
    ) -> list[DeploymentRecord]:
        link = await self.links.get_link(link_id, actor)
        page = self.history_page_size if not limit else min(limit, self.history_page_size)
        return await self.repository.list_deployments(link.link_id, limit=page)
