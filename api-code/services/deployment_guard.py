from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional
from uuid import uuid4

from domain import ConflictError, DeploymentStatus, DeploymentTrigger, ExecutionFailure
from models import (
    CommitMeta,
    DeploymentRecord,
    DeploymentUpdate,
    RepositoryLink,
    format_log_lines,
    utc_now,
)
from repositories import GitDeploymentRepository
from services.executor import ExecutorDispatcher
from services.vault import DeployKeyVault


logger = logging.getLogger("gitdeploy.guard")


class DeploymentGuard:
    """Single entry point for opening deployments on a repository link.

    At most one deployment per link may be in flight. The repository enforces
    this with an atomic conditional insert, so concurrent manual and webhook
    triggers cannot both succeed.
    """

    def __init__(
        self,
        repository: GitDeploymentRepository,
        dispatcher: ExecutorDispatcher,
        vault: DeployKeyVault,
    ):
        self.repository = repository
        self.dispatcher = dispatcher
        self.vault = vault

    async def ensure_idle(self, link: RepositoryLink) -> None:
        in_flight = await self.repository.find_in_flight(link.link_id)
        if in_flight is not None:
            raise ConflictError("A deployment is already in progress.")

    async def open_deployment(self, record: DeploymentRecord) -> DeploymentRecord:
        return await self.repository.insert_deployment_if_idle(record)

    async def deploy(
        self,
        link: RepositoryLink,
        trigger: DeploymentTrigger,
        actor: Optional[str],
        commit_meta: Optional[CommitMeta] = None,
    ) -> DeploymentRecord:
        commit = commit_meta or CommitMeta()
        record = await self.open_deployment(
            DeploymentRecord(
                deployment_id=uuid4().hex,
                link_id=link.link_id,
                actor=actor,
                branch=link.branch,
                commit_hash=commit.hash,
                commit_message=commit.message,
                commit_author=commit.author,
                status=DeploymentStatus.PENDING,
                trigger=trigger,
            )
        )
        logger.info(
            "Deployment queued deployment=%s link=%s trigger=%s actor=%s",
            record.deployment_id,
            link.link_id,
            record.trigger,
            actor or "system",
        )
        deploy_key = self.vault.decrypt(link.deploy_key)
        return await self.dispatch(
            record,
            lambda: self.dispatcher.launch_deploy(record, link, deploy_key),
        )

    async def dispatch(
        self,
        record: DeploymentRecord,
        launch: Callable[[], Awaitable[None]],
    ) -> DeploymentRecord:
        """Start the executor for a freshly opened record.

        A launch failure is written onto the record instead of being raised;
        the caller still receives the record id.
        """
        try:
            await launch()
        except ExecutionFailure as exc:
            failed = await self.repository.update_deployment(
                record.deployment_id,
                DeploymentUpdate(
                    status=DeploymentStatus.FAILED,
                    error_message=str(exc),
                    completed_at=utc_now(),
                    in_flight=False,
                    append_log=format_log_lines([str(exc)]),
                ),
                expected_status=DeploymentStatus.PENDING,
            )
            return failed or record
        return record
