from __future__ import annotations

import logging
from typing import Iterable, Optional

from domain import (
    ConflictError,
    DeploymentStatus,
    NotFoundError,
    ValidationError,
    is_valid_transition,
)
from models import DeploymentRecord, DeploymentUpdate, RepositoryLinkUpdate, format_log_lines, utc_now
from repositories import GitDeploymentRepository


logger = logging.getLogger("gitdeploy.progress")

DEFAULT_FAILURE_MESSAGE = "Deployment failed"


class DeploymentProgressService:
    """Applies status/log reports sent back by the detached executor."""

    def __init__(self, repository: GitDeploymentRepository):
        self.repository = repository

    async def apply_report(
        self,
        deployment_id: str,
        *,
        status: Optional[DeploymentStatus | str] = None,
        log_lines: Iterable[str] = (),
        commit_hash: Optional[str] = None,
        commit_message: Optional[str] = None,
        commit_author: Optional[str] = None,
        release_path: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> DeploymentRecord:
        record = await self.repository.get_deployment(deployment_id)
        if record is None:
            raise NotFoundError(f"deployment not found: {deployment_id}")

        current = record.status_value
        new_status = self._parse_status(status)
        update = DeploymentUpdate(append_log=format_log_lines(list(log_lines)))

        if current.is_terminal:
            if new_status is not None and new_status != current:
                raise ConflictError(
                    f"Deployment already finished with status {current.value}."
                )
            # late log lines are still accepted for finished deployments
            return await self._store(record, update, current)

        if new_status is not None:
            if not is_valid_transition(current, new_status):
                raise ConflictError(
                    f"Invalid status transition {current.value} -> {new_status.value}."
                )
            update.status = new_status
            if new_status != DeploymentStatus.PENDING and record.started_at is None:
                update.started_at = utc_now()
            if new_status.is_terminal:
                update.completed_at = utc_now()
                update.in_flight = False
            if new_status == DeploymentStatus.FAILED:
                update.error_message = error_message or DEFAULT_FAILURE_MESSAGE

        # the webhook or rollback already captured these
        if commit_hash and not record.commit_hash:
            update.commit_hash = commit_hash
        if commit_message and not record.commit_message:
            update.commit_message = commit_message
        if commit_author and not record.commit_author:
            update.commit_author = commit_author
        if release_path:
            update.release_path = release_path

        updated = await self._store(record, update, current)
        if new_status == DeploymentStatus.COMPLETED and current != new_status:
            await self._on_completed(updated)
        elif new_status == DeploymentStatus.FAILED and current != new_status:
            logger.warning(
                "Deployment failed deployment=%s link=%s error=%s",
                updated.deployment_id,
                updated.link_id,
                updated.error_message,
            )
        return updated

    @staticmethod
    def _parse_status(status: Optional[DeploymentStatus | str]) -> Optional[DeploymentStatus]:
        if status is None:
            return None
        try:
            parsed = DeploymentStatus(status)
        except ValueError as exc:
            raise ValidationError(f"Unknown deployment status: {status}") from exc
        if parsed == DeploymentStatus.ROLLED_BACK:
            raise ValidationError("rolled_back is assigned by the control plane only.")
        return parsed

    async def _store(
        self,
        record: DeploymentRecord,
        update: DeploymentUpdate,
        expected: DeploymentStatus,
    ) -> DeploymentRecord:
        if not update.set_fields() and not update.append_log:
            return record
        updated = await self.repository.update_deployment(
            record.deployment_id, update, expected_status=expected
        )
        if updated is None:
            raise ConflictError("Deployment was modified concurrently; retry the report.")
        return updated

    async def _on_completed(self, record: DeploymentRecord) -> None:
        await self.repository.update_link(
            record.link_id, RepositoryLinkUpdate(last_deployed_at=record.completed_at)
        )
        logger.info(
            "Deployment completed deployment=%s link=%s duration=%s",
            record.deployment_id,
            record.link_id,
            record.formatted_duration,
        )
        if not record.rolled_back_from_id:
            return
        superseded = await self.repository.update_deployment(
            record.rolled_back_from_id,
            DeploymentUpdate(
                status=DeploymentStatus.ROLLED_BACK,
                append_log=format_log_lines([f"Rolled back by deployment {record.deployment_id}"]),
            ),
            expected_status=DeploymentStatus.COMPLETED,
        )
        if superseded is not None:
            logger.info(
                "Release superseded by rollback deployment=%s rollback=%s",
                superseded.deployment_id,
                record.deployment_id,
            )
