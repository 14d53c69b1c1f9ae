from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, SecretStr

from domain import DeploymentStatus, DeploymentTrigger, Framework, GitProvider
from models import DeploymentRecord, RepositoryLink


class ConnectRequest(BaseModel):
    site_id: str = Field(..., min_length=1, description="Site the repository is connected to.")
    repository_url: str = Field(..., min_length=1, max_length=500, description="Clone URL.")
    provider: GitProvider = Field(default=GitProvider.GITHUB)
    branch: str = Field(default="main", min_length=1, max_length=100)
    framework: Framework = Field(default=Framework.CUSTOM)
    deploy_key: Optional[SecretStr] = Field(
        default=None, description="Private SSH key for private repositories."
    )
    auto_deploy: bool = Field(default=False)
    zero_downtime: bool = Field(default=True)
    keep_releases: int = Field(default=5, description="Releases kept on disk (1-20).")
    deploy_script: Optional[str] = Field(
        default=None, description="Shell commands run after checkout. Blank uses the framework default."
    )


class UpdateRequest(BaseModel):
    branch: Optional[str] = Field(default=None, min_length=1, max_length=100)
    framework: Optional[Framework] = None
    deploy_key: Optional[SecretStr] = Field(
        default=None, description="Replaces the stored key when non-empty."
    )
    auto_deploy: Optional[bool] = None
    zero_downtime: Optional[bool] = None
    keep_releases: Optional[int] = None
    deploy_script: Optional[str] = None


class DeploymentSummary(BaseModel):
    deployment_id: str = Field(..., description="Deployment identifier.")
    link_id: str = Field(..., description="Owning repository link.")
    status: DeploymentStatus = Field(..., description="Current or terminal status.")
    status_label: str = Field(..., description="Human readable status.")
    trigger: DeploymentTrigger = Field(..., description="manual, webhook or rollback.")
    actor: Optional[str] = Field(default=None, description="Operator; absent for webhooks.")
    branch: str
    commit_hash: Optional[str] = None
    short_commit_hash: Optional[str] = None
    commit_message: Optional[str] = None
    commit_author: Optional[str] = None
    error_message: Optional[str] = None
    rollback_target_id: Optional[str] = None
    can_rollback: bool = Field(default=False)
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None
    formatted_duration: Optional[str] = None

    @classmethod
    def from_record(cls, record: DeploymentRecord) -> "DeploymentSummary":
        return cls(
            deployment_id=record.deployment_id,
            link_id=record.link_id,
            status=record.status_value,
            status_label=record.status_value.label,
            trigger=record.trigger_value,
            actor=record.actor,
            branch=record.branch,
            commit_hash=record.commit_hash,
            short_commit_hash=record.short_commit_hash,
            commit_message=record.commit_message,
            commit_author=record.commit_author,
            error_message=record.error_message,
            rollback_target_id=record.rollback_target_id,
            can_rollback=record.can_rollback_to(),
            created_at=record.created_at,
            started_at=record.started_at,
            completed_at=record.completed_at,
            duration_seconds=record.duration_seconds,
            formatted_duration=record.formatted_duration,
        )


class DeploymentLogResponse(BaseModel):
    deployment_id: str
    status: DeploymentStatus
    status_label: str
    log: str = Field(default="", description="Timestamped executor output.")
    error_message: Optional[str] = None
    is_in_progress: bool = Field(..., description="True while the executor is still running.")

    @classmethod
    def from_record(cls, record: DeploymentRecord) -> "DeploymentLogResponse":
        return cls(
            deployment_id=record.deployment_id,
            status=record.status_value,
            status_label=record.status_value.label,
            log=record.log,
            error_message=record.error_message,
            is_in_progress=record.is_in_progress(),
        )


class LinkResponse(BaseModel):
    link_id: str
    site_id: str
    owner: str
    provider: GitProvider
    repository_url: str
    repository_name: str
    branch: str
    framework: Framework
    framework_label: str
    has_deploy_key: bool = Field(..., description="The key itself is never returned.")
    webhook_url: str
    auto_deploy: bool
    zero_downtime: bool
    keep_releases: int
    deploy_script: str
    last_deployed_at: Optional[datetime] = None
    created_at: datetime
    latest_deployment: Optional[DeploymentSummary] = None

    @classmethod
    def from_link(
        cls,
        link: RepositoryLink,
        webhook_url: str,
        latest: Optional[DeploymentRecord] = None,
    ) -> "LinkResponse":
        framework = Framework(link.framework)
        return cls(
            link_id=link.link_id,
            site_id=link.site_id,
            owner=link.owner,
            provider=GitProvider(link.provider),
            repository_url=link.repository_url,
            repository_name=link.repository_name,
            branch=link.branch,
            framework=framework,
            framework_label=framework.label,
            has_deploy_key=link.has_deploy_key,
            webhook_url=webhook_url,
            auto_deploy=link.auto_deploy,
            zero_downtime=link.zero_downtime,
            keep_releases=link.keep_releases,
            deploy_script=link.deploy_script,
            last_deployed_at=link.last_deployed_at,
            created_at=link.created_at,
            latest_deployment=DeploymentSummary.from_record(latest) if latest else None,
        )


class DisconnectResponse(BaseModel):
    link_id: str
    deployments_removed: int = Field(..., description="History rows deleted with the link.")


class DeployTriggerResponse(BaseModel):
    deployment_id: str = Field(..., description="Identifier for tracking the deployment.")
    status: DeploymentStatus = Field(..., description="Status right after dispatch.")
    message: str


class WebhookSecretResponse(BaseModel):
    link_id: str
    webhook_url: str = Field(..., description="New webhook URL; the previous one stops working.")


class DeployScriptResponse(BaseModel):
    framework: Framework
    script: str


class WebhookResponse(BaseModel):
    model_config = {"populate_by_name": True}

    message: str
    deployment_id: Optional[str] = Field(default=None, alias="deploymentId")


class ExecutorReport(BaseModel):
    status: Optional[DeploymentStatus] = Field(
        default=None, description="New status; omitted for log-only reports."
    )
    log: list[str] = Field(default_factory=list, description="Lines appended to the log.")
    commit_hash: Optional[str] = None
    commit_message: Optional[str] = None
    commit_author: Optional[str] = None
    release_path: Optional[str] = None
    error_message: Optional[str] = None
