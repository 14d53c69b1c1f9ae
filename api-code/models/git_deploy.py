from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field

from domain.deploy_states import DeploymentStatus
from domain.git import DeploymentTrigger, Framework, GitProvider


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class MongoModel(BaseModel):
    """Base Pydantic model with sensible defaults for MongoDB documents."""

    model_config = {
        "populate_by_name": True,
        "use_enum_values": True,
        "validate_default": True,
    }

    def to_mongo(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class Site(MongoModel):
    """Hosted site owned by the surrounding panel; read-only here."""

    site_id: str = Field(..., alias="_id")
    owner: str = Field(..., description="Username of the operator owning the site.")
    url: str = Field(default="", description="Primary domain of the site.")

    @classmethod
    def from_mongo(cls, document: dict[str, Any]) -> "Site":
        data = {**document}
        if "_id" in data and "site_id" not in data:
            data["site_id"] = data.pop("_id")
        return cls.model_validate(data)


class RepositoryLink(MongoModel):
    link_id: str = Field(..., alias="_id", description="Primary identifier (UUID).")
    site_id: str = Field(..., description="Owning site; at most one link per site.")
    owner: str = Field(..., description="Operator that owns the site.")
    provider: GitProvider = Field(default=GitProvider.GITHUB)
    repository_url: str = Field(..., description="Clone URL of the remote repository.")
    branch: str = Field(default="main", description="Only branch that triggers auto-deploy.")
    framework: Framework = Field(default=Framework.CUSTOM)
    deploy_key: Optional[str] = Field(
        default=None,
        repr=False,
        description="Fernet token of the private deploy key; never stored in clear.",
    )
    webhook_secret: str = Field(..., repr=False)
    auto_deploy: bool = Field(default=False)
    zero_downtime: bool = Field(default=True)
    keep_releases: int = Field(default=5, ge=1)
    deploy_script: str = Field(default="")
    last_deployed_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def from_mongo(cls, document: dict[str, Any]) -> "RepositoryLink":
        if not document:
            raise ValueError("Mongo document is empty; cannot build RepositoryLink.")
        data = {**document}
        if "_id" in data and "link_id" not in data:
            data["link_id"] = data.pop("_id")
        return cls.model_validate(data)

    @property
    def has_deploy_key(self) -> bool:
        return bool(self.deploy_key)

    @property
    def webhook_path(self) -> str:
        return f"/git/webhook/{self.link_id}/{self.webhook_secret}"

    @property
    def repository_name(self) -> str:
        url = self.repository_url.strip()
        if url.startswith("git@"):
            url = url.split(":", 1)[-1]
        else:
            url = url.split("//", 1)[-1]
            url = url.split("/", 1)[-1] if "/" in url else url
        if url.endswith(".git"):
            url = url[: -len(".git")]
        return url.strip("/")


class RepositoryLinkUpdate(BaseModel):
    branch: Optional[str] = None
    framework: Optional[Framework] = None
    auto_deploy: Optional[bool] = None
    zero_downtime: Optional[bool] = None
    keep_releases: Optional[int] = None
    deploy_script: Optional[str] = None
    deploy_key: Optional[str] = Field(default=None, repr=False)
    webhook_secret: Optional[str] = Field(default=None, repr=False)
    last_deployed_at: Optional[datetime] = None

    def to_update_query(self) -> dict[str, Any]:
        set_fields = self.model_dump(exclude_none=True)
        for key, value in list(set_fields.items()):
            if isinstance(value, Framework):
                set_fields[key] = value.value
        if not set_fields:
            return {}
        set_fields["updated_at"] = utc_now()
        return {"$set": set_fields}


class CommitMeta(BaseModel):
    """Commit metadata extracted from a push event or copied from a prior release."""

    hash: Optional[str] = None
    message: Optional[str] = None
    author: Optional[str] = None


class DeploymentRecord(MongoModel):
    deployment_id: str = Field(..., alias="_id", description="Primary identifier (UUID).")
    link_id: str = Field(..., description="Owning repository link.")
    actor: Optional[str] = Field(
        default=None, description="Operator for manual/rollback triggers; absent for webhooks."
    )
    branch: str = Field(..., description="Branch being deployed.")
    commit_hash: Optional[str] = None
    commit_message: Optional[str] = None
    commit_author: Optional[str] = None
    status: DeploymentStatus = Field(default=DeploymentStatus.PENDING)
    trigger: DeploymentTrigger = Field(default=DeploymentTrigger.MANUAL)
    log: str = Field(default="", description="Append-only executor output.")
    error_message: Optional[str] = None
    release_path: Optional[str] = Field(
        default=None, description="Location of the deployed artifact; required for rollback."
    )
    rollback_target_id: Optional[str] = Field(
        default=None, description="Deployment whose release a rollback restores."
    )
    rolled_back_from_id: Optional[str] = Field(
        default=None, description="Release that was live when the rollback was requested."
    )
    in_flight: bool = Field(
        default=True, description="True until a terminal status; backs the single-flight index."
    )
    created_at: datetime = Field(default_factory=utc_now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_mongo(cls, document: dict[str, Any]) -> "DeploymentRecord":
        if not document:
            raise ValueError("Mongo document is empty; cannot build DeploymentRecord.")
        data = {**document}
        if "_id" in data and "deployment_id" not in data:
            data["deployment_id"] = data.pop("_id")
        return cls.model_validate(data)

    @property
    def status_value(self) -> DeploymentStatus:
        return DeploymentStatus(self.status)

    @property
    def trigger_value(self) -> DeploymentTrigger:
        return DeploymentTrigger(self.trigger)

    def is_in_progress(self) -> bool:
        return self.status_value.is_in_flight

    def can_rollback_to(self) -> bool:
        return self.status_value == DeploymentStatus.COMPLETED and bool(self.release_path)

    @property
    def short_commit_hash(self) -> Optional[str]:
        return self.commit_hash[:7] if self.commit_hash else None

    @property
    def duration_seconds(self) -> Optional[int]:
        if not self.started_at or not self.completed_at:
            return None
        delta = _as_utc(self.completed_at) - _as_utc(self.started_at)
        return max(0, int(delta.total_seconds()))

    @property
    def formatted_duration(self) -> Optional[str]:
        duration = self.duration_seconds
        if not duration:
            return None
        if duration < 60:
            return f"{duration}s"
        minutes, seconds = divmod(duration, 60)
        return f"{minutes}m {seconds}s"


class DeploymentUpdate(BaseModel):
    """Partial update applied to a deployment on behalf of the executor."""

    status: Optional[DeploymentStatus] = None
    commit_hash: Optional[str] = None
    commit_message: Optional[str] = None
    commit_author: Optional[str] = None
    release_path: Optional[str] = None
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    in_flight: Optional[bool] = None
    append_log: str = Field(default="", description="Pre-formatted lines appended to log.")

    def set_fields(self) -> dict[str, Any]:
        fields = self.model_dump(exclude_none=True, exclude={"append_log"})
        if self.status is not None:
            fields["status"] = DeploymentStatus(self.status).value
        return fields

    def to_update_pipeline(self) -> list[dict[str, Any]]:
        # pipeline stages read "$..." strings as field paths
        set_fields = {key: {"$literal": value} for key, value in self.set_fields().items()}
        if self.append_log:
            set_fields["log"] = {
                "$concat": [{"$ifNull": ["$log", ""]}, {"$literal": self.append_log}]
            }
        if not set_fields:
            return []
        return [{"$set": set_fields}]


def format_log_lines(lines: list[str], *, at: Optional[datetime] = None) -> str:
    timestamp = (at or utc_now()).strftime("%H:%M:%S")
    return "".join(f"[{timestamp}] {line}\n" for line in lines if line)
