from .git_deploy import (
    CommitMeta,
    DeploymentRecord,
    DeploymentUpdate,
    MongoModel,
    RepositoryLink,
    RepositoryLinkUpdate,
    Site,
    format_log_lines,
    utc_now,
)

__all__ = [
    "CommitMeta",
    "DeploymentRecord",
    "DeploymentUpdate",
    "MongoModel",
    "RepositoryLink",
    "RepositoryLinkUpdate",
    "Site",
    "format_log_lines",
    "utc_now",
]
