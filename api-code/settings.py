from __future__ import annotations

import os
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, Field


class Settings(BaseModel):
    """Runtime configuration resolved from environment variables."""

    mongodb_uri: str = Field(
        default="mongodb://127.0.0.1:27017",
        alias="MONGODB_URI",
        description="MongoDB connection string",
    )
    mongodb_db_name: str = Field(
        default="gitdeploy",
        alias="MONGODB_DB_NAME",
        description="MongoDB database name",
    )
    deploy_dry_run: bool = Field(
        default=False,
        alias="DEPLOY_DRY_RUN",
        description="When true, executor invocations are logged but not spawned.",
    )
    executor_deploy_script: str = Field(
        default="/opt/gitdeploy/bin/git-deploy.sh",
        alias="EXECUTOR_DEPLOY_SCRIPT",
        description="Shell script that clones, builds and activates a new release.",
    )
    executor_rollback_script: str = Field(
        default="/opt/gitdeploy/bin/git-rollback.sh",
        alias="EXECUTOR_ROLLBACK_SCRIPT",
        description="Shell script that re-activates an existing release directory.",
    )
    executor_use_sudo: bool = Field(
        default=True,
        alias="EXECUTOR_USE_SUDO",
        description="Prefix executor invocations with sudo.",
    )
    executor_callback_token: Optional[str] = Field(
        default=None,
        alias="EXECUTOR_CALLBACK_TOKEN",
        description="Shared token the executor presents when reporting progress.",
    )
    public_base_url: str = Field(
        default="http://127.0.0.1:9001",
        alias="PUBLIC_BASE_URL",
        description="Externally reachable base URL used to build webhook and callback URLs.",
    )
    deploy_key_encryption_key: Optional[str] = Field(
        default=None,
        alias="DEPLOY_KEY_ENCRYPTION_KEY",
        description="Fernet key used to encrypt deploy keys at rest.",
    )
    webhook_secret_bytes: int = Field(
        default=30,
        alias="WEBHOOK_SECRET_BYTES",
        description="Random bytes behind each webhook secret (30 bytes -> 40 URL-safe chars).",
    )
    history_page_size: int = Field(
        default=20,
        alias="HISTORY_PAGE_SIZE",
        description="Maximum number of deployments returned by the history endpoint.",
    )
    verify_release_paths: bool = Field(
        default=True,
        alias="VERIFY_RELEASE_PATHS",
        description="Check that a rollback target's release directory still exists on disk.",
    )
    jwt_secret_key: str = Field(
        default="change-me",
        alias="JWT_SECRET_KEY",
        description="HS256 signing key for auth cookies.",
    )
    jwt_expire_minutes: int = Field(
        default=60,
        alias="JWT_EXPIRE_MINUTES",
        description="Lifetime of issued auth cookies.",
    )
    login_user: str = Field(
        default="admin",
        alias="LOGIN_USER",
        description="Administrator username; may manage every site.",
    )
    login_password: str = Field(
        default="",
        alias="LOGIN_PASSWORD",
        description="Administrator password.",
    )
    operator_credentials: str = Field(
        default="",
        alias="OPERATOR_CREDENTIALS",
        description="Comma-separated user:password pairs for site owners.",
    )
    auth_cookie_name: str = Field(
        default="gitdeploy_auth",
        alias="AUTH_COOKIE_NAME",
        description="Name of the auth cookie.",
    )
    auth_cookie_secure: bool = Field(
        default=False,
        alias="AUTH_COOKIE_SECURE",
        description="Mark the auth cookie Secure.",
    )
    auth_cookie_domain: Optional[str] = Field(
        default=None,
        alias="AUTH_COOKIE_DOMAIN",
        description="Optional cookie domain.",
    )

    model_config = {"populate_by_name": True}

    @classmethod
    def from_env(cls) -> "Settings":
        return cls.model_validate(os.environ)

    @property
    def callback_base_url(self) -> str:
        return self.public_base_url.rstrip("/")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance built from environment variables."""
    return Settings.from_env()
