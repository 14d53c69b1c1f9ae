from __future__ import annotations

import logging
import secrets
from typing import Optional
from uuid import uuid4

from domain import (
    ConflictError,
    Framework,
    GitProvider,
    NotFoundError,
    ValidationError,
    default_deploy_script,
)
from models import RepositoryLink, RepositoryLinkUpdate
from repositories import GitDeploymentRepository
from services.access import SiteAccessPolicy
from services.vault import DeployKeyVault
from settings import Settings


logger = logging.getLogger("gitdeploy.links")

MAX_URL_LENGTH = 500
MAX_BRANCH_LENGTH = 100
MIN_KEEP_RELEASES = 1
MAX_KEEP_RELEASES = 20


def _validate_branch(branch: str) -> str:
    branch = (branch or "").strip()
    if not branch:
        raise ValidationError("Branch is required.")
    if len(branch) > MAX_BRANCH_LENGTH or any(char.isspace() for char in branch):
        raise ValidationError(f"Invalid branch name: {branch!r}")
    return branch


def _validate_keep_releases(value: int) -> int:
    if not MIN_KEEP_RELEASES <= value <= MAX_KEEP_RELEASES:
        raise ValidationError(
            f"keep_releases must be between {MIN_KEEP_RELEASES} and {MAX_KEEP_RELEASES}."
        )
    return value


def _validate_framework(value: Framework | str) -> Framework:
    try:
        return Framework(value)
    except ValueError as exc:
        raise ValidationError(f"Unknown framework: {value}") from exc


def _validate_provider(value: GitProvider | str) -> GitProvider:
    try:
        return GitProvider(value)
    except ValueError as exc:
        raise ValidationError(f"Unknown provider: {value}") from exc


class RepositoryLinkService:
    """Connects sites to remote repositories and manages the link's secrets."""

    def __init__(
        self,
        repository: GitDeploymentRepository,
        access: SiteAccessPolicy,
        vault: DeployKeyVault,
        settings: Settings,
    ):
        self.repository = repository
        self.access = access
        self.vault = vault
        self.public_base_url = settings.callback_base_url
        self.webhook_secret_bytes = max(16, settings.webhook_secret_bytes)

    def _new_webhook_secret(self) -> str:
        return secrets.token_urlsafe(self.webhook_secret_bytes)

    def webhook_url(self, link: RepositoryLink) -> str:
        return f"{self.public_base_url}{link.webhook_path}"

    async def get_link(self, link_id: str, actor: str) -> RepositoryLink:
        link = await self.repository.get_link(link_id)
        if link is None:
            raise NotFoundError(f"repository link not found: {link_id}")
        await self.access.authorize(actor, link.site_id)
        return link

    async def list_links(self, actor: str) -> list[RepositoryLink]:
        return await self.repository.list_links(owner=self.access.owner_scope(actor))

    async def connect(
        self,
        site_id: str,
        actor: str,
        *,
        repository_url: str,
        provider: GitProvider | str = GitProvider.GITHUB,
        branch: str = "main",
        framework: Framework | str = Framework.CUSTOM,
        deploy_key: Optional[str] = None,
        auto_deploy: bool = False,
        zero_downtime: bool = True,
        keep_releases: int = 5,
        deploy_script: Optional[str] = None,
    ) -> RepositoryLink:
        site = await self.access.authorize(actor, site_id)

        repository_url = (repository_url or "").strip()
        if not repository_url or len(repository_url) > MAX_URL_LENGTH:
            raise ValidationError("A repository URL of at most 500 characters is required.")
        provider_value = _validate_provider(provider)
        framework_value = _validate_framework(framework)
        branch = _validate_branch(branch)
        keep_releases = _validate_keep_releases(keep_releases)

        if await self.repository.get_link_for_site(site.site_id) is not None:
            raise ConflictError("This website already has a git repository connected.")

        script = (deploy_script or "").strip() or default_deploy_script(framework_value)
        link = await self.repository.create_link(
            RepositoryLink(
                link_id=uuid4().hex,
                site_id=site.site_id,
                owner=site.owner,
                provider=provider_value,
                repository_url=repository_url,
                branch=branch,
                framework=framework_value,
                deploy_key=self.vault.encrypt(deploy_key) if deploy_key else None,
                webhook_secret=self._new_webhook_secret(),
                auto_deploy=auto_deploy,
                zero_downtime=zero_downtime,
                keep_releases=keep_releases,
                deploy_script=script,
            )
        )
        logger.info(
            "Repository connected link=%s site=%s provider=%s branch=%s actor=%s",
            link.link_id,
            site.site_id,
            link.provider,
            link.branch,
            actor,
        )
        return link

    async def update(
        self,
        link_id: str,
        actor: str,
        *,
        branch: Optional[str] = None,
        framework: Optional[Framework | str] = None,
        auto_deploy: Optional[bool] = None,
        zero_downtime: Optional[bool] = None,
        keep_releases: Optional[int] = None,
        deploy_script: Optional[str] = None,
        deploy_key: Optional[str] = None,
    ) -> RepositoryLink:
        """Update link settings; ``None`` leaves a field untouched.

        The deploy key is only replaced by a non-empty value. A blank deploy
        script falls back to the framework default.
        """
        link = await self.get_link(link_id, actor)

        framework_value = (
            _validate_framework(framework) if framework is not None else Framework(link.framework)
        )
        update = RepositoryLinkUpdate(
            branch=_validate_branch(branch) if branch is not None else None,
            framework=framework_value if framework is not None else None,
            auto_deploy=auto_deploy,
            zero_downtime=zero_downtime,
            keep_releases=(
                _validate_keep_releases(keep_releases) if keep_releases is not None else None
            ),
        )
        if deploy_script is not None:
            update.deploy_script = deploy_script.strip() or default_deploy_script(framework_value)
        if deploy_key:
            update.deploy_key = self.vault.encrypt(deploy_key)

        updated = await self.repository.update_link(link.link_id, update)
        if updated is None:
            raise NotFoundError(f"repository link not found: {link_id}")
        logger.info(
            "Repository settings updated link=%s actor=%s deploy_key_replaced=%s",
            link.link_id,
            actor,
            bool(deploy_key),
        )
        return updated

    async def disconnect(self, link_id: str, actor: str) -> int:
        link = await self.get_link(link_id, actor)
        removed = await self.repository.delete_link(link.link_id)
        logger.info(
            "Repository disconnected link=%s site=%s deployments_removed=%s actor=%s",
            link.link_id,
            link.site_id,
            removed,
            actor,
        )
        return removed

    async def regenerate_webhook_secret(self, link_id: str, actor: str) -> RepositoryLink:
        link = await self.get_link(link_id, actor)
        updated = await self.repository.update_link(
            link.link_id,
            RepositoryLinkUpdate(webhook_secret=self._new_webhook_secret()),
        )
        if updated is None:
            raise NotFoundError(f"repository link not found: {link_id}")
        logger.info("Webhook secret regenerated link=%s actor=%s", link.link_id, actor)
        return updated
