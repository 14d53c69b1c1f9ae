from __future__ import annotations

from typing import Iterable, Optional

from domain import AuthorizationError, NotFoundError
from models import Site
from repositories import GitDeploymentRepository


class SiteAccessPolicy:
    """Administrators manage every site; other operators only the sites they own."""

    def __init__(self, repository: GitDeploymentRepository, admin_users: Iterable[str]):
        self.repository = repository
        self.admin_users = {user for user in admin_users if user}

    def is_admin(self, actor: str) -> bool:
        return actor in self.admin_users

    def owner_scope(self, actor: str) -> Optional[str]:
        """Owner filter for listings; None means unrestricted."""
        return None if self.is_admin(actor) else actor

    async def authorize(self, actor: str, site_id: str) -> Site:
        site = await self.repository.get_site(site_id)
        if site is None:
            raise NotFoundError(f"site not found: {site_id}")
        if not self.is_admin(actor) and site.owner != actor:
            raise AuthorizationError("You do not have access to this website.")
        return site
