from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Dict, Optional

from domain import RELEASED_STATUSES, ConflictError, DeploymentStatus, DeploymentTrigger
from models import (
    DeploymentRecord,
    DeploymentUpdate,
    RepositoryLink,
    RepositoryLinkUpdate,
    Site,
    utc_now,
)


def _sort_key(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class InMemoryGitDeploymentRepository:
    """Fallback repository used when MongoDB is unavailable (and by the test-suite)."""

    def __init__(self) -> None:
        self._sites: Dict[str, Site] = {}
        self._links: Dict[str, RepositoryLink] = {}
        self._deployments: Dict[str, DeploymentRecord] = {}
        self._insert_lock = asyncio.Lock()

    async def ensure_indexes(self) -> None:  # pragma: no cover - no-op
        return

    async def ping(self) -> bool:
        return True

    def add_site(self, site: Site) -> Site:
        self._sites[site.site_id] = site
        return site

    async def get_site(self, site_id: str) -> Optional[Site]:
        return self._sites.get(site_id)

    async def create_link(self, link: RepositoryLink) -> RepositoryLink:
        async with self._insert_lock:
            if any(existing.site_id == link.site_id for existing in self._links.values()):
                raise ConflictError("This website already has a git repository connected.")
            self._links[link.link_id] = link.model_copy(deep=True)
        return link

    async def get_link(self, link_id: str) -> Optional[RepositoryLink]:
        link = self._links.get(link_id)
        return link.model_copy(deep=True) if link else None

    async def get_link_for_site(self, site_id: str) -> Optional[RepositoryLink]:
        for link in self._links.values():
            if link.site_id == site_id:
                return link.model_copy(deep=True)
        return None

    async def list_links(self, owner: Optional[str] = None) -> list[RepositoryLink]:
        links = [
            link.model_copy(deep=True)
            for link in self._links.values()
            if owner is None or link.owner == owner
        ]
        links.sort(key=lambda link: _sort_key(link.created_at))
        return links

    async def update_link(
        self, link_id: str, update: RepositoryLinkUpdate
    ) -> Optional[RepositoryLink]:
        link = self._links.get(link_id)
        if not link:
            return None
        changes = update.model_dump(exclude_none=True)
        if changes:
            changes["updated_at"] = utc_now()
            link = RepositoryLink.model_validate({**link.model_dump(by_alias=True), **changes})
            self._links[link_id] = link
        return link.model_copy(deep=True)

    async def delete_link(self, link_id: str) -> int:
        doomed = [
            deployment_id
            for deployment_id, record in self._deployments.items()
            if record.link_id == link_id
        ]
        for deployment_id in doomed:
            del self._deployments[deployment_id]
        self._links.pop(link_id, None)
        return len(doomed)

    async def insert_deployment_if_idle(self, record: DeploymentRecord) -> DeploymentRecord:
        async with self._insert_lock:
            if any(
                existing.link_id == record.link_id and existing.in_flight
                for existing in self._deployments.values()
            ):
                raise ConflictError("A deployment is already in progress.")
            stored = record.model_copy(update={"in_flight": True}, deep=True)
            self._deployments[stored.deployment_id] = stored
        return stored.model_copy(deep=True)

    async def get_deployment(self, deployment_id: str) -> Optional[DeploymentRecord]:
        record = self._deployments.get(deployment_id)
        return record.model_copy(deep=True) if record else None

    async def find_in_flight(self, link_id: str) -> Optional[DeploymentRecord]:
        for record in self._deployments.values():
            if record.link_id == link_id and record.in_flight:
                return record.model_copy(deep=True)
        return None

    async def update_deployment(
        self,
        deployment_id: str,
        update: DeploymentUpdate,
        *,
        expected_status: Optional[DeploymentStatus] = None,
    ) -> Optional[DeploymentRecord]:
        record = self._deployments.get(deployment_id)
        if not record:
            return None
        if expected_status is not None and record.status_value != DeploymentStatus(expected_status):
            return None
        changes = update.set_fields()
        if update.append_log:
            changes["log"] = (record.log or "") + update.append_log
        if changes:
            record = DeploymentRecord.model_validate(
                {**record.model_dump(by_alias=True), **changes}
            )
            self._deployments[deployment_id] = record
        return record.model_copy(deep=True)

    def _for_link(self, link_id: Optional[str]) -> list[DeploymentRecord]:
        # insertion order breaks ties between identical timestamps
        ordered = [
            (index, record)
            for index, record in enumerate(self._deployments.values())
            if link_id is None or record.link_id == link_id
        ]
        ordered.sort(key=lambda item: (_sort_key(item[1].created_at), item[0]), reverse=True)
        return [record for _, record in ordered]

    async def list_deployments(self, link_id: str, limit: int = 20) -> list[DeploymentRecord]:
        return [record.model_copy(deep=True) for record in self._for_link(link_id)[:limit]]

    async def get_latest_deployment(
        self, link_id: Optional[str] = None
    ) -> Optional[DeploymentRecord]:
        records = self._for_link(link_id)
        return records[0].model_copy(deep=True) if records else None

    async def get_latest_completed(
        self, link_id: str, *, before: Optional[datetime] = None
    ) -> Optional[DeploymentRecord]:
        for record in self._for_link(link_id):
            if record.status_value != DeploymentStatus.COMPLETED:
                continue
            if before is not None and _sort_key(record.created_at) >= _sort_key(before):
                continue
            return record.model_copy(deep=True)
        return None

    async def count_releases_after(self, link_id: str, created_at: datetime) -> int:
        threshold = _sort_key(created_at)
        return sum(
            1
            for record in self._for_link(link_id)
            if record.status_value in RELEASED_STATUSES
            and record.trigger_value != DeploymentTrigger.ROLLBACK
            and record.release_path
            and _sort_key(record.created_at) > threshold
        )
