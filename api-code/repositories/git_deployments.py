from __future__ import annotations

from datetime import datetime
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from db.mongo import get_database
from domain.deploy_states import RELEASED_STATUSES, DeploymentStatus
from domain.errors import ConflictError
from domain.git import DeploymentTrigger
from models.git_deploy import (
    DeploymentRecord,
    DeploymentUpdate,
    RepositoryLink,
    RepositoryLinkUpdate,
    Site,
)


class GitDeploymentRepository:
    """MongoDB repository for repository_links, deployments and the read-only sites collection."""

    def __init__(self, database: Optional[AsyncIOMotorDatabase] = None):
        self._db = database if database is not None else get_database()
        self._sites: AsyncIOMotorCollection = self._db["sites"]
        self._links: AsyncIOMotorCollection = self._db["repository_links"]
        self._deployments: AsyncIOMotorCollection = self._db["deployments"]

    async def ensure_indexes(self) -> None:
        await self._links.create_index("site_id", unique=True, name="one_link_per_site")
        await self._links.create_index("owner")
        await self._deployments.create_index(
            "link_id",
            unique=True,
            partialFilterExpression={"in_flight": True},
            name="single_flight_per_link",
        )
        await self._deployments.create_index([("link_id", ASCENDING), ("created_at", DESCENDING)])
        await self._deployments.create_index([("link_id", ASCENDING), ("status", ASCENDING)])

    async def ping(self) -> bool:
        try:
            await self._db.command("ping")
        except Exception:  # pylint: disable=broad-except
            return False
        return True

    async def get_site(self, site_id: str) -> Optional[Site]:
        document = await self._sites.find_one({"_id": site_id})
        if not document:
            return None
        return Site.from_mongo(document)

    async def create_link(self, link: RepositoryLink) -> RepositoryLink:
        document = link.to_mongo()
        try:
            await self._links.insert_one(document)
        except DuplicateKeyError as exc:
            raise ConflictError(
                "This website already has a git repository connected."
            ) from exc
        return RepositoryLink.from_mongo(document)

    async def get_link(self, link_id: str) -> Optional[RepositoryLink]:
        document = await self._links.find_one({"_id": link_id})
        if not document:
            return None
        return RepositoryLink.from_mongo(document)

    async def get_link_for_site(self, site_id: str) -> Optional[RepositoryLink]:
        document = await self._links.find_one({"site_id": site_id})
        if not document:
            return None
        return RepositoryLink.from_mongo(document)

    async def list_links(self, owner: Optional[str] = None) -> list[RepositoryLink]:
        query = {"owner": owner} if owner else {}
        cursor = self._links.find(query).sort("created_at", ASCENDING)
        return [RepositoryLink.from_mongo(document) async for document in cursor]

    async def update_link(
        self, link_id: str, update: RepositoryLinkUpdate
    ) -> Optional[RepositoryLink]:
        update_query = update.to_update_query()
        if not update_query:
            return await self.get_link(link_id)
        document = await self._links.find_one_and_update(
            {"_id": link_id},
            update_query,
            return_document=ReturnDocument.AFTER,
        )
        if not document:
            return None
        return RepositoryLink.from_mongo(document)

    async def delete_link(self, link_id: str) -> int:
        """Delete a link and cascade to its deployments; returns removed deployment count."""
        result = await self._deployments.delete_many({"link_id": link_id})
        await self._links.delete_one({"_id": link_id})
        return result.deleted_count

    async def insert_deployment_if_idle(self, record: DeploymentRecord) -> DeploymentRecord:
        """Insert a pending deployment unless the link already has one in flight.

        The partial unique index on ``link_id`` makes this a single atomic
        conditional insert.
        """
        document = record.to_mongo()
        document["in_flight"] = True
        try:
            await self._deployments.insert_one(document)
        except DuplicateKeyError as exc:
            raise ConflictError("A deployment is already in progress.") from exc
        return DeploymentRecord.from_mongo(document)

    async def get_deployment(self, deployment_id: str) -> Optional[DeploymentRecord]:
        document = await self._deployments.find_one({"_id": deployment_id})
        if not document:
            return None
        return DeploymentRecord.from_mongo(document)

    async def find_in_flight(self, link_id: str) -> Optional[DeploymentRecord]:
        document = await self._deployments.find_one({"link_id": link_id, "in_flight": True})
        if not document:
            return None
        return DeploymentRecord.from_mongo(document)

    async def update_deployment(
        self,
        deployment_id: str,
        update: DeploymentUpdate,
        *,
        expected_status: Optional[DeploymentStatus] = None,
    ) -> Optional[DeploymentRecord]:
        """Apply ``update``; with ``expected_status`` the write only lands if the status is unchanged."""
        query: dict = {"_id": deployment_id}
        if expected_status is not None:
            query["status"] = DeploymentStatus(expected_status).value
        pipeline = update.to_update_pipeline()
        if not pipeline:
            document = await self._deployments.find_one(query)
        else:
            document = await self._deployments.find_one_and_update(
                query,
                pipeline,
                return_document=ReturnDocument.AFTER,
            )
        if not document:
            return None
        return DeploymentRecord.from_mongo(document)

    async def list_deployments(self, link_id: str, limit: int = 20) -> list[DeploymentRecord]:
        cursor = (
            self._deployments.find({"link_id": link_id})
            .sort("created_at", DESCENDING)
            .limit(limit)
        )
        return [DeploymentRecord.from_mongo(document) async for document in cursor]

    async def get_latest_deployment(
        self, link_id: Optional[str] = None
    ) -> Optional[DeploymentRecord]:
        query = {"link_id": link_id} if link_id else {}
        document = await self._deployments.find_one(query, sort=[("created_at", DESCENDING)])
        if not document:
            return None
        return DeploymentRecord.from_mongo(document)

    async def get_latest_completed(
        self, link_id: str, *, before: Optional[datetime] = None
    ) -> Optional[DeploymentRecord]:
        query: dict = {"link_id": link_id, "status": DeploymentStatus.COMPLETED.value}
        if before is not None:
            query["created_at"] = {"$lt": before}
        document = await self._deployments.find_one(query, sort=[("created_at", DESCENDING)])
        if not document:
            return None
        return DeploymentRecord.from_mongo(document)

    async def count_releases_after(self, link_id: str, created_at: datetime) -> int:
        """Count release directories built after ``created_at``.

        Rollback records re-activate an existing directory and are not counted.
        """
        return await self._deployments.count_documents(
            {
                "link_id": link_id,
                "status": {"$in": [status.value for status in RELEASED_STATUSES]},
                "release_path": {"$nin": [None, ""]},
                "trigger": {"$ne": DeploymentTrigger.ROLLBACK.value},
                "created_at": {"$gt": created_at},
            }
        )
