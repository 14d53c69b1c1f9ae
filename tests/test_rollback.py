from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from deploy_fixtures import ALICE, BOB, build_stack, connect_link, seed_release

from domain import (
    AuthorizationError,
    ConflictError,
    DeploymentStatus,
    DeploymentTrigger,
    NotFoundError,
    ValidationError,
)


class RollbackTest(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:  # noqa: N802
        self.stack = build_stack()
        self.link = await connect_link(self.stack, keep_releases=3)

    async def test_rollback_opens_pending_rollback_record(self) -> None:
        target = await seed_release(self.stack, self.link, commit_hash="abc123", minutes=0)
        live = await seed_release(self.stack, self.link, commit_hash="def456", minutes=10)

        record = await self.stack.deployments.rollback(target.deployment_id, ALICE)

        self.assertEqual(record.trigger_value, DeploymentTrigger.ROLLBACK)
        self.assertEqual(record.status_value, DeploymentStatus.PENDING)
        self.assertEqual(record.commit_hash, "abc123")
        self.assertTrue(record.commit_message.startswith("Rollback to "))
        self.assertEqual(record.commit_message, "Rollback to abc123")
        self.assertEqual(record.rollback_target_id, target.deployment_id)
        self.assertEqual(record.rolled_back_from_id, live.deployment_id)
        self.assertEqual(record.actor, ALICE)

        command, _ = self.stack.dispatcher.launches[0]
        self.assertEqual(command[1], "/opt/gitdeploy/bin/git-rollback.sh")
        self.assertEqual(command[2], record.deployment_id)
        self.assertEqual(command[6], target.release_path)

    async def test_failed_deployment_is_not_a_rollback_target(self) -> None:
        failed = await seed_release(
            self.stack,
            self.link,
            commit_hash="bad000",
            minutes=0,
            status=DeploymentStatus.FAILED,
        )

        with self.assertRaises(ValidationError):
            await self.stack.deployments.rollback(failed.deployment_id, ALICE)
        self.assertEqual(self.stack.dispatcher.launches, [])

    async def test_completed_without_release_path_is_rejected(self) -> None:
        target = await seed_release(
            self.stack, self.link, commit_hash="abc123", minutes=0, release_path=None
        )

        with self.assertRaises(ValidationError):
            await self.stack.deployments.rollback(target.deployment_id, ALICE)

    async def test_rollback_blocked_while_deployment_in_flight(self) -> None:
        target = await seed_release(self.stack, self.link, commit_hash="abc123", minutes=0)
        await self.stack.deployments.trigger_deploy(self.link.link_id, ALICE)

        with self.assertRaises(ConflictError):
            await self.stack.deployments.rollback(target.deployment_id, ALICE)

    async def test_pruned_release_is_rejected(self) -> None:
        target = await seed_release(self.stack, self.link, commit_hash="old000", minutes=0)
        for minute in (10, 20, 30):
            await seed_release(self.stack, self.link, commit_hash=f"new{minute}", minutes=minute)

        with self.assertRaises(ConflictError):
            await self.stack.deployments.rollback(target.deployment_id, ALICE)

    async def test_release_inside_retention_window_is_accepted(self) -> None:
        target = await seed_release(self.stack, self.link, commit_hash="old000", minutes=0)
        for minute in (10, 20):
            await seed_release(self.stack, self.link, commit_hash=f"new{minute}", minutes=minute)

        record = await self.stack.deployments.rollback(target.deployment_id, ALICE)
        self.assertEqual(record.rollback_target_id, target.deployment_id)

    async def test_missing_release_directory_is_rejected(self) -> None:
        stack = build_stack(VERIFY_RELEASE_PATHS=True)
        link = await connect_link(stack)
        with tempfile.TemporaryDirectory() as tmp:
            present = Path(tmp) / "release-1"
            present.mkdir()
            gone = await seed_release(
                stack, link, commit_hash="gone00", minutes=0, release_path=str(Path(tmp) / "missing")
            )
            kept = await seed_release(
                stack, link, commit_hash="kept00", minutes=5, release_path=str(present)
            )

            with self.assertRaises(ConflictError):
                await stack.deployments.rollback(gone.deployment_id, ALICE)

            record = await stack.deployments.rollback(kept.deployment_id, ALICE)
            self.assertIsNone(record.rolled_back_from_id)

    async def test_completed_rollback_tags_superseded_release(self) -> None:
        target = await seed_release(self.stack, self.link, commit_hash="abc123", minutes=0)
        live = await seed_release(self.stack, self.link, commit_hash="def456", minutes=10)
        record = await self.stack.deployments.rollback(target.deployment_id, ALICE)

        await self.stack.progress.apply_report(record.deployment_id, status="deploying")
        await self.stack.progress.apply_report(
            record.deployment_id, status="completed", release_path=target.release_path
        )

        superseded = await self.stack.repository.get_deployment(live.deployment_id)
        assert superseded is not None
        self.assertEqual(superseded.status_value, DeploymentStatus.ROLLED_BACK)
        # rolling forward to the superseded release needs a fresh deploy
        self.assertFalse(superseded.can_rollback_to())
        restored = await self.stack.repository.get_deployment(target.deployment_id)
        assert restored is not None
        self.assertEqual(restored.status_value, DeploymentStatus.COMPLETED)

    async def test_completed_rollback_does_not_count_as_newer_release(self) -> None:
        first = await seed_release(self.stack, self.link, commit_hash="aaa111", minutes=0)
        second = await seed_release(self.stack, self.link, commit_hash="bbb222", minutes=10)
        await seed_release(self.stack, self.link, commit_hash="ccc333", minutes=20)

        record = await self.stack.deployments.rollback(second.deployment_id, ALICE)
        await self.stack.progress.apply_report(
            record.deployment_id, status="completed", release_path=second.release_path
        )

        again = await self.stack.deployments.rollback(first.deployment_id, ALICE)
        self.assertEqual(again.rollback_target_id, first.deployment_id)
        self.assertEqual(again.rolled_back_from_id, record.deployment_id)

    async def test_rollback_requires_access_and_known_deployment(self) -> None:
        target = await seed_release(self.stack, self.link, commit_hash="abc123", minutes=0)

        with self.assertRaises(AuthorizationError):
            await self.stack.deployments.rollback(target.deployment_id, BOB)
        with self.assertRaises(NotFoundError):
            await self.stack.deployments.rollback("missing", ALICE)


if __name__ == "__main__":
    unittest.main()
