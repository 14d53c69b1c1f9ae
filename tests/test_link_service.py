from __future__ import annotations

import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from deploy_fixtures import ADMIN, ALICE, BOB, build_stack, connect_link, seed_release

from domain import AuthorizationError, ConflictError, Framework, NotFoundError, ValidationError
from env_loader import load_local_env
from services.auth_service import parse_operator_credentials
from settings import Settings


class RepositoryLinkServiceTest(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:  # noqa: N802
        self.stack = build_stack()

    async def test_connect_applies_defaults(self) -> None:
        link = await self.stack.links.connect(
            "site-alice", ALICE, repository_url="https://github.com/alice/shop.git"
        )

        self.assertEqual(link.owner, ALICE)
        self.assertEqual(link.branch, "main")
        self.assertFalse(link.auto_deploy)
        self.assertTrue(link.zero_downtime)
        self.assertEqual(link.keep_releases, 5)
        self.assertEqual(link.repository_name, "alice/shop")
        self.assertGreaterEqual(len(link.webhook_secret), 40)
        self.assertEqual(
            self.stack.links.webhook_url(link),
            f"https://panel.example.com/git/webhook/{link.link_id}/{link.webhook_secret}",
        )

    async def test_blank_script_uses_framework_default(self) -> None:
        link = await connect_link(self.stack, framework="laravel", deploy_script="   ")
        self.assertIn("composer install", link.deploy_script)

        updated = await self.stack.links.update(link.link_id, ALICE, framework="static", deploy_script="")
        self.assertEqual(updated.framework, Framework.STATIC.value)
        self.assertEqual(updated.deploy_script, "npm ci\nnpm run build")

        custom = await self.stack.links.update(link.link_id, ALICE, deploy_script="make release")
        self.assertEqual(custom.deploy_script, "make release")

    async def test_one_link_per_site(self) -> None:
        await connect_link(self.stack)
        with self.assertRaises(ConflictError):
            await connect_link(self.stack, repository_url="https://github.com/alice/other.git")

    async def test_input_validation(self) -> None:
        for options in (
            {"keep_releases": 0},
            {"keep_releases": 21},
            {"branch": "feature branch"},
            {"branch": "x" * 101},
            {"repository_url": "   "},
            {"repository_url": "https://example.com/" + "a" * 500},
            {"framework": "django"},
            {"provider": "sourcehut"},
        ):
            with self.subTest(options=options):
                with self.assertRaises(ValidationError):
                    await connect_link(self.stack, **options)
        self.assertEqual(await self.stack.repository.list_links(), [])

    async def test_deploy_key_is_encrypted_and_kept_on_blank_update(self) -> None:
        link = await connect_link(self.stack, deploy_key="PRIVATE-KEY-1")
        self.assertTrue(link.has_deploy_key)
        self.assertNotIn("PRIVATE-KEY-1", link.deploy_key or "")
        self.assertEqual(self.stack.vault.decrypt(link.deploy_key), "PRIVATE-KEY-1")

        unchanged = await self.stack.links.update(link.link_id, ALICE, deploy_key="", branch="production")
        self.assertEqual(unchanged.branch, "production")
        self.assertEqual(self.stack.vault.decrypt(unchanged.deploy_key), "PRIVATE-KEY-1")

        replaced = await self.stack.links.update(link.link_id, ALICE, deploy_key="PRIVATE-KEY-2")
        self.assertEqual(self.stack.vault.decrypt(replaced.deploy_key), "PRIVATE-KEY-2")

    async def test_update_rejects_out_of_range_keep_releases(self) -> None:
        link = await connect_link(self.stack)
        with self.assertRaises(ValidationError):
            await self.stack.links.update(link.link_id, ALICE, keep_releases=25)
        stored = await self.stack.repository.get_link(link.link_id)
        assert stored is not None
        self.assertEqual(stored.keep_releases, 5)

    async def test_disconnect_cascades_to_history(self) -> None:
        link = await connect_link(self.stack)
        await seed_release(self.stack, link, commit_hash="abc123", minutes=0)
        await seed_release(self.stack, link, commit_hash="def456", minutes=5)

        removed = await self.stack.links.disconnect(link.link_id, ALICE)

        self.assertEqual(removed, 2)
        self.assertIsNone(await self.stack.repository.get_link(link.link_id))
        self.assertEqual(await self.stack.repository.list_deployments(link.link_id), [])
        with self.assertRaises(NotFoundError):
            await self.stack.links.get_link(link.link_id, ALICE)

    async def test_operators_only_manage_their_sites(self) -> None:
        alice_link = await connect_link(self.stack)
        bob_link = await connect_link(self.stack, site_id="site-bob")

        with self.assertRaises(AuthorizationError):
            await self.stack.links.connect("site-alice", BOB, repository_url="git@x:y/z.git")
        with self.assertRaises(AuthorizationError):
            await self.stack.links.update(alice_link.link_id, BOB, branch="dev")
        with self.assertRaises(AuthorizationError):
            await self.stack.links.regenerate_webhook_secret(alice_link.link_id, BOB)
        with self.assertRaises(NotFoundError):
            await self.stack.links.connect("site-missing", ADMIN, repository_url="git@x:y/z.git")

        self.assertEqual(
            [link.link_id for link in await self.stack.links.list_links(BOB)], [bob_link.link_id]
        )
        self.assertEqual(len(await self.stack.links.list_links(ADMIN)), 2)

    async def test_list_links_includes_latest_deployment(self) -> None:
        link = await connect_link(self.stack)
        await seed_release(self.stack, link, commit_hash="abc123", minutes=0)
        newest = await seed_release(self.stack, link, commit_hash="def456", minutes=5)

        rows = await self.stack.deployments.list_links(ALICE)

        self.assertEqual(len(rows), 1)
        listed, latest = rows[0]
        self.assertEqual(listed.link_id, link.link_id)
        assert latest is not None
        self.assertEqual(latest.deployment_id, newest.deployment_id)


class ConfigurationTest(unittest.TestCase):
    def test_operator_credentials_parsing(self) -> None:
        self.assertEqual(
            parse_operator_credentials(" alice:pw1 , bob:p:w2,broken, :nouser,carol:"),
            {"alice": "pw1", "bob": "p:w2"},
        )

    def test_local_env_does_not_override_process_environment(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            env_file = Path(tmp) / ".env"
            env_file.write_text(
                "# comment\n"
                "export HISTORY_PAGE_SIZE=7\n"
                "MONGODB_DB_NAME='from-file'\n"
                "not a pair\n"
            )
            with mock.patch.dict(os.environ, {"MONGODB_DB_NAME": "from-process"}, clear=True):
                load_local_env(env_file)
                settings = Settings.from_env()

        self.assertEqual(settings.history_page_size, 7)
        self.assertEqual(settings.mongodb_db_name, "from-process")
        self.assertEqual(settings.login_user, "admin")


if __name__ == "__main__":
    unittest.main()
