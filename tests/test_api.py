from __future__ import annotations

import unittest

from deploy_fixtures import EXECUTOR_TOKEN, build_stack

from fastapi import FastAPI
from fastapi.testclient import TestClient

from routers import (
    build_auth_router,
    build_executor_router,
    build_git_router,
    build_health_router,
    build_webhook_router,
)
from services import AuthService


GITHUB_PUSH = {
    "ref": "refs/heads/main",
    "head_commit": {"id": "abc123", "message": "Fix bug", "author": {"name": "Alice"}},
}


class GitDeployApiTest(unittest.TestCase):
    def setUp(self) -> None:
        self.stack = build_stack()
        auth_service = AuthService(self.stack.settings)
        app = FastAPI()
        app.include_router(build_auth_router(auth_service))
        app.include_router(
            build_git_router(
                self.stack.links,
                self.stack.deployments,
                auth_service.build_auth_dependency(),
            )
        )
        app.include_router(build_webhook_router(self.stack.webhooks))
        app.include_router(build_executor_router(self.stack.progress, EXECUTOR_TOKEN))
        app.include_router(build_health_router(lambda: self.stack.repository))
        self.client = TestClient(app)

    def _login(self, username: str = "alice", password: str = "alice-pass") -> None:
        response = self.client.post(
            "/api/v1/auth/login", json={"username": username, "password": password}
        )
        self.assertEqual(response.status_code, 200, response.text)

    def _connect(self, **overrides) -> dict:
        body = {
            "site_id": "site-alice",
            "repository_url": "git@github.com:alice/shop.git",
            "auto_deploy": True,
            "framework": "nextjs",
            "deploy_key": "PRIVATE-KEY",
        }
        body.update(overrides)
        response = self.client.post("/api/v1/git/links", json=body)
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()

    def _report(self, deployment_id: str, token: str = EXECUTOR_TOKEN, **body):
        return self.client.post(
            f"/api/v1/executor/deployments/{deployment_id}/report",
            json=body,
            headers={"X-Executor-Token": token},
        )

    def test_requires_authentication(self) -> None:
        response = self.client.get("/api/v1/git/links")
        self.assertEqual(response.status_code, 401)

    def test_login_rejects_bad_password(self) -> None:
        response = self.client.post(
            "/api/v1/auth/login", json={"username": "alice", "password": "wrong"}
        )
        self.assertEqual(response.status_code, 401)

    def test_me_reports_admin_flag(self) -> None:
        self._login("admin", "admin-pass")
        response = self.client.get("/api/v1/auth/me")
        self.assertEqual(response.json(), {"username": "admin", "is_admin": True})

    def test_connect_hides_deploy_key(self) -> None:
        self._login()
        link = self._connect()

        self.assertTrue(link["has_deploy_key"])
        self.assertNotIn("deploy_key", link)
        self.assertNotIn("PRIVATE-KEY", str(link))
        self.assertEqual(link["repository_name"], "alice/shop")
        self.assertEqual(link["framework_label"], "Next.js")
        self.assertTrue(
            link["webhook_url"].startswith(
                f"https://panel.example.com/git/webhook/{link['link_id']}/"
            )
        )

        duplicate = self.client.post(
            "/api/v1/git/links",
            json={"site_id": "site-alice", "repository_url": "https://github.com/alice/x.git"},
        )
        self.assertEqual(duplicate.status_code, 409)

    def test_connect_validation_and_authorization_errors(self) -> None:
        self._login()
        bad_keep = self.client.post(
            "/api/v1/git/links",
            json={"site_id": "site-alice", "repository_url": "git@x:y/z.git", "keep_releases": 30},
        )
        self.assertEqual(bad_keep.status_code, 400)

        foreign = self.client.post(
            "/api/v1/git/links",
            json={"site_id": "site-bob", "repository_url": "git@x:y/z.git"},
        )
        self.assertEqual(foreign.status_code, 403)

        missing = self.client.post(
            "/api/v1/git/links",
            json={"site_id": "site-nope", "repository_url": "git@x:y/z.git"},
        )
        self.assertEqual(missing.status_code, 404)

    def test_webhook_outcomes(self) -> None:
        self._login()
        link = self._connect()
        path = link["webhook_url"].removeprefix("https://panel.example.com")

        wrong = self.client.post(f"/git/webhook/{link['link_id']}/wrong-secret", json=GITHUB_PUSH)
        self.assertEqual(wrong.status_code, 403)

        other_branch = self.client.post(path, json={**GITHUB_PUSH, "ref": "refs/heads/develop"})
        self.assertEqual(other_branch.status_code, 200)
        self.assertEqual(other_branch.json(), {"message": "Push to different branch, skipping"})

        triggered = self.client.post(path, json=GITHUB_PUSH)
        self.assertEqual(triggered.status_code, 200)
        self.assertEqual(triggered.json()["message"], "Deployment triggered")
        self.assertIn("deploymentId", triggered.json())

        busy = self.client.post(path, json=GITHUB_PUSH)
        self.assertEqual(busy.status_code, 200)
        self.assertEqual(busy.json()["message"], "Deployment already in progress")

        garbage = self.client.post(
            path, content=b"not json", headers={"Content-Type": "application/json"}
        )
        self.assertEqual(garbage.status_code, 200)
        self.assertEqual(garbage.json()["message"], "Push to different branch, skipping")

    def test_rotated_webhook_secret(self) -> None:
        self._login()
        link = self._connect()
        old_path = link["webhook_url"].removeprefix("https://panel.example.com")

        rotated = self.client.post(f"/api/v1/git/links/{link['link_id']}/webhook-secret")
        self.assertEqual(rotated.status_code, 200)
        self.assertNotEqual(rotated.json()["webhook_url"], link["webhook_url"])

        self.assertEqual(self.client.post(old_path, json=GITHUB_PUSH).status_code, 403)

    def test_manual_deploy_report_and_history(self) -> None:
        self._login()
        link = self._connect()

        started = self.client.post(f"/api/v1/git/links/{link['link_id']}/deploy")
        self.assertEqual(started.status_code, 202)
        deployment_id = started.json()["deployment_id"]
        self.assertEqual(started.json()["status"], "pending")

        again = self.client.post(f"/api/v1/git/links/{link['link_id']}/deploy")
        self.assertEqual(again.status_code, 409)

        self.assertEqual(self._report(deployment_id, token="nope", status="cloning").status_code, 403)
        self.assertEqual(self._report(deployment_id, status="cloning", log=["Cloning"]).status_code, 200)
        self.assertEqual(self._report(deployment_id, status="pending").status_code, 409)
        finished = self._report(
            deployment_id,
            status="completed",
            release_path="/var/www/releases/site-alice/1",
            commit_hash="abc123def",
        )
        self.assertEqual(finished.status_code, 200, finished.text)

        logs = self.client.get(f"/api/v1/git/deployments/{deployment_id}/logs")
        self.assertEqual(logs.status_code, 200)
        self.assertIn("Cloning", logs.json()["log"])
        self.assertFalse(logs.json()["is_in_progress"])

        history = self.client.get(f"/api/v1/git/links/{link['link_id']}/deployments")
        rows = history.json()
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["short_commit_hash"], "abc123d")
        self.assertEqual(rows[0]["status_label"], "Completed")
        self.assertTrue(rows[0]["can_rollback"])

        listed = self.client.get("/api/v1/git/links").json()
        self.assertEqual(listed[0]["latest_deployment"]["deployment_id"], deployment_id)
        self.assertIsNotNone(listed[0]["last_deployed_at"])

        rollback = self.client.post(f"/api/v1/git/deployments/{deployment_id}/rollback")
        self.assertEqual(rollback.status_code, 202, rollback.text)
        self.assertNotEqual(rollback.json()["deployment_id"], deployment_id)

    def test_rollback_of_failed_deployment_is_bad_request(self) -> None:
        self._login()
        link = self._connect()
        deployment_id = self.client.post(f"/api/v1/git/links/{link['link_id']}/deploy").json()[
            "deployment_id"
        ]
        self._report(deployment_id, status="failed", error_message="build failed")

        response = self.client.post(f"/api/v1/git/deployments/{deployment_id}/rollback")
        self.assertEqual(response.status_code, 400)

    def test_other_operator_cannot_read_deployments(self) -> None:
        self._login()
        link = self._connect()
        deployment_id = self.client.post(f"/api/v1/git/links/{link['link_id']}/deploy").json()[
            "deployment_id"
        ]

        self._login("bob", "bob-pass")
        self.assertEqual(
            self.client.get(f"/api/v1/git/deployments/{deployment_id}/logs").status_code, 403
        )
        self.assertEqual(self.client.get("/api/v1/git/links").json(), [])

    def test_update_and_disconnect(self) -> None:
        self._login()
        link = self._connect()

        patched = self.client.patch(
            f"/api/v1/git/links/{link['link_id']}",
            json={"branch": "production", "keep_releases": 10},
        )
        self.assertEqual(patched.status_code, 200)
        self.assertEqual(patched.json()["branch"], "production")
        self.assertEqual(patched.json()["keep_releases"], 10)
        self.assertTrue(patched.json()["has_deploy_key"])

        removed = self.client.delete(f"/api/v1/git/links/{link['link_id']}")
        self.assertEqual(removed.status_code, 200)
        self.assertEqual(
            self.client.get(f"/api/v1/git/links/{link['link_id']}").status_code, 404
        )

    def test_deploy_script_endpoint(self) -> None:
        self._login()
        response = self.client.get("/api/v1/git/deploy-script", params={"framework": "static"})
        self.assertEqual(response.json(), {"framework": "static", "script": "npm ci\nnpm run build"})

    def test_healthz(self) -> None:
        response = self.client.get("/healthz")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "healthy")
        self.assertIsNone(response.json()["last_deployment_id"])


if __name__ == "__main__":
    unittest.main()
