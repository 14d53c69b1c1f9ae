from __future__ import annotations

import asyncio
import base64
import logging
import os
import subprocess
from typing import Dict, List

from domain.errors import ExecutionFailure
from domain.git import Framework
from models import DeploymentRecord, RepositoryLink
from settings import Settings


logger = logging.getLogger("gitdeploy.executor")

REDACTED = "<redacted>"


def _b64(value: str) -> str:
    return base64.b64encode((value or "").encode("utf-8")).decode("ascii")


class ExecutorDispatcher:
    """Launches the out-of-process release executor and never waits for it.

    The executor reports progress back through the executor callback API; the
    URL and token it needs are handed over through its environment.
    """

    def __init__(self, settings: Settings):
        self.dry_run = settings.deploy_dry_run
        self.deploy_script = settings.executor_deploy_script
        self.rollback_script = settings.executor_rollback_script
        self.use_sudo = settings.executor_use_sudo
        self.callback_base_url = settings.callback_base_url
        self.callback_token = settings.executor_callback_token or ""

    def _prefix(self, script: str) -> List[str]:
        prefix = ["sudo"] if self.use_sudo else []
        return [*prefix, "bash", script]

    def build_deploy_command(
        self, record: DeploymentRecord, link: RepositoryLink, deploy_key: str
    ) -> List[str]:
        return [
            *self._prefix(self.deploy_script),
            record.deployment_id,
            link.link_id,
            link.site_id,
            link.owner,
            link.repository_url,
            link.branch,
            Framework(link.framework).value,
            "1" if link.zero_downtime else "0",
            str(link.keep_releases),
            _b64(link.deploy_script),
            _b64(deploy_key),
        ]

    def build_rollback_command(
        self, record: DeploymentRecord, link: RepositoryLink, release_path: str
    ) -> List[str]:
        return [
            *self._prefix(self.rollback_script),
            record.deployment_id,
            link.link_id,
            link.site_id,
            link.owner,
            release_path,
            Framework(link.framework).value,
            "1" if link.zero_downtime else "0",
            str(link.keep_releases),
            _b64(link.deploy_script),
        ]

    def callback_environment(self, record: DeploymentRecord) -> Dict[str, str]:
        return {
            "GITDEPLOY_CALLBACK_URL": (
                f"{self.callback_base_url}/api/v1/executor/deployments/"
                f"{record.deployment_id}/report"
            ),
            "GITDEPLOY_CALLBACK_TOKEN": self.callback_token,
        }

    async def launch_deploy(
        self, record: DeploymentRecord, link: RepositoryLink, deploy_key: str
    ) -> None:
        command = self.build_deploy_command(record, link, deploy_key)
        # last argument carries the deploy key
        await self._spawn(record, command, redact=(len(command) - 1,))

    async def launch_rollback(
        self, record: DeploymentRecord, link: RepositoryLink, release_path: str
    ) -> None:
        command = self.build_rollback_command(record, link, release_path)
        await self._spawn(record, command, redact=())

    async def _spawn(
        self, record: DeploymentRecord, command: List[str], *, redact: tuple[int, ...]
    ) -> None:
        printable = " ".join(
            REDACTED if index in redact else part for index, part in enumerate(command)
        )
        if self.dry_run:
            logger.info(
                "Dry run; executor not started deployment=%s command=%s",
                record.deployment_id,
                printable,
            )
            return

        env = {**os.environ, **self.callback_environment(record)}
        try:
            await asyncio.to_thread(self._popen, command, env)
        except OSError as exc:
            logger.error(
                "Executor launch failed deployment=%s command=%s error=%s",
                record.deployment_id,
                printable,
                exc,
            )
            raise ExecutionFailure(f"Failed to start deployment executor: {exc}") from exc
        logger.info("Executor started deployment=%s command=%s", record.deployment_id, printable)

    @staticmethod
    def _popen(command: List[str], env: Dict[str, str]) -> None:
        subprocess.Popen(  # noqa: S603
            command,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            env=env,
            start_new_session=True,
        )
