from __future__ import annotations

import logging
from typing import List, Sequence

from .commands import CommandResult, CommandRunner

LOG = logging.getLogger(__name__)


class DockerClient:
    """Thin wrapper over the docker CLI."""

    def __init__(self, runner: CommandRunner, binary: str = "docker") -> None:
        self._runner = runner
        self._binary = binary

    def build_exec_command(self, container: str, user: str, command: Sequence[str]) -> List[str]:
        return [self._binary, "exec", "--user", user, container, *command]

    def list_containers(self, include_stopped: bool = False) -> List[str]:
        cmd = [self._binary, "ps"]
        if include_stopped:
            cmd.append("--all")
        cmd.extend(["--format", "{{.Names}}"])
        result = self._runner.run(cmd)
        if not result.ok:
            LOG.error("docker ps failed: %s", result.output)
            return []
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def container_exists(self, name: str, include_stopped: bool = False) -> bool:
        return name in self.list_containers(include_stopped=include_stopped)

    def exec(self, container: str, user: str, command: Sequence[str]) -> CommandResult:
        return self._runner.run(self.build_exec_command(container, user, command))

    def start(self, name: str) -> CommandResult:
        LOG.debug("Starting docker container %s", name)
        return self._runner.run([self._binary, "start", name])

    def stop(self, name: str) -> CommandResult:
        LOG.debug("Stopping docker container %s", name)
        return self._runner.run([self._binary, "stop", name])

    def restart(self, name: str) -> CommandResult:
        LOG.debug("Restarting docker container %s", name)
        return self._runner.run([self._binary, "restart", name])
