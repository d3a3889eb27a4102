"""Shared fixtures: a simulated docker host and a fake clock."""

from pathlib import Path
from typing import List, Sequence

import pytest

from minecraft_backup.config import JobConfig, MinecraftJobOptions
from minecraft_backup.tools import CommandResult

CONTAINER = "binhex-minecraftserver-spigot"


class FakeClock:
    """Monotonic clock whose sleep advances time instantly."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeDockerHost:
    """Stands in for CommandRunner, emulating docker, screen and rsync."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.calls: List[List[str]] = []
        self.containers = {CONTAINER: True}
        self.session = True
        self.multiuser = False
        # another console attached without multiuser: enabling fails
        self.busy = False
        # seconds after "stop" until the server exits; None never exits
        self.exit_after = 0.0
        self.stopped_at = None
        self.session_after_start = True
        self.multiuser_fails_after_start = False
        self.acl_fails = False
        self.stop_fails = False
        self.start_fails = False
        self.rsync_returncode = 0
        # exception raised instead of running rsync, e.g. KeyboardInterrupt
        self.rsync_raises = None
        self.restarted = False
        self.stuffed: List[str] = []

    # CommandRunner interface
    def run(self, args: Sequence[str]) -> CommandResult:
        cmd = [str(arg) for arg in args]
        self.calls.append(cmd)
        if cmd[0] == "rsync":
            if self.rsync_raises is not None:
                raise self.rsync_raises
            return CommandResult(cmd, self.rsync_returncode, "", "rsync error" if self.rsync_returncode else "")
        if cmd[1] == "ps":
            include_all = "--all" in cmd
            names = [name for name, running in self.containers.items() if running or include_all]
            return CommandResult(cmd, 0, "\n".join(names) + "\n")
        if cmd[1] == "stop":
            if self.stop_fails:
                return CommandResult(cmd, 1, "", "Error response from daemon")
            self.containers[cmd[2]] = False
            self.session = False
            self.stopped_at = None
            return CommandResult(cmd, 0, cmd[2] + "\n")
        if cmd[1] == "start":
            if self.start_fails:
                return CommandResult(cmd, 1, "", "Error response from daemon")
            self.containers[cmd[2]] = True
            self.restarted = True
            self.session = self.session_after_start
            self.multiuser = False
            return CommandResult(cmd, 0, cmd[2] + "\n")
        if cmd[1] == "restart":
            self.containers[cmd[2]] = True
            self.restarted = True
            self.stopped_at = None
            self.session = self.session_after_start
            self.multiuser = False
            return CommandResult(cmd, 0, cmd[2] + "\n")
        if cmd[1] == "exec":
            return self._screen(cmd[5:], container=cmd[4])
        raise AssertionError(f"unexpected command {cmd}")

    def _screen(self, command: List[str], container: str) -> CommandResult:
        self._advance_shutdown()
        running = self.containers.get(container, False)
        if not running:
            return CommandResult(command, 1, "", f"Error response from daemon: Container {container} is not running")
        if command == ["screen", "-list"]:
            if not self.session:
                return CommandResult(command, 1, "No Sockets found in /run/screen/S-nobody.\n\n")
            state = "Multi, detached" if self.multiuser else "Detached"
            listing = f"There is a screen on:\n\t4242.minecraft\t({state})\n1 Socket in /run/screen/S-nobody.\n"
            return CommandResult(command, 1, listing)

        action = command[5:]
        if not self.session:
            return CommandResult(command, 1, "There is no screen to be resumed matching nobody/minecraft.\n")
        if action == ["multiuser", "on"]:
            if self.busy or (self.restarted and self.multiuser_fails_after_start):
                return CommandResult(command, 1, "There is a screen on: (Attached)\n")
            self.multiuser = True
            return CommandResult(command, 0)
        if action[0] == "acladd":
            return CommandResult(command, 1 if self.acl_fails else 0)
        if action[0] == "stuff":
            self.stuffed.append(action[1])
            if action[1] == "stop^M":
                self.stopped_at = self.clock.now
            return CommandResult(command, 0)
        raise AssertionError(f"unexpected screen command {command}")

    def _advance_shutdown(self) -> None:
        if self.stopped_at is None or self.exit_after is None:
            return
        if self.clock.now - self.stopped_at >= self.exit_after:
            self.session = False

    # helpers for assertions
    def commands(self, prefix: Sequence[str]) -> List[List[str]]:
        return [call for call in self.calls if call[: len(prefix)] == list(prefix)]

    def screen_actions(self) -> List[List[str]]:
        return [call[10:] for call in self.calls if call[5:7] == ["screen", "-dr"]]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def host(clock):
    return FakeDockerHost(clock)


@pytest.fixture
def backup_dir(tmp_path) -> Path:
    path = tmp_path / "minecraft_backups"
    path.mkdir()
    return path


@pytest.fixture
def data_dir(tmp_path) -> Path:
    path = tmp_path / "appdata" / CONTAINER
    path.mkdir(parents=True)
    (path / "server.properties").write_text("motd=test\n")
    return path


@pytest.fixture
def job(data_dir) -> JobConfig:
    return JobConfig(
        name="spigot",
        options=MinecraftJobOptions(container=CONTAINER, data_path=data_dir),
    )
