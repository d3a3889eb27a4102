"""Tests for the docker, rsync, polling and process helpers."""

import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from conftest import FakeClock
from minecraft_backup.tools import (
    CommandError,
    CommandResult,
    CommandRunner,
    DockerClient,
    MirrorSync,
    SyncError,
    wait_for,
)


class StubRunner:
    def __init__(self, result):
        self.result = result
        self.calls = []

    def run(self, args):
        self.calls.append(list(args))
        return CommandResult(list(args), self.result.returncode, self.result.stdout, self.result.stderr)


class TestCommandRunner:
    """Test subprocess wrapping."""

    def test_captures_output(self):
        completed = MagicMock(returncode=0, stdout=b"hello\n", stderr=b"")
        with patch("minecraft_backup.tools.commands.subprocess.run", return_value=completed) as mock_run:
            result = CommandRunner().run(["echo", "hello"])

        assert result.ok
        assert result.stdout == "hello\n"
        assert mock_run.call_args.args[0] == ["echo", "hello"]
        assert mock_run.call_args.kwargs["check"] is False

    def test_nonzero_exit_is_returned(self):
        completed = MagicMock(returncode=1, stdout=b"No Sockets found\n", stderr=b"")
        with patch("minecraft_backup.tools.commands.subprocess.run", return_value=completed):
            result = CommandRunner().run(["screen", "-list"])

        assert not result.ok
        assert "No Sockets found" in result.output

    def test_missing_binary(self):
        with patch("minecraft_backup.tools.commands.subprocess.run", side_effect=FileNotFoundError()):
            with pytest.raises(CommandError, match="Command not found: docker"):
                CommandRunner().run(["docker", "ps"])

    def test_timeout(self):
        error = subprocess.TimeoutExpired(cmd=["rsync"], timeout=5)
        with patch("minecraft_backup.tools.commands.subprocess.run", side_effect=error):
            with pytest.raises(CommandError, match="timed out"):
                CommandRunner(timeout=5).run(["rsync"])


class TestDockerClient:
    """Test docker CLI command building."""

    def test_exec_command(self):
        client = DockerClient(StubRunner(CommandResult([], 0)))
        cmd = client.build_exec_command("mc", "nobody", ["screen", "-list"])
        assert cmd == ["docker", "exec", "--user", "nobody", "mc", "screen", "-list"]

    def test_list_running_containers(self):
        runner = StubRunner(CommandResult([], 0, "mc\nproxy\n"))
        client = DockerClient(runner)

        assert client.list_containers() == ["mc", "proxy"]
        assert runner.calls[0] == ["docker", "ps", "--format", "{{.Names}}"]

    def test_list_all_containers(self):
        runner = StubRunner(CommandResult([], 0, "mc\n"))
        client = DockerClient(runner)

        assert client.container_exists("mc", include_stopped=True)
        assert "--all" in runner.calls[0]

    def test_failed_listing_is_empty(self):
        client = DockerClient(StubRunner(CommandResult([], 1, "", "Cannot connect to the Docker daemon")))
        assert client.container_exists("mc") is False

    def test_start_stop_restart(self):
        runner = StubRunner(CommandResult([], 0))
        client = DockerClient(runner)
        client.stop("mc")
        client.start("mc")
        client.restart("mc")
        assert runner.calls == [["docker", "stop", "mc"], ["docker", "start", "mc"], ["docker", "restart", "mc"]]


class TestMirrorSync:
    """Test rsync invocation."""

    def test_build_command(self):
        sync = MirrorSync(StubRunner(CommandResult([], 0)))
        cmd = sync.build_command(Path("/mnt/cache/appdata/mc"), Path("/mnt/disk1/backups"))
        assert cmd == ["rsync", "-aAXv", "--delete", "--mkpath", "/mnt/cache/appdata/mc", "/mnt/disk1/backups"]

    def test_extra_args_precede_paths(self):
        sync = MirrorSync(StubRunner(CommandResult([], 0)), extra_args=["--exclude", "logs/"])
        cmd = sync.build_command(Path("/src"), Path("/dst"))
        assert cmd[-4:] == ["--exclude", "logs/", "/src", "/dst"]

    def test_failure_raises(self):
        sync = MirrorSync(StubRunner(CommandResult([], 23, "", "some files could not be transferred")))
        with pytest.raises(SyncError, match="23"):
            sync.mirror(Path("/src"), Path("/dst"))


class TestWaitFor:
    """Test condition polling."""

    def test_returns_immediately_when_true(self):
        clock = FakeClock()
        assert wait_for(lambda: True, timeout=30, interval=5, sleep=clock.sleep, clock=clock)
        assert clock.sleeps == []

    def test_gives_up_at_timeout(self):
        clock = FakeClock()
        assert not wait_for(lambda: False, timeout=12, interval=5, sleep=clock.sleep, clock=clock)
        assert clock.sleeps == [5, 5, 2]

    def test_succeeds_once_condition_holds(self):
        clock = FakeClock()
        assert wait_for(lambda: clock.now >= 10, timeout=30, interval=5, sleep=clock.sleep, clock=clock)
        assert clock.now == 10

    def test_zero_timeout_checks_once(self):
        clock = FakeClock()
        calls = []

        def condition():
            calls.append(1)
            return False

        assert not wait_for(condition, timeout=0, interval=5, sleep=clock.sleep, clock=clock)
        assert calls == [1]
