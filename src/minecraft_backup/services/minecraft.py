from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from minecraft_backup.config import JobConfig
from minecraft_backup.job_engine import (
    BackupService,
    BackupServiceError,
    BackupServiceWarning,
    JobContext,
)
from minecraft_backup.state import Step
from minecraft_backup.tools import (
    CommandRunner,
    DockerClient,
    MirrorSync,
    ScreenSession,
    SyncError,
    wait_for,
)

LOG = logging.getLogger(__name__)


def format_remaining(seconds: int) -> str:
    if seconds % 60 == 0:
        minutes = seconds // 60
        return f"{minutes} minute" if minutes == 1 else f"{minutes} minutes"
    return f"{seconds} second" if seconds == 1 else f"{seconds} seconds"


class MinecraftBackupService(BackupService):
    """Backs up a Minecraft server running under screen inside a docker container."""

    def __init__(
        self,
        job: JobConfig,
        runner: Optional[CommandRunner] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if job.service != "minecraft":
            raise ValueError(f"MinecraftBackupService cannot handle service '{job.service}'")
        self._job = job
        self._options = job.options
        self._timings = job.options.timings
        self._sleep = sleep
        self._clock = clock

        runner = runner or CommandRunner()
        self._docker = DockerClient(runner)
        self._screen = ScreenSession(
            self._docker,
            container=self._options.container,
            owner=self._options.service_user,
            connect_user=self._options.connect_user,
            name=self._options.session_name,
        )
        self._sync = MirrorSync(runner, extra_args=self._options.rsync_args)

    # Job lifecycle ---------------------------------------------------------
    def prepare(self, context: JobContext) -> None:
        self._check_preconditions(context)
        if context.resume_from:
            LOG.info("Resuming after step '%s'; skipping screen session checks", context.resume_from.value)
            return

        if not self._screen.exists():
            raise BackupServiceError(
                f"Screen session '{self._screen.target}' does not exist; the server may or may not be running."
            )
        self._negotiate_multiuser()
        context.mark(Step.PREPARED)

    def execute(self, context: JobContext) -> None:
        if not context.resume_from:
            self._send_warnings()
            context.mark(Step.WARNED)

            LOG.info("Stopping server")
            self._screen.stuff(self._options.stop_command)
            context.mark(Step.SHUTDOWN_SENT)
            self._wait_for_shutdown()

        if not context.state.reached(Step.CONTAINER_STOPPED):
            self._stop_container()
            context.mark(Step.CONTAINER_STOPPED)

        if not context.state.copied:
            try:
                self._sync.mirror(self._options.data_path, context.storage_paths.destination)
            except SyncError as exc:
                raise BackupServiceError(f"Copy of {self._options.data_path} failed: {exc}") from exc
            context.mark(Step.COPIED)

    def finalize(self, context: JobContext) -> None:
        if not context.state.reached(Step.SHUTDOWN_SENT):
            # server was never asked to stop
            return

        if not context.state.reached(Step.CONTAINER_STARTED):
            if context.state.reached(Step.CONTAINER_STOPPED):
                self._start_container()
            else:
                # the server exited but its container is still up
                self._restart_container()
            context.mark(Step.CONTAINER_STARTED)

        self._restore_multiuser()

    # Internal helpers ------------------------------------------------------
    def _check_preconditions(self, context: JobContext) -> None:
        container = self._options.container
        # a resumed run may find the container still stopped
        include_stopped = bool(context.resume_from) and not context.state.reached(Step.CONTAINER_STARTED)
        if not self._docker.container_exists(container, include_stopped=include_stopped):
            raise BackupServiceError(f"Container '{container}' not found. Please verify the container name is correct.")
        LOG.debug("Container %s found", container)

        backup_path = context.storage_paths.destination
        if not backup_path.is_dir():
            raise BackupServiceError(f"Backup directory {backup_path} not found. Please verify the storage base_path.")
        LOG.debug("Backup directory %s found", backup_path)

        data_path = self._options.data_path
        if not data_path.is_dir():
            raise BackupServiceError(f"Server data folder {data_path} not found. Please verify the data_path.")
        LOG.debug("Server data folder %s found", data_path)

    def _negotiate_multiuser(self) -> None:
        if self._screen.is_multiuser():
            LOG.debug("Multi-user mode already set on %s; backup can run while a console is attached", self._screen.target)
            return

        LOG.warning("Multi-user mode NOT set on %s; attempting to enable it", self._screen.target)
        self._screen.enable_multiuser()
        if not self._screen.is_multiuser():
            raise BackupServiceError(
                "Unable to set multiuser mode. A user or process is attached to the screen session already."
            )

        LOG.info("Multiuser mode set; granting access to %s", self._options.connect_user)
        result = self._screen.grant_access()
        if not result.ok:
            LOG.warning("acladd %s failed: %s", self._options.connect_user, result.output)

    def _send_warnings(self) -> None:
        offsets = self._timings.warnings
        for index, remaining in enumerate(offsets):
            message = self._options.warning_message.format(remaining=format_remaining(remaining))
            LOG.info("Warning players: %d seconds until shutdown", remaining)
            self._screen.stuff(message)
            next_offset = offsets[index + 1] if index + 1 < len(offsets) else 0
            self._sleep(remaining - next_offset)

    def _wait_for_shutdown(self) -> None:
        timings = self._timings
        if self._wait_until(lambda: not self._screen.exists(), timings.shutdown_timeout):
            LOG.info("Server has exited cleanly")
            return

        LOG.warning(
            "Server has not exited after %s seconds; waiting up to %s seconds more",
            timings.shutdown_timeout,
            timings.shutdown_grace,
        )
        if self._wait_until(lambda: not self._screen.exists(), timings.shutdown_grace):
            LOG.info("Server exited during the grace period")
            return
        LOG.warning("Server is still running; stopping the container anyway")

    def _stop_container(self) -> None:
        container = self._options.container
        LOG.info("Stopping docker container %s", container)
        result = self._docker.stop(container)
        if not result.ok:
            raise BackupServiceError(f"Failed to stop container '{container}': {result.output}")

    def _start_container(self) -> None:
        container = self._options.container
        LOG.info("Starting docker container %s", container)
        result = self._docker.start(container)
        if not result.ok:
            raise BackupServiceError(f"Failed to start container '{container}': {result.output}")

    def _restart_container(self) -> None:
        container = self._options.container
        LOG.info("Restarting docker container %s", container)
        result = self._docker.restart(container)
        if not result.ok:
            raise BackupServiceError(f"Failed to restart container '{container}': {result.output}")

    def _restore_multiuser(self) -> None:
        if not self._wait_until(self._screen.exists, self._timings.startup_timeout):
            LOG.warning(
                "Screen session %s did not appear within %s seconds",
                self._screen.target,
                self._timings.startup_timeout,
            )

        self._screen.enable_multiuser()
        acl = self._screen.grant_access()
        if not acl.ok or not self._screen.is_multiuser():
            raise BackupServiceWarning(
                "Multi-user/ACL may not have been set; the next backup will fail if a console is attached."
            )
        LOG.info("Multi-user mode and ACL restored for the next run")

    def _wait_until(self, condition: Callable[[], bool], timeout: float) -> bool:
        return wait_for(
            condition,
            timeout=timeout,
            interval=self._timings.poll_interval,
            sleep=self._sleep,
            clock=self._clock,
        )
