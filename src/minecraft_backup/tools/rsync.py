from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Sequence

from .commands import CommandResult, CommandRunner

LOG = logging.getLogger(__name__)

# archive, ACLs, xattrs; remove files that vanished from the source
MIRROR_FLAGS = ("-aAXv", "--delete", "--mkpath")


class SyncError(Exception):
    """Raised when the mirror copy fails."""


class MirrorSync:
    def __init__(self, runner: CommandRunner, binary: str = "rsync", extra_args: Sequence[str] = ()) -> None:
        self._runner = runner
        self._binary = binary
        self._extra_args = list(extra_args)

    def build_command(self, source: Path, destination: Path) -> List[str]:
        # no trailing slash on the source: rsync recreates its directory under destination
        return [self._binary, *MIRROR_FLAGS, *self._extra_args, str(source), str(destination)]

    def mirror(self, source: Path, destination: Path) -> CommandResult:
        LOG.info("Taking incremental backup from %s to %s", source, destination)
        result = self._runner.run(self.build_command(source, destination))
        if not result.ok:
            LOG.error("rsync exited with %s: %s", result.returncode, result.stderr.strip())
            raise SyncError(f"rsync failed with exit code {result.returncode}")
        LOG.info("Incremental backup complete")
        return result
