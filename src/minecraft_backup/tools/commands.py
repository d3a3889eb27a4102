from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from typing import List, Sequence

LOG = logging.getLogger(__name__)


class CommandError(Exception):
    """Raised when an external command cannot be launched."""


@dataclass
class CommandResult:
    args: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        # screen prints its listing to stdout but some builds write errors to stderr
        return f"{self.stdout}\n{self.stderr}".strip()


class CommandRunner:
    """Runs external processes to completion and captures their output."""

    def __init__(self, timeout: float | None = None) -> None:
        self._timeout = timeout

    def run(self, args: Sequence[str]) -> CommandResult:
        cmd = [str(arg) for arg in args]
        LOG.debug("Running %s", " ".join(cmd))
        try:
            completed = subprocess.run(
                cmd,
                capture_output=True,
                check=False,
                timeout=self._timeout,
            )
        except FileNotFoundError as exc:
            raise CommandError(f"Command not found: {cmd[0]}") from exc
        except subprocess.TimeoutExpired as exc:
            raise CommandError(f"Command timed out after {exc.timeout}s: {' '.join(cmd)}") from exc

        result = CommandResult(
            args=cmd,
            returncode=completed.returncode,
            stdout=completed.stdout.decode("utf-8", "ignore"),
            stderr=completed.stderr.decode("utf-8", "ignore"),
        )
        if not result.ok:
            LOG.debug("Command exited with %s: %s", result.returncode, result.stderr.strip())
        return result
