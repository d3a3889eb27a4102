"""GNU screen control for a session living inside a docker container.

All commands run through ``docker exec``. Listing and capability changes run
as the user owning the session; keystrokes are sent as the connect user, which
only works once the session is in multi-user mode and the connect user is on
its ACL.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List, Optional

from .commands import CommandResult
from .docker import DockerClient

LOG = logging.getLogger(__name__)

NO_SOCKETS_MARKER = "No Sockets found"
MULTIUSER_MARKER = "Multi"
# screen's "stuff" expands ^M to a carriage return
ENTER = "^M"

_SESSION_LINE = re.compile(r"^\s*(?P<pid>\d+)\.(?P<name>\S+)\s*(?P<rest>.*)$")
_PAREN_GROUP = re.compile(r"\(([^)]*)\)")


@dataclass
class ScreenSessionInfo:
    pid: int
    name: str
    attached: bool = False
    multiuser: bool = False


def parse_screen_list(output: str) -> List[ScreenSessionInfo]:
    """Parse ``screen -list`` output into session entries."""
    if NO_SOCKETS_MARKER in output:
        return []

    sessions: List[ScreenSessionInfo] = []
    for line in output.splitlines():
        match = _SESSION_LINE.match(line)
        if not match:
            continue
        groups = _PAREN_GROUP.findall(match.group("rest"))
        state = groups[-1] if groups else ""
        flags = [flag.strip().lower() for flag in state.split(",")]
        sessions.append(
            ScreenSessionInfo(
                pid=int(match.group("pid")),
                name=match.group("name"),
                attached="attached" in flags,
                multiuser=MULTIUSER_MARKER in state,
            )
        )
    return sessions


class ScreenSession:
    def __init__(
        self,
        docker: DockerClient,
        container: str,
        owner: str,
        connect_user: str,
        name: str = "minecraft",
    ) -> None:
        self._docker = docker
        self._container = container
        self._owner = owner
        self._connect_user = connect_user
        self._name = name

    @property
    def target(self) -> str:
        return f"{self._owner}/{self._name}"

    def list_sessions(self) -> List[ScreenSessionInfo]:
        result = self._docker.exec(self._container, self._owner, ["screen", "-list"])
        return parse_screen_list(result.output)

    def info(self) -> Optional[ScreenSessionInfo]:
        for session in self.list_sessions():
            if session.name == self._name:
                return session
        return None

    def exists(self) -> bool:
        return self.info() is not None

    def is_multiuser(self) -> bool:
        session = self.info()
        return bool(session and session.multiuser)

    def enable_multiuser(self) -> CommandResult:
        return self._control(self._owner, "multiuser", "on")

    def grant_access(self, user: Optional[str] = None) -> CommandResult:
        return self._control(self._owner, "acladd", user or self._connect_user)

    def stuff(self, text: str) -> CommandResult:
        result = self._control(self._connect_user, "stuff", f"{text}{ENTER}")
        if not result.ok:
            LOG.warning("Failed to send %r to screen session %s: %s", text, self.target, result.output)
        return result

    def _control(self, user: str, *command: str) -> CommandResult:
        return self._docker.exec(
            self._container,
            user,
            ["screen", "-dr", "-S", self.target, "-X", *command],
        )
