from .commands import CommandError, CommandResult, CommandRunner
from .docker import DockerClient
from .polling import wait_for
from .rsync import MirrorSync, SyncError
from .screen import ScreenSession, ScreenSessionInfo, parse_screen_list

__all__ = [
    "CommandError",
    "CommandResult",
    "CommandRunner",
    "DockerClient",
    "MirrorSync",
    "SyncError",
    "ScreenSession",
    "ScreenSessionInfo",
    "parse_screen_list",
    "wait_for",
]
