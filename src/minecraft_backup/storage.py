from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .config import JobConfig, StorageConfig
from .job_engine import RunPaths


@dataclass
class FilesystemStorageAdapter:
    """Stores server copies under a host-mounted filesystem."""

    name: str
    base_path: Path

    def prepare_run(self, job: JobConfig) -> RunPaths:
        # the state file sits beside the mirrored folder, never inside it
        return RunPaths(
            destination=self.base_path,
            state_file=self.base_path / f".{job.name}.state.json",
        )


def build_storage_adapter(name: str, config: StorageConfig) -> FilesystemStorageAdapter:
    if config.type != "filesystem":
        raise ValueError(f"Unsupported storage type '{config.type}' for {name}")
    return FilesystemStorageAdapter(name=name, base_path=config.base_path)
