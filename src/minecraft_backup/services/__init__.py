from __future__ import annotations

from minecraft_backup.config import JobConfig
from minecraft_backup.job_engine import BackupService

from .minecraft import MinecraftBackupService


def create_service(job: JobConfig) -> BackupService:
    if job.service == "minecraft":
        return MinecraftBackupService(job)
    raise ValueError(f"No service connector registered for '{job.service}'.")
