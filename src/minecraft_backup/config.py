from __future__ import annotations

import os
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
from typing import Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from croniter import CroniterBadCronError, croniter

DEFAULT_WARNING_MESSAGE = "say [AUTOMATIC SCRIPT] Server restarting in {remaining} for daily backup..."


class ConfigurationError(Exception):
    """Raised when the backup configuration is invalid."""


# --- Storage -----------------------------------------------------------------


class StorageConfig(BaseModel):
    type: Literal["filesystem"] = "filesystem"
    base_path: Path

    @field_validator("base_path")
    def _expand_base_path(cls, value: Path) -> Path:  # noqa: N805
        return value.expanduser()


StorageConfigMap = Dict[str, StorageConfig]


# --- Minecraft job options ---------------------------------------------------


class TimingConfig(BaseModel):
    warnings: List[int] = Field(
        default_factory=lambda: [600, 60, 10],
        description="Seconds remaining before shutdown at which players are warned.",
    )
    shutdown_timeout: float = Field(default=35, ge=0, description="Wait for the session to exit after 'stop'.")
    shutdown_grace: float = Field(default=30, ge=0, description="Extra wait when the session is still alive.")
    startup_timeout: float = Field(default=30, ge=0, description="Wait for the session after container start.")
    poll_interval: float = Field(default=5, gt=0)

    @field_validator("warnings")
    def _validate_warnings(cls, value: List[int]) -> List[int]:  # noqa: N805
        if any(seconds <= 0 for seconds in value):
            raise ValueError("Warning offsets must be positive.")
        if any(later >= earlier for earlier, later in zip(value, value[1:])):
            raise ValueError("Warning offsets must be strictly decreasing.")
        return value


class MinecraftJobOptions(BaseModel):
    container: str = Field(description="Docker container running the server.")
    service_user: str = Field(default="nobody", description="User owning the screen session.")
    connect_user: str = Field(default="root", description="Secondary user allowed on the session.")
    data_path: Path = Field(description="Host path of the server data folder.")
    session_name: str = "minecraft"
    warning_message: str = DEFAULT_WARNING_MESSAGE
    stop_command: str = "stop"
    rsync_args: List[str] = Field(default_factory=list)
    timings: TimingConfig = Field(default_factory=TimingConfig)

    @field_validator("data_path")
    def _expand_data_path(cls, value: Path) -> Path:  # noqa: N805
        return value.expanduser()

    @field_validator("warning_message")
    def _validate_message(cls, value: str) -> str:  # noqa: N805
        try:
            value.format(remaining="1 minute")
        except (KeyError, IndexError, ValueError) as exc:
            raise ValueError(f"Invalid warning message template: {exc}") from exc
        return value


# --- Job configuration -------------------------------------------------------


class JobConfig(BaseModel):
    name: str
    service: Literal["minecraft"] = "minecraft"
    target_storage: str = "default"
    options: MinecraftJobOptions


class NotificationsConfig(BaseModel):
    slack_webhook_env: Optional[str] = None

    def resolve_slack_webhook(self) -> Optional[str]:
        if not self.slack_webhook_env:
            return None
        return os.getenv(self.slack_webhook_env)


class SchedulerConfig(BaseModel):
    cron: str
    timezone: str = "UTC"
    run_on_startup: bool = False

    @field_validator("cron")
    def _validate_cron(cls, value: str) -> str:  # noqa: N805
        try:
            croniter(value, datetime.now())
        except (CroniterBadCronError, ValueError) as exc:
            raise ValueError(f"Invalid cron expression '{value}': {exc}") from exc
        return value

    @field_validator("timezone")
    def _validate_timezone(cls, value: str) -> str:  # noqa: N805
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone '{value}'") from exc
        return value


class CoreConfig(BaseModel):
    jobs: List[JobConfig]
    storage: StorageConfigMap
    notifications: NotificationsConfig = Field(default_factory=NotificationsConfig)
    scheduler: Optional[SchedulerConfig] = None

    @field_validator("jobs")
    def _require_jobs(cls, value: List[JobConfig]) -> List[JobConfig]:  # noqa: N805
        if not value:
            raise ValueError("At least one job must be configured.")
        names = [job.name for job in value]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate job name(s): {', '.join(duplicates)}")
        return value

    @field_validator("storage")
    def _require_storage(cls, value: StorageConfigMap) -> StorageConfigMap:  # noqa: N805
        if not value:
            raise ValueError("At least one storage target must be configured.")
        return value

    @model_validator(mode="after")
    def _ensure_job_storage(self) -> "CoreConfig":
        for job in self.jobs:
            if job.target_storage not in self.storage:
                raise ValueError(f"Job '{job.name}' references unknown storage '{job.target_storage}'.")
        return self


def load_config(path: Path) -> CoreConfig:
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")

    try:
        with path.open("r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc

    try:
        return CoreConfig.model_validate(raw)
    except Exception as exc:  # noqa: BLE001
        raise ConfigurationError(str(exc)) from exc
