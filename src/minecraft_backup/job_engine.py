from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Protocol

from .config import JobConfig
from .state import DEGRADED, FAILED, SUCCESS, RunState, Step

LOG = logging.getLogger(__name__)


class StorageAdapter(Protocol):
    def prepare_run(self, job: JobConfig) -> "RunPaths":
        ...


@dataclass
class RunPaths:
    destination: Path
    state_file: Path


@dataclass
class JobContext:
    job: JobConfig
    started_at: datetime
    storage_paths: RunPaths
    state: RunState
    resume_from: Optional[Step] = None

    def mark(self, step: Step) -> None:
        self.state.mark(step)
        self.state.write(self.storage_paths.state_file)
        LOG.debug("Job %s reached step %s", self.job.name, step.value)


@dataclass
class JobResult:
    job_name: str
    status: str
    started_at: datetime
    completed_at: datetime
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status == SUCCESS

    @property
    def exit_code(self) -> int:
        if self.status == SUCCESS:
            return 0
        if self.status == DEGRADED:
            return 2
        return 1


class BackupService(Protocol):
    def prepare(self, context: JobContext) -> None:
        ...

    def execute(self, context: JobContext) -> None:
        ...

    def finalize(self, context: JobContext) -> None:
        ...


class BackupServiceError(Exception):
    """Raised by backup services to signal controlled job failures."""

    def __init__(self, message: str, errors: Optional[List[str]] = None) -> None:
        super().__init__(message)
        self.errors = errors or [message]


class BackupServiceWarning(Exception):
    """Raised when the backup completed but follow-up work needs attention."""


class JobEngine:
    """Coordinates lifecycle hooks for a backup job.

    ``finalize`` runs whenever ``prepare`` succeeded, so a failing copy still
    brings the server back up. The run state is persisted next to the backup
    so that an interrupted run can be resumed by the next invocation.
    """

    def __init__(self, storage_adapter: StorageAdapter, resume: bool = True) -> None:
        self._storage = storage_adapter
        self._resume = resume

    def run(self, job_config: JobConfig, service: BackupService) -> JobResult:
        started_at = datetime.now(timezone.utc)
        paths = self._storage.prepare_run(job_config)
        context = self._build_context(job_config, started_at, paths)

        errors: List[str] = []
        warnings: List[str] = []
        status = SUCCESS

        try:
            service.prepare(context)
        except BackupServiceError as exc:
            return self._result(job_config, FAILED, started_at, exc.errors, warnings)
        except Exception as exc:  # noqa: BLE001
            LOG.exception("Unexpected error while preparing job %s", job_config.name)
            return self._result(job_config, FAILED, started_at, [str(exc)], warnings)

        try:
            try:
                service.execute(context)
            except BackupServiceError as exc:
                status = FAILED
                errors.extend(exc.errors)
            except Exception as exc:  # noqa: BLE001
                LOG.exception("Unexpected error while running job %s", job_config.name)
                status = FAILED
                errors.append(str(exc))
            finally:
                try:
                    service.finalize(context)
                except BackupServiceWarning as exc:
                    warnings.append(str(exc))
                    if status == SUCCESS:
                        status = DEGRADED
                except BackupServiceError as exc:
                    status = FAILED
                    errors.extend(exc.errors)
                except Exception as exc:  # noqa: BLE001
                    LOG.exception("Unexpected error while finalizing job %s", job_config.name)
                    status = FAILED
                    errors.append(str(exc))
        except BaseException:
            # KeyboardInterrupt, SystemExit
            LOG.error("Job %s interrupted after step %s", job_config.name, _step_name(context.state))
            self._persist(context, paths, FAILED, errors + ["Run interrupted"], warnings)
            raise

        self._persist(context, paths, status, errors, warnings)
        return self._result(job_config, status, started_at, errors, warnings)

    def _build_context(self, job_config: JobConfig, started_at: datetime, paths: RunPaths) -> JobContext:
        previous = RunState.load(paths.state_file) if self._resume else None
        resume_from = previous.resume_point() if previous else None
        state = RunState(job_name=job_config.name, started_at=started_at)

        if resume_from:
            LOG.warning(
                "Previous run of %s did not finish after step '%s'; resuming",
                job_config.name,
                resume_from.value,
            )
            state.started_at = previous.started_at
            state.step = resume_from
            state.copied = previous.copied
        elif previous and previous.interrupted:
            LOG.warning(
                "Previous run of %s was interrupted at step '%s' with nothing to recover; starting over",
                job_config.name,
                _step_name(previous),
            )

        return JobContext(
            job=job_config,
            started_at=started_at,
            storage_paths=paths,
            state=state,
            resume_from=resume_from,
        )

    @staticmethod
    def _persist(context: JobContext, paths: RunPaths, status: str, errors: List[str], warnings: List[str]) -> None:
        state = context.state
        state.status = status
        state.errors = list(errors)
        state.warnings = list(warnings)
        if status != FAILED:
            state.mark(Step.COMPLETED)
        state.write(paths.state_file)

    @staticmethod
    def _result(
        job_config: JobConfig,
        status: str,
        started_at: datetime,
        errors: List[str],
        warnings: List[str],
    ) -> JobResult:
        return JobResult(
            job_name=job_config.name,
            status=status,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc),
            errors=list(errors),
            warnings=list(warnings),
        )


def _step_name(state: RunState) -> str:
    return state.step.value if state.step else "start"
