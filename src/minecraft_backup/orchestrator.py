from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from .config import ConfigurationError, CoreConfig, JobConfig
from .job_engine import BackupService, JobEngine, JobResult
from .state import FAILED
from .storage import FilesystemStorageAdapter, build_storage_adapter

ServiceFactory = Callable[[JobConfig], BackupService]


class BackupOrchestrator:
    """High-level orchestrator that runs backup jobs through the job engine."""

    def __init__(self, config: CoreConfig, service_factory: ServiceFactory, resume: bool = True) -> None:
        self._config = config
        self._service_factory = service_factory
        self._resume = resume
        self._storage_adapters: Dict[str, FilesystemStorageAdapter] = {
            name: build_storage_adapter(name, storage_cfg)
            for name, storage_cfg in config.storage.items()
        }

    def run(self, job_names: Optional[Sequence[str]] = None) -> List[JobResult]:
        jobs = list(self._select_jobs(job_names))
        results: List[JobResult] = []
        for job in jobs:
            adapter = self._storage_adapters[job.target_storage]
            try:
                service = self._service_factory(job)
            except Exception as exc:  # noqa: BLE001
                now = datetime.now(timezone.utc)
                results.append(
                    JobResult(
                        job_name=job.name,
                        status=FAILED,
                        started_at=now,
                        completed_at=now,
                        errors=[f"Service instantiation failed: {exc}"],
                    )
                )
                continue

            engine = JobEngine(storage_adapter=adapter, resume=self._resume)
            results.append(engine.run(job, service))
        return results

    def _select_jobs(self, job_names: Optional[Sequence[str]]) -> Iterable[JobConfig]:
        if job_names:
            name_set = set(job_names)
            missing = name_set - {job.name for job in self._config.jobs}
            if missing:
                missing_str = ", ".join(sorted(missing))
                raise ConfigurationError(f"Unknown job(s) requested: {missing_str}")
            for job in self._config.jobs:
                if job.name in name_set:
                    yield job
        else:
            yield from self._config.jobs
