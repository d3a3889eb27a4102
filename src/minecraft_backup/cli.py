from __future__ import annotations

import argparse
import os
import signal
import sys
import threading
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence

from croniter import croniter
from zoneinfo import ZoneInfo

from .config import ConfigurationError, CoreConfig, SchedulerConfig, load_config
from .job_engine import JobResult
from .logger import configure_logging, get_logger
from .notifications import notify_results
from .orchestrator import BackupOrchestrator
from .services import create_service

DEFAULT_CONFIG_PATH = "/opt/minecraft-backup/config/minecraft-backup.yaml"

LOG = get_logger(__name__)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Back up a Minecraft server running in a docker container.")
    parser.add_argument(
        "--config",
        default=os.getenv("MINECRAFT_BACKUP_CONFIG", DEFAULT_CONFIG_PATH),
        help="Path to configuration YAML file.",
    )
    parser.add_argument(
        "--job",
        action="append",
        help="Specific job name to run (can be specified multiple times). Runs all jobs when omitted.",
    )
    parser.add_argument(
        "--list-jobs",
        action="store_true",
        help="List jobs defined in the configuration and exit.",
    )
    parser.add_argument(
        "--no-resume",
        action="store_true",
        help="Ignore the state left by an unfinished previous run and start over.",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run the jobs immediately even when a scheduler is configured.",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Log level (default INFO).",
    )
    return parser.parse_args(argv)


def load_configuration(path: Path, *, exit_on_error: bool = True) -> CoreConfig:
    try:
        return load_config(path)
    except ConfigurationError as exc:
        if exit_on_error:
            raise SystemExit(f"Configuration error: {exc}") from exc
        raise


def list_jobs(config: CoreConfig) -> None:
    for job in config.jobs:
        print(job.name)


def exit_code_for(results: Sequence[JobResult]) -> int:
    codes = {result.exit_code for result in results}
    if 1 in codes:
        return 1
    if 2 in codes:
        return 2
    return 0


def run_jobs(config: CoreConfig, job_names: Optional[List[str]], resume: bool = True) -> int:
    orchestrator = BackupOrchestrator(config=config, service_factory=create_service, resume=resume)
    try:
        results = orchestrator.run(job_names)
    except ConfigurationError as exc:
        LOG.error("Configuration error: %s", exc)
        return 1

    for result in results:
        elapsed = (result.completed_at - result.started_at).total_seconds()
        if result.success:
            LOG.info("Job %s succeeded in %.2fs", result.job_name, elapsed)
        elif result.warnings and not result.errors:
            LOG.warning(
                "Job %s completed with warnings: %s. Investigate, as this could prevent future backups",
                result.job_name,
                "; ".join(result.warnings),
            )
        else:
            LOG.error("Job %s failed: %s", result.job_name, "; ".join(result.errors))

    notify_results(config.notifications, results)
    return exit_code_for(results)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)

    config_path = Path(args.config).expanduser()
    config = load_configuration(config_path)

    if args.list_jobs:
        list_jobs(config)
        return 0

    job_names = args.job if args.job else None
    resume = not args.no_resume
    if config.scheduler and not args.once:
        return run_with_scheduler(
            config_path=config_path,
            initial_config=config,
            job_names=job_names,
            resume=resume,
        )
    return run_jobs(config, job_names, resume=resume)


def run_with_scheduler(
    config_path: Path,
    initial_config: CoreConfig,
    job_names: Optional[List[str]],
    resume: bool = True,
) -> int:
    stop_event = threading.Event()

    def _handle_signal(signum: int, _frame: Optional[object]) -> None:
        LOG.info("Received signal %s; stopping scheduler", signum)
        stop_event.set()

    signal.signal(signal.SIGTERM, _handle_signal)
    signal.signal(signal.SIGINT, _handle_signal)

    config = initial_config
    scheduler = _require_scheduler(config.scheduler)
    timezone = ZoneInfo(scheduler.timezone)
    next_run = datetime.now(timezone) if scheduler.run_on_startup else _next_run(scheduler.cron, datetime.now(timezone))

    if scheduler.run_on_startup:
        LOG.info("Executing initial run immediately")
    else:
        LOG.info("Next run scheduled for %s", next_run.isoformat())

    while not stop_event.is_set():
        now = datetime.now(timezone)
        if now >= next_run:
            try:
                config = load_configuration(config_path, exit_on_error=False)
            except ConfigurationError as exc:
                LOG.error("Failed to reload configuration: %s; continuing with previous settings", exc)
            else:
                if not config.scheduler:
                    LOG.info("Scheduler removed from configuration; exiting loop")
                    break
                scheduler = _require_scheduler(config.scheduler)
                timezone = ZoneInfo(scheduler.timezone)

            exit_code = run_jobs(config, job_names, resume=resume)
            if exit_code != 0:
                LOG.warning("Scheduled run completed with problems (exit code %s)", exit_code)

            next_run = _next_run(scheduler.cron, datetime.now(timezone))
            LOG.info("Next run scheduled for %s", next_run.isoformat())
            continue

        sleep_for = max((next_run - now).total_seconds(), 0)
        stop_event.wait(min(sleep_for, 60))

    LOG.info("Scheduler stopped")
    return 0


def _require_scheduler(scheduler: Optional[SchedulerConfig]) -> SchedulerConfig:
    if not scheduler:
        raise ValueError("Scheduler configuration is required")
    return scheduler


def _next_run(cron_expression: str, reference: datetime) -> datetime:
    return croniter(cron_expression, reference).get_next(datetime)


if __name__ == "__main__":
    sys.exit(main())
