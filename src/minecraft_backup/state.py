from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

LOG = logging.getLogger(__name__)

RUNNING = "running"
SUCCESS = "success"
DEGRADED = "degraded"
FAILED = "failed"


class Step(str, Enum):
    PREPARED = "prepared"
    WARNED = "warned"
    SHUTDOWN_SENT = "shutdown_sent"
    CONTAINER_STOPPED = "container_stopped"
    COPIED = "copied"
    CONTAINER_STARTED = "container_started"
    COMPLETED = "completed"

    @property
    def order(self) -> int:
        return list(Step).index(self)


# Steps after which the server stays down until this job brings it back.
SERVER_DOWN_STEPS = (Step.SHUTDOWN_SENT, Step.CONTAINER_STOPPED, Step.COPIED)


@dataclass
class RunState:
    job_name: str
    started_at: datetime
    status: str = RUNNING
    step: Optional[Step] = None
    updated_at: Optional[datetime] = None
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    copied: bool = False
    schema_version: str = "1.0.0"

    def reached(self, step: Step) -> bool:
        return self.step is not None and self.step.order >= step.order

    def mark(self, step: Step) -> None:
        self.step = step
        if step == Step.COPIED:
            self.copied = True
        self.updated_at = datetime.now(timezone.utc)

    @property
    def interrupted(self) -> bool:
        return self.status == RUNNING

    def resume_point(self) -> Optional[Step]:
        # before the stop command nothing needs undoing, so a fresh run is safe
        if self.step in SERVER_DOWN_STEPS and self.status in (RUNNING, FAILED):
            return self.step
        # a restart without a finished copy must not pass for a backup
        if self.step == Step.CONTAINER_STARTED and self.interrupted and self.copied:
            return self.step
        return None

    def to_dict(self) -> Dict:
        return {
            "schema_version": self.schema_version,
            "job_name": self.job_name,
            "status": self.status,
            "step": self.step.value if self.step else None,
            "started_at": self.started_at.isoformat(),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "errors": self.errors,
            "warnings": self.warnings,
            "copied": self.copied,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "RunState":
        step = data.get("step")
        updated_at = data.get("updated_at")
        return cls(
            job_name=data["job_name"],
            started_at=datetime.fromisoformat(data["started_at"]),
            status=data.get("status", RUNNING),
            step=Step(step) if step else None,
            updated_at=datetime.fromisoformat(updated_at) if updated_at else None,
            errors=list(data.get("errors", [])),
            warnings=list(data.get("warnings", [])),
            copied=bool(data.get("copied", False)),
            schema_version=data.get("schema_version", "1.0.0"),
        )

    def write(self, path: Path) -> None:
        tmp_path = path.with_name(path.name + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as fh:
            json.dump(self.to_dict(), fh, indent=2)
        tmp_path.replace(path)

    @classmethod
    def load(cls, path: Path) -> Optional["RunState"]:
        if not path.exists():
            return None
        try:
            with path.open("r", encoding="utf-8") as fh:
                return cls.from_dict(json.load(fh))
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as exc:
            LOG.warning("Ignoring unreadable state file %s: %s", path, exc)
            return None
