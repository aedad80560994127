# model.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


@dataclass(frozen=True)
class Machine:
    """An SSH-reachable host. private_key is a filename under <root>/keys."""
    id: str
    user: str
    address: str
    port: int
    private_key: str


@dataclass(frozen=True)
class Action:
    """A single ad-hoc command bound to one machine (or "local")."""
    id: str
    machine: str
    command: str


@dataclass(frozen=True)
class Step:
    """One pipeline element: run `script` with `args` on `machine`."""
    machine: str
    script: str
    args: tuple[str, ...] = ()


@dataclass(frozen=True)
class Job:
    """A named, ordered sequence of steps executed as one run."""
    id: str
    pipeline: tuple[Step, ...]


@dataclass(frozen=True)
class Pipeline:
    """A job's steps bound to the log record of one run."""
    job_id: str
    log_id: str
    steps: tuple[Step, ...]


class LogStatus(str, Enum):
    PENDING = "Pending"
    RUNNING = "Running"
    FINISHED = "Finished"
    ERROR = "Error"

    @property
    def terminal(self) -> bool:
        return self in (LogStatus.FINISHED, LogStatus.ERROR)


# trailer line -> terminal status
TRAILERS = {
    "-----Finished-----": LogStatus.FINISHED,
    "-----Error-----": LogStatus.ERROR,
}
TRAILER_FOR = {status: line for line, status in TRAILERS.items()}


class LogRecord(BaseModel):
    """Persisted metadata of one run. Serialized as JSON beside the log file."""
    model_config = ConfigDict(frozen=True)

    id: str
    job_id: str
    status: LogStatus = LogStatus.PENDING
    created_at: datetime
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
