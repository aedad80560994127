"""
Error taxonomy for fleetrun.

- UnknownIdError: a job/action/machine id is not in the registry. Raised
  before any process is spawned or any log is touched.
- LogNotFoundError: no run log matches an id or prefix.
- ExecutionError: a dispatched process exited non-zero or never started.
- StorageError: a log record or log file could not be created, written or
  read, an id collided, or a status transition was illegal.
- RegistryError: the setup file is missing or malformed.

Nothing here retries. Pipeline steps turn ExecutionError into an Error run
status; ad-hoc operations let it reach the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field


class FleetError(Exception):
    """Base exception for fleetrun."""
    pass


@dataclass
class UnknownIdError(FleetError, LookupError):
    kind: str
    id: str

    def __str__(self) -> str:
        return f"No {self.kind} with the given id was found: {self.id}"


class LogNotFoundError(FleetError):
    """No persisted log record matches the given id or prefix."""
    pass


@dataclass
class ExecutionError(FleetError):
    """
    A dispatched process failed.

    exit_code is None when the process could not be launched at all.
    """
    argv: list[str]
    exit_code: int | None
    message: str = ""
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        if self.exit_code is None:
            head = f"failed to start: {' '.join(self.argv)}"
        else:
            head = f"exited with status {self.exit_code}: {' '.join(self.argv)}"
        lines = [head]
        if self.message:
            lines.append(self.message)
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


class StorageError(FleetError):
    """Log storage failed; fatal to the affected run."""
    pass


class RegistryError(FleetError):
    """The registry setup file is missing or invalid."""
    pass
