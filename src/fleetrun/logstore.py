"""
LogStore - durable, append-only run logs.

Layout under <root>/logs:
  <id>       plaintext log, one line per unit of step output, ending with
             exactly one trailer line (-----Finished----- or -----Error-----)
  <id>.json  the LogRecord (status and timestamps)

Ids are uuid4 hex strings (32 characters). An id is claimed by creating the
log file exclusively, so two runs can never share one even when created
concurrently. Records are always written atomically (temp file + os.replace),
so readers never see a half-written record. list() skips records it cannot
parse.

Enumeration order is oldest first by (created_at, id). resolve() walks that
order, so an ambiguous prefix resolves to the oldest matching run.

Writers: one PipelineRunner per log id. Nothing here locks.
"""

from __future__ import annotations

import logging
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from . import settings
from .errors import LogNotFoundError, StorageError
from .model import TRAILER_FOR, TRAILERS, LogRecord, LogStatus

log = logging.getLogger(__name__)

RECORD_SUFFIX = ".json"


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def new_log_id() -> str:
    return uuid.uuid4().hex


class LogStore:
    def __init__(self, root: str | Path = "."):
        self.root = Path(root)
        self.logs_dir = self.root / settings.LOGS_DIRNAME

    # -------------------- paths --------------------

    def log_path(self, log_id: str) -> Path:
        return self.logs_dir / log_id

    def record_path(self, log_id: str) -> Path:
        return self.logs_dir / f"{log_id}{RECORD_SUFFIX}"

    # -------------------- records --------------------

    def _write_record(self, record: LogRecord) -> None:
        path = self.record_path(record.id)
        tmp = path.with_name(f".{path.name}.tmp")
        try:
            tmp.write_text(record.model_dump_json(), encoding="utf-8")
            os.replace(tmp, path)
        except OSError as e:
            raise StorageError(f"Could not write log record {record.id}: {e}") from e

    def _read_record(self, path: Path) -> LogRecord:
        try:
            return LogRecord.model_validate_json(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise StorageError(f"Could not read log record {path}: {e}") from e
        except ValidationError as e:
            raise StorageError(f"Corrupt log record {path}: {e}") from e

    def get(self, log_id: str) -> LogRecord:
        path = self.record_path(log_id)
        if not path.is_file():
            raise LogNotFoundError(f"Log not found: {log_id}")
        return self._read_record(path)

    def create(self, job_id: str) -> LogRecord:
        """Allocate a new Pending record and an empty log file."""
        try:
            self.logs_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Could not create logs directory {self.logs_dir}: {e}") from e

        record = LogRecord(id=new_log_id(), job_id=job_id, created_at=now_utc())

        # claim the id with the log file: exclusive create fails if it was ever used.
        # The record only appears once it is complete.
        try:
            self.log_path(record.id).open("x", encoding="utf-8").close()
        except FileExistsError as e:
            raise StorageError(f"Log id collision: {record.id}") from e
        except OSError as e:
            raise StorageError(f"Could not create log {record.id}: {e}") from e
        self._write_record(record)

        log.info("created log %s for job %s", record.id, job_id)
        return record

    def list(self) -> list[LogRecord]:
        """All persisted records, oldest first."""
        if not self.logs_dir.is_dir():
            return []
        records = []
        for path in self.logs_dir.glob(f"*{RECORD_SUFFIX}"):
            try:
                records.append(self._read_record(path))
            except StorageError as e:
                log.warning("skipping unreadable log record: %s", e)
        records.sort(key=lambda r: (r.created_at, r.id))
        return records

    def resolve(self, id_or_prefix: str) -> str:
        """
        Turn a full id or an id prefix into a log id.

        A full existing id is returned unchanged. Otherwise the first record
        (oldest first) whose id starts with the prefix wins.
        """
        if id_or_prefix and self.record_path(id_or_prefix).is_file():
            return id_or_prefix

        if id_or_prefix:
            for record in self.list():
                if record.id.startswith(id_or_prefix):
                    return record.id

        raise LogNotFoundError(f"Log not found: {id_or_prefix!r}")

    # -------------------- writes --------------------

    def append(self, log_id: str, line: str) -> None:
        if line in TRAILERS:
            log.warning("log %s: step output matches the reserved trailer %r", log_id, line)
        try:
            with self.log_path(log_id).open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError as e:
            raise StorageError(f"Could not append to log {log_id}: {e}") from e

    def _transition(self, log_id: str, expected: LogStatus, target: LogStatus, **changes) -> LogRecord:
        record = self.get(log_id)
        if record.status is not expected:
            raise StorageError(f"Log {log_id}: cannot move to {target.value} from {record.status.value}")
        updated = record.model_copy(update={"status": target, **changes})
        self._write_record(updated)
        return updated

    def mark_running(self, log_id: str) -> LogRecord:
        record = self._transition(log_id, LogStatus.PENDING, LogStatus.RUNNING, start_time=now_utc())
        log.debug("log %s running", log_id)
        return record

    def finalize(self, log_id: str, outcome: LogStatus) -> LogRecord:
        """Write the trailer for `outcome` and make the record terminal."""
        if not outcome.terminal:
            raise ValueError(f"finalize() needs a terminal status, got {outcome.value}")

        # record first, trailer last: a tailer that sees the trailer sees a terminal record
        updated = self._transition(log_id, LogStatus.RUNNING, outcome, end_time=now_utc())
        try:
            with self.log_path(log_id).open("a", encoding="utf-8") as f:
                f.write(TRAILER_FOR[outcome] + "\n")
        except OSError as e:
            raise StorageError(f"Could not write trailer to log {log_id}: {e}") from e

        log.info("log %s finished with status %s", log_id, outcome.value)
        return updated
