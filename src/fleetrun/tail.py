from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from . import settings
from .errors import LogNotFoundError, StorageError
from .logstore import LogStore
from .model import TRAILERS, LogStatus

log = logging.getLogger(__name__)


class LogTailer:
    """
    Follows a run's log file from the beginning until its trailer line.

    The file is the synchronization with the writer: lines are delivered
    in the order they were appended, and the trailer (never delivered) ends
    the follow. A completed log returns as soon as its existing lines are
    read. A live log is polled for growth every `poll_interval` seconds until
    the trailer arrives or `stop` is set. A log whose record is already terminal
    ends once the file is drained, even if its trailer was never written.
    """

    def __init__(self, store: LogStore, poll_interval: float | None = None):
        self.store = store
        self.poll_interval = settings.TAIL_POLL_SECONDS if poll_interval is None else poll_interval

    def _wait(self, stop: Optional[threading.Event]) -> None:
        if stop is not None:
            stop.wait(self.poll_interval)
        else:
            time.sleep(self.poll_interval)

    def _terminal_status(self, log_id: str) -> Optional[LogStatus]:
        try:
            status = self.store.get(log_id).status
        except LogNotFoundError:
            # log file claimed, record not written yet
            return None
        return status if status.terminal else None

    def follow(
        self,
        log_id: str,
        on_line: Callable[[str], None],
        stop: Optional[threading.Event] = None,
    ) -> Optional[LogStatus]:
        """
        Returns:
          LogStatus.FINISHED / LogStatus.ERROR from the trailer (or from the
          terminal record when the trailer is missing), or
          None if `stop` was set before a trailer appeared.
        """
        path = self.store.log_path(log_id)
        try:
            # newline="" so a half-written "\r\n" is never split into two lines
            f = path.open("r", encoding="utf-8", errors="replace", newline="")
        except FileNotFoundError as e:
            raise LogNotFoundError(f"Log not found: {log_id}") from e
        except OSError as e:
            raise StorageError(f"Could not open log {log_id}: {e}") from e

        pending = ""
        closed: Optional[LogStatus] = None
        with f:
            while True:
                try:
                    chunk = f.readline()
                except OSError as e:
                    raise StorageError(f"Could not read log {log_id}: {e}") from e

                if chunk:
                    pending += chunk
                    if not pending.endswith("\n"):
                        # partial line; the writer has not finished it yet
                        continue
                    line = pending.rstrip("\r\n")
                    pending = ""

                    status = TRAILERS.get(line)
                    if status is not None:
                        log.debug("log %s reached trailer: %s", log_id, status.value)
                        return status
                    on_line(line)
                    continue

                if closed is not None:
                    # record is terminal and the file is drained, but no trailer came
                    log.warning("log %s ended without a trailer (status %s)", log_id, closed.value)
                    if pending:
                        on_line(pending.rstrip("\r\n"))
                    return closed
                closed = self._terminal_status(log_id)
                if closed is not None:
                    # give the trailer a moment, then drain whatever is left
                    self._wait(stop)
                    continue

                if stop is not None and stop.is_set():
                    log.debug("stopped following log %s", log_id)
                    return None
                self._wait(stop)
