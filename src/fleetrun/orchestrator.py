"""
Orchestrator - every user-facing operation, composed over the components.

run_job() is the heart of it: build the pipeline, hand the runner to the
thread pool, report the log id, then follow the log on the caller's behalf.
The run owns its log for its whole lifetime; the caller only ever reads the
file, so attaching to a live run and reading a finished one look the same.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Optional, Tuple

from . import settings
from .dispatch import Dispatcher, fusermount_argv, run_attached
from .logstore import LogStore
from .model import Action, Job, LogRecord, LogStatus, Machine
from .pipeline import build_pipeline
from .registry import Registry, load_registry
from .runner import PipelineRunner
from .tail import LogTailer

log = logging.getLogger(__name__)


class Orchestrator:
    def __init__(
        self,
        root: str | Path | None = None,
        *,
        registry: Registry | None = None,
        store: LogStore | None = None,
        dispatcher: Dispatcher | None = None,
        poll_interval: float | None = None,
        max_runs: int | None = None,
    ):
        self.root = Path(root if root is not None else settings.ROOT)
        self._registry = registry
        self.store = store or LogStore(self.root)
        self._dispatcher = dispatcher
        self.tailer = LogTailer(self.store, poll_interval=poll_interval)
        self._pool = ThreadPoolExecutor(
            max_workers=max_runs or settings.MAX_CONCURRENT_RUNS,
            thread_name_prefix="fleetrun-run",
        )

    # the registry is only read when an operation needs it
    @property
    def registry(self) -> Registry:
        if self._registry is None:
            self._registry = load_registry(self.root)
        return self._registry

    @property
    def dispatcher(self) -> Dispatcher:
        if self._dispatcher is None:
            self._dispatcher = Dispatcher(self.registry, self.root)
        return self._dispatcher

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    def list_jobs(self) -> list[Job]:
        return self.registry.jobs

    def list_actions(self) -> list[Action]:
        return self.registry.actions

    def list_machines(self) -> list[Machine]:
        return self.registry.machines

    def list_scripts(self) -> list[str]:
        return self.registry.scripts

    def list_logs(self) -> list[LogRecord]:
        """All run logs, oldest first."""
        return self.store.list()

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    def start_run(self, job_id: str) -> Tuple[LogRecord, Future]:
        """
        Create the run and start it in the background.

        Returns immediately with the Pending record and a Future that resolves
        to the final LogStatus. Unknown job ids raise before anything is
        created.
        """
        pipeline = build_pipeline(self.registry, self.store, job_id)
        record = self.store.get(pipeline.log_id)
        runner = PipelineRunner(self.store, self.dispatcher)
        future = self._pool.submit(runner.run, pipeline)
        future.add_done_callback(lambda f: self._log_run_result(pipeline.log_id, f))
        return record, future

    @staticmethod
    def _log_run_result(log_id: str, future: Future) -> None:
        exc = future.exception()
        if exc is not None:
            log.error("run %s crashed: %s", log_id, exc)
        else:
            log.info("run %s ended: %s", log_id, future.result().value)

    def run_job(
        self,
        job_id: str,
        on_line: Callable[[str], None],
        on_start: Optional[Callable[[LogRecord], None]] = None,
    ) -> Tuple[str, Optional[LogStatus]]:
        """
        Start a run and stream its log until the trailer.

        Returns (log id, status from the trailer). The status is None only if
        the runner died without writing a trailer.
        """
        record, future = self.start_run(job_id)
        if on_start is not None:
            on_start(record)

        # a runner that crashed before finalizing never writes a trailer
        stop = threading.Event()

        def _stop_on_crash(f: Future) -> None:
            if f.exception() is not None:
                stop.set()

        future.add_done_callback(_stop_on_crash)
        status = self.tailer.follow(record.id, on_line, stop=stop)
        return record.id, status

    def follow_log(
        self,
        id_or_prefix: str,
        on_line: Callable[[str], None],
        stop: Optional[threading.Event] = None,
    ) -> Optional[LogStatus]:
        """Fetch a finished log or tail a live one, by id or id prefix."""
        log_id = self.store.resolve(id_or_prefix)
        return self.tailer.follow(log_id, on_line, stop=stop)

    # ------------------------------------------------------------------
    # Ad-hoc operations (caller's terminal attached)
    # ------------------------------------------------------------------

    def execute_action(self, action_id: str) -> None:
        action = self.registry.action(action_id)
        invocation = self.dispatcher.dispatch_action(action)
        run_attached(invocation.argv)

    def ssh(self, machine_id: str) -> None:
        run_attached(self.dispatcher.session(machine_id))

    def copy(self, src: str, dst: str) -> None:
        run_attached(self.dispatcher.copy(src, dst))

    def mount(self, machine_id: str, remote_path: str, local_path: str) -> None:
        run_attached(self.dispatcher.mount(machine_id, remote_path, local_path))

    def unmount(self, local_path: str) -> None:
        run_attached(fusermount_argv(local_path))
