# runner.py
from __future__ import annotations

import logging
import subprocess

from .dispatch import Dispatcher
from .errors import ExecutionError, StorageError, UnknownIdError
from .logstore import LogStore
from .model import LogStatus, Pipeline, Step

log = logging.getLogger(__name__)


# ----------------------------------------------------------------------
# Execution primitives
# ----------------------------------------------------------------------

def _stream_step(store: LogStore, log_id: str, argv: list[str]) -> None:
    """
    Run argv with stdout and stderr merged, appending each line to the log
    in the order produced. Raises ExecutionError on launch failure or a
    non-zero exit.
    """
    try:
        proc = subprocess.Popen(
            argv,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
    except OSError as e:
        raise ExecutionError(argv=argv, exit_code=None, message=str(e)) from e

    with proc:
        for line in proc.stdout:
            store.append(log_id, line.rstrip("\r\n"))
        exit_code = proc.wait()

    if exit_code != 0:
        raise ExecutionError(argv=argv, exit_code=exit_code)


# ----------------------------------------------------------------------
# Runner
# ----------------------------------------------------------------------

class PipelineRunner:
    """
    Executes one pipeline, strictly in declaration order, fail-fast.

    Pending -> Running -> Finished when every step exits 0, or
    Pending -> Running -> Error at the first step that exits non-zero or
    cannot be launched. Later steps never run after a failure.
    """

    def __init__(self, store: LogStore, dispatcher: Dispatcher):
        self.store = store
        self.dispatcher = dispatcher

    def _run_step(self, pipeline: Pipeline, step: Step, label: str) -> None:
        invocation = self.dispatcher.dispatch(step.machine, step.script, step.args)
        via = "ssh" if invocation.is_remote else "local"
        log.info("[%s] step %s: %s on %s (%s)", pipeline.job_id, label, step.script, step.machine, via)
        _stream_step(self.store, pipeline.log_id, list(invocation.argv))

    def run(self, pipeline: Pipeline) -> LogStatus:
        log_id = pipeline.log_id
        self.store.mark_running(log_id)
        outcome = LogStatus.FINISHED
        total = len(pipeline.steps)

        try:
            for index, step in enumerate(pipeline.steps, start=1):
                try:
                    self._run_step(pipeline, step, f"{index}/{total}")
                except (ExecutionError, UnknownIdError) as e:
                    log.warning("[%s] step %d/%d failed: %s", pipeline.job_id, index, total, e)
                    outcome = LogStatus.ERROR
                    break
        except Exception as e:
            # the log can no longer be trusted; one attempt to close it out
            log.error("[%s] run %s aborted: %s", pipeline.job_id, log_id, e)
            try:
                self.store.finalize(log_id, LogStatus.ERROR)
            except StorageError as finalize_error:
                log.error("[%s] could not finalize log %s: %s", pipeline.job_id, log_id, finalize_error)
            raise

        self.store.finalize(log_id, outcome)
        return outcome
