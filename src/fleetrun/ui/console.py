"""Console output formatting utilities for fleetrun."""

from __future__ import annotations

import sys
import traceback
from datetime import datetime
from typing import Iterable, Optional

from ..model import Action, Job, LogRecord, Machine


def _fmt_time(value: Optional[datetime]) -> str:
    return value.isoformat(timespec="seconds") if value else ""


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug

    def print_jobs(self, jobs: Iterable[Job]) -> None:
        for job in jobs:
            print(job.id)
            for step in job.pipeline:
                print(f"\t{step.machine} -> {step.script} {list(step.args)}")

    def print_actions(self, actions: Iterable[Action]) -> None:
        for action in actions:
            print(action.id)
            print(f"\t{action.machine} -> {action.command}")

    def print_machines(self, machines: Iterable[Machine]) -> None:
        for machine in machines:
            print(machine.id)
            print(f"\t{machine.user}@{machine.address}:{machine.port} ({machine.private_key})")

    def print_scripts(self, scripts: Iterable[str]) -> None:
        for script in scripts:
            print(script)

    def print_logs(self, records: Iterable[LogRecord]) -> None:
        """Print the run log table (oldest first)."""
        row = "{:<32}\t{:<20}\t{:<10}\t{:<25}\t{:<25}"
        print(row.format("Id", "Job", "Status", "Start", "End"))
        for r in records:
            print(row.format(r.id, r.job_id, r.status.value, _fmt_time(r.start_time), _fmt_time(r.end_time)))

    def print_line(self, line: str) -> None:
        """Print one line of run output."""
        print(line, flush=True)

    def print_run_started(self, log_id: str) -> None:
        print(log_id, flush=True)

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_traceback(self, exc: BaseException) -> None:
        """Print the traceback of `exc` (only if debug mode enabled)."""
        if self.debug:
            traceback.print_exception(type(exc), exc, exc.__traceback__, file=sys.stderr)

    def print_info(self, message: str) -> None:
        print(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            print(f"[DEBUG] {message}", file=sys.stderr)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
