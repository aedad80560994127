# cli.py
from __future__ import annotations

import logging
import sys
from contextlib import contextmanager

import click

from fleetrun.errors import (
    ExecutionError,
    FleetError,
    LogNotFoundError,
    RegistryError,
    StorageError,
    UnknownIdError,
)
from fleetrun.orchestrator import Orchestrator
from fleetrun.ui.console import Console, get_console, set_console

ERROR_TITLES = {
    UnknownIdError: "Unknown id",
    LogNotFoundError: "Log not found",
    RegistryError: "Invalid registry",
    ExecutionError: "Command failed",
    StorageError: "Log storage failed",
}

SUGGESTIONS = {
    UnknownIdError: "List what is available:\n  fleetrun jobs | fleetrun actions | fleetrun machines",
    LogNotFoundError: "List existing logs:\n  fleetrun logs",
    RegistryError: "Create setup.yaml in the root directory or pass --root.",
}


@contextmanager
def report_errors():
    """Turn fleetrun errors into a clean message and a non-zero exit."""
    console = get_console()
    try:
        yield
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except FleetError as e:
        console.print_error(
            ERROR_TITLES.get(type(e), "fleetrun error"),
            str(e),
            suggestion=SUGGESTIONS.get(type(e)),
        )
        console.print_traceback(e)
        if isinstance(e, ExecutionError) and e.exit_code:
            sys.exit(e.exit_code)
        sys.exit(1)
    except ValueError as e:
        console.print_error("Invalid arguments", str(e))
        sys.exit(1)


@click.group()
@click.option(
    "--root",
    default=None,
    type=click.Path(file_okay=False),
    help="Root directory holding setup.yaml, keys/, logs/ and scripts/ (defaults to $FLEETRUN_ROOT or .)",
)
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and debug logging)",
)
@click.pass_context
def cli(ctx, root, debug):
    """fleetrun: run step pipelines across machines and keep their logs."""
    console = Console(debug=debug)
    set_console(console)
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["orchestrator"] = Orchestrator(root)


# ----------------------------------------------------------------------
# Listings
# ----------------------------------------------------------------------

@cli.command()
@click.pass_context
def jobs(ctx):
    """List all jobs and their pipelines."""
    with report_errors():
        get_console().print_jobs(ctx.obj["orchestrator"].list_jobs())


@cli.command()
@click.pass_context
def actions(ctx):
    """List all actions."""
    with report_errors():
        get_console().print_actions(ctx.obj["orchestrator"].list_actions())


@cli.command()
@click.pass_context
def machines(ctx):
    """List all machines."""
    with report_errors():
        get_console().print_machines(ctx.obj["orchestrator"].list_machines())


@cli.command()
@click.pass_context
def scripts(ctx):
    """List all scripts."""
    with report_errors():
        get_console().print_scripts(ctx.obj["orchestrator"].list_scripts())


@cli.command()
@click.pass_context
def logs(ctx):
    """List all run logs, oldest first."""
    with report_errors():
        get_console().print_logs(ctx.obj["orchestrator"].list_logs())


# ----------------------------------------------------------------------
# Runs and logs
# ----------------------------------------------------------------------

@cli.command()
@click.argument("job_id")
@click.pass_context
def run(ctx, job_id):
    """
    Run a job: print its log id, then stream the log until the run ends.

    The exit code reflects only whether the run could be started; the run's
    own outcome is recorded in its log status and trailer.
    """
    console = get_console()
    with report_errors():
        log_id, status = ctx.obj["orchestrator"].run_job(
            job_id,
            on_line=console.print_line,
            on_start=lambda record: console.print_run_started(record.id),
        )
        console.print_debug(f"run {log_id} ended: {status.value if status else 'unknown'}")


@cli.command()
@click.argument("log_id")
@click.pass_context
def log(ctx, log_id):
    """Print a log by id or id prefix, following it while the run is live."""
    console = get_console()
    with report_errors():
        ctx.obj["orchestrator"].follow_log(log_id, console.print_line)


# ----------------------------------------------------------------------
# Ad-hoc commands
# ----------------------------------------------------------------------

@cli.command(name="exec")
@click.argument("action_id")
@click.pass_context
def exec_action(ctx, action_id):
    """Execute an action with this terminal attached."""
    with report_errors():
        ctx.obj["orchestrator"].execute_action(action_id)


@cli.command()
@click.argument("machine_id")
@click.pass_context
def ssh(ctx, machine_id):
    """Open an interactive SSH session to a machine."""
    with report_errors():
        ctx.obj["orchestrator"].ssh(machine_id)


@cli.command()
@click.argument("src")
@click.argument("dst")
@click.pass_context
def scp(ctx, src, dst):
    """Copy SRC to DST; exactly one of them is written machineId:path."""
    with report_errors():
        ctx.obj["orchestrator"].copy(src, dst)


@cli.command()
@click.argument("machine_id")
@click.argument("remote_path")
@click.argument("local_path")
@click.pass_context
def mount(ctx, machine_id, remote_path, local_path):
    """Mount REMOTE_PATH of a machine at LOCAL_PATH with sshfs."""
    with report_errors():
        ctx.obj["orchestrator"].mount(machine_id, remote_path, local_path)


@cli.command()
@click.argument("local_path")
@click.pass_context
def unmount(ctx, local_path):
    """Unmount an sshfs mount point."""
    with report_errors():
        ctx.obj["orchestrator"].unmount(local_path)


if __name__ == "__main__":
    cli()
