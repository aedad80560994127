# dispatch.py
"""
Command dispatch: decide where a command runs and build its argv.

A machine id resolves once to a Target: LocalTarget for the reserved id
"local", RemoteTarget for anything found in the registry. Local commands run
as structured argv without a shell. Remote commands go through `ssh -tt`; the
command string is handed to the remote shell as a single argument and is NOT
escaped, so shell metacharacters in it are interpreted on the remote side.
Step arguments appended to a remote command are quoted with shlex.quote.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence, Tuple, Union

from . import settings
from .errors import ExecutionError
from .model import Action, Machine
from .registry import Registry

log = logging.getLogger(__name__)

SSH_OPTIONS = ["-o", "StrictHostKeyChecking no", "-o", "BatchMode yes"]

TOOL_HINTS = {
    "ssh": "Install the OpenSSH client or fix PATH.",
    "scp": "Install the OpenSSH client (includes scp) or fix PATH.",
    "sshfs": "Install sshfs (e.g., apt install sshfs).",
    "fusermount": "Install FUSE (fusermount) or fix PATH.",
}


@dataclass(frozen=True)
class LocalTarget:
    pass


@dataclass(frozen=True)
class RemoteTarget:
    machine: Machine


Target = Union[LocalTarget, RemoteTarget]


@dataclass(frozen=True)
class Invocation:
    """An executable command line; running it is left to the caller."""
    target: Target
    argv: Tuple[str, ...]

    @property
    def is_remote(self) -> bool:
        return isinstance(self.target, RemoteTarget)


# ----------------------------------------------------------------------
# Argv builders
# ----------------------------------------------------------------------

def _destination(machine: Machine) -> str:
    return f"{machine.user}@{machine.address}"


def ssh_argv(machine: Machine, key_path: Path, command: str | None = None) -> list[str]:
    """ssh with a forced pseudo-terminal; no command means an interactive shell."""
    argv = ["ssh", "-tt", *SSH_OPTIONS, _destination(machine), "-p", str(machine.port), "-i", str(key_path)]
    if command is not None:
        argv.append(command)
    return argv


def scp_argv(machine: Machine, key_path: Path, src: str, dst: str) -> list[str]:
    return ["scp", *SSH_OPTIONS, "-i", str(key_path), "-P", str(machine.port), "-r", src, dst]


def sshfs_argv(machine: Machine, key_path: Path, remote_path: str, local_path: str) -> list[str]:
    return [
        "sshfs",
        f"{_destination(machine)}:{remote_path}",
        local_path,
        "-p", str(machine.port),
        "-o", f"IdentityFile={key_path}",
        "-o", "sshfs_sync",
    ]


def fusermount_argv(local_path: str) -> list[str]:
    return ["fusermount", "-u", local_path]


def split_copy_paths(src: str, dst: str) -> Tuple[str, bool, str, str]:
    """
    Work out the direction of a copy from a `machineId:` prefix.

    Exactly one of src/dst must carry the prefix.

    Returns:
      (machine_id, local_to_remote, src_path, dst_path) with the prefix removed
    """
    src_remote = ":" in src
    dst_remote = ":" in dst

    if dst_remote and not src_remote:
        machine_id, _, path = dst.partition(":")
        return machine_id, True, src, path
    if src_remote and not dst_remote:
        machine_id, _, path = src.partition(":")
        return machine_id, False, path, dst
    raise ValueError(
        f"Invalid arguments to scp: exactly one of {src!r} and {dst!r} must be machineId:path"
    )


# ----------------------------------------------------------------------
# Dispatcher
# ----------------------------------------------------------------------

class Dispatcher:
    """Turns (machine id, command, args) into an Invocation."""

    def __init__(self, registry: Registry, root: str | Path = "."):
        self.registry = registry
        self.root = Path(root)

    @property
    def keys_dir(self) -> Path:
        return self.root / settings.KEYS_DIRNAME

    @property
    def scripts_dir(self) -> Path:
        return self.root / settings.SCRIPTS_DIRNAME

    def key_path(self, machine: Machine) -> Path:
        return self.keys_dir / machine.private_key

    def resolve_target(self, machine_id: str) -> Target:
        # "local" never touches the registry
        if machine_id == settings.LOCAL_MACHINE:
            return LocalTarget()
        return RemoteTarget(self.registry.machine(machine_id))

    def _local_program(self, command: str) -> str:
        script = self.scripts_dir / command
        if script.is_file():
            return str(script)
        return command

    def dispatch(self, machine_id: str, command: str, args: Sequence[str] = ()) -> Invocation:
        target = self.resolve_target(machine_id)

        if isinstance(target, LocalTarget):
            argv = (self._local_program(command), *args)
        else:
            remote_command = " ".join([command, *(shlex.quote(a) for a in args)])
            argv = tuple(ssh_argv(target.machine, self.key_path(target.machine), remote_command))

        log.debug("dispatch %s -> %s", machine_id, argv)
        return Invocation(target=target, argv=argv)

    def dispatch_action(self, action: Action) -> Invocation:
        if action.machine == settings.LOCAL_MACHINE:
            parts = shlex.split(action.command)
            if not parts:
                raise ValueError(f"Action {action.id!r} has an empty command")
            return self.dispatch(action.machine, parts[0], parts[1:])
        # remote action commands are passed through verbatim
        return self.dispatch(action.machine, action.command)

    def session(self, machine_id: str) -> list[str]:
        machine = self.registry.machine(machine_id)
        return ssh_argv(machine, self.key_path(machine))

    def copy(self, src: str, dst: str) -> list[str]:
        machine_id, local_to_remote, src_path, dst_path = split_copy_paths(src, dst)
        machine = self.registry.machine(machine_id)
        remote = f"{_destination(machine)}:"
        if local_to_remote:
            dst_path = remote + dst_path
        else:
            src_path = remote + src_path
        return scp_argv(machine, self.key_path(machine), src_path, dst_path)

    def mount(self, machine_id: str, remote_path: str, local_path: str) -> list[str]:
        machine = self.registry.machine(machine_id)
        return sshfs_argv(machine, self.key_path(machine), remote_path, local_path)


# ----------------------------------------------------------------------
# Execution with the caller's terminal attached
# ----------------------------------------------------------------------

def run_attached(argv: Sequence[str]) -> None:
    """
    Run argv with stdin/stdout/stderr inherited from this process.

    Raises ExecutionError on a non-zero exit or when the program is missing.
    """
    argv = list(argv)
    log.debug("run attached: %s", argv)
    try:
        proc = subprocess.run(argv)
    except OSError as e:
        hint = TOOL_HINTS.get(argv[0], f"Install {argv[0]} or fix PATH.")
        raise ExecutionError(argv=argv, exit_code=None, message=str(e), details={"hint": hint}) from e

    if proc.returncode != 0:
        raise ExecutionError(argv=argv, exit_code=proc.returncode)
