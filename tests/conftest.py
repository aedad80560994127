"""Shared test fixtures for all tests."""

import time

import pytest

from fleetrun.dispatch import Dispatcher, Invocation, RemoteTarget
from fleetrun.logstore import LogStore
from fleetrun.model import Action, Job, Machine, Step
from fleetrun.registry import Registry

WEB1 = Machine(id="web1", user="deploy", address="10.0.0.5", port=2222, private_key="web1.pem")


class LoopbackDispatcher(Dispatcher):
    """Runs remote steps from the local scripts dir instead of over ssh."""

    def dispatch(self, machine_id, command, args=()):
        target = self.resolve_target(machine_id)
        if isinstance(target, RemoteTarget):
            return Invocation(target=target, argv=(str(self.scripts_dir / command), *args))
        return super().dispatch(machine_id, command, args)


def wait_for(predicate, timeout=10.0, interval=0.02):
    start = time.time()
    while time.time() - start < timeout:
        val = predicate()
        if val:
            return val
        time.sleep(interval)
    return None


@pytest.fixture
def root(tmp_path):
    """A root directory with the keys/, logs/ and scripts/ layout."""
    for name in ("keys", "logs", "scripts"):
        (tmp_path / name).mkdir()
    return tmp_path


@pytest.fixture
def write_script(root):
    """Write an executable /bin/sh script into <root>/scripts."""
    def _write(name, body):
        path = root / "scripts" / name
        path.write_text("#!/bin/sh\n" + body + "\n")
        path.chmod(0o755)
        return path
    return _write


@pytest.fixture
def registry():
    return Registry(
        jobs=[
            Job(
                id="deploy",
                pipeline=(
                    Step(machine="local", script="build.sh"),
                    Step(machine="web1", script="deploy.sh", args=("v2",)),
                ),
            ),
        ],
        actions=[
            Action(id="hello", machine="local", command="echo hello"),
            Action(id="uptime", machine="web1", command="uptime"),
        ],
        machines=[WEB1],
        scripts=["build.sh", "deploy.sh"],
    )


@pytest.fixture
def store(root):
    return LogStore(root)


@pytest.fixture
def dispatcher(registry, root):
    return LoopbackDispatcher(registry, root)


@pytest.fixture
def read_log(store):
    def _read(log_id):
        return store.log_path(log_id).read_text(encoding="utf-8").splitlines()
    return _read


@pytest.fixture
def loopback(root):
    """Factory for a LoopbackDispatcher over an ad-hoc registry."""
    def _make(registry):
        return LoopbackDispatcher(registry, root)
    return _make


@pytest.fixture(name="wait_for")
def wait_for_fixture():
    return wait_for
