"""
Registry - read-only lookup of jobs, actions and machines.

The registry is loaded once from a setup file under the root path
(setup.yaml, setup.yml or setup.json; JSON parses as YAML). Records are
validated with pydantic and converted into the immutable model types.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from . import settings
from .errors import RegistryError, UnknownIdError
from .model import Action, Job, Machine, Step

log = logging.getLogger(__name__)

# -------------------- Schemas --------------------

class MachineSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    user: str
    address: str
    port: int = 22
    private_key: str = Field(alias="privateKey")

class ActionSchema(BaseModel):
    id: str
    machine: str
    command: str

class StepSchema(BaseModel):
    machine: str
    script: str
    args: list[str] = Field(default_factory=list)

    @field_validator("args", mode="before")
    @classmethod
    def _stringify_args(cls, v):
        # YAML turns bare numbers into ints; arguments are always strings
        if isinstance(v, list):
            return [str(a) for a in v]
        return v

class JobSchema(BaseModel):
    id: str
    pipeline: list[StepSchema] = Field(default_factory=list)

class SetupSchema(BaseModel):
    machines: list[MachineSchema] = Field(default_factory=list)
    actions: list[ActionSchema] = Field(default_factory=list)
    jobs: list[JobSchema] = Field(default_factory=list)
    scripts: list[str] = Field(default_factory=list)

# -------------------- Registry --------------------

def _index(items: Iterable[Any], kind: str) -> dict[str, Any]:
    by_id: dict[str, Any] = {}
    for item in items:
        if item.id in by_id:
            raise RegistryError(f"Duplicate {kind} id: {item.id}")
        by_id[item.id] = item
    return by_id


class Registry:
    """Jobs, actions and machines by id, in declaration order."""

    def __init__(
        self,
        jobs: Iterable[Job] = (),
        actions: Iterable[Action] = (),
        machines: Iterable[Machine] = (),
        scripts: Iterable[str] = (),
    ):
        self._jobs: dict[str, Job] = _index(jobs, "job")
        self._actions: dict[str, Action] = _index(actions, "action")
        self._machines: dict[str, Machine] = _index(machines, "machine")
        self._scripts = list(scripts)

        if settings.LOCAL_MACHINE in self._machines:
            raise RegistryError(f"Machine id {settings.LOCAL_MACHINE!r} is reserved")

    @property
    def jobs(self) -> list[Job]:
        return list(self._jobs.values())

    @property
    def actions(self) -> list[Action]:
        return list(self._actions.values())

    @property
    def machines(self) -> list[Machine]:
        return list(self._machines.values())

    @property
    def scripts(self) -> list[str]:
        return list(self._scripts)

    def job(self, job_id: str) -> Job:
        try:
            return self._jobs[job_id]
        except KeyError:
            raise UnknownIdError(kind="job", id=job_id) from None

    def action(self, action_id: str) -> Action:
        try:
            return self._actions[action_id]
        except KeyError:
            raise UnknownIdError(kind="action", id=action_id) from None

    def machine(self, machine_id: str) -> Machine:
        try:
            return self._machines[machine_id]
        except KeyError:
            raise UnknownIdError(kind="machine", id=machine_id) from None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Registry:
        try:
            setup = SetupSchema.model_validate(data)
        except ValidationError as e:
            raise RegistryError(f"Invalid setup: {e}") from e

        return cls(
            jobs=[
                Job(
                    id=j.id,
                    pipeline=tuple(Step(machine=s.machine, script=s.script, args=tuple(s.args)) for s in j.pipeline),
                )
                for j in setup.jobs
            ],
            actions=[Action(id=a.id, machine=a.machine, command=a.command) for a in setup.actions],
            machines=[
                Machine(id=m.id, user=m.user, address=m.address, port=m.port, private_key=m.private_key)
                for m in setup.machines
            ],
            scripts=setup.scripts,
        )


def find_setup_file(root: str | Path) -> Path:
    root_p = Path(root)
    for name in settings.SETUP_FILENAMES:
        candidate = root_p / name
        if candidate.is_file():
            return candidate
    raise RegistryError(
        f"No setup file found in {root_p} (looked for {', '.join(settings.SETUP_FILENAMES)})"
    )


def load_registry(root: str | Path) -> Registry:
    """Load the registry from the setup file under `root`."""
    path = find_setup_file(root)
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise RegistryError(f"Invalid syntax in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise RegistryError(f"{path} must contain a mapping at the top level")

    registry = Registry.from_dict(data)
    log.debug(
        "loaded registry from %s: %d jobs, %d actions, %d machines",
        path, len(registry.jobs), len(registry.actions), len(registry.machines),
    )
    return registry
