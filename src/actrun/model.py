# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from .errors import DefinitionError


# Common GitHub runner labels; anything else is treated as a literal image
# (node:18, python:3.11, ...).
RUNNER_IMAGES: Mapping[str, str] = MappingProxyType({
    "ubuntu-latest": "ubuntu:latest",
    "ubuntu-22.04": "ubuntu:22.04",
    "ubuntu-20.04": "ubuntu:20.04",
})


def map_runner_to_image(runs_on: str) -> str:
    return RUNNER_IMAGES.get(runs_on, runs_on)


def _frozen(mapping: Optional[Mapping[str, str]]) -> Mapping[str, str]:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class Step:
    """A single unit of execution inside a job: a shell command or an action."""
    name: str = ""
    run: str = ""
    uses: str = ""
    with_: Mapping[str, str] = field(default_factory=dict)
    env: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if bool(self.run) == bool(self.uses):
            which = "both 'run' and 'uses'" if self.run else "neither 'run' nor 'uses'"
            raise DefinitionError(
                f"step has {which}; exactly one is required",
                step=self.name or None,
            )
        # frozen dataclass: bypass the restriction to store read-only views
        object.__setattr__(self, "with_", _frozen(self.with_))
        object.__setattr__(self, "env", _frozen(self.env))

    @property
    def is_action(self) -> bool:
        return bool(self.uses)

    def display_name(self, index: int) -> str:
        """Name shown in logs and the console. `index` is 0-based."""
        return self.name or f"Step {index + 1}"


@dataclass(frozen=True)
class Job:
    """A CI job: one sandbox, ordered steps, and the jobs it needs."""
    id: str
    runs_on: str
    steps: Tuple[Step, ...]
    needs: Tuple[str, ...] = ()
    with_: Mapping[str, str] = field(default_factory=dict)
    env: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.id:
            raise DefinitionError("job id must not be empty")
        if not self.runs_on:
            raise DefinitionError("'runs-on' is required", job=self.id)
        object.__setattr__(self, "steps", tuple(self.steps))
        object.__setattr__(self, "needs", tuple(self.needs))
        object.__setattr__(self, "with_", _frozen(self.with_))
        object.__setattr__(self, "env", _frozen(self.env))

    @property
    def image(self) -> str:
        return map_runner_to_image(self.runs_on)


@dataclass(frozen=True)
class Workflow:
    """
    Parsed workflow definition. Built once, never mutated.

    `jobs` keeps the declaration order of the file; execution order comes
    from the resolver, never from this mapping.
    """
    name: str
    jobs: Mapping[str, Job]
    env: Mapping[str, str] = field(default_factory=dict)
    on: Any = None

    def __post_init__(self) -> None:
        if not self.name:
            raise DefinitionError("workflow name is required")
        if not self.jobs:
            raise DefinitionError("workflow must contain at least one job")
        for job_id, job in self.jobs.items():
            if job_id != job.id:
                raise DefinitionError(f"job key {job_id!r} does not match job id {job.id!r}")
        object.__setattr__(self, "jobs", MappingProxyType(dict(self.jobs)))
        object.__setattr__(self, "env", _frozen(self.env))

    def job_ids(self) -> Tuple[str, ...]:
        return tuple(self.jobs)


def build_workflow(
    name: str,
    jobs: Dict[str, Dict[str, Any]],
    env: Optional[Dict[str, str]] = None,
) -> Workflow:
    """
    Convenience constructor from plain dicts (tests, programmatic use).

    Each job dict takes: runs_on, steps (list of Step or dicts), needs, env, with_.
    """
    built: Dict[str, Job] = {}
    for job_id, spec in jobs.items():
        steps = [s if isinstance(s, Step) else Step(**s) for s in spec.get("steps", [])]
        needs = spec.get("needs") or []
        if isinstance(needs, str):
            needs = [needs]
        built[job_id] = Job(
            id=job_id,
            runs_on=spec.get("runs_on", "ubuntu-latest"),
            steps=tuple(steps),
            needs=tuple(needs),
            with_=spec.get("with_") or {},
            env=spec.get("env") or {},
        )
    return Workflow(name=name, jobs=built, env=env or {})
