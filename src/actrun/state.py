"""
Per-run execution state.

Written only by the engine. Display and log collaborators subscribe and are
called synchronously right after each change. Under a concurrent scheduler
this would have to become a locked structure or a queue of StatusChange
events.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional

from .model import Workflow


class Status(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"   # reserved: nothing in the engine produces it yet

    @property
    def terminal(self) -> bool:
        return self in (Status.SUCCESS, Status.FAILURE, Status.SKIPPED)


_TRANSITIONS = {
    Status.PENDING: {Status.RUNNING, Status.SKIPPED},
    Status.RUNNING: {Status.SUCCESS, Status.FAILURE},
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


class _Tracked:
    """status + timestamps, with transition checks."""

    status: Status
    started_at: Optional[datetime]
    finished_at: Optional[datetime]

    def _move(self, new: Status, what: str) -> None:
        if new not in _TRANSITIONS.get(self.status, set()):
            raise ValueError(f"{what}: invalid transition {self.status.value} -> {new.value}")
        self.status = new
        if new is Status.RUNNING:
            self.started_at = _now()
        elif new.terminal:
            self.finished_at = _now()

    @property
    def duration(self) -> Optional[float]:
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()


@dataclass
class StepState(_Tracked):
    name: str
    status: Status = Status.PENDING
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    exit_code: Optional[int] = None
    outputs: Dict[str, str] = field(default_factory=dict)


@dataclass
class JobState(_Tracked):
    job_id: str
    steps: List[StepState] = field(default_factory=list)
    status: Status = Status.PENDING
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


@dataclass(frozen=True)
class StatusChange:
    """One state mutation. job_id None = workflow level; step_index None = job level."""
    status: Status
    job_id: Optional[str] = None
    step_index: Optional[int] = None


Listener = Callable[["ExecutionState", StatusChange], None]


@dataclass
class ExecutionState(_Tracked):
    workflow_name: str
    jobs: Dict[str, JobState] = field(default_factory=dict)
    status: Status = Status.PENDING
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    log_path: Optional[str] = None
    _listeners: List[Listener] = field(default_factory=list, repr=False)

    @classmethod
    def for_workflow(cls, workflow: Workflow, log_path: Optional[str] = None) -> "ExecutionState":
        return cls(workflow_name=workflow.name, log_path=log_path)

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _notify(self, change: StatusChange) -> None:
        for listener in self._listeners:
            listener(self, change)

    # ---- engine-side mutations ----

    def add_jobs(self, workflow: Workflow, order: List[str]) -> None:
        """Register every job of the plan (in plan order) as pending, with its steps."""
        for job_id in order:
            job = workflow.jobs[job_id]
            self.jobs[job_id] = JobState(
                job_id=job_id,
                steps=[StepState(name=s.display_name(i)) for i, s in enumerate(job.steps)],
            )

    def set_workflow_status(self, status: Status) -> None:
        self._move(status, f"workflow {self.workflow_name!r}")
        self._notify(StatusChange(status))

    def set_job_status(self, job_id: str, status: Status) -> None:
        self.jobs[job_id]._move(status, f"job {job_id!r}")
        self._notify(StatusChange(status, job_id))

    def set_step_status(
        self,
        job_id: str,
        index: int,
        status: Status,
        *,
        exit_code: Optional[int] = None,
        outputs: Optional[Dict[str, str]] = None,
    ) -> None:
        step = self.jobs[job_id].steps[index]
        step._move(status, f"step {step.name!r} of job {job_id!r}")
        if exit_code is not None:
            step.exit_code = exit_code
        if outputs:
            step.outputs.update(outputs)
        self._notify(StatusChange(status, job_id, index))

    # ---- read side ----

    def job_statuses(self) -> Dict[str, Status]:
        return {job_id: js.status for job_id, js in self.jobs.items()}
