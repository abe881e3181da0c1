"""Terminal rendering for actrun runs."""

from __future__ import annotations

import sys
import traceback
from typing import Iterable, List, Optional

from ..state import ExecutionState, Status, StatusChange

_MARKS = {
    Status.PENDING: "-",
    Status.RUNNING: ">",
    Status.SUCCESS: "ok",
    Status.FAILURE: "FAIL",
    Status.SKIPPED: "skip",
}

_RULE = "=" * 40


class Console:
    """
    Everything the user sees on the terminal.

    The engine never prints; it changes ExecutionState and this class,
    subscribed through `on_status_change`, turns those changes into lines.
    Errors go to stderr, everything else to stdout.
    """

    def __init__(self, debug: bool = False):
        self.debug = debug

    def print_run_started(self, repository: str, workflow: str, job_count: int) -> None:
        print(f"\nRUN STARTED\nRepository: {repository}\nWorkflow: {workflow}\nJobs: {job_count}\n")

    def print_plan(self, stages: List[List[str]]) -> None:
        """One line per dependency stage; jobs on a line do not depend on each other."""
        print("PLAN")
        for number, stage in enumerate(stages, start=1):
            print(f"  Stage {number}: {', '.join(stage)}")

    def on_status_change(self, state: ExecutionState, change: StatusChange) -> None:
        if change.job_id is None:
            return  # run-level outcome goes through print_results
        if change.step_index is None:
            self._job_line(change.job_id, change.status)
        else:
            self._step_line(state, change.job_id, change.step_index, change.status)

    def _job_line(self, job_id: str, status: Status) -> None:
        if status is Status.RUNNING:
            print(f"\nJOB STARTED: {job_id}")
        elif status is Status.SUCCESS:
            print(f"JOB SUCCEEDED: {job_id}")
        elif status is Status.FAILURE:
            print(f"JOB FAILED: {job_id}")
        else:
            print(f"JOB {status.value.upper()}: {job_id}")

    def _step_line(self, state: ExecutionState, job_id: str, index: int, status: Status) -> None:
        step = state.jobs[job_id].steps[index]
        if status is Status.RUNNING:
            print(f"STEP: {step.name}")
        elif status is Status.FAILURE:
            print(f"STEP FAILED: {step.name}")
            if step.exit_code is not None:
                print(f"Exit code: {step.exit_code}")
        elif self.debug and step.duration is not None:
            print(f"  [{_MARKS[status]}] {step.name} ({step.duration:.1f}s)")

    def print_results(self, state: ExecutionState) -> None:
        print(f"\n{_RULE}\nRESULTS\n{_RULE}")
        for job_id, job in state.jobs.items():
            print(f"  [{_MARKS[job.status]}] {job_id}: {job.status.value.upper()}")
        print(f"Workflow: {state.status.value.upper()}")
        if state.log_path:
            print(f"Logs: {state.log_path}")

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[Iterable[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        lines = [f"\nERROR: {title}", message]
        lines.extend(f"  {d}" for d in details or ())
        if suggestion:
            lines.append(f"\n{suggestion}")
        print("\n".join(lines), file=sys.stderr)

    def print_exception(self, exc: BaseException) -> None:
        """Traceback in debug mode, one line otherwise."""
        if self.debug:
            traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        print(message)

    def print_debug(self, message: str) -> None:
        if self.debug:
            print(f"[DEBUG] {message}", file=sys.stderr)


# set by the CLI group callback
_console: Optional[Console] = None


def get_console() -> Console:
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    global _console
    _console = console
