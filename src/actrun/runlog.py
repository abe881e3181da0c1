"""
Durable run logs.

Layout:
  <log_root>/workflow-<YYYY-mm-dd-HH-MM-SS>/workflow.log
  <log_root>/workflow-<YYYY-mm-dd-HH-MM-SS>/<job>-<YYYY-mm-dd-HH-MM-SS>.log

Every record is "<UTC timestamp> <message>". Blocks are delimited with the
##[group] / ##[endgroup] / ##[error] / ##[section] markers that external
tooling parses, so their spelling must not change.
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Dict, Iterable, Optional

GROUP = "##[group]"
ENDGROUP = "##[endgroup]"
ERROR = "##[error]"
SECTION = "##[section]"

_DIR_STAMP = "%Y-%m-%d-%H-%M-%S"


def timestamp(now: Optional[datetime] = None) -> str:
    """ISO-8601 UTC with 7 fractional digits, e.g. 2024-05-01T12:00:00.1234560Z"""
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond:06d}0Z"


def format_record(message: str, now: Optional[datetime] = None) -> str:
    return f"{timestamp(now)} {message}\n"


def _error_lines(err: BaseException) -> list[str]:
    lines = str(err).splitlines() or [type(err).__name__]
    return [f"Error: {lines[0]}"] + [f"  {line}" for line in lines[1:]]


def _fmt_duration(seconds: float) -> str:
    return f"{seconds:.3f}s"


class _RecordFile:
    """Append-only record file; one lock so concurrent stream readers don't interleave records."""

    def __init__(self, path: Path):
        self.path = path
        self._fh: Optional[IO[str]] = path.open("w", encoding="utf-8")
        self._lock = threading.Lock()

    def write_raw(self, text: str) -> None:
        with self._lock:
            if self._fh is not None:
                self._fh.write(text)
                self._fh.flush()

    def record(self, message: str) -> None:
        """One record per line of `message`, all with the same timestamp."""
        now = datetime.now(timezone.utc)
        lines = message.splitlines() or [""]
        self.write_raw("".join(format_record(line, now) for line in lines))

    def close(self, closing_message: str) -> None:
        with self._lock:
            if self._fh is None:
                return
            self._fh.write(format_record(closing_message))
            self._fh.close()
            self._fh = None

    @property
    def closed(self) -> bool:
        return self._fh is None


class JobLogger:
    """Log for one job: setup, container, step output, summary."""

    def __init__(self, job_id: str, path: Path):
        self.job_id = job_id
        self._file = _RecordFile(path)

    @property
    def path(self) -> Path:
        return self._file.path

    def _group(self, title: str, lines: Iterable[str]) -> None:
        self._file.record(f"{GROUP}{title}")
        for line in lines:
            self._file.record(line)
        self._file.record(ENDGROUP)

    def log_job_start(self, job_id: str, runs_on: str) -> None:
        self._group("Job Setup", [f"Job ID: {job_id}", f"Runner: {runs_on}"])

    def log_container_start(self, image: str, container_id: str) -> None:
        self._group("Container Setup", [f"Docker image: {image}", f"Container ID: {container_id}"])

    def log_step_start(self, step_name: str, command: str = "") -> None:
        self._group(f"Run {step_name}", [command] if command else [])

    def log_step_output(self, line: str) -> None:
        self._file.record(line)

    def log_step_complete(self, step_name: str, duration: float, exit_code: int) -> None:
        if exit_code == 0:
            self._file.record(f"{SECTION}Step '{step_name}' completed successfully in {_fmt_duration(duration)}")
        else:
            self._file.record(
                f"{ERROR}Step '{step_name}' failed in {_fmt_duration(duration)} (exit code: {exit_code})"
            )

    def log_job_complete(self, job_id: str, duration: float) -> None:
        self._group("Job Summary", [
            f"Job '{job_id}' completed successfully",
            f"Duration: {_fmt_duration(duration)}",
        ])

    def log_job_error(self, job_id: str, err: BaseException) -> None:
        self._file.record(f"{ERROR}Job '{job_id}' failed")
        for line in _error_lines(err):
            self._file.record(line)

    def close(self) -> None:
        self._file.close(f"=== Job '{self.job_id}' logging completed ===")


class WorkflowLogger:
    """workflow.log plus one JobLogger per job, all under one run directory."""

    def __init__(self, workflow_name: str, log_root: Path):
        started = datetime.now()
        self.base_path = Path(log_root) / f"workflow-{started.strftime(_DIR_STAMP)}"
        self.base_path.mkdir(parents=True, exist_ok=True)

        self._file = _RecordFile(self.base_path / "workflow.log")
        self._jobs: Dict[str, JobLogger] = {}
        self._lock = threading.Lock()
        self._write_header(workflow_name, started)

    def _write_header(self, workflow_name: str, started: datetime) -> None:
        rule = "=" * 46
        self._file.write_raw(
            f"\n{rule}\nactrun - local workflow runner\n{rule}\n"
            f"Workflow: {workflow_name}\n"
            f"Started:  {started.astimezone().strftime('%Y-%m-%d %H:%M:%S %Z')}\n"
            f"{rule}\n"
        )

    @property
    def log_path(self) -> str:
        return str(self.base_path)

    def job_logger(self, job_id: str) -> JobLogger:
        with self._lock:
            if job_id not in self._jobs:
                stamp = datetime.now().strftime(_DIR_STAMP)
                self._jobs[job_id] = JobLogger(job_id, self.base_path / f"{job_id}-{stamp}.log")
            return self._jobs[job_id]

    def log_workflow_start(self, workflow_name: str) -> None:
        self._file.record(f"{GROUP}Starting workflow execution")
        self._file.record(f"Workflow: {workflow_name}")
        self._file.record(ENDGROUP)

    def log_execution_plan(self, order: Iterable[str]) -> None:
        self._file.record(f"{GROUP}Execution Plan")
        self._file.record(f"Job execution order: [{' '.join(order)}]")
        self._file.record(ENDGROUP)

    def log_workflow_complete(self, duration: float) -> None:
        self._file.record(f"{GROUP}Workflow completed successfully")
        self._file.record(f"Total duration: {_fmt_duration(duration)}")
        self._file.record(ENDGROUP)

    def log_workflow_error(self, err: BaseException) -> None:
        self._file.record(f"{ERROR}Workflow failed")
        for line in _error_lines(err):
            self._file.record(line)

    def close(self) -> None:
        """Close every job log, then workflow.log. Safe to call twice."""
        with self._lock:
            jobs = list(self._jobs.values())
        for job_log in jobs:
            job_log.close()
        self._file.close("=== Workflow logging completed ===")
