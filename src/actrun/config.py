# config.py
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Optional


DEFAULT_WORKSPACE = "/workspace"
DEFAULT_LOG_DIRNAME = "actrun-logs"


def _env_float(name: str) -> Optional[float]:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return None
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number of seconds, got {raw!r}")


@dataclass(frozen=True)
class RunnerConfig:
    """
    Settings for one run. Defaults mirror a hosted ubuntu runner.

    Environment overrides (read by from_env):
      ACTRUN_LOG_DIR, ACTRUN_STEP_TIMEOUT, ACTRUN_EVENT_NAME,
      ACTRUN_RUN_NUMBER, ACTRUN_DOCKER_BIN
    """
    project_dir: Path
    workspace_dir: str = DEFAULT_WORKSPACE
    log_root: Optional[Path] = None
    step_timeout: Optional[float] = None   # seconds; None = wait forever
    event_name: str = "push"
    run_number: str = "1"
    runner_name: str = "actrun-runner"
    runner_os: str = "Linux"
    runner_arch: str = "X64"
    runner_temp: str = "/tmp"
    tool_cache: str = "/opt/hostedtoolcache"
    docker_bin: str = "docker"

    def __post_init__(self) -> None:
        object.__setattr__(self, "project_dir", Path(self.project_dir).resolve())
        if self.log_root is None:
            object.__setattr__(self, "log_root", self.project_dir / DEFAULT_LOG_DIRNAME)
        else:
            object.__setattr__(self, "log_root", Path(self.log_root))
        if self.step_timeout is not None and self.step_timeout <= 0:
            raise ValueError("step_timeout must be positive")

    @classmethod
    def from_env(cls, project_dir: Path | str, **overrides: Any) -> "RunnerConfig":
        """Build config from ACTRUN_* variables; explicit overrides win (None = not given)."""
        values: dict = {}
        if os.environ.get("ACTRUN_LOG_DIR"):
            values["log_root"] = Path(os.environ["ACTRUN_LOG_DIR"])
        timeout = _env_float("ACTRUN_STEP_TIMEOUT")
        if timeout is not None:
            values["step_timeout"] = timeout
        if os.environ.get("ACTRUN_EVENT_NAME"):
            values["event_name"] = os.environ["ACTRUN_EVENT_NAME"]
        if os.environ.get("ACTRUN_RUN_NUMBER"):
            values["run_number"] = os.environ["ACTRUN_RUN_NUMBER"]
        if os.environ.get("ACTRUN_DOCKER_BIN"):
            values["docker_bin"] = os.environ["ACTRUN_DOCKER_BIN"]

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(project_dir=Path(project_dir), **values)

    def with_overrides(self, **changes: Any) -> "RunnerConfig":
        return replace(self, **changes)


def project_dir_for(workflow_file: Path | str) -> Path:
    """
    Project root for a workflow file.

    /path/to/project/.github/workflows/ci.yml -> /path/to/project
    anything else -> the file's own directory
    """
    wf_path = Path(workflow_file).expanduser().resolve()
    wf_dir = wf_path.parent
    if wf_dir.name == "workflows" and wf_dir.parent.name == ".github":
        return wf_dir.parent.parent
    return wf_dir
