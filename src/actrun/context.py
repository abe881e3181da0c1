# context.py
from __future__ import annotations

import logging
import subprocess
import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable

from .config import RunnerConfig
from .git_facts import git

logger = logging.getLogger(__name__)

PLACEHOLDER_SHA = "0" * 40


@dataclass(frozen=True)
class GitHubContext:
    """Read-only `github.*` values, simulated from the local checkout."""
    repository: str = ""
    sha: str = PLACEHOLDER_SHA
    ref: str = "refs/heads/main"
    workspace: str = "/workspace"
    event_name: str = "push"
    actor: str = "local-user"
    run_id: str = ""
    run_number: str = "1"
    job: str = ""
    action: str = ""
    action_path: str = ""

    def for_job(self, job_id: str) -> "GitHubContext":
        return replace(self, job=job_id, action="", action_path="")

    def for_action(self, action_ref: str) -> "GitHubContext":
        return replace(self, action=action_ref)


@dataclass(frozen=True)
class RunnerContext:
    """Read-only `runner.*` values."""
    os: str = "Linux"
    arch: str = "X64"
    name: str = "actrun-runner"
    temp: str = "/tmp"
    tool_cache: str = "/opt/hostedtoolcache"


def _git_or(default: str, fn: Callable[[], str]) -> str:
    try:
        value = fn()
    except (subprocess.CalledProcessError, FileNotFoundError, OSError) as e:
        logger.debug("git lookup failed, using %r: %s", default, e)
        return default
    return value or default


def github_context_for(project_dir: Path, config: RunnerConfig) -> GitHubContext:
    """
    Derive the GitHub context from the project's git checkout.

    Every git fact has a fallback so a plain directory works too.
    """
    project_dir = Path(project_dir)

    remote = _git_or("", lambda: git.get_remote_url("origin", cwd=project_dir))
    repository = git.github_slug(remote) if remote else None
    if not repository:
        repository = f"local/{project_dir.name}"

    return GitHubContext(
        repository=repository,
        sha=_git_or(PLACEHOLDER_SHA, lambda: git.head_sha(cwd=project_dir)),
        ref=_git_or("refs/heads/main", lambda: git.get_current_ref(cwd=project_dir)),
        workspace=config.workspace_dir,
        event_name=config.event_name,
        actor=_git_or("local-user", lambda: git.user_name(cwd=project_dir)),
        run_id=str(int(time.time())),
        run_number=config.run_number,
    )


def runner_context_for(config: RunnerConfig) -> RunnerContext:
    return RunnerContext(
        os=config.runner_os,
        arch=config.runner_arch,
        name=config.runner_name,
        temp=config.runner_temp,
        tool_cache=config.tool_cache,
    )
