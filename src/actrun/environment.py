# environment.py
from __future__ import annotations

import re
from dataclasses import fields
from typing import Dict, Mapping, Optional

from .context import GitHubContext, RunnerContext

# $NAME or ${NAME}
_VAR_RE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


def builtin_variables(github: GitHubContext, runner: RunnerContext) -> Dict[str, str]:
    """Variables every step sees before any workflow/job/step env is applied."""
    return {
        "GITHUB_REPOSITORY": github.repository,
        "GITHUB_SHA": github.sha,
        "GITHUB_REF": github.ref,
        "GITHUB_WORKSPACE": github.workspace,
        "GITHUB_EVENT_NAME": github.event_name,
        "GITHUB_ACTOR": github.actor,
        "GITHUB_RUN_ID": github.run_id,
        "GITHUB_RUN_NUMBER": github.run_number,
        "GITHUB_JOB": github.job,
        "GITHUB_ACTION": github.action,
        "GITHUB_ACTION_PATH": github.action_path,
        "CI": "true",
        "GITHUB_ACTIONS": "true",
        "RUNNER_OS": runner.os,
        "RUNNER_ARCH": runner.arch,
        "RUNNER_NAME": runner.name,
        "RUNNER_TEMP": runner.temp,
        "RUNNER_TOOL_CACHE": runner.tool_cache,
    }


def _context_tokens(github: GitHubContext, runner: RunnerContext) -> Dict[str, str]:
    tokens = {}
    for f in fields(GitHubContext):
        tokens["${{ github.%s }}" % f.name] = getattr(github, f.name)
    for f in fields(RunnerContext):
        tokens["${{ runner.%s }}" % f.name] = getattr(runner, f.name)
    return tokens


def expand_variables(value: str, current: Mapping[str, str]) -> str:
    """$NAME / ${NAME} from `current`; unknown names are left as written."""
    def repl(m: re.Match) -> str:
        name = m.group(1) or m.group(2)
        return current.get(name, m.group(0))

    return _VAR_RE.sub(repl, value)


class EnvironmentResolver:
    """
    Layered step environment, lowest precedence first:

      built-ins (GITHUB_*, RUNNER_*, CI) -> workflow env -> job env -> step env

    Each value gets two passes: literal ${{ github.X }} / ${{ runner.X }}
    tokens, then $NAME / ${NAME} against what has been accumulated so far.
    Keys inside one layer are applied in sorted order, so a value can only
    see same-layer keys that sort before it.
    """

    def __init__(
        self,
        workflow_env: Mapping[str, str],
        github: GitHubContext,
        runner: RunnerContext,
    ):
        self.workflow_env = dict(workflow_env)
        self.job_env: Dict[str, str] = {}
        self.github = github
        self.runner = runner

    def set_job_environment(self, job_id: str, job_env: Optional[Mapping[str, str]]) -> None:
        """Called once per job before its first step."""
        self.github = self.github.for_job(job_id)
        self.job_env = dict(job_env or {})

    def build_step_environment(
        self,
        step_env: Optional[Mapping[str, str]] = None,
        *,
        action: Optional[str] = None,
    ) -> Dict[str, str]:
        github = self.github.for_action(action) if action else self.github
        tokens = _context_tokens(github, self.runner)

        env = builtin_variables(github, self.runner)
        for layer in (self.workflow_env, self.job_env, step_env or {}):
            for key in sorted(layer):
                env[key] = self._expand(layer[key], env, tokens)
        return env

    def _expand(self, value: str, current: Mapping[str, str], tokens: Mapping[str, str]) -> str:
        for token, replacement in tokens.items():
            if token in value:
                value = value.replace(token, replacement)
        return expand_variables(value, current)
