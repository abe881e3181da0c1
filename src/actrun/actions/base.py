# actions/base.py
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

from ..container.driver import ContainerDriver, ExecResult, LineSink, Sandbox
from ..context import GitHubContext, RunnerContext


@dataclass
class ActionResult:
    """Outcome of one action run. `error` is set whenever success is False."""
    success: bool
    outputs: Dict[str, str] = field(default_factory=dict)
    error: Optional[Exception] = None

    @classmethod
    def failed(cls, error: Exception, outputs: Optional[Dict[str, str]] = None) -> "ActionResult":
        return cls(success=False, outputs=dict(outputs or {}), error=error)


@dataclass
class ActionContext:
    """Everything an action may use while it runs."""
    action_ref: str                 # e.g. "actions/checkout@v4"
    inputs: Mapping[str, str]
    workspace_dir: str
    sandbox: Sandbox
    driver: ContainerDriver
    github: GitHubContext
    runner: RunnerContext
    env: Mapping[str, str] = field(default_factory=dict)

    def run(self, command: str, sink: Optional[LineSink] = None) -> ExecResult:
        """Run a shell command in the job's sandbox, output lines to `sink`."""
        return self.driver.exec(
            self.sandbox,
            command,
            self.env,
            on_stdout=sink,
            on_stderr=sink,
        )


class ActionExecutor(ABC):
    """
    A built-in action. Adding an action means subclassing this and
    registering an instance; nothing else changes.
    """

    name: str = ""

    @abstractmethod
    def validate_inputs(self, inputs: Mapping[str, str]) -> None:
        """Raise InputValidationError if `inputs` cannot be used."""

    @abstractmethod
    def execute(self, ctx: ActionContext, sink: LineSink) -> ActionResult:
        """Do the work. Report failure through the result, not by raising."""
