# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Optional


@dataclass
class CIError(Exception):
    """
    Structured runner error with enough context for:
      - clean CLI output
      - the job log (##[error] records)
      - debugging without full tracebacks

    Subclasses only change `kind`; the fields are shared.
    """
    message: str
    job: Optional[str] = None
    step: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    kind: ClassVar[str] = "CIError"

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}"]
        if self.job:
            lines.append(f"job={self.job}")
        if self.step:
            lines.append(f"step={self.step}")
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)

    def with_context(self, *, job: Optional[str] = None, step: Optional[str] = None) -> "CIError":
        """Fill in job/step if an inner layer raised without them. Returns self."""
        if job and not self.job:
            self.job = job
        if step and not self.step:
            self.step = step
        return self


class DefinitionError(CIError):
    """Missing required field or structurally invalid workflow/job/step."""
    kind = "DefinitionError"


class GraphError(CIError):
    """Unknown dependency or dependency cycle between jobs."""
    kind = "GraphError"


class UnknownDependencyError(GraphError):
    kind = "UnknownDependency"


class DependencyCycleError(GraphError):
    kind = "DependencyCycle"


class SandboxError(CIError):
    """The container driver failed to start, reach or stop a sandbox."""
    kind = "SandboxError"


class ExecTimeoutError(SandboxError):
    kind = "ExecTimeout"


class StepError(CIError):
    """Nonzero exit, or an action that failed validation or execution."""
    kind = "StepError"


class ActionNotFoundError(StepError):
    kind = "ActionNotFound"


class InputValidationError(StepError):
    kind = "InvalidActionInputs"


class ExpressionError(CIError):
    """Unknown context/property in a ${{ }} expression. Never fatal."""
    kind = "ExpressionError"
