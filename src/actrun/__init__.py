from .config import RunnerConfig
from .engine import WorkflowExecutor, run_workflow
from .errors import CIError
from .model import Job, Step, Workflow
from .parser import load_workflow, parse_workflow

__all__ = [
    "CIError",
    "Job",
    "RunnerConfig",
    "Step",
    "Workflow",
    "WorkflowExecutor",
    "load_workflow",
    "parse_workflow",
    "run_workflow",
]
