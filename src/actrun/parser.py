"""
Workflow file decoding.

YAML -> pydantic schema (shape checks, aliases, `needs` normalization)
-> immutable model (structural rules: run xor uses, non-empty name, ...).
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import DefinitionError
from .model import Job, Step, Workflow


# -------------------- Schemas --------------------

def _to_str(value: Any) -> str:
    # YAML gives us bools/ints/floats for unquoted scalars
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)


def _str_map(value: Optional[Dict[Any, Any]]) -> Dict[str, str]:
    return {str(k): _to_str(v) for k, v in (value or {}).items()}


class StepSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = ""
    run: str = ""
    uses: str = ""
    with_: Dict[str, str] = Field(default_factory=dict, alias="with")
    env: Dict[str, str] = Field(default_factory=dict)

    @field_validator("with_", "env", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Dict[str, str]:
        return _str_map(value)

    @field_validator("name", "run", "uses", mode="before")
    @classmethod
    def _scalar(cls, value: Any) -> str:
        return _to_str(value)


class JobSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    runs_on: str = Field(default="", alias="runs-on")
    needs: List[str] = Field(default_factory=list)
    with_: Dict[str, str] = Field(default_factory=dict, alias="with")
    env: Dict[str, str] = Field(default_factory=dict)
    steps: List[StepSchema] = Field(default_factory=list)

    @field_validator("needs", mode="before")
    @classmethod
    def _normalize_needs(cls, value: Any) -> List[str]:
        # needs: build  |  needs: [build, test]
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        if isinstance(value, list) and all(isinstance(v, str) for v in value):
            return value
        raise ValueError("needs must be a string or a list of strings")

    @field_validator("with_", "env", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Dict[str, str]:
        return _str_map(value)


class WorkflowSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = ""
    on: Union[str, List[Any], Dict[str, Any], None] = None
    env: Dict[str, str] = Field(default_factory=dict)
    jobs: Dict[str, JobSchema] = Field(default_factory=dict)

    @field_validator("env", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Dict[str, str]:
        return _str_map(value)


# -------------------- Conversion --------------------

def _to_model(doc: WorkflowSchema) -> Workflow:
    jobs: Dict[str, Job] = {}
    for job_id, job in doc.jobs.items():
        steps = []
        for index, step in enumerate(job.steps):
            try:
                steps.append(Step(
                    name=step.name,
                    run=step.run,
                    uses=step.uses,
                    with_=step.with_,
                    env=step.env,
                ))
            except DefinitionError as e:
                raise e.with_context(job=job_id, step=step.name or f"Step {index + 1}")
        try:
            jobs[job_id] = Job(
                id=job_id,
                runs_on=job.runs_on,
                steps=tuple(steps),
                needs=tuple(job.needs),
                with_=job.with_,
                env=job.env,
            )
        except DefinitionError as e:
            raise e.with_context(job=job_id)

    return Workflow(name=doc.name, jobs=jobs, env=doc.env, on=doc.on)


def parse_workflow(text: str, *, source: str = "<string>") -> Workflow:
    """Decode workflow YAML text into a validated Workflow."""
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise DefinitionError(f"failed to parse YAML: {e}", details={"file": source}) from e

    if not isinstance(raw, dict):
        raise DefinitionError("workflow document must be a mapping", details={"file": source})

    # YAML 1.1: a bare `on:` key loads as boolean True
    for key in list(raw):
        if key is True:
            raw["on"] = raw.pop(key)

    try:
        doc = WorkflowSchema.model_validate(raw)
    except ValidationError as e:
        raise DefinitionError(
            "workflow does not match the expected shape",
            details={"file": source, "errors": e.error_count(), "first": e.errors()[0]["msg"]},
        ) from e

    try:
        return _to_model(doc)
    except DefinitionError as e:
        e.details.setdefault("file", source)
        raise


def load_workflow(path: Union[str, Path]) -> Workflow:
    """
    Load a workflow from a .yml/.yaml file.

    Raises:
      FileNotFoundError: the file does not exist
      DefinitionError: wrong suffix, invalid YAML, or invalid structure
    """
    wf_path = Path(path).expanduser().resolve()
    if not wf_path.exists():
        raise FileNotFoundError(f"Workflow file not found: {wf_path}")
    if wf_path.suffix not in (".yml", ".yaml"):
        raise DefinitionError(
            f"Workflow must be a .yml or .yaml file, got: {wf_path.name}",
            details={"file": str(wf_path)},
        )
    return parse_workflow(wf_path.read_text(encoding="utf-8"), source=str(wf_path))
