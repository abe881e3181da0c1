import itertools

import pytest

from actrun.dag import build_dag, build_execution_plan, plan_stages, ready_jobs, topo_levels
from actrun.errors import DependencyCycleError, GraphError, UnknownDependencyError
from actrun.model import build_workflow
from actrun.state import ExecutionState, Status


def _wf(needs):
    """needs: {job_id: [deps]}"""
    return build_workflow("CI", {
        job_id: {"needs": deps, "steps": [{"run": "true"}]}
        for job_id, deps in needs.items()
    })


def test_linear_chain():
    wf = _wf({"deploy": ["test"], "test": ["build"], "build": []})
    assert build_execution_plan(wf) == ["build", "test", "deploy"]


def test_independent_jobs_sorted_by_id():
    wf = _wf({"zeta": [], "alpha": [], "mid": []})
    assert build_execution_plan(wf) == ["alpha", "mid", "zeta"]


def test_tie_break_after_shared_dependency():
    wf = _wf({"setup": [], "b": ["setup"], "a": ["setup"], "c": ["a", "b"]})
    assert build_execution_plan(wf) == ["setup", "a", "b", "c"]


def test_plan_is_independent_of_declaration_order():
    needs = {"build": [], "lint": [], "test": ["build"], "deploy": ["test", "lint"]}
    expected = build_execution_plan(_wf(needs))
    for perm in itertools.permutations(needs):
        assert build_execution_plan(_wf({k: needs[k] for k in perm})) == expected


def test_dependencies_come_first():
    needs = {"a": [], "b": ["a"], "c": ["a"], "d": ["b", "c"], "e": []}
    plan = build_execution_plan(_wf(needs))
    assert sorted(plan) == sorted(needs)
    for job_id, deps in needs.items():
        for dep in deps:
            assert plan.index(dep) < plan.index(job_id)


def test_unknown_dependency():
    with pytest.raises(UnknownDependencyError) as exc:
        build_execution_plan(_wf({"test": ["build"]}))
    assert "non-existent job 'build'" in exc.value.message
    assert exc.value.kind == "UnknownDependency"


def test_cycle():
    with pytest.raises(DependencyCycleError) as exc:
        build_execution_plan(_wf({"a": ["b"], "b": ["a"], "c": []}))
    assert isinstance(exc.value, GraphError)
    assert exc.value.details["unordered_jobs"] == ["a", "b"]


def test_duplicate_needs_count_once():
    adj, indeg = build_dag(_wf({"a": [], "b": ["a", "a"]}))
    assert adj["a"] == {"b"}
    assert indeg["b"] == 1


def test_levels():
    wf = _wf({"build": [], "lint": [], "test": ["build"], "deploy": ["test", "lint"]})
    assert plan_stages(wf) == [["build", "lint"], ["test"], ["deploy"]]


def test_levels_cycle():
    adj, indeg = build_dag(_wf({"a": ["b"], "b": ["a"]}))
    with pytest.raises(GraphError):
        topo_levels(adj, indeg)


def test_ready_jobs():
    wf = _wf({"build": [], "lint": [], "test": ["build"]})
    state = ExecutionState.for_workflow(wf)
    state.add_jobs(wf, build_execution_plan(wf))

    assert ready_jobs(wf, state) == ["build", "lint"]

    state.set_job_status("build", Status.RUNNING)
    assert ready_jobs(wf, state) == ["lint"]

    state.set_job_status("build", Status.SUCCESS)
    assert ready_jobs(wf, state) == ["lint", "test"]


def test_ready_jobs_blocked_by_failure():
    wf = _wf({"build": [], "test": ["build"]})
    state = ExecutionState.for_workflow(wf)
    state.add_jobs(wf, ["build", "test"])
    state.set_job_status("build", Status.RUNNING)
    state.set_job_status("build", Status.FAILURE)
    assert ready_jobs(wf, state) == []
