# dag.py
from __future__ import annotations

import heapq
from collections import deque
from typing import TYPE_CHECKING, Dict, List, Set, Tuple

from .errors import DependencyCycleError, UnknownDependencyError
from .model import Workflow

if TYPE_CHECKING:
    from .state import ExecutionState


def build_dag(workflow: Workflow) -> Tuple[Dict[str, Set[str]], Dict[str, int]]:
    """
    Build the job graph of a workflow.

    Edges run dependency -> dependent (a `needs` entry must finish first).
    Every `needs` id is checked before anything is ordered.
    """
    names = set(workflow.jobs)
    adj: Dict[str, Set[str]] = {n: set() for n in names}
    indeg: Dict[str, int] = {n: 0 for n in names}

    for job in workflow.jobs.values():
        for dep in job.needs:
            if dep not in names:
                raise UnknownDependencyError(
                    f"Job '{job.id}' depends on non-existent job '{dep}'",
                    job=job.id,
                    details={"known_jobs": sorted(names)},
                )
            # needs: [a, a] is one edge
            if job.id not in adj[dep]:
                adj[dep].add(job.id)
                indeg[job.id] += 1

    return adj, indeg


def build_execution_plan(workflow: Workflow) -> List[str]:
    """
    Total run order for the workflow (Kahn's algorithm).

    When several jobs are eligible at once the smallest job id goes first,
    so the same workflow always yields the same plan.
    """
    adj, indeg = build_dag(workflow)
    indeg = dict(indeg)  # copy (we mutate it)

    ready = [n for n, d in indeg.items() if d == 0]
    heapq.heapify(ready)
    order: List[str] = []

    while ready:
        node = heapq.heappop(ready)
        order.append(node)
        for child in adj[node]:
            indeg[child] -= 1
            if indeg[child] == 0:
                heapq.heappush(ready, child)

    if len(order) != len(indeg):
        stuck = sorted(n for n, d in indeg.items() if d > 0)
        raise DependencyCycleError(
            "circular dependency detected in workflow jobs",
            details={"unordered_jobs": stuck},
        )

    return order


def topo_levels(adj: Dict[str, Set[str]], indeg: Dict[str, int]) -> List[List[str]]:
    """
    Convert the DAG into topological "levels" (stages).
    Jobs within one stage do not depend on each other.
    """
    indeg = dict(indeg)
    q = deque(sorted(n for n, d in indeg.items() if d == 0))

    levels: List[List[str]] = []
    processed = 0

    while q:
        level: List[str] = []
        next_q: List[str] = []

        for _ in range(len(q)):
            node = q.popleft()
            level.append(node)
            processed += 1

            for child in adj.get(node, set()):
                indeg[child] -= 1
                if indeg[child] == 0:
                    next_q.append(child)

        levels.append(level)
        q.extend(sorted(next_q))

    if processed != len(indeg):
        stuck = sorted(n for n, d in indeg.items() if d > 0)
        raise DependencyCycleError(
            "circular dependency detected in workflow jobs",
            details={"unordered_jobs": stuck},
        )

    return levels


def plan_stages(workflow: Workflow) -> List[List[str]]:
    adj, indeg = build_dag(workflow)
    return topo_levels(adj, indeg)


def ready_jobs(workflow: Workflow, state: "ExecutionState") -> List[str]:
    """
    Jobs that could start now: still pending, every dependency succeeded.

    The engine runs the plan sequentially; a worker-pool scheduler would
    submit this whole set (up to its concurrency limit) and ask again each
    time a job finishes.
    """
    from .state import Status

    ready: List[str] = []
    for job_id in sorted(workflow.jobs):
        job_state = state.jobs.get(job_id)
        if job_state is None or job_state.status is not Status.PENDING:
            continue
        deps = workflow.jobs[job_id].needs
        if all(
            dep in state.jobs and state.jobs[dep].status is Status.SUCCESS
            for dep in deps
        ):
            ready.append(job_id)
    return ready
