"""
WorkGraph Query Engine

Read-only derivations over a loaded graph: readiness, open blockers, and
transitive cost.

Rules:
- A blocker id that resolves to nothing is NOT a blocker
- Results follow graph iteration order (no priority, no topological rank)
- Traversals track visited ids, so cyclic blocked_by edges always terminate
"""

import logging
from typing import List, Set

from .graph_model import Status, Task, WorkGraph

logger = logging.getLogger("query_engine")


def _blocker_satisfied(graph: WorkGraph, blocker_id: str) -> bool:
    blocker = graph.get_task(blocker_id)
    return blocker is None or blocker.status == Status.DONE


def ready_tasks(graph: WorkGraph) -> List[Task]:
    """Open tasks whose existing blockers are all done."""
    ready = [
        task for task in graph.tasks()
        if task.status == Status.OPEN
        and all(_blocker_satisfied(graph, blocker_id) for blocker_id in task.blocked_by)
    ]
    logger.debug(f"{len(ready)} ready task(s)")
    return ready


def blocked_by(graph: WorkGraph, task_id: str) -> List[Task]:
    """
    Tasks currently holding up task_id, in blocked_by order.

    Missing blockers and done blockers are left out. An unknown task_id
    yields an empty list.
    """
    task = graph.get_task(task_id)
    if task is None:
        return []

    blockers = []
    for blocker_id in task.blocked_by:
        blocker = graph.get_task(blocker_id)
        if blocker is not None and blocker.status != Status.DONE:
            blockers.append(blocker)
    return blockers


def cost_of(graph: WorkGraph, task_id: str) -> float:
    """
    Cost of a task plus every task reachable through blocked_by.

    Each distinct task is counted once, however many paths reach it and
    whether or not the edges form a cycle. Tasks without an estimated cost
    contribute 0. An unknown task_id costs 0.
    """
    visited: Set[str] = set()
    stack = [task_id]
    total = 0.0

    while stack:
        current_id = stack.pop()
        if current_id in visited:
            continue
        visited.add(current_id)

        task = graph.get_task(current_id)
        if task is None:
            continue

        if task.estimate is not None and task.estimate.cost is not None:
            total += task.estimate.cost

        for dep_id in reversed(task.blocked_by):
            if dep_id not in visited:
                stack.append(dep_id)

    return total


def tasks_with_status(graph: WorkGraph, status: Status) -> List[Task]:
    """Tasks whose status equals the given one, in graph order."""
    return [task for task in graph.tasks() if task.status == status]
