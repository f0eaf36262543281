"""
Task Lifecycle Engine

Status-changing and log-only mutations on a loaded WorkGraph.

Transitions:
    any state        --mark_done-->  DONE   (no-op if already DONE)
    DONE/IN_PROGRESS --reject----->  OPEN   (clears assignment, retry_count += 1)

Log entries and heartbeats are plain field writes and never change status.
Functions here mutate the in-memory graph only; TaskLifecycle wraps them in a
load -> mutate -> save cycle against a GraphStore.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Set

from .errors import InvalidTransitionError, NotFoundError
from .graph_model import (
    Actor,
    LogEntry,
    Resource,
    Status,
    Task,
    WorkGraph,
    utc_now,
)
from .graph_store import GraphStore

logger = logging.getLogger("lifecycle_engine")

# -----------------------------------------------------------------------------
# Transition Rules
# -----------------------------------------------------------------------------

# States from which a task may be sent back for rework
REJECTABLE_STATES: Set[Status] = {Status.DONE, Status.IN_PROGRESS}

NO_REASON_MESSAGE = "Work rejected (no reason given)"


def _require_task(graph: WorkGraph, task_id: str) -> Task:
    task = graph.get_task(task_id)
    if task is None:
        raise NotFoundError("task", task_id)
    return task


# -----------------------------------------------------------------------------
# Status Transitions
# -----------------------------------------------------------------------------
def mark_done(graph: WorkGraph, task_id: str) -> bool:
    """
    Mark a task done.

    Idempotent: completing an already-done task succeeds without touching it,
    so agents can safely retry a completion signal.

    Returns:
        True if the status changed, False if the task was already done

    Raises:
        NotFoundError: task_id does not resolve to a task
    """
    task = _require_task(graph, task_id)

    if task.status == Status.DONE:
        logger.info(f"Task '{task_id}' is already done")
        return False

    previous = task.status
    task.status = Status.DONE
    task.completed_at = utc_now()

    logger.info(f"Marked '{task_id}' as done ({previous.value} -> {Status.DONE.value})")
    return True


def reject(
    graph: WorkGraph,
    task_id: str,
    reason: Optional[str] = None,
    actor: Optional[str] = None,
) -> Task:
    """
    Send a done or in-progress task back to open for rework.

    Raises:
        NotFoundError: task_id does not resolve to a task
        InvalidTransitionError: task is not DONE or IN_PROGRESS
    """
    task = _require_task(graph, task_id)

    if task.status not in REJECTABLE_STATES:
        raise InvalidTransitionError(
            task_id,
            task.status.value,
            sorted(s.value for s in REJECTABLE_STATES),
        )

    task.status = Status.OPEN
    task.assigned = None
    task.retry_count += 1

    message = f"Work rejected: {reason}" if reason is not None else NO_REASON_MESSAGE
    task.log.append(LogEntry(timestamp=utc_now(), message=message, actor=actor))

    logger.info(f"Rejected task '{task_id}' (retry {task.retry_count}) - returned to open for rework")
    return task


# -----------------------------------------------------------------------------
# Field Writes
# -----------------------------------------------------------------------------
def add_log_entry(
    graph: WorkGraph,
    task_id: str,
    message: str,
    actor: Optional[str] = None,
) -> LogEntry:
    """Append a progress note to a task's log."""
    task = _require_task(graph, task_id)
    entry = LogEntry(timestamp=utc_now(), message=message, actor=actor)
    task.log.append(entry)
    logger.debug(f"Added log entry to '{task_id}'" + (f" ({actor})" if actor else ""))
    return entry


def record_heartbeat(graph: WorkGraph, actor_id: str) -> str:
    """
    Update an actor's last_seen timestamp.

    Returns:
        The recorded timestamp
    """
    actor = graph.get_actor(actor_id)
    if actor is None:
        raise NotFoundError("actor", actor_id)
    actor.last_seen = utc_now()
    logger.debug(f"Heartbeat recorded for '{actor_id}' at {actor.last_seen}")
    return actor.last_seen


# -----------------------------------------------------------------------------
# Creation
# -----------------------------------------------------------------------------
def add_task(graph: WorkGraph, task: Task) -> Task:
    """Add a new task, stamping created_at if unset. Raises AlreadyExistsError."""
    if task.created_at is None:
        task.created_at = utc_now()
    graph.add_node(task)
    logger.info(f"Added task: {task.title} ({task.id})")
    return task


def add_actor(graph: WorkGraph, actor: Actor) -> Actor:
    graph.add_node(actor)
    logger.info(f"Added actor: {actor.name or actor.id} ({actor.id})")
    return actor


def add_resource(graph: WorkGraph, resource: Resource) -> Resource:
    graph.add_node(resource)
    logger.info(f"Added resource: {resource.name or resource.id} ({resource.id})")
    return resource


# -----------------------------------------------------------------------------
# Store-Backed Lifecycle
# -----------------------------------------------------------------------------
class TaskLifecycle:
    """
    Runs each mutation as one full read-modify-write cycle.

    The graph is loaded fresh, mutated in memory, and saved back before the
    call returns. If the mutation raises, nothing is written.
    """

    def __init__(self, store: Optional[GraphStore] = None, graph_dir: Optional[Path] = None):
        self.store = store or GraphStore(graph_dir=graph_dir)

    def mark_done(self, task_id: str) -> bool:
        graph = self.store.load()
        changed = mark_done(graph, task_id)
        if changed:
            self.store.save(graph)
        return changed

    def reject(
        self,
        task_id: str,
        reason: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> Task:
        graph = self.store.load()
        task = reject(graph, task_id, reason=reason, actor=actor)
        self.store.save(graph)
        return task

    def add_log_entry(self, task_id: str, message: str, actor: Optional[str] = None) -> LogEntry:
        graph = self.store.load()
        entry = add_log_entry(graph, task_id, message, actor=actor)
        self.store.save(graph)
        return entry

    def record_heartbeat(self, actor_id: str) -> str:
        graph = self.store.load()
        timestamp = record_heartbeat(graph, actor_id)
        self.store.save(graph)
        return timestamp

    def add_tasks(self, tasks: List[Task]) -> List[Task]:
        """Add several tasks in one save. Nothing is written if any id collides."""
        graph = self.store.load()
        for task in tasks:
            add_task(graph, task)
        self.store.save(graph)
        return tasks

    def add_actor(self, actor: Actor) -> Actor:
        graph = self.store.load()
        add_actor(graph, actor)
        self.store.save(graph)
        return actor

    def add_resource(self, resource: Resource) -> Resource:
        graph = self.store.load()
        add_resource(graph, resource)
        self.store.save(graph)
        return resource

    def log_entries(self, task_id: str) -> List[Dict[str, str]]:
        """Read-only: a task's log as plain records."""
        task = _require_task(self.store.load(), task_id)
        return [entry.to_dict() for entry in task.log]
