"""
WorkGraph Entity Model

Defines the three node kinds stored in a work graph (Task, Actor, Resource)
and the WorkGraph container that owns them.

Key rules:
- Every node carries its kind; serialized records always include it
- Ids are unique across ALL node kinds, not per kind
- References between nodes (assigned, requires, blocked_by, blocks) are plain
  ids; resolving them is the job of the query engine and the checker
- Nodes are never deleted; abandonment is a status value
- Serialization omits absent optional fields
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Union

from .errors import AlreadyExistsError


# -----------------------------------------------------------------------------
# Enums
# -----------------------------------------------------------------------------
class Status(str, Enum):
    """
    Task status.

    PENDING_REVIEW is LEGACY: it is accepted when reading old graphs and is
    treated like IN_PROGRESS, but no transition ever produces it.
    """
    OPEN = "open"
    IN_PROGRESS = "in-progress"
    BLOCKED = "blocked"
    DONE = "done"
    FAILED = "failed"
    ABANDONED = "abandoned"
    PENDING_REVIEW = "pending-review"

    @classmethod
    def parse(cls, value: str) -> "Status":
        """Parse a status, tolerating underscores and case differences."""
        normalized = str(value).strip().lower().replace("_", "-")
        if normalized == "inprogress":
            normalized = cls.IN_PROGRESS.value
        elif normalized == "pendingreview":
            normalized = cls.PENDING_REVIEW.value
        return cls(normalized)


class TrustLevel(str, Enum):
    """How far an actor's output is trusted."""
    VERIFIED = "verified"
    PROVISIONAL = "provisional"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str) -> "TrustLevel":
        return cls(str(value).strip().lower())


class NodeKind(str, Enum):
    """Discriminant written into every persisted record."""
    TASK = "task"
    ACTOR = "actor"
    RESOURCE = "resource"


def utc_now() -> str:
    """Current time as an RFC 3339 UTC timestamp."""
    return datetime.now(timezone.utc).isoformat()


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def _str_list(data: Dict[str, Any], key: str) -> List[str]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise TypeError(f"'{key}' must be a list, got {type(value).__name__}")
    if not all(isinstance(item, str) for item in value):
        raise TypeError(f"'{key}' must contain only strings")
    return list(value)


def _required_str(data: Dict[str, Any], key: str) -> str:
    value = data[key]
    if not isinstance(value, str):
        raise TypeError(f"'{key}' must be a string, got {type(value).__name__}")
    return value


def _optional_str(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise TypeError(f"'{key}' must be a string, got {type(value).__name__}")
    return value


def _optional_float(data: Dict[str, Any], key: str) -> Optional[float]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"'{key}' must be a number, got {type(value).__name__}")
    return float(value)


def _optional_int(data: Dict[str, Any], key: str) -> Optional[int]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"'{key}' must be an integer, got {type(value).__name__}")
    return value


def _put(record: Dict[str, Any], key: str, value: Any) -> None:
    """Write a field only when it is present (not None, not empty)."""
    if value is None:
        return
    if isinstance(value, (list, dict)) and not value:
        return
    record[key] = value


# -----------------------------------------------------------------------------
# Value Objects
# -----------------------------------------------------------------------------
@dataclass
class Estimate:
    hours: Optional[float] = None
    cost: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        _put(result, "hours", self.hours)
        _put(result, "cost", self.cost)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Estimate":
        return cls(
            hours=_optional_float(data, "hours"),
            cost=_optional_float(data, "cost"),
        )


@dataclass
class LogEntry:
    """One append-only progress note on a task."""
    timestamp: str
    message: str
    actor: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {"timestamp": self.timestamp}
        _put(result, "actor", self.actor)
        result["message"] = self.message
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LogEntry":
        return cls(
            timestamp=_required_str(data, "timestamp"),
            message=_required_str(data, "message"),
            actor=_optional_str(data, "actor"),
        )


@dataclass
class LoopEdge:
    """
    Outgoing loop edge on a concrete task.

    The guard is carried verbatim; evaluating it, waiting out the delay and
    counting iterations belong to the execution layer.
    """
    target: str
    max_iterations: int
    guard: Optional[str] = None
    delay: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "target": self.target,
            "max_iterations": self.max_iterations,
        }
        _put(result, "guard", self.guard)
        _put(result, "delay", self.delay)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LoopEdge":
        max_iterations = _optional_int(data, "max_iterations")
        if max_iterations is None:
            raise KeyError("max_iterations")
        return cls(
            target=_required_str(data, "target"),
            max_iterations=max_iterations,
            guard=_optional_str(data, "guard"),
            delay=_optional_str(data, "delay"),
        )


# -----------------------------------------------------------------------------
# Nodes
# -----------------------------------------------------------------------------
@dataclass
class Task:
    """A unit of work. blocked_by drives readiness; blocks is informational."""
    id: str
    title: str
    description: Optional[str] = None
    status: Status = Status.OPEN
    assigned: Optional[str] = None
    estimate: Optional[Estimate] = None
    blocks: List[str] = field(default_factory=list)
    blocked_by: List[str] = field(default_factory=list)
    requires: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    skills: List[str] = field(default_factory=list)
    inputs: List[str] = field(default_factory=list)
    deliverables: List[str] = field(default_factory=list)
    artifacts: List[str] = field(default_factory=list)
    exec_command: Optional[str] = None
    not_before: Optional[str] = None
    created_at: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    log: List[LogEntry] = field(default_factory=list)
    retry_count: int = 0
    max_retries: Optional[int] = None
    failure_reason: Optional[str] = None
    model: Optional[str] = None
    verify: Optional[str] = None
    agent: Optional[str] = None
    role_hint: Optional[str] = None
    loops_to: List[LoopEdge] = field(default_factory=list)
    loop_iteration: int = 0
    ready_after: Optional[str] = None

    kind = NodeKind.TASK

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a tagged record for serialization."""
        result: Dict[str, Any] = {
            "kind": self.kind.value,
            "id": self.id,
            "title": self.title,
        }
        _put(result, "description", self.description)
        result["status"] = self.status.value
        _put(result, "assigned", self.assigned)
        if self.estimate is not None:
            result["estimate"] = self.estimate.to_dict()
        _put(result, "blocks", list(self.blocks))
        _put(result, "blocked_by", list(self.blocked_by))
        _put(result, "requires", list(self.requires))
        _put(result, "tags", list(self.tags))
        _put(result, "skills", list(self.skills))
        _put(result, "inputs", list(self.inputs))
        _put(result, "deliverables", list(self.deliverables))
        _put(result, "artifacts", list(self.artifacts))
        _put(result, "exec", self.exec_command)
        _put(result, "not_before", self.not_before)
        _put(result, "created_at", self.created_at)
        _put(result, "started_at", self.started_at)
        _put(result, "completed_at", self.completed_at)
        _put(result, "log", [entry.to_dict() for entry in self.log])
        if self.retry_count:
            result["retry_count"] = self.retry_count
        _put(result, "max_retries", self.max_retries)
        _put(result, "failure_reason", self.failure_reason)
        _put(result, "model", self.model)
        _put(result, "verify", self.verify)
        _put(result, "agent", self.agent)
        _put(result, "role_hint", self.role_hint)
        _put(result, "loops_to", [edge.to_dict() for edge in self.loops_to])
        if self.loop_iteration:
            result["loop_iteration"] = self.loop_iteration
        _put(result, "ready_after", self.ready_after)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        """Create a task from a record. Raises KeyError/TypeError/ValueError on bad data."""
        estimate = data.get("estimate")
        if estimate is not None and not isinstance(estimate, dict):
            raise TypeError("'estimate' must be an object")
        return cls(
            id=_required_str(data, "id"),
            title=_required_str(data, "title"),
            description=_optional_str(data, "description"),
            status=Status.parse(data.get("status", Status.OPEN.value)),
            assigned=_optional_str(data, "assigned"),
            estimate=Estimate.from_dict(estimate) if estimate is not None else None,
            blocks=_str_list(data, "blocks"),
            blocked_by=_str_list(data, "blocked_by"),
            requires=_str_list(data, "requires"),
            tags=_str_list(data, "tags"),
            skills=_str_list(data, "skills"),
            inputs=_str_list(data, "inputs"),
            deliverables=_str_list(data, "deliverables"),
            artifacts=_str_list(data, "artifacts"),
            exec_command=_optional_str(data, "exec"),
            not_before=_optional_str(data, "not_before"),
            created_at=_optional_str(data, "created_at"),
            started_at=_optional_str(data, "started_at"),
            completed_at=_optional_str(data, "completed_at"),
            log=[LogEntry.from_dict(entry) for entry in data.get("log") or []],
            retry_count=_optional_int(data, "retry_count") or 0,
            max_retries=_optional_int(data, "max_retries"),
            failure_reason=_optional_str(data, "failure_reason"),
            model=_optional_str(data, "model"),
            verify=_optional_str(data, "verify"),
            agent=_optional_str(data, "agent"),
            role_hint=_optional_str(data, "role_hint"),
            loops_to=[LoopEdge.from_dict(edge) for edge in data.get("loops_to") or []],
            loop_iteration=_optional_int(data, "loop_iteration") or 0,
            ready_after=_optional_str(data, "ready_after"),
        )


@dataclass
class Actor:
    """A human or automated agent that performs tasks."""
    id: str
    name: Optional[str] = None
    role: Optional[str] = None
    rate: Optional[float] = None
    capacity: Optional[float] = None
    capabilities: List[str] = field(default_factory=list)
    context_limit: Optional[int] = None
    trust_level: TrustLevel = TrustLevel.PROVISIONAL
    last_seen: Optional[str] = None

    kind = NodeKind.ACTOR

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"kind": self.kind.value, "id": self.id}
        _put(result, "name", self.name)
        _put(result, "role", self.role)
        _put(result, "rate", self.rate)
        _put(result, "capacity", self.capacity)
        _put(result, "capabilities", list(self.capabilities))
        _put(result, "context_limit", self.context_limit)
        result["trust_level"] = self.trust_level.value
        _put(result, "last_seen", self.last_seen)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Actor":
        return cls(
            id=_required_str(data, "id"),
            name=_optional_str(data, "name"),
            role=_optional_str(data, "role"),
            rate=_optional_float(data, "rate"),
            capacity=_optional_float(data, "capacity"),
            capabilities=_str_list(data, "capabilities"),
            context_limit=_optional_int(data, "context_limit"),
            trust_level=TrustLevel.parse(data.get("trust_level", TrustLevel.PROVISIONAL.value)),
            last_seen=_optional_str(data, "last_seen"),
        )


@dataclass
class Resource:
    """Something tasks consume. Only the id is referenced by the core."""
    id: str
    name: Optional[str] = None
    resource_type: Optional[str] = None
    available: Optional[float] = None
    unit: Optional[str] = None

    kind = NodeKind.RESOURCE

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"kind": self.kind.value, "id": self.id}
        _put(result, "name", self.name)
        _put(result, "type", self.resource_type)
        _put(result, "available", self.available)
        _put(result, "unit", self.unit)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Resource":
        return cls(
            id=_required_str(data, "id"),
            name=_optional_str(data, "name"),
            resource_type=_optional_str(data, "type"),
            available=_optional_float(data, "available"),
            unit=_optional_str(data, "unit"),
        )


Node = Union[Task, Actor, Resource]

NODE_TYPES: Dict[str, type] = {
    NodeKind.TASK.value: Task,
    NodeKind.ACTOR.value: Actor,
    NodeKind.RESOURCE.value: Resource,
}


def node_from_dict(data: Dict[str, Any]) -> Node:
    """
    Build a node from a tagged record.

    Raises:
        KeyError: record has no 'kind' or is missing a required field
        ValueError: 'kind' is not a known node kind, or a field value is invalid
    """
    kind = data["kind"]
    node_type = NODE_TYPES.get(kind)
    if node_type is None:
        raise ValueError(f"Unknown node kind: {kind!r}")
    return node_type.from_dict(data)


# -----------------------------------------------------------------------------
# WorkGraph
# -----------------------------------------------------------------------------
class WorkGraph:
    """
    Ordered collection of nodes keyed by id.

    Insertion order is preserved so serialization and iteration are
    deterministic.
    """

    def __init__(self, nodes: Optional[List[Node]] = None):
        self._nodes: Dict[str, Node] = {}
        for node in nodes or []:
            self.add_node(node)

    def add_node(self, node: Node) -> None:
        """Add a new node. Raises AlreadyExistsError on id collision."""
        if node.id in self._nodes:
            raise AlreadyExistsError(node.kind.value, node.id)
        self._nodes[node.id] = node

    def put_node(self, node: Node) -> None:
        """Insert or replace a node, keeping the original position on replace."""
        self._nodes[node.id] = node

    def get_node(self, node_id: str) -> Optional[Node]:
        return self._nodes.get(node_id)

    def get_task(self, task_id: str) -> Optional[Task]:
        node = self._nodes.get(task_id)
        return node if isinstance(node, Task) else None

    def get_actor(self, actor_id: str) -> Optional[Actor]:
        node = self._nodes.get(actor_id)
        return node if isinstance(node, Actor) else None

    def get_resource(self, resource_id: str) -> Optional[Resource]:
        node = self._nodes.get(resource_id)
        return node if isinstance(node, Resource) else None

    def tasks(self) -> List[Task]:
        return [n for n in self._nodes.values() if isinstance(n, Task)]

    def actors(self) -> List[Actor]:
        return [n for n in self._nodes.values() if isinstance(n, Actor)]

    def resources(self) -> List[Resource]:
        return [n for n in self._nodes.values() if isinstance(n, Resource)]

    def nodes(self) -> List[Node]:
        return list(self._nodes.values())

    def __iter__(self) -> Iterator[Node]:
        return iter(list(self._nodes.values()))

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, WorkGraph):
            return NotImplemented
        return list(self._nodes.items()) == list(other._nodes.items())

    def __repr__(self) -> str:
        return (
            f"WorkGraph(tasks={len(self.tasks())}, actors={len(self.actors())}, "
            f"resources={len(self.resources())})"
        )
