"""
WorkGraph Structural Checker

Finds blocked_by cycles and dangling references. Findings are returned as
data (CheckResult), never raised, so callers choose the severity.

Severity policy:
- Cycles are WARNINGS. Recurring tasks are legitimately modelled as cycles.
- Orphan references are ERRORS. An id that points at nothing is a defect.

CheckResult.ok is True only when both lists are empty; has_errors is True
whenever orphan references exist.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple

from .graph_model import NodeKind, WorkGraph

logger = logging.getLogger("check_engine")


# -----------------------------------------------------------------------------
# Result Types
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class OrphanRef:
    """A reference from a task field to an id that does not resolve."""
    from_id: str
    relation: str
    to: str

    def to_dict(self) -> Dict[str, str]:
        return {"from": self.from_id, "relation": self.relation, "to": self.to}


@dataclass
class CheckResult:
    cycles: List[List[str]] = field(default_factory=list)
    orphan_refs: List[OrphanRef] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.cycles and not self.orphan_refs

    @property
    def has_errors(self) -> bool:
        return bool(self.orphan_refs)

    @property
    def issue_count(self) -> int:
        return len(self.cycles) + len(self.orphan_refs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "cycles": [list(cycle) for cycle in self.cycles],
            "orphan_refs": [ref.to_dict() for ref in self.orphan_refs],
        }


# Which node kind each task reference field must resolve to
REFERENCE_KINDS: List[Tuple[str, NodeKind]] = [
    ("blocked_by", NodeKind.TASK),
    ("blocks", NodeKind.TASK),
    ("requires", NodeKind.RESOURCE),
    ("assigned", NodeKind.ACTOR),
]


# -----------------------------------------------------------------------------
# Cycle Detection
# -----------------------------------------------------------------------------
def _successors(graph: WorkGraph, task_id: str) -> List[str]:
    """Existing tasks a task is blocked by, deduplicated, in list order."""
    task = graph.get_task(task_id)
    if task is None:
        return []
    seen: Set[str] = set()
    result = []
    for dep_id in task.blocked_by:
        if dep_id not in seen and graph.get_task(dep_id) is not None:
            seen.add(dep_id)
            result.append(dep_id)
    return result


def _strongly_connected_components(graph: WorkGraph) -> List[List[str]]:
    """Tarjan's algorithm, iterative so deep chains cannot hit the recursion limit."""
    index: Dict[str, int] = {}
    lowlink: Dict[str, int] = {}
    on_stack: Set[str] = set()
    stack: List[str] = []
    components: List[List[str]] = []
    counter = 0

    for root in (task.id for task in graph.tasks()):
        if root in index:
            continue

        index[root] = lowlink[root] = counter
        counter += 1
        stack.append(root)
        on_stack.add(root)
        work: List[Tuple[str, Iterator[str]]] = [(root, iter(_successors(graph, root)))]

        while work:
            node, successors = work[-1]
            descended = False
            for nxt in successors:
                if nxt not in index:
                    index[nxt] = lowlink[nxt] = counter
                    counter += 1
                    stack.append(nxt)
                    on_stack.add(nxt)
                    work.append((nxt, iter(_successors(graph, nxt))))
                    descended = True
                    break
                if nxt in on_stack:
                    lowlink[node] = min(lowlink[node], index[nxt])
            if descended:
                continue

            work.pop()
            if work:
                parent = work[-1][0]
                lowlink[parent] = min(lowlink[parent], lowlink[node])

            if lowlink[node] == index[node]:
                component = []
                while True:
                    member = stack.pop()
                    on_stack.discard(member)
                    component.append(member)
                    if member == node:
                        break
                components.append(component)

    return components


def _shortest_cycle_through(graph: WorkGraph, start: str, members: Set[str]) -> Optional[List[str]]:
    """BFS inside one component for the shortest path start -> ... -> start."""
    parents: Dict[str, str] = {}
    seen = {start}
    queue = deque([start])

    while queue:
        node = queue.popleft()
        for nxt in _successors(graph, node):
            if nxt not in members:
                continue
            if nxt == start:
                path = [node]
                while path[-1] != start:
                    path.append(parents[path[-1]])
                path.reverse()
                path.append(start)
                return path
            if nxt not in seen:
                seen.add(nxt)
                parents[nxt] = node
                queue.append(nxt)
    return None


def check_cycles(graph: WorkGraph) -> List[List[str]]:
    """
    One representative cycle per cyclic component of the blocked_by graph.

    Each cycle starts at the component member that comes first in graph
    order and ends by repeating it, e.g. ["a", "b", "a"]. A task blocked by
    itself yields ["a", "a"]. Edges to missing ids are ignored here; they
    are reported by check_orphans.
    """
    position = {task.id: i for i, task in enumerate(graph.tasks())}
    cycles = []

    for component in _strongly_connected_components(graph):
        members = set(component)
        start = min(component, key=position.__getitem__)
        if len(component) == 1 and start not in _successors(graph, start):
            continue
        cycle = _shortest_cycle_through(graph, start, members)
        if cycle is not None:
            cycles.append(cycle)

    cycles.sort(key=lambda cycle: position[cycle[0]])
    return cycles


# -----------------------------------------------------------------------------
# Orphan Detection
# -----------------------------------------------------------------------------
def _resolves_to(graph: WorkGraph, node_id: str, kind: NodeKind) -> bool:
    node = graph.get_node(node_id)
    return node is not None and node.kind == kind


def check_orphans(graph: WorkGraph) -> List[OrphanRef]:
    """
    Every task reference that does not resolve to a node of the expected kind.

    blocked_by/blocks must name tasks, requires must name resources, and
    assigned must name an actor.
    """
    orphans = []
    for task in graph.tasks():
        for relation, kind in REFERENCE_KINDS:
            value = getattr(task, relation)
            targets = [value] if isinstance(value, str) else (value or [])
            for target in targets:
                if not _resolves_to(graph, target, kind):
                    orphans.append(OrphanRef(from_id=task.id, relation=relation, to=target))
    return orphans


def check_all(graph: WorkGraph) -> CheckResult:
    """Run every structural check."""
    result = CheckResult(cycles=check_cycles(graph), orphan_refs=check_orphans(graph))

    if result.ok:
        logger.debug(f"Graph OK: {len(graph)} nodes, no issues found")
    else:
        logger.info(
            f"Graph check: {len(result.cycles)} cycle(s), "
            f"{len(result.orphan_refs)} orphan reference(s)"
        )
    return result
