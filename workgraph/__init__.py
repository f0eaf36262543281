"""
WorkGraph Core

Tracks a graph of tasks, the actors who perform them and the resources they
consume, persisted as one tagged JSON record per line.

Components:
- graph_model:      Task / Actor / Resource nodes and the WorkGraph container
- graph_store:      Whole-file JSONL load and atomic save
- lifecycle_engine: done / reject transitions, log entries, heartbeats
- query_engine:     Readiness, open blockers, transitive cost
- check_engine:     Cycle and orphan-reference detection (findings as data)
- function_model:   Trace function schema (typed inputs, task templates)
- function_store:   One YAML document per function, prefix lookup
- template_engine:  Input validation and expansion into concrete tasks

Single process, single writer: every mutation is a full load -> mutate ->
save cycle and callers own any cross-process coordination.
"""

__version__ = "0.1.0"

from .check_engine import CheckResult, OrphanRef, check_all, check_cycles, check_orphans
from .errors import (
    AlreadyExistsError,
    AmbiguousMatchError,
    InvalidTransitionError,
    NotFoundError,
    ParseError,
    UnknownTemplateReference,
    ValidationError,
    WorkGraphError,
)
from .function_model import (
    FunctionInput,
    FunctionOutput,
    InputType,
    LoopEdgeTemplate,
    TaskTemplate,
    TraceFunction,
)
from .function_store import find_function_by_prefix, load_all_functions, save_function
from .graph_model import (
    Actor,
    Estimate,
    LogEntry,
    LoopEdge,
    Resource,
    Status,
    Task,
    TrustLevel,
    WorkGraph,
)
from .graph_store import GraphStore, load_graph, save_graph
from .lifecycle_engine import TaskLifecycle, mark_done, reject
from .query_engine import blocked_by, cost_of, ready_tasks
from .template_engine import TemplateEngine, instantiate

check = check_all
