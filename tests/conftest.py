"""
Pytest configuration for WorkGraph tests.

Provides:
1. Temporary graph directories
2. A small sample graph covering every node kind
3. A sample trace function
"""

import pytest
from pathlib import Path

from workgraph.function_model import (
    ExtractionSource,
    FunctionInput,
    FunctionOutput,
    InputType,
    TaskTemplate,
    TraceFunction,
)
from workgraph.graph_model import (
    Actor,
    Estimate,
    Resource,
    Status,
    Task,
    TrustLevel,
    WorkGraph,
)
from workgraph.graph_store import GraphStore


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def make_task(task_id: str, title: str = None, status: Status = Status.OPEN, **kwargs) -> Task:
    """Create a task with sensible defaults."""
    return Task(id=task_id, title=title or task_id.replace("-", " ").title(), status=status, **kwargs)


def with_cost(task_id: str, cost: float, **kwargs) -> Task:
    return make_task(task_id, estimate=Estimate(cost=cost), **kwargs)


# -----------------------------------------------------------------------------
# Common Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture
def graph_dir(tmp_path) -> Path:
    """Graph directory inside pytest's tmp_path (not yet initialized)."""
    return tmp_path / ".workgraph"


@pytest.fixture
def store(graph_dir) -> GraphStore:
    """An initialized, empty graph store."""
    store = GraphStore(graph_dir=graph_dir)
    store.initialize()
    return store


@pytest.fixture
def sample_graph() -> WorkGraph:
    """Graph with one of each node kind and a blocked_by edge."""
    graph = WorkGraph()
    graph.add_node(Actor(
        id="agent-1",
        name="Agent One",
        role="programmer",
        rate=50.0,
        capabilities=["python", "review"],
        trust_level=TrustLevel.VERIFIED,
    ))
    graph.add_node(Resource(id="gpu", name="GPU hours", resource_type="compute", available=10.0, unit="h"))
    graph.add_node(make_task(
        "design",
        "Design the API",
        status=Status.DONE,
        estimate=Estimate(hours=4.0, cost=400.0),
        completed_at="2026-01-01T10:00:00+00:00",
    ))
    graph.add_node(make_task(
        "build",
        "Build the API",
        blocked_by=["design"],
        requires=["gpu"],
        assigned="agent-1",
        estimate=Estimate(hours=8.0, cost=800.0),
        tags=["backend"],
    ))
    return graph


@pytest.fixture
def sample_function() -> TraceFunction:
    """Plan -> implement -> validate feature function."""
    return TraceFunction(
        id="impl-feature",
        name="Implement Feature",
        description="Plan, implement, test a new feature",
        extracted_from=[ExtractionSource(
            task_id="impl-global-config",
            run_id="run-003",
            timestamp="2026-02-18T14:30:00Z",
        )],
        extracted_by="scout",
        extracted_at="2026-02-19T12:00:00Z",
        tags=["implementation"],
        inputs=[
            FunctionInput(
                name="feature_name",
                input_type=InputType.STRING,
                description="Short name for the feature",
                required=True,
                example="global-config",
            ),
            FunctionInput(
                name="test_command",
                input_type=InputType.STRING,
                description="Command to verify",
                default="pytest",
            ),
        ],
        tasks=[
            TaskTemplate(
                template_id="plan",
                title="Plan {{input.feature_name}}",
                description="Plan the implementation",
                skills=["analysis"],
                role_hint="analyst",
            ),
            TaskTemplate(
                template_id="implement",
                title="Implement {{input.feature_name}}",
                description="Build the feature, verify with {{input.test_command}}",
                skills=["implementation"],
                blocked_by=["plan"],
                role_hint="programmer",
            ),
            TaskTemplate(
                template_id="validate",
                title="Validate {{input.feature_name}}",
                description="Review the implementation",
                skills=["review"],
                blocked_by=["implement"],
            ),
        ],
        outputs=[FunctionOutput(
            name="modified_files",
            description="Files changed",
            from_task="implement",
            field="artifacts",
        )],
    )
