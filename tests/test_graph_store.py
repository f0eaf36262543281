"""
WorkGraph Model & Store Tests

Proves:
1. ROUND-TRIP: load(save(g)) == g, field for field
2. TAGGED RECORDS: every line carries its kind; omit-if-absent fields
3. ALL OR NOTHING: a malformed record fails the whole load with its line number
4. ATOMIC SAVE: a failed save leaves the previous file intact
"""

import json
import os
import pytest

from workgraph.errors import AlreadyExistsError, NotFoundError, ParseError
from workgraph.graph_model import (
    Actor,
    Estimate,
    LogEntry,
    LoopEdge,
    Resource,
    Status,
    Task,
    TrustLevel,
    WorkGraph,
    node_from_dict,
)
from workgraph.graph_store import (
    GraphStore,
    graph_path,
    load_graph,
    parse_graph,
    save_graph,
    serialize_graph,
)

from tests.conftest import make_task


def _full_task() -> Task:
    return Task(
        id="full",
        title="Every field set",
        description="Exercises serialization of every attribute",
        status=Status.IN_PROGRESS,
        assigned="agent-1",
        estimate=Estimate(hours=2.5, cost=125.0),
        blocks=["after"],
        blocked_by=["before"],
        requires=["gpu"],
        tags=["a", "a", "b"],
        skills=["python"],
        inputs=["src/input.py"],
        deliverables=["report.md"],
        artifacts=["out/report.md"],
        exec_command="make test",
        not_before="2026-03-01T00:00:00+00:00",
        created_at="2026-02-01T00:00:00+00:00",
        started_at="2026-02-02T00:00:00+00:00",
        completed_at=None,
        log=[
            LogEntry(timestamp="2026-02-02T01:00:00+00:00", message="started", actor="agent-1"),
            LogEntry(timestamp="2026-02-02T02:00:00+00:00", message="note without actor"),
        ],
        retry_count=2,
        max_retries=5,
        failure_reason="flaky test",
        model="large",
        verify="all tests pass",
        agent="agent-hash",
        role_hint="programmer",
        loops_to=[LoopEdge(target="before", max_iterations=3, guard="score < 0.8", delay="5m")],
        loop_iteration=1,
        ready_after="2026-02-03T00:00:00+00:00",
    )


# =============================================================================
# Round-Trip
# =============================================================================

class TestRoundTrip:
    """load(save(g)) reproduces g exactly."""

    def test_sample_graph_round_trip(self, sample_graph, tmp_path):
        """Every node kind survives a save/load cycle."""
        path = tmp_path / "graph.jsonl"
        save_graph(sample_graph, path)
        assert load_graph(path) == sample_graph

    def test_every_task_field_round_trips(self, tmp_path):
        """A task with every optional attribute set round-trips field for field."""
        graph = WorkGraph([_full_task()])
        path = tmp_path / "graph.jsonl"
        save_graph(graph, path)

        loaded = load_graph(path)
        assert loaded == graph
        assert loaded.get_task("full") == _full_task()

    def test_empty_graph_round_trip(self, tmp_path):
        """An empty graph saves as an empty file and loads back empty."""
        path = tmp_path / "graph.jsonl"
        save_graph(WorkGraph(), path)
        assert path.read_text() == ""
        assert len(load_graph(path)) == 0

    def test_order_preserved(self, tmp_path):
        """Records are written and read back in insertion order."""
        ids = ["zeta", "alpha", "mid", "beta"]
        graph = WorkGraph([make_task(i) for i in ids])
        path = tmp_path / "graph.jsonl"
        save_graph(graph, path)

        assert [n.id for n in load_graph(path)] == ids
        lines = path.read_text().splitlines()
        assert [json.loads(line)["id"] for line in lines] == ids


# =============================================================================
# Record Format
# =============================================================================

class TestRecordFormat:
    """Each line is a self-describing tagged record."""

    def test_each_line_carries_kind(self, sample_graph):
        """Serialized records name their node kind explicitly."""
        records = [json.loads(line) for line in serialize_graph(sample_graph).splitlines()]
        assert [r["kind"] for r in records] == ["actor", "resource", "task", "task"]

    def test_absent_fields_omitted(self):
        """Optional fields that are not set are not written."""
        record = make_task("bare").to_dict()
        assert record == {"kind": "task", "id": "bare", "title": "Bare", "status": "open"}

    def test_status_values(self):
        """Statuses serialize to their lowercase hyphenated names."""
        record = make_task("t", status=Status.IN_PROGRESS).to_dict()
        assert record["status"] == "in-progress"

    def test_actor_defaults_to_provisional_trust(self):
        """An actor record without a trust level loads as provisional."""
        actor = node_from_dict({"kind": "actor", "id": "a"})
        assert isinstance(actor, Actor)
        assert actor.trust_level == TrustLevel.PROVISIONAL

    def test_legacy_pending_review_loads(self):
        """Old graphs using the pending-review status still load."""
        graph = parse_graph(['{"kind": "task", "id": "t", "title": "T", "status": "PendingReview"}'])
        assert graph.get_task("t").status == Status.PENDING_REVIEW

    def test_resource_type_key(self):
        """Resource type is stored under 'type'."""
        record = Resource(id="r", resource_type="money").to_dict()
        assert record == {"kind": "resource", "id": "r", "type": "money"}


# =============================================================================
# Parsing
# =============================================================================

class TestParsing:
    """Blank lines are skipped; malformed records fail the load."""

    def test_blank_lines_skipped(self):
        """Empty and whitespace-only lines are ignored."""
        lines = [
            "",
            '{"kind": "task", "id": "a", "title": "A"}',
            "   ",
            '{"kind": "task", "id": "b", "title": "B"}',
            "",
        ]
        graph = parse_graph(lines)
        assert [t.id for t in graph.tasks()] == ["a", "b"]

    def test_invalid_json_reports_line(self):
        """A non-JSON line raises ParseError carrying its 1-based line number."""
        lines = [
            '{"kind": "task", "id": "a", "title": "A"}',
            "",
            "{not json",
        ]
        with pytest.raises(ParseError) as exc_info:
            parse_graph(lines, source="graph.jsonl")
        assert exc_info.value.line == 3
        assert isinstance(exc_info.value.__cause__, json.JSONDecodeError)

    def test_missing_required_field(self):
        """A task record without a title fails the load."""
        with pytest.raises(ParseError) as exc_info:
            parse_graph(['{"kind": "task", "id": "a"}'])
        assert exc_info.value.line == 1
        assert "title" in exc_info.value.reason

    def test_invalid_status(self):
        """An unknown status value fails the load."""
        with pytest.raises(ParseError):
            parse_graph(['{"kind": "task", "id": "a", "title": "A", "status": "sleeping"}'])

    def test_wrong_field_type(self):
        """blocked_by must be a list."""
        with pytest.raises(ParseError, match="blocked_by"):
            parse_graph(['{"kind": "task", "id": "a", "title": "A", "blocked_by": "b"}'])

    def test_non_object_record(self):
        """A JSON array line is not a record."""
        with pytest.raises(ParseError):
            parse_graph(["[1, 2, 3]"])

    def test_record_without_kind(self):
        """Records must name their kind."""
        with pytest.raises(ParseError, match="kind"):
            parse_graph(['{"id": "a", "title": "A"}'])

    def test_non_string_kind(self):
        """A kind that is not a string fails with its line number."""
        with pytest.raises(ParseError) as exc_info:
            parse_graph([
                '{"kind": "task", "id": "a", "title": "A"}',
                '{"kind": ["task"], "id": "b", "title": "B"}',
            ])
        assert exc_info.value.line == 2
        assert "kind" in exc_info.value.reason

    def test_invalid_utf8_reports_line(self, tmp_path):
        """Undecodable bytes fail the load with their line number."""
        path = tmp_path / "graph.jsonl"
        path.write_bytes(
            b'{"kind": "task", "id": "a", "title": "A"}\n'
            b'{"kind": "task", "id": "b", "title": "\xff"}\n'
        )
        with pytest.raises(ParseError) as exc_info:
            load_graph(path)
        assert exc_info.value.line == 2
        assert isinstance(exc_info.value.__cause__, UnicodeDecodeError)

    def test_non_string_reference(self):
        """A numeric assigned id is refused at load, not at check time."""
        with pytest.raises(ParseError, match="assigned"):
            parse_graph(['{"kind": "task", "id": "a", "title": "A", "assigned": 5}'])

    def test_null_title(self):
        """A null title is refused rather than stored as the text 'None'."""
        with pytest.raises(ParseError, match="title"):
            parse_graph(['{"kind": "task", "id": "a", "title": null}'])

    def test_non_string_list_item(self):
        """List fields must hold strings only."""
        with pytest.raises(ParseError, match="requires"):
            parse_graph(['{"kind": "task", "id": "a", "title": "A", "requires": [1]}'])

    def test_unknown_kind_skipped(self):
        """Records of a kind this version does not know are skipped."""
        graph = parse_graph([
            '{"kind": "evaluation", "id": "e1"}',
            '{"kind": "task", "id": "a", "title": "A"}',
        ])
        assert len(graph) == 1
        assert "e1" not in graph

    def test_no_partial_graph_on_failure(self, tmp_path):
        """A bad record anywhere means nothing is returned."""
        path = tmp_path / "graph.jsonl"
        path.write_text('{"kind": "task", "id": "a", "title": "A"}\n{"kind": "task"}\n')
        with pytest.raises(ParseError) as exc_info:
            load_graph(path)
        assert exc_info.value.line == 2
        assert exc_info.value.source == str(path)

    def test_later_duplicate_replaces_earlier(self):
        """A repeated id keeps its position and takes the later record's fields."""
        graph = parse_graph([
            '{"kind": "task", "id": "a", "title": "Old"}',
            '{"kind": "task", "id": "b", "title": "B"}',
            '{"kind": "task", "id": "a", "title": "New", "status": "done"}',
        ])
        assert [n.id for n in graph] == ["a", "b"]
        assert graph.get_task("a").title == "New"
        assert graph.get_task("a").status == Status.DONE

    def test_load_missing_file(self, tmp_path):
        """Loading a file that does not exist raises NotFoundError."""
        with pytest.raises(NotFoundError):
            load_graph(tmp_path / "missing.jsonl")


# =============================================================================
# Atomic Save
# =============================================================================

class TestAtomicSave:
    """A failed save never leaves a truncated graph behind."""

    def test_failed_save_keeps_original(self, sample_graph, tmp_path, monkeypatch):
        """If the rename fails the old content is untouched and no temp file remains."""
        path = tmp_path / "graph.jsonl"
        save_graph(sample_graph, path)
        original = path.read_text()

        def broken_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(os, "replace", broken_replace)
        graph = WorkGraph([make_task("other")])
        with pytest.raises(OSError):
            save_graph(graph, path)

        assert path.read_text() == original
        assert sorted(p.name for p in tmp_path.iterdir()) == ["graph.jsonl"]

    def test_failed_append_keeps_original(self, store, sample_graph, monkeypatch):
        """An append that fails mid-write leaves the stored graph loadable and unchanged."""
        store.save(sample_graph)
        original = store.graph_path.read_text()

        def broken_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(os, "replace", broken_replace)
        with pytest.raises(OSError):
            store.append_node(make_task("late"))
        monkeypatch.undo()

        assert store.graph_path.read_text() == original
        assert store.load() == sample_graph
        assert sorted(p.name for p in store.graph_dir.iterdir()) == ["graph.jsonl"]

    def test_unserializable_graph_leaves_file(self, tmp_path):
        """Serialization errors happen before the destination is touched."""
        path = tmp_path / "graph.jsonl"
        save_graph(WorkGraph([make_task("a")]), path)
        original = path.read_text()

        bad = make_task("b", description=object())
        with pytest.raises(TypeError):
            save_graph(WorkGraph([bad]), path)
        assert path.read_text() == original

    def test_save_creates_parent_directory(self, tmp_path):
        """Saving into a new directory creates it."""
        path = tmp_path / "nested" / "graph.jsonl"
        save_graph(WorkGraph([make_task("a")]), path)
        assert path.exists()


# =============================================================================
# GraphStore
# =============================================================================

class TestGraphStore:
    """Directory-level store operations."""

    def test_initialize_creates_empty_graph(self, graph_dir):
        """initialize() creates the directory and an empty graph file."""
        store = GraphStore(graph_dir=graph_dir)
        path = store.initialize()
        assert path == graph_path(graph_dir)
        assert path.read_text() == ""
        assert len(store.load()) == 0

    def test_initialize_twice_fails(self, store):
        """A second initialize() refuses to clobber the graph."""
        with pytest.raises(AlreadyExistsError):
            store.initialize()

    def test_save_then_load(self, store, sample_graph):
        """What the store saves, it loads back."""
        store.save(sample_graph)
        assert store.load() == sample_graph

    def test_append_node(self, store, sample_graph):
        """append_node adds a record at the end without rewriting."""
        store.save(sample_graph)
        store.append_node(Actor(id="agent-2", capabilities=["docs"]))

        loaded = store.load()
        assert [n.id for n in loaded][-1] == "agent-2"
        assert loaded.get_actor("agent-2").capabilities == ["docs"]

    def test_append_duplicate_refused(self, store, sample_graph):
        """append_node refuses an id that is already present."""
        store.save(sample_graph)
        with pytest.raises(AlreadyExistsError):
            store.append_node(make_task("build"))

    def test_load_uninitialized(self, graph_dir):
        """Loading before initialize() raises NotFoundError."""
        with pytest.raises(NotFoundError):
            GraphStore(graph_dir=graph_dir).load()


# =============================================================================
# WorkGraph Container
# =============================================================================

class TestWorkGraph:
    """Id uniqueness and kind-filtered access."""

    def test_duplicate_id_rejected(self, sample_graph):
        """Ids are unique across node kinds."""
        with pytest.raises(AlreadyExistsError):
            sample_graph.add_node(make_task("agent-1"))

    def test_kind_filters(self, sample_graph):
        """tasks()/actors()/resources() filter by kind, in order."""
        assert [t.id for t in sample_graph.tasks()] == ["design", "build"]
        assert [a.id for a in sample_graph.actors()] == ["agent-1"]
        assert [r.id for r in sample_graph.resources()] == ["gpu"]

    def test_typed_lookup(self, sample_graph):
        """Typed getters return None for a node of another kind."""
        assert sample_graph.get_task("agent-1") is None
        assert sample_graph.get_actor("agent-1") is not None
        assert sample_graph.get_node("missing") is None
