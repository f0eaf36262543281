"""
WorkGraph Store

Whole-file JSONL persistence for the work graph.

CONSTRAINTS:
- ONE RECORD PER LINE: every line is a self-describing tagged node
- ALL OR NOTHING: a malformed record fails the whole load (no partial graphs)
- ATOMIC SAVE: written to a temp file, fsync'd, then renamed over the target
- ORDER PRESERVING: records are written in graph iteration order
- SINGLE WRITER: no locking; concurrent writers are the caller's problem

Blank lines are skipped. Records with a kind this version does not know are
skipped with a warning so newer graphs stay readable.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Iterable, Optional

from .errors import AlreadyExistsError, NotFoundError, ParseError
from .graph_model import Node, NODE_TYPES, WorkGraph, node_from_dict

logger = logging.getLogger("graph_store")


# -----------------------------------------------------------------------------
# Constants
# -----------------------------------------------------------------------------
GRAPH_DIR = Path(os.getenv("WORKGRAPH_DIR", ".workgraph"))
GRAPH_FILENAME = "graph.jsonl"


def graph_path(graph_dir: Path) -> Path:
    """Location of the graph file inside a graph directory."""
    return Path(graph_dir) / GRAPH_FILENAME


# -----------------------------------------------------------------------------
# Parsing / Serialization
# -----------------------------------------------------------------------------
def parse_graph(lines: Iterable[str], source: str = "<graph>") -> WorkGraph:
    """
    Build a graph from JSONL lines.

    Args:
        lines: Record lines as str or UTF-8 bytes (trailing newlines allowed)
        source: Name used in error messages

    Returns:
        The parsed WorkGraph

    Raises:
        ParseError: on the first malformed record, with its 1-based line number
    """
    graph = WorkGraph()
    for line_number, raw in enumerate(lines, start=1):
        if isinstance(raw, bytes):
            try:
                raw = raw.decode("utf-8")
            except UnicodeDecodeError as e:
                raise ParseError(source, f"invalid UTF-8: {e.reason}", line=line_number) from e
        line = raw.strip()
        if not line:
            continue

        try:
            record = json.loads(line)
        except json.JSONDecodeError as e:
            raise ParseError(source, f"invalid JSON: {e.msg}", line=line_number) from e

        if not isinstance(record, dict):
            raise ParseError(
                source,
                f"expected an object, got {type(record).__name__}",
                line=line_number,
            )

        kind = record.get("kind")
        if kind is None:
            raise ParseError(source, "record has no 'kind'", line=line_number)
        if not isinstance(kind, str):
            raise ParseError(source, "'kind' must be a string", line=line_number)
        if kind not in NODE_TYPES:
            logger.warning(f"{source}:{line_number}: skipping record of unknown kind {kind!r}")
            continue

        try:
            node = node_from_dict(record)
        except KeyError as e:
            raise ParseError(source, f"missing field {e}", line=line_number) from e
        except (TypeError, ValueError) as e:
            raise ParseError(source, str(e), line=line_number) from e

        if node.id in graph:
            logger.debug(f"{source}:{line_number}: record replaces earlier '{node.id}'")
        graph.put_node(node)

    return graph


def serialize_graph(graph: WorkGraph) -> str:
    """Render a graph as JSONL text, one tagged record per node."""
    return "".join(json.dumps(node.to_dict()) + "\n" for node in graph)


# -----------------------------------------------------------------------------
# File Operations
# -----------------------------------------------------------------------------
def load_graph(path: Path) -> WorkGraph:
    """
    Load a graph file.

    Raises:
        NotFoundError: the file does not exist
        ParseError: a record is malformed
    """
    path = Path(path)
    if not path.exists():
        raise NotFoundError("graph file", str(path))

    with open(path, "rb") as f:
        graph = parse_graph(f, source=str(path))

    logger.debug(f"Loaded {len(graph)} nodes from {path}")
    return graph


def save_graph(graph: WorkGraph, path: Path) -> None:
    """
    Atomically write a graph file.

    The destination is either fully replaced or left untouched.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    content = serialize_graph(graph)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.remove(tmp_name)
        raise

    logger.debug(f"Saved {len(graph)} nodes to {path}")


# -----------------------------------------------------------------------------
# Graph Store
# -----------------------------------------------------------------------------
class GraphStore:
    """
    File-backed work graph.

    Every call re-reads the file; nothing is cached between calls.
    """

    def __init__(self, graph_dir: Optional[Path] = None):
        """
        Initialize store.

        Args:
            graph_dir: Graph directory (optional, for testing)
        """
        self._graph_dir = Path(graph_dir) if graph_dir is not None else GRAPH_DIR

    @property
    def graph_dir(self) -> Path:
        return self._graph_dir

    @property
    def graph_path(self) -> Path:
        return graph_path(self._graph_dir)

    def exists(self) -> bool:
        return self.graph_path.exists()

    def initialize(self) -> Path:
        """
        Create the graph directory and an empty graph file.

        Raises:
            AlreadyExistsError: a graph file is already present
        """
        if self.exists():
            raise AlreadyExistsError("workgraph", str(self._graph_dir))
        self._graph_dir.mkdir(parents=True, exist_ok=True)
        save_graph(WorkGraph(), self.graph_path)
        logger.info(f"Initialized workgraph at {self._graph_dir}")
        return self.graph_path

    def load(self) -> WorkGraph:
        return load_graph(self.graph_path)

    def save(self, graph: WorkGraph) -> None:
        save_graph(graph, self.graph_path)
        logger.info(f"Saved workgraph ({len(graph)} nodes) to {self.graph_path}")

    def append_node(self, node: Node) -> None:
        """
        Add a single new node at the end of the graph.

        Written with the same atomic save as every other mutation.

        Raises:
            NotFoundError: the graph has not been initialized
            AlreadyExistsError: a node with the same id exists
        """
        graph = self.load()
        graph.add_node(node)
        save_graph(graph, self.graph_path)

        logger.info(f"Appended {node.kind.value} '{node.id}' to {self.graph_path}")
