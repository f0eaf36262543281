"""
Trace Function Store

One YAML document per trace function, named <function-id>.yaml, inside a
functions directory. Functions are located by exact id or by an unambiguous
id prefix.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import ValidationError as SchemaValidationError

from .errors import AmbiguousMatchError, NotFoundError, ParseError
from .function_model import TraceFunction
from .graph_store import GRAPH_DIR

logger = logging.getLogger("function_store")

# -----------------------------------------------------------------------------
# Constants
# -----------------------------------------------------------------------------
FUNCTIONS_DIRNAME = "functions"
FUNCTION_SUFFIX = ".yaml"

FUNCTIONS_DIR = Path(os.getenv("WORKGRAPH_FUNCTIONS_DIR", GRAPH_DIR / FUNCTIONS_DIRNAME))


def functions_dir(graph_dir: Path) -> Path:
    """Functions directory inside a graph directory."""
    return Path(graph_dir) / FUNCTIONS_DIRNAME


def function_path(func_dir: Path, function_id: str) -> Path:
    return Path(func_dir) / f"{function_id}{FUNCTION_SUFFIX}"


# -----------------------------------------------------------------------------
# Read / Write
# -----------------------------------------------------------------------------
def save_function(func: TraceFunction, func_dir: Path) -> Path:
    """Atomically write a function document. Returns its path."""
    func_dir = Path(func_dir)
    func_dir.mkdir(parents=True, exist_ok=True)
    path = function_path(func_dir, func.id)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=func_dir)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            yaml.dump(func.to_document(), f, default_flow_style=False, sort_keys=False)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.remove(tmp_name)
        raise

    logger.info(f"Saved function '{func.id}' to {path}")
    return path


def load_function(path: Path) -> TraceFunction:
    """
    Load one function document.

    Raises:
        NotFoundError: the file does not exist
        ParseError: the file is not valid YAML or not a valid function
    """
    path = Path(path)
    if not path.exists():
        raise NotFoundError("function file", str(path))

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ParseError(str(path), f"invalid YAML: {e}") from e

    if not isinstance(data, dict):
        raise ParseError(str(path), "function document must be a mapping")

    try:
        return TraceFunction.model_validate(data)
    except SchemaValidationError as e:
        raise ParseError(str(path), f"invalid function definition: {e}") from e


def load_all_functions(func_dir: Path) -> List[TraceFunction]:
    """All functions in a directory, sorted by id. A missing directory is empty."""
    func_dir = Path(func_dir)
    if not func_dir.is_dir():
        return []

    functions = [load_function(path) for path in sorted(func_dir.glob(f"*{FUNCTION_SUFFIX}"))]
    functions.sort(key=lambda func: func.id)
    logger.debug(f"Loaded {len(functions)} function(s) from {func_dir}")
    return functions


def find_function_by_prefix(func_dir: Path, prefix: str) -> TraceFunction:
    """
    Resolve a function by exact id or unique id prefix.

    Raises:
        NotFoundError: nothing matches
        AmbiguousMatchError: several ids start with the prefix and none equals it
    """
    functions = load_all_functions(func_dir)

    for func in functions:
        if func.id == prefix:
            return func

    matches = [func for func in functions if func.id.startswith(prefix)]
    if not matches:
        raise NotFoundError("function", prefix)
    if len(matches) > 1:
        logger.warning(f"Function prefix '{prefix}' is ambiguous ({len(matches)} matches)")
        raise AmbiguousMatchError(prefix, [func.id for func in matches])
    return matches[0]


class FunctionStore:
    """Directory of trace function documents."""

    def __init__(self, func_dir: Optional[Path] = None):
        self.func_dir = Path(func_dir) if func_dir is not None else FUNCTIONS_DIR

    def save(self, func: TraceFunction) -> Path:
        return save_function(func, self.func_dir)

    def list(self) -> List[TraceFunction]:
        return load_all_functions(self.func_dir)

    def find(self, prefix: str) -> TraceFunction:
        return find_function_by_prefix(self.func_dir, prefix)
