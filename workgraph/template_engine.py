"""
Template Engine for Trace Functions

Expands a trace function into concrete, graph-ready tasks.

Steps:
1. Validate input values against the function's declared inputs
2. Validate that every template reference resolves inside the function
3. Produce one task per template: {{input.<name>}} placeholders substituted,
   local blocked_by ids and loop targets remapped to final task ids

IMPORTANT:
- Loop edges are carried on the task, NOT expanded into copies
- Loop guards are opaque strings; they are never evaluated here
- Substitution is deterministic: same function + inputs = same titles
"""

import json
import logging
import math
import re
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from .errors import AlreadyExistsError, UnknownTemplateReference, ValidationError
from .function_model import FunctionInput, InputType, TraceFunction
from .function_store import FunctionStore
from .graph_model import LoopEdge, Status, Task, WorkGraph, utc_now

logger = logging.getLogger("template_engine")

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*input\.([A-Za-z0-9_\-]+)\s*\}\}")

STRING_TYPES = {InputType.STRING, InputType.TEXT, InputType.FILE_CONTENT}


# -----------------------------------------------------------------------------
# Input Validation
# -----------------------------------------------------------------------------
def _check_value(declared: FunctionInput, value: Any) -> Any:
    """Check one value against its declaration. Returns the value to use."""
    name = declared.name
    input_type = declared.input_type

    if input_type in STRING_TYPES:
        if not isinstance(value, str):
            raise ValidationError(name, "type", f"expected {input_type.value}, got {type(value).__name__}")
        return value

    if input_type == InputType.URL:
        if not isinstance(value, str):
            raise ValidationError(name, "type", f"expected url, got {type(value).__name__}")
        parsed = urlparse(value)
        if not parsed.scheme or not (parsed.netloc or parsed.scheme == "file"):
            raise ValidationError(name, "type", f"'{value}' is not a valid URL")
        return value

    if input_type == InputType.NUMBER:
        number = value
        if isinstance(value, str):
            try:
                number = int(value)
            except ValueError:
                try:
                    number = float(value)
                except ValueError as e:
                    raise ValidationError(name, "type", f"'{value}' is not a number") from e
        if isinstance(number, bool) or not isinstance(number, (int, float)):
            raise ValidationError(name, "type", f"expected number, got {type(value).__name__}")
        if isinstance(number, float) and not math.isfinite(number):
            raise ValidationError(name, "type", f"'{value}' is not a finite number")
        if declared.min is not None and number < declared.min:
            raise ValidationError(name, "min", f"{number} is below minimum {declared.min}")
        if declared.max is not None and number > declared.max:
            raise ValidationError(name, "max", f"{number} is above maximum {declared.max}")
        return number

    if input_type == InputType.ENUM:
        if not isinstance(value, str):
            raise ValidationError(name, "type", f"expected enum value, got {type(value).__name__}")
        if declared.values is not None and value not in declared.values:
            raise ValidationError(
                name, "values", f"'{value}' is not one of: {', '.join(declared.values)}"
            )
        return value

    if input_type == InputType.FILE_LIST:
        if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
            raise ValidationError(name, "type", "expected a list of file paths")
        return list(value)

    if input_type == InputType.JSON:
        if isinstance(value, str):
            try:
                return json.loads(value)
            except json.JSONDecodeError as e:
                raise ValidationError(name, "type", f"invalid JSON: {e.msg}") from e
        try:
            json.dumps(value)
        except (TypeError, ValueError) as e:
            raise ValidationError(name, "type", f"value is not JSON-serializable: {e}") from e
        return value

    raise ValidationError(name, "type", f"unsupported input type {input_type!r}")


def validate_inputs(function: TraceFunction, input_values: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate input values and apply defaults.

    Returns:
        Resolved values for every input that has a value or a default

    Raises:
        ValidationError: on the first unknown, missing, or invalid input
    """
    for name in input_values:
        if function.get_input(name) is None:
            raise ValidationError(name, "unknown", f"not declared by function '{function.id}'")

    resolved: Dict[str, Any] = {}
    for declared in function.inputs:
        value = input_values.get(declared.name)
        if value is not None:
            resolved[declared.name] = _check_value(declared, value)
        elif declared.required:
            raise ValidationError(declared.name, "required", "is required")
        elif declared.default is not None:
            resolved[declared.name] = _check_value(declared, declared.default)
    return resolved


# -----------------------------------------------------------------------------
# Structure Validation
# -----------------------------------------------------------------------------
def validate_structure(function: TraceFunction) -> None:
    """
    Check that every template reference resolves within the function.

    Raises:
        UnknownTemplateReference: dangling blocked_by, loop target or output
            source, or a loop edge with max_iterations below 1
    """
    known = set(function.template_ids())

    for template in function.tasks:
        for dep in template.blocked_by:
            if dep not in known:
                raise UnknownTemplateReference(function.id, template.template_id, "blocked_by", dep)
        for edge in template.loops_to:
            if edge.target not in known:
                raise UnknownTemplateReference(function.id, template.template_id, "loops_to", edge.target)
            if edge.max_iterations < 1:
                raise UnknownTemplateReference(
                    function.id,
                    template.template_id,
                    "loops_to",
                    edge.target,
                    reason=f"has max_iterations {edge.max_iterations}; must be at least 1",
                )

    for output in function.outputs:
        if output.from_task not in known:
            raise UnknownTemplateReference(function.id, output.name, "from_task", output.from_task)


# -----------------------------------------------------------------------------
# Substitution
# -----------------------------------------------------------------------------
def stringify_value(value: Any) -> str:
    """Render an input value for placeholder substitution."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ", ".join(stringify_value(item) for item in value)
    if isinstance(value, dict):
        return json.dumps(value)
    return str(value)


def substitute_inputs(content: str, values: Dict[str, Any]) -> str:
    """
    Substitute {{input.<name>}} placeholders in content.

    Args:
        content: Template text
        values: Value for every placeholder name that should be replaced

    Returns:
        Content with known placeholders replaced; unknown ones are kept
    """

    def replace_var(match):
        var_name = match.group(1)
        if var_name in values:
            return stringify_value(values[var_name])
        logger.warning(f"Unknown template input: {match.group(0)}")
        return match.group(0)  # Keep original if not found

    return PLACEHOLDER_PATTERN.sub(replace_var, content)


# -----------------------------------------------------------------------------
# Instantiation
# -----------------------------------------------------------------------------
def task_id_for(prefix: str, template_id: str) -> str:
    return f"{prefix}-{template_id}"


def instantiate(
    function: TraceFunction,
    input_values: Dict[str, Any],
    prefix: Optional[str] = None,
) -> List[Task]:
    """
    Expand a function into concrete tasks.

    Args:
        function: The trace function
        input_values: Input name -> value
        prefix: Task id prefix (defaults to the function id); each task's id
            is "<prefix>-<template_id>"

    Returns:
        One open task per template, in template order

    Raises:
        ValidationError: an input is unknown, missing or invalid
        UnknownTemplateReference: a template reference does not resolve
    """
    resolved = validate_inputs(function, input_values)
    validate_structure(function)

    # Declared inputs with no value and no default substitute as empty
    substitutions = {declared.name: resolved.get(declared.name) for declared in function.inputs}

    prefix = prefix or function.id
    id_map = {tid: task_id_for(prefix, tid) for tid in function.template_ids()}
    now = utc_now()

    tasks: List[Task] = []
    for template in function.tasks:
        description = substitute_inputs(template.description, substitutions)
        tasks.append(Task(
            id=id_map[template.template_id],
            title=substitute_inputs(template.title, substitutions),
            description=description or None,
            status=Status.OPEN,
            blocked_by=[id_map[dep] for dep in template.blocked_by],
            tags=list(template.tags),
            skills=list(template.skills),
            deliverables=list(template.deliverables),
            verify=template.verify,
            role_hint=template.role_hint,
            created_at=now,
            loops_to=[
                LoopEdge(
                    target=id_map[edge.target],
                    max_iterations=edge.max_iterations,
                    guard=edge.guard,
                    delay=edge.delay,
                )
                for edge in template.loops_to
            ],
        ))

    by_id = {task.id: task for task in tasks}
    for task in tasks:
        for dep in task.blocked_by:
            blocker = by_id[dep]
            if task.id not in blocker.blocks:
                blocker.blocks.append(task.id)

    logger.info(f"Instantiated function '{function.id}' as {len(tasks)} task(s) with prefix '{prefix}'")
    return tasks


class TemplateEngine:
    """
    Looks up functions by id prefix and expands them into a graph.

    Features:
    - Prefix lookup over a directory of function documents
    - Input validation and {{input.<name>}} substitution
    - Collision-checked insertion into a WorkGraph
    """

    def __init__(self, func_dir: Optional[Path] = None):
        self.store = FunctionStore(func_dir)

    def get_function(self, prefix: str) -> TraceFunction:
        return self.store.find(prefix)

    def instantiate(
        self,
        function_ref: str,
        input_values: Dict[str, Any],
        prefix: Optional[str] = None,
    ) -> List[Task]:
        return instantiate(self.get_function(function_ref), input_values, prefix=prefix)

    def instantiate_into(
        self,
        graph: WorkGraph,
        function_ref: str,
        input_values: Dict[str, Any],
        prefix: Optional[str] = None,
    ) -> List[Task]:
        """
        Expand a function and add its tasks to graph.

        Raises:
            AlreadyExistsError: any produced id is already in the graph;
                the graph is left unchanged
        """
        tasks = self.instantiate(function_ref, input_values, prefix=prefix)
        for task in tasks:
            if task.id in graph:
                raise AlreadyExistsError(task.kind.value, task.id)
        for task in tasks:
            graph.add_node(task)
        return tasks
