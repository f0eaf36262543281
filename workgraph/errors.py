"""
WorkGraph Errors

Structured error hierarchy for the graph core. Every error carries a stable
code, a human-readable message and a details dictionary so callers can
report failures without parsing message strings.

Structural findings (cycles, orphan references) are NOT errors. They are
returned as data by the checker.
"""

from typing import Any, Dict, List, Optional


class WorkGraphError(Exception):
    """Base workgraph error with structured details."""
    def __init__(self, code: str, message: str, details: Dict[str, Any] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": True,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class NotFoundError(WorkGraphError):
    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(
            code="NOT_FOUND",
            message=f"{kind.capitalize()} '{identifier}' not found",
            details={"kind": kind, "id": identifier}
        )


class AlreadyExistsError(WorkGraphError):
    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(
            code="ALREADY_EXISTS",
            message=f"{kind.capitalize()} with ID '{identifier}' already exists",
            details={"kind": kind, "id": identifier}
        )


class InvalidTransitionError(WorkGraphError):
    def __init__(self, task_id: str, current: str, expected: List[str]):
        self.task_id = task_id
        self.current = current
        self.expected = expected
        super().__init__(
            code="INVALID_TRANSITION",
            message=(
                f"Cannot transition task '{task_id}': status is {current}, "
                f"expected one of {expected}"
            ),
            details={"task_id": task_id, "current": current, "expected": expected}
        )


class ParseError(WorkGraphError):
    """Malformed persisted record. The underlying failure is chained."""
    def __init__(self, source: str, reason: str, line: Optional[int] = None):
        self.source = source
        self.line = line
        self.reason = reason
        where = f"{source}:{line}" if line is not None else source
        super().__init__(
            code="PARSE_ERROR",
            message=f"Failed to parse {where}: {reason}",
            details={"source": source, "line": line, "reason": reason}
        )


class ValidationError(WorkGraphError):
    def __init__(self, input_name: str, constraint: str, message: str):
        self.input_name = input_name
        self.constraint = constraint
        super().__init__(
            code="VALIDATION_FAILED",
            message=f"Input '{input_name}': {message}",
            details={"input": input_name, "constraint": constraint}
        )


class UnknownTemplateReference(WorkGraphError):
    def __init__(
        self,
        function_id: str,
        template_id: str,
        relation: str,
        target: str,
        reason: Optional[str] = None,
    ):
        self.function_id = function_id
        self.template_id = template_id
        self.relation = relation
        self.target = target
        self.reason = reason or "does not name a template in this function"
        super().__init__(
            code="UNKNOWN_TEMPLATE_REFERENCE",
            message=(
                f"Function '{function_id}': {template_id} --[{relation}]--> "
                f"{target} {self.reason}"
            ),
            details={
                "function_id": function_id,
                "template_id": template_id,
                "relation": relation,
                "target": target,
                "reason": self.reason,
            }
        )


class AmbiguousMatchError(WorkGraphError):
    def __init__(self, prefix: str, matches: List[str]):
        self.prefix = prefix
        self.matches = sorted(matches)
        super().__init__(
            code="AMBIGUOUS",
            message=f"'{prefix}' matches {len(self.matches)} functions: {', '.join(self.matches)}",
            details={"prefix": prefix, "matches": self.matches}
        )
