"""
Trace Function Model

Schema for reusable, parameterized task-graph definitions ("trace
functions"). A function declares typed inputs, task templates whose
title/description carry {{input.<name>}} placeholders, and named outputs.

These are document schemas validated by pydantic on load. Template
references (blocked_by, loop targets, outputs) are checked by the
template engine, not here, so a structurally broken document still loads
and can be reported precisely.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

FUNCTION_KIND = "trace-function"


def _timestamp_to_str(value: Any) -> Any:
    # Unquoted YAML timestamps load as datetime objects
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


class InputType(str, Enum):
    """Declared type of a function input."""
    STRING = "string"
    TEXT = "text"
    FILE_LIST = "file_list"
    FILE_CONTENT = "file_content"
    NUMBER = "number"
    URL = "url"
    ENUM = "enum"
    JSON = "json"


class FunctionInput(BaseModel):
    """A typed parameter declaration."""
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1)
    input_type: InputType = Field(..., alias="type")
    description: str = ""
    required: bool = False
    default: Any = None
    example: Any = None
    min: Optional[float] = None
    max: Optional[float] = None
    values: Optional[List[str]] = None

    @field_validator("input_type", mode="before")
    @classmethod
    def normalize_type(cls, value: Any) -> Any:
        # Accept "file-list" as well as "file_list"
        if isinstance(value, str):
            return value.strip().lower().replace("-", "_")
        return value


class LoopEdgeTemplate(BaseModel):
    """Loop edge expressed in template ids. guard is opaque and never evaluated here."""
    target: str
    max_iterations: int
    guard: Optional[str] = None
    delay: Optional[str] = None


class TaskTemplate(BaseModel):
    template_id: str = Field(..., min_length=1)
    title: str
    description: str = ""
    skills: List[str] = Field(default_factory=list)
    blocked_by: List[str] = Field(default_factory=list)
    loops_to: List[LoopEdgeTemplate] = Field(default_factory=list)
    role_hint: Optional[str] = None
    deliverables: List[str] = Field(default_factory=list)
    verify: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class FunctionOutput(BaseModel):
    """Names which template's which field becomes an output of the function."""
    name: str
    description: str = ""
    from_task: str
    field: str


class ExtractionSource(BaseModel):
    task_id: str
    run_id: Optional[str] = None
    timestamp: str

    @field_validator("timestamp", mode="before")
    @classmethod
    def coerce_timestamp(cls, value: Any) -> Any:
        return _timestamp_to_str(value)


class TraceFunction(BaseModel):
    kind: str = FUNCTION_KIND
    version: int = 1
    id: str = Field(..., min_length=1)
    name: str
    description: str = ""
    extracted_from: List[ExtractionSource] = Field(default_factory=list)
    extracted_by: Optional[str] = None
    extracted_at: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    inputs: List[FunctionInput] = Field(default_factory=list)
    tasks: List[TaskTemplate] = Field(default_factory=list)
    outputs: List[FunctionOutput] = Field(default_factory=list)

    @field_validator("extracted_at", mode="before")
    @classmethod
    def coerce_extracted_at(cls, value: Any) -> Any:
        return _timestamp_to_str(value)

    @model_validator(mode="after")
    def check_unique_names(self) -> "TraceFunction":
        input_names = [i.name for i in self.inputs]
        duplicates = sorted({n for n in input_names if input_names.count(n) > 1})
        if duplicates:
            raise ValueError(f"duplicate input names: {', '.join(duplicates)}")

        template_ids = [t.template_id for t in self.tasks]
        duplicates = sorted({t for t in template_ids if template_ids.count(t) > 1})
        if duplicates:
            raise ValueError(f"duplicate template ids: {', '.join(duplicates)}")
        return self

    def get_input(self, name: str) -> Optional[FunctionInput]:
        for function_input in self.inputs:
            if function_input.name == name:
                return function_input
        return None

    def get_template(self, template_id: str) -> Optional[TaskTemplate]:
        for template in self.tasks:
            if template.template_id == template_id:
                return template
        return None

    def template_ids(self) -> List[str]:
        return [t.template_id for t in self.tasks]

    def to_document(self) -> dict:
        """Plain dict for YAML/JSON output, using the document field names."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
