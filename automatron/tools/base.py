"""Base types and definitions for tools."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, Field, field_validator


class ToolDefinition(BaseModel):
    """Schema of a tool as shown to the model. Carries no executable body."""

    name: str = Field(..., min_length=1)
    description: str = ""
    input_schema: dict[str, Any] = Field(default_factory=lambda: {"type": "object", "properties": {}})

    @field_validator("input_schema")
    @classmethod
    def validate_object_schema(cls, v: dict[str, Any]) -> dict[str, Any]:
        """Tool arguments are always a JSON object."""
        schema_type = v.get("type", "object")
        if schema_type != "object":
            raise ValueError(f"Tool input schema must describe an object, got type {schema_type!r}")
        return {"type": "object", **v}


@dataclass(frozen=True)
class ToolExecutionOptions:
    """Per-call context handed to a tool implementation."""

    tool_call_id: str


@dataclass(frozen=True)
class ToolOutcome:
    """What a tool implementation returns."""

    is_error: bool
    result: Any


ToolImplementation = Callable[[dict[str, Any], ToolExecutionOptions], Awaitable[ToolOutcome]]
