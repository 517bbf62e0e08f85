"""Registry for tools implemented in-process."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ValidationError

from automatron.tools.base import ToolDefinition, ToolExecutionOptions, ToolImplementation, ToolOutcome
from automatron.tools.context import ToolContext
from automatron.utils.logging import get_logger

logger = get_logger(__name__)

ToolHandler = Callable[[BaseModel], Awaitable[Any]]


@dataclass
class LocalTool:
    """A tool whose input is described by a pydantic model."""

    name: str
    description: str
    input_schema_class: type[BaseModel]
    handler: ToolHandler

    def get_json_schema(self) -> dict[str, Any]:
        """Get JSON schema for this tool's input."""
        return self.input_schema_class.model_json_schema()

    def parse_input(self, raw_input: dict[str, Any]) -> BaseModel:
        """Parse and validate tool input."""
        return self.input_schema_class.model_validate(raw_input)


class ToolsRegistry:
    """Registry for managing local assistant tools."""

    def __init__(self, tools: list[LocalTool] | None = None):
        self._tools: dict[str, LocalTool] = {}
        for tool in tools or []:
            self.register_tool(tool)

    def register_tool(self, tool: LocalTool) -> None:
        """Register a new tool in the registry."""
        if tool.name in self._tools:
            raise ValueError(f"Tool {tool.name!r} is already registered")
        self._tools[tool.name] = tool

    def get_definitions(self) -> dict[str, ToolDefinition]:
        """Schemas of all registered tools."""
        return {
            name: ToolDefinition(name=name, description=tool.description, input_schema=tool.get_json_schema())
            for name, tool in self._tools.items()
        }

    def get_implementations(self) -> dict[str, ToolImplementation]:
        """Callables for all registered tools."""

        def create_tool_callable(tool: LocalTool) -> ToolImplementation:
            async def tool_callable(args: dict[str, Any], options: ToolExecutionOptions) -> ToolOutcome:
                try:
                    parsed_args = tool.parse_input(args)
                except ValidationError as e:
                    logger.warning(f"Invalid arguments for {tool.name} (call {options.tool_call_id}): {e}")
                    return ToolOutcome(is_error=True, result=f"Invalid arguments: {e}")
                return ToolOutcome(is_error=False, result=await tool.handler(parsed_args))

            return tool_callable

        return {name: create_tool_callable(tool) for name, tool in self._tools.items()}


class RegistryToolContextProvider:
    """Tool context backed by a ToolsRegistry. There is no connection to release."""

    def __init__(self, registry: ToolsRegistry):
        self.registry = registry

    async def acquire(self) -> ToolContext:
        return ToolContext(
            definitions=self.registry.get_definitions(),
            implementations=self.registry.get_implementations(),
        )
