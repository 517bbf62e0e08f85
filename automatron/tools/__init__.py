"""Tools for the automation assistant."""

from automatron.tools.context import PooledToolContextProvider, ToolContext, ToolContextProvider
from automatron.tools.registry import RegistryToolContextProvider, ToolsRegistry

__all__ = [
    "PooledToolContextProvider",
    "RegistryToolContextProvider",
    "ToolContext",
    "ToolContextProvider",
    "ToolsRegistry",
]
