"""Tool discovery and execution over a remote MCP server."""

from contextlib import AsyncExitStack
from typing import Any

from mcp import ClientSession
from mcp.client.sse import sse_client
from mcp.types import CallToolResult

from automatron.errors import ToolDiscoveryError
from automatron.tools.base import ToolDefinition, ToolExecutionOptions, ToolImplementation, ToolOutcome
from automatron.tools.context import ToolContext
from automatron.utils.logging import get_logger

logger = get_logger(__name__)


def _field(obj: Any, *names: str) -> Any:
    """First attribute present under one of ``names``.

    mcp 1.x exposes camelCase fields (``isError``), later releases snake_case.
    """
    for name in names:
        if hasattr(obj, name):
            return getattr(obj, name)
    return None


def convert_call_result(result: CallToolResult) -> ToolOutcome:
    """Map an MCP CallToolResult onto a ToolOutcome.

    Structured content wins when the server provides it. Otherwise text items
    are joined and anything else is kept as its JSON dump.
    """
    is_error = bool(_field(result, "isError", "is_error"))

    structured = _field(result, "structuredContent", "structured_content")
    if structured is not None:
        return ToolOutcome(is_error=is_error, result=structured)

    texts: list[str] = []
    others: list[Any] = []
    for item in result.content or []:
        if getattr(item, "type", None) == "text":
            texts.append(item.text)
        else:
            others.append(item.model_dump(mode="json"))

    payload: Any
    if others:
        payload = [*texts, *others]
    else:
        payload = "\n".join(texts)

    return ToolOutcome(is_error=is_error, result=payload)


class McpToolContextProvider:
    """Opens a bearer-authenticated SSE session to an MCP server per acquire()."""

    def __init__(
        self,
        url: str,
        bearer_token: str | None = None,
        timeout: float = 5.0,
        sse_read_timeout: float = 300.0,
    ):
        """Initialize the provider.

        Args:
            url: SSE endpoint of the MCP server
            bearer_token: Token sent as ``Authorization: Bearer ...``
            timeout: HTTP connect timeout in seconds
            sse_read_timeout: How long to wait for a server event in seconds
        """
        self.url = url
        self.bearer_token = bearer_token
        self.timeout = timeout
        self.sse_read_timeout = sse_read_timeout

    def _headers(self) -> dict[str, str]:
        if not self.bearer_token:
            return {}
        return {"Authorization": f"Bearer {self.bearer_token}"}

    async def acquire(self) -> ToolContext:
        logger.info(f"Connecting to MCP server at {self.url}")
        stack = AsyncExitStack()
        try:
            read_stream, write_stream = await stack.enter_async_context(
                sse_client(
                    self.url,
                    headers=self._headers(),
                    timeout=self.timeout,
                    sse_read_timeout=self.sse_read_timeout,
                )
            )
            session = await stack.enter_async_context(ClientSession(read_stream, write_stream))
            await session.initialize()
            listing = await session.list_tools()
            definitions, implementations = self._collect_tools(session, listing.tools)
        except Exception as e:
            await stack.aclose()
            raise ToolDiscoveryError(f"{self.url}: {e}") from e

        logger.info(f"Discovered {len(definitions)} tools: {', '.join(definitions)}")

        async def close() -> None:
            await stack.aclose()
            logger.info(f"MCP connection to {self.url} closed")

        return ToolContext(definitions, implementations, release_callback=close)

    def _collect_tools(
        self, session: ClientSession, tools: list[Any]
    ) -> tuple[dict[str, ToolDefinition], dict[str, ToolImplementation]]:
        definitions: dict[str, ToolDefinition] = {}
        implementations: dict[str, ToolImplementation] = {}
        for tool in tools:
            if tool.name in definitions:
                logger.warning(f"Duplicate tool {tool.name!r} from {self.url}, keeping the first")
                continue
            definitions[tool.name] = ToolDefinition(
                name=tool.name,
                description=tool.description or "",
                input_schema=_field(tool, "inputSchema", "input_schema") or {},
            )
            implementations[tool.name] = self._create_tool_callable(session, tool.name)
        return definitions, implementations

    @staticmethod
    def _create_tool_callable(session: ClientSession, name: str) -> ToolImplementation:
        async def tool_callable(args: dict[str, Any], options: ToolExecutionOptions) -> ToolOutcome:
            logger.debug(f"Calling remote tool {name} for call {options.tool_call_id}")
            result = await session.call_tool(name, args)
            return convert_call_result(result)

        return tool_callable
