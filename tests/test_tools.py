"""Tests for tool contexts, providers and local tools."""

import asyncio
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from types import SimpleNamespace

import pytest
from mcp.types import CallToolResult, ImageContent, TextContent
from pydantic import BaseModel

from automatron.errors import ToolDiscoveryError
from automatron.tools.base import ToolExecutionOptions, ToolOutcome
from automatron.tools.context import PooledToolContextProvider, ToolContext
from automatron.tools.current_time import create_current_time_tool
from automatron.tools.mcp import McpToolContextProvider, convert_call_result
from automatron.tools.registry import LocalTool, RegistryToolContextProvider, ToolsRegistry
from tests.fakes import FakeToolContextProvider, returning


class EchoInput(BaseModel):
    text: str


async def echo(params: EchoInput) -> str:
    return params.text.upper()


def echo_tool() -> LocalTool:
    return LocalTool(name="echo", description="Echo text back in capitals.", input_schema_class=EchoInput, handler=echo)


class TestToolContext:
    """Tests for ToolContext release semantics."""

    @pytest.mark.asyncio
    async def test_release_is_idempotent(self):
        """Test that only the first release reaches the callback."""
        calls = []

        async def release():
            calls.append(1)

        context = ToolContext({}, {}, release_callback=release)
        await context.release()
        await context.release()

        assert calls == [1]
        assert context.released is True

    @pytest.mark.asyncio
    async def test_async_with_releases_on_error(self):
        """Test scoped release when the body raises."""
        calls = []

        async def release():
            calls.append(1)

        context = ToolContext({}, {}, release_callback=release)
        with pytest.raises(RuntimeError):
            async with context:
                raise RuntimeError("inside")

        assert calls == [1]


class TestToolsRegistry:
    """Tests for the local tools registry."""

    def test_definitions_use_pydantic_schema(self):
        """Test that definitions expose the input model's JSON schema."""
        registry = ToolsRegistry([echo_tool()])
        definition = registry.get_definitions()["echo"]

        assert definition.description == "Echo text back in capitals."
        assert definition.input_schema["type"] == "object"
        assert "text" in definition.input_schema["properties"]

    def test_duplicate_registration_rejected(self):
        """Test that names are unique."""
        registry = ToolsRegistry([echo_tool()])
        with pytest.raises(ValueError):
            registry.register_tool(echo_tool())

    @pytest.mark.asyncio
    async def test_implementation_parses_and_runs(self):
        """Test that an implementation validates args and calls the handler."""
        implementation = ToolsRegistry([echo_tool()]).get_implementations()["echo"]
        outcome = await implementation({"text": "hi"}, ToolExecutionOptions(tool_call_id="c1"))

        assert outcome.is_error is False
        assert outcome.result == "HI"

    @pytest.mark.asyncio
    async def test_invalid_args_become_error_outcome(self):
        """Test that argument validation errors are reported to the model."""
        implementation = ToolsRegistry([echo_tool()]).get_implementations()["echo"]
        outcome = await implementation({"wrong": 1}, ToolExecutionOptions(tool_call_id="c1"))

        assert outcome.is_error is True
        assert "Invalid arguments" in outcome.result

    @pytest.mark.asyncio
    async def test_registry_provider(self):
        """Test the in-process provider."""
        context = await RegistryToolContextProvider(ToolsRegistry([echo_tool()])).acquire()

        assert set(context.definitions) == {"echo"}
        assert set(context.implementations) == {"echo"}
        await context.release()


class TestCurrentTimeTool:
    """Tests for the get_current_time tool."""

    @pytest.mark.asyncio
    async def test_default_timezone(self):
        """Test that the configured zone is used when none is given."""
        clock = lambda: datetime(2026, 10, 19, 15, 0, tzinfo=UTC)  # noqa: E731
        tool = create_current_time_tool("Asia/Bangkok", clock=clock)
        implementation = ToolsRegistry([tool]).get_implementations()["get_current_time"]

        outcome = await implementation({}, ToolExecutionOptions(tool_call_id="c1"))

        assert outcome.is_error is False
        assert outcome.result == "Monday, 2026-10-19T22:00:00+07:00 (Asia/Bangkok)"

    @pytest.mark.asyncio
    async def test_unknown_timezone_raises(self):
        """Test that bad zone names surface as an exception for the executor."""
        tool = create_current_time_tool()
        with pytest.raises(ValueError, match="Unknown time zone"):
            await tool.handler(tool.parse_input({"timezone": "Mars/Olympus"}))


class TestPooledToolContextProvider:
    """Tests for reference-counted sharing of a tool context."""

    @pytest.mark.asyncio
    async def test_shared_until_last_release(self):
        """Test that the underlying context is acquired once and released after the last lease."""
        inner = FakeToolContextProvider({"lookup": returning("42")})
        pool = PooledToolContextProvider(inner)

        first = await pool.acquire()
        second = await pool.acquire()
        assert inner.acquire_count == 1
        assert pool.lease_count == 2
        assert set(first.implementations) == {"lookup"}

        await first.release()
        assert inner.release_count == 0
        await first.release()
        assert pool.lease_count == 1

        await second.release()
        assert inner.release_count == 1
        assert pool.lease_count == 0

    @pytest.mark.asyncio
    async def test_reacquires_after_full_release(self):
        """Test that a new lease after closing opens a fresh context."""
        inner = FakeToolContextProvider()
        pool = PooledToolContextProvider(inner)

        await (await pool.acquire()).release()
        await (await pool.acquire()).release()

        assert inner.acquire_count == 2
        assert inner.release_count == 2

    @pytest.mark.asyncio
    async def test_concurrent_acquires_share_one_context(self):
        """Test concurrent runs taking leases at the same time."""
        inner = FakeToolContextProvider()
        pool = PooledToolContextProvider(inner)

        contexts = await asyncio.gather(*(pool.acquire() for _ in range(5)))
        assert inner.acquire_count == 1

        await asyncio.gather(*(context.release() for context in contexts))
        assert inner.release_count == 1

    @pytest.mark.asyncio
    async def test_discovery_failure_propagates(self):
        """Test that a failing inner provider fails the lease and leaves nothing open."""
        pool = PooledToolContextProvider(FakeToolContextProvider(fail_with="down"))

        with pytest.raises(ToolDiscoveryError):
            await pool.acquire()
        assert pool.lease_count == 0


class TestMcpToolContextProvider:
    """Tests for the MCP-backed provider."""

    def test_bearer_header(self):
        """Test the authorization header sent to the server."""
        provider = McpToolContextProvider("http://mcp.local/sse", bearer_token="secret")
        assert provider._headers() == {"Authorization": "Bearer secret"}
        assert McpToolContextProvider("http://mcp.local/sse")._headers() == {}

    @pytest.mark.asyncio
    async def test_unreachable_server_is_discovery_error(self):
        """Test that connection failures surface as ToolDiscoveryError."""
        provider = McpToolContextProvider("http://127.0.0.1:9/sse", timeout=0.5, sse_read_timeout=0.5)
        with pytest.raises(ToolDiscoveryError):
            await provider.acquire()

    def test_convert_text_result(self):
        """Test joining text content."""
        result = CallToolResult(
            content=[TextContent(type="text", text="line 1"), TextContent(type="text", text="line 2")],
            isError=False,
        )
        outcome = convert_call_result(result)
        assert outcome.is_error is False
        assert outcome.result == "line 1\nline 2"

    def test_convert_error_result(self):
        """Test that the server's isError flag is kept."""
        result = CallToolResult(content=[TextContent(type="text", text="no such page")], isError=True)
        outcome = convert_call_result(result)
        assert outcome.is_error is True
        assert outcome.result == "no such page"

    def test_convert_mixed_content(self):
        """Test that non-text content is kept as JSON."""
        result = CallToolResult(
            content=[
                TextContent(type="text", text="chart"),
                ImageContent(type="image", data="aGk=", mimeType="image/png"),
            ],
            isError=False,
        )
        outcome = convert_call_result(result)
        assert outcome.result[0] == "chart"
        assert outcome.result[1]["mimeType"] == "image/png"


class FakeMcpServer:
    """Stand-ins for ``sse_client`` and ``ClientSession`` recording which contexts were exited."""

    def __init__(self, tools, call_result=None):
        self.tools = tools
        self.call_result = call_result
        self.closed: list[str] = []
        self.headers = None

    def sse_client(self, url, headers=None, timeout=None, sse_read_timeout=None):
        server = self
        server.headers = headers

        @asynccontextmanager
        async def connect():
            try:
                yield ("read", "write")
            finally:
                server.closed.append("sse")

        return connect()

    def client_session(self, read_stream, write_stream):
        server = self

        class Session:
            async def __aenter__(self):
                return self

            async def __aexit__(self, *exc_info):
                server.closed.append("session")

            async def initialize(self):
                pass

            async def list_tools(self):
                return SimpleNamespace(tools=server.tools)

            async def call_tool(self, name, args):
                return server.call_result

        return Session()


@pytest.fixture
def patch_mcp(monkeypatch):
    def install(server: FakeMcpServer) -> FakeMcpServer:
        monkeypatch.setattr("automatron.tools.mcp.sse_client", server.sse_client)
        monkeypatch.setattr("automatron.tools.mcp.ClientSession", server.client_session)
        return server

    return install


class TestMcpDiscovery:
    """Tests for McpToolContextProvider against an in-memory server."""

    @pytest.mark.asyncio
    async def test_discovers_and_calls_tools(self, patch_mcp):
        """Test definitions, remote calls and release closing the session."""
        schema = {"type": "object", "properties": {"q": {"type": "string"}}}
        server = patch_mcp(
            FakeMcpServer(
                tools=[SimpleNamespace(name="lookup", description="Look up.", inputSchema=schema)],
                call_result=CallToolResult(content=[TextContent(type="text", text="42")], isError=False),
            )
        )

        context = await McpToolContextProvider("http://mcp.local/sse", bearer_token="secret").acquire()

        assert server.headers == {"Authorization": "Bearer secret"}
        assert context.definitions["lookup"].input_schema["properties"] == schema["properties"]
        outcome = await context.implementations["lookup"]({"q": "x"}, ToolExecutionOptions(tool_call_id="c1"))
        assert outcome.result == "42"
        assert server.closed == []

        await context.release()
        assert server.closed == ["session", "sse"]

    @pytest.mark.asyncio
    async def test_invalid_tool_schema_closes_connection(self, patch_mcp):
        """Test that a bad listing is a discovery error and leaves nothing open."""
        server = patch_mcp(
            FakeMcpServer(tools=[SimpleNamespace(name="bad", description="", inputSchema={"type": "string"})])
        )

        with pytest.raises(ToolDiscoveryError):
            await McpToolContextProvider("http://mcp.local/sse").acquire()

        assert server.closed == ["session", "sse"]

    @pytest.mark.asyncio
    async def test_snake_case_listing(self, patch_mcp):
        """Test tool listings that name the schema field input_schema."""
        patch_mcp(FakeMcpServer(tools=[SimpleNamespace(name="lookup", description=None, input_schema={})]))

        context = await McpToolContextProvider("http://mcp.local/sse").acquire()

        assert context.definitions["lookup"].input_schema == {"type": "object"}
        await context.release()

    def test_convert_snake_case_result(self):
        """Test call results that use is_error and structured_content."""
        errored = SimpleNamespace(
            is_error=True, structured_content=None, content=[SimpleNamespace(type="text", text="down")]
        )
        structured = SimpleNamespace(is_error=False, structured_content={"v": 42}, content=[])

        assert convert_call_result(errored) == ToolOutcome(is_error=True, result="down")
        assert convert_call_result(structured) == ToolOutcome(is_error=False, result={"v": 42})
