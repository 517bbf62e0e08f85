"""Construction of the agent driver and its collaborators from configuration."""

from automatron.agent.driver import AgentDriver
from automatron.clients.anthropic import AnthropicClient, AnthropicConfig
from automatron.config import AgentConfig
from automatron.services.model import AnthropicModelInvoker
from automatron.tools.context import PooledToolContextProvider, ToolContextProvider
from automatron.tools.current_time import create_current_time_tool
from automatron.tools.registry import RegistryToolContextProvider, ToolsRegistry
from automatron.utils.logging import get_logger

logger = get_logger(__name__)


def build_tool_provider(config: AgentConfig) -> ToolContextProvider:
    """MCP server when one is configured, otherwise the local tools.

    With ``pool_tool_context`` the provider is wrapped so concurrent runs share
    one context.
    """
    provider = _base_tool_provider(config)
    if config.pool_tool_context:
        logger.info("Sharing the tool context between concurrent runs")
        return PooledToolContextProvider(provider)
    return provider


def _base_tool_provider(config: AgentConfig) -> ToolContextProvider:
    if config.mcp_url:
        from automatron.tools.mcp import McpToolContextProvider

        logger.info(f"Using MCP tool server at {config.mcp_url}")
        return McpToolContextProvider(config.mcp_url, bearer_token=config.mcp_bearer_token)

    logger.info("No MCP server configured, using local tools")
    registry = ToolsRegistry([create_current_time_tool(config.timezone)])
    return RegistryToolContextProvider(registry)


def build_model_invoker(config: AgentConfig) -> AnthropicModelInvoker:
    client = AnthropicClient(
        api_key=config.anthropic_api_key,
        config=AnthropicConfig(
            model=config.model,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            requests_per_minute=config.requests_per_minute,
            tokens_per_minute=config.tokens_per_minute,
        ),
    )
    return AnthropicModelInvoker(client, system_prompt=config.system_prompt)


def build_agent_driver(config: AgentConfig) -> AgentDriver:
    """Create a driver wired to the configured model and tool server.

    Raises:
        ConfigurationError: If the Anthropic API key is missing
    """
    return AgentDriver(
        tool_provider=build_tool_provider(config),
        invoker=build_model_invoker(config),
        max_iterations=config.max_iterations,
        tool_timeout=config.tool_timeout,
        deadline=config.run_deadline,
    )
