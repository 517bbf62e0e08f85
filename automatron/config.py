"""Runtime configuration loaded from the environment."""

import os
from collections.abc import Mapping
from dataclasses import dataclass

from automatron.errors import ConfigurationError

DEFAULT_MAX_ITERATIONS = 20


@dataclass(frozen=True)
class AgentConfig:
    """Configuration for an agent run and its collaborators."""

    anthropic_api_key: str | None = None
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 4096
    temperature: float = 0.0
    system_prompt: str | None = None

    # Remote tool server (MCP over SSE); local tools are used when unset
    mcp_url: str | None = None
    mcp_bearer_token: str | None = None
    # Share one tool connection between concurrent runs
    pool_tool_context: bool = False

    max_iterations: int = DEFAULT_MAX_ITERATIONS
    tool_timeout: float | None = None
    run_deadline: float | None = None

    # Zone used for the <user_message_time> tag
    timezone: str = "Asia/Bangkok"
    instructions: str | None = None

    requests_per_minute: int = 50
    tokens_per_minute: int = 40_000


def _get_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigurationError(key, f"expected an integer, got {raw!r}") from e
    if value <= 0:
        raise ConfigurationError(key, f"must be positive, got {value}")
    return value


def _get_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    if raw.lower() in ("1", "true", "yes", "on"):
        return True
    if raw.lower() in ("0", "false", "no", "off"):
        return False
    raise ConfigurationError(key, f"expected a boolean, got {raw!r}")


def _get_float(env: Mapping[str, str], key: str, default: float | None) -> float | None:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigurationError(key, f"expected a number, got {raw!r}") from e
    if value < 0:
        raise ConfigurationError(key, f"must not be negative, got {value}")
    return value


def load_config(env: Mapping[str, str] | None = None) -> AgentConfig:
    """Build an AgentConfig from environment variables.

    Args:
        env: Mapping to read from (defaults to os.environ)

    Returns:
        Populated configuration

    Raises:
        ConfigurationError: If a numeric setting cannot be parsed
    """
    if env is None:
        env = os.environ

    defaults = AgentConfig()
    temperature = _get_float(env, "AUTOMATRON_TEMPERATURE", defaults.temperature)

    return AgentConfig(
        anthropic_api_key=env.get("ANTHROPIC_API_KEY") or None,
        model=env.get("AUTOMATRON_MODEL") or defaults.model,
        max_tokens=_get_int(env, "AUTOMATRON_MAX_TOKENS", defaults.max_tokens),
        temperature=temperature if temperature is not None else defaults.temperature,
        system_prompt=env.get("AUTOMATRON_SYSTEM_PROMPT") or None,
        mcp_url=env.get("AUTOMATRON_MCP_URL") or None,
        mcp_bearer_token=env.get("AUTOMATRON_MCP_BEARER_TOKEN") or None,
        pool_tool_context=_get_bool(env, "AUTOMATRON_POOL_TOOL_CONTEXT", defaults.pool_tool_context),
        max_iterations=_get_int(env, "AUTOMATRON_MAX_ITERATIONS", defaults.max_iterations),
        tool_timeout=_get_float(env, "AUTOMATRON_TOOL_TIMEOUT", defaults.tool_timeout),
        run_deadline=_get_float(env, "AUTOMATRON_RUN_DEADLINE", defaults.run_deadline),
        timezone=env.get("AUTOMATRON_TIMEZONE") or defaults.timezone,
        instructions=env.get("AUTOMATRON_INSTRUCTIONS") or None,
        requests_per_minute=_get_int(env, "AUTOMATRON_REQUESTS_PER_MINUTE", defaults.requests_per_minute),
        tokens_per_minute=_get_int(env, "AUTOMATRON_TOKENS_PER_MINUTE", defaults.tokens_per_minute),
    )
