"""Anthropic API client with rate limiting and transcript conversion."""

import asyncio
import json
import time
from dataclasses import dataclass, field
from typing import Any, Literal

import tiktoken
from anthropic import AsyncAnthropic
from anthropic.types import Message as AnthropicApiMessage
from limits import parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter
from pydantic import BaseModel

from automatron.errors import ConfigurationError
from automatron.models.conversation import Message, MessagePart, TextPart, ToolCallPart, ToolResultPart
from automatron.utils.logging import get_logger

logger = get_logger(__name__)


class AnthropicMessage(BaseModel):
    """Message format for Anthropic API."""

    role: Literal["user", "assistant"]
    content: list[dict[str, Any]]


class AnthropicTool(BaseModel):
    """Tool definition for Anthropic API."""

    name: str
    description: str
    input_schema: dict[str, Any]


@dataclass
class TokenUsage:
    """Token usage information from Anthropic API."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0


@dataclass
class AnthropicResponse:
    """Structured response from Anthropic API."""

    id: str
    content: list[MessagePart]
    stop_reason: str | None
    stop_sequence: str | None
    usage: TokenUsage
    model: str


@dataclass
class AnthropicConfig:
    """Configuration for Anthropic API client."""

    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 4096
    temperature: float = 0.0
    requests_per_minute: int = 50
    tokens_per_minute: int = 40_000
    extra_params: dict[str, Any] = field(default_factory=dict)


class AnthropicRateLimiter:
    """Moving-window rate limiter for requests and estimated tokens."""

    def __init__(self, requests_per_minute: int = 50, tokens_per_minute: int = 40_000):
        self.storage = MemoryStorage()
        self.limiter = MovingWindowRateLimiter(self.storage)

        self.request_limit = parse(f"{requests_per_minute}/minute")
        self.token_limit = parse(f"{tokens_per_minute}/minute")

    async def check_rate_limit(self, estimated_tokens: int, identifier: str = "anthropic") -> None:
        """Wait until the request fits within the rate limits."""
        logger.debug(f"Checking rate limit for {estimated_tokens} tokens, identifier: {identifier}")

        if not self.limiter.hit(self.request_limit, identifier):
            await self._wait_for_window(self.request_limit, identifier, "Request")

        token_identifier = f"{identifier}_tokens"
        cost = max(1, min(estimated_tokens, self.token_limit.amount))
        if not self.limiter.hit(self.token_limit, token_identifier, cost=cost):
            await self._wait_for_window(self.token_limit, token_identifier, "Token")

    async def _wait_for_window(self, limit, identifier: str, label: str) -> None:
        window_stats = self.limiter.get_window_stats(limit, identifier)
        if window_stats:
            wait_time = max(0.0, window_stats.reset_time - time.time())
            if wait_time > 0:
                logger.warning(f"{label} rate limit exceeded, waiting {wait_time:.2f}s")
                await asyncio.sleep(wait_time)


def to_anthropic_messages(messages: tuple[Message, ...] | list[Message]) -> list[AnthropicMessage]:
    """Convert transcript messages to Anthropic's user/assistant turns.

    Tool messages become user turns holding ``tool_result`` blocks. System
    messages are not part of the turn list, and messages left without any
    block (an empty model reply) are dropped, so both are skipped here.
    """
    converted: list[AnthropicMessage] = []
    for message in messages:
        if message.role == "system":
            continue

        blocks: list[dict[str, Any]] = []
        for part in message.content:
            if isinstance(part, TextPart):
                if part.text:
                    blocks.append({"type": "text", "text": part.text})
            elif isinstance(part, ToolCallPart):
                blocks.append({"type": "tool_use", "id": part.tool_call_id, "name": part.tool_name, "input": part.args})
            elif isinstance(part, ToolResultPart):
                blocks.append(
                    {
                        "type": "tool_result",
                        "tool_use_id": part.tool_call_id,
                        "content": _stringify_result(part.result),
                        "is_error": part.is_error,
                    }
                )

        if not blocks:
            # The API rejects turns without content
            logger.debug(f"Skipping empty {message.role} message")
            continue

        role = "assistant" if message.role == "assistant" else "user"
        converted.append(AnthropicMessage(role=role, content=blocks))

    return converted


def _stringify_result(result: Any) -> str:
    if isinstance(result, str):
        return result
    return json.dumps(result, ensure_ascii=False, default=str)


class AnthropicClient:
    """Low-level Anthropic API client with rate limiting."""

    tokenizer: tiktoken.Encoding | None = None

    def __init__(
        self,
        api_key: str | None,
        config: AnthropicConfig | None = None,
        client: AsyncAnthropic | None = None,
    ):
        """Initialize Anthropic client.

        Args:
            api_key: Anthropic API key
            config: Client configuration
            client: Preconfigured SDK client, mainly for tests

        Raises:
            ConfigurationError: If neither an API key nor a client is given
        """
        if client is None and not api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY", "an API key is required")

        self.config = config or AnthropicConfig()
        self.client = client or AsyncAnthropic(api_key=api_key)
        self.rate_limiter = AnthropicRateLimiter(self.config.requests_per_minute, self.config.tokens_per_minute)

        try:
            # Close approximation for Claude
            self.tokenizer = tiktoken.get_encoding("cl100k_base")
        except Exception as e:
            logger.warning(f"Tokenizer unavailable, falling back to character estimate: {e}")
            self.tokenizer = None

    async def create_message(
        self,
        messages: list[AnthropicMessage],
        tools: list[AnthropicTool] | None = None,
        system_prompt: str | None = None,
    ) -> AnthropicResponse:
        """Create a message with the Messages API.

        Args:
            messages: Conversation history
            tools: Available tools (schemas only)
            system_prompt: Optional system prompt

        Returns:
            Structured Anthropic response
        """
        estimated_tokens = self.estimate_tokens(messages, system_prompt)
        await self.rate_limiter.check_rate_limit(estimated_tokens)

        request_params: dict[str, Any] = {
            "model": self.config.model,
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
            "messages": [msg.model_dump() for msg in messages],
            **self.config.extra_params,
        }
        if system_prompt:
            request_params["system"] = system_prompt
        if tools:
            request_params["tools"] = [tool.model_dump() for tool in tools]

        logger.debug(
            f"Making Anthropic API call with model: {request_params['model']}, "
            f"{len(messages)} messages, {len(tools) if tools else 0} tools"
        )
        response: AnthropicApiMessage = await self.client.messages.create(**request_params)

        usage = TokenUsage()
        if response.usage:
            input_tokens = response.usage.input_tokens or 0
            output_tokens = response.usage.output_tokens or 0
            usage = TokenUsage(
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                total_tokens=input_tokens + output_tokens,
                cache_creation_input_tokens=response.usage.cache_creation_input_tokens or 0,
                cache_read_input_tokens=response.usage.cache_read_input_tokens or 0,
            )

        logger.debug(f"Response received - Stop reason: {response.stop_reason}, Content blocks: {len(response.content)}")

        return AnthropicResponse(
            id=response.id,
            content=self._convert_content_blocks(response.content),
            stop_reason=response.stop_reason,
            stop_sequence=response.stop_sequence,
            usage=usage,
            model=response.model,
        )

    def _convert_content_blocks(self, anthropic_content: list[Any]) -> list[MessagePart]:
        """Convert Anthropic content blocks to transcript parts."""
        converted: list[MessagePart] = []
        for block in anthropic_content:
            block_type = getattr(block, "type", None)
            if block_type == "text":
                converted.append(TextPart(text=block.text))
            elif block_type == "tool_use":
                converted.append(ToolCallPart(tool_call_id=block.id, tool_name=block.name, args=dict(block.input or {})))
            else:
                logger.warning(f"Skipping unsupported content block type: {block_type}")

        return converted

    def estimate_tokens(self, messages: list[AnthropicMessage], system_prompt: str | None = None) -> int:
        """Estimate token count for rate limiting."""
        text_content = system_prompt or ""
        for message in messages:
            for block in message.content:
                if "text" in block:
                    text_content += block["text"]
                elif "content" in block and isinstance(block["content"], str):
                    text_content += block["content"]
                elif "input" in block:
                    text_content += json.dumps(block["input"], default=str)

        return self.estimate_message_tokens(text_content)

    def estimate_message_tokens(self, message: str) -> int:
        """Estimate token count for a single string."""
        if self.tokenizer is None:
            # Roughly 4 characters per token
            return len(message) // 4
        return len(self.tokenizer.encode(message, disallowed_special=()))
