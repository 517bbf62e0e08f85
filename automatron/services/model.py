"""Model invocation: one request/response exchange with the language model."""

from dataclasses import dataclass
from typing import Any, Protocol

from automatron.clients.anthropic import AnthropicClient, AnthropicResponse, AnthropicTool, to_anthropic_messages
from automatron.errors import ModelInvocationError
from automatron.models.conversation import (
    Message,
    ModelErrorLogEntry,
    ModelInvocationLogEntry,
    Usage,
    utc_now_iso,
)
from automatron.tools.base import ToolDefinition
from automatron.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ModelInvocation:
    """New messages produced by the model plus the telemetry of the call."""

    response_messages: tuple[Message, ...]
    log_entry: ModelInvocationLogEntry


class ModelInvoker(Protocol):
    """Interface for language model providers.

    Implementations must not retry internally. On failure they raise
    ModelInvocationError carrying a ``model-error`` log entry.
    """

    async def invoke(
        self,
        messages: tuple[Message, ...],
        tool_definitions: dict[str, ToolDefinition],
    ) -> ModelInvocation:
        """Send the full history and tool schemas, return the response messages."""
        ...


class AnthropicModelInvoker:
    """Model invoker backed by the Anthropic Messages API."""

    provider = "anthropic"

    def __init__(self, client: AnthropicClient, system_prompt: str | None = None):
        self.client = client
        self.system_prompt = system_prompt

    async def invoke(
        self,
        messages: tuple[Message, ...],
        tool_definitions: dict[str, ToolDefinition],
    ) -> ModelInvocation:
        started_at = utc_now_iso()
        tools = [
            AnthropicTool(name=definition.name, description=definition.description, input_schema=definition.input_schema)
            for definition in tool_definitions.values()
        ]

        try:
            response = await self.client.create_message(
                messages=to_anthropic_messages(messages),
                tools=tools,
                system_prompt=self.system_prompt,
            )
        except Exception as e:
            logger.error(f"Model invocation failed: {e}")
            raise ModelInvocationError(ModelErrorLogEntry(timestamp=started_at, error=str(e))) from e

        completed_at = utc_now_iso()
        log_entry = ModelInvocationLogEntry(
            timestamp=started_at,
            started_at=started_at,
            completed_at=completed_at,
            finish_reason=response.stop_reason,
            usage=Usage(
                prompt_tokens=response.usage.input_tokens,
                completion_tokens=response.usage.output_tokens,
                total_tokens=response.usage.total_tokens,
            ),
            model_id=response.model,
            provider_metadata={self.provider: self._provider_metadata(response)},
        )

        response_messages = (Message(role="assistant", content=tuple(response.content)),)
        logger.info(
            f"Model {response.model} finished with {response.stop_reason}, "
            f"{log_entry.usage.total_tokens} tokens"
        )
        return ModelInvocation(response_messages=response_messages, log_entry=log_entry)

    @staticmethod
    def _provider_metadata(response: AnthropicResponse) -> dict[str, Any]:
        return {
            "id": response.id,
            "stopSequence": response.stop_sequence,
            "cacheCreationInputTokens": response.usage.cache_creation_input_tokens,
            "cacheReadInputTokens": response.usage.cache_read_input_tokens,
        }
