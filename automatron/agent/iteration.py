"""Single step of the agent loop."""

from dataclasses import dataclass

from automatron.agent.executor import execute_tool_calls
from automatron.errors import ModelInvocationError
from automatron.models.conversation import ConversationState, Message, ModelErrorLogEntry, ToolCallsLogEntry
from automatron.services.model import ModelInvoker
from automatron.tools.base import ToolDefinition, ToolImplementation
from automatron.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class IterationResult:
    """Outcome of one step. ``errored`` marks a step that finished because the model failed."""

    next_state: ConversationState
    finished: bool
    errored: bool = False


async def run_iteration(
    state: ConversationState,
    tool_definitions: dict[str, ToolDefinition],
    tool_implementations: dict[str, ToolImplementation],
    *,
    invoker: ModelInvoker,
    tool_timeout: float | None = None,
) -> IterationResult:
    """Advance the conversation by one step.

    The shape of the last message decides what happens:
    - none, or an assistant message without tool calls: finished, state unchanged
    - assistant message with tool calls: run them and append one tool message
    - user or tool message: call the model and append its response
    - anything else: finished with a warning

    The input state is never modified; a new state is returned.
    """
    last_message = state.last_message
    if last_message is None:
        return IterationResult(next_state=state, finished=True)

    if last_message.role == "assistant":
        tool_calls = last_message.tool_calls
        if not tool_calls:
            return IterationResult(next_state=state, finished=True)

        logger.info(f"Running {len(tool_calls)} tool calls: {', '.join(call.tool_name for call in tool_calls)}")
        tool_calls_entry = ToolCallsLogEntry(tool_names=tuple(call.tool_name for call in tool_calls))
        results = await execute_tool_calls(tool_calls, tool_implementations, timeout=tool_timeout)

        if not results:
            return IterationResult(next_state=state.append(log_entries=(tool_calls_entry,)), finished=True)

        tool_message = Message(role="tool", content=results)
        return IterationResult(
            next_state=state.append(messages=(tool_message,), log_entries=(tool_calls_entry,)),
            finished=False,
        )

    if last_message.role in ("user", "tool"):
        logger.debug(f"Running model on {len(state.messages)} messages")
        try:
            invocation = await invoker.invoke(state.messages, tool_definitions)
        except ModelInvocationError as e:
            logger.error(f"Error running model: {e}")
            return IterationResult(next_state=state.append(log_entries=(e.log_entry,)), finished=True, errored=True)
        except Exception as e:
            logger.error(f"Unexpected error running model: {e}", exc_info=True)
            error_entry = ModelErrorLogEntry(error=repr(e))
            return IterationResult(next_state=state.append(log_entries=(error_entry,)), finished=True, errored=True)

        return IterationResult(
            next_state=state.append(messages=invocation.response_messages, log_entries=(invocation.log_entry,)),
            finished=False,
        )

    logger.warning(f"Unexpected message role: {last_message.role}")
    return IterationResult(next_state=state, finished=True)
