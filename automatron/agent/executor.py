"""Tool call execution."""

import asyncio
import json

from automatron.models.conversation import ToolCallPart, ToolResultPart
from automatron.tools.base import ToolExecutionOptions, ToolImplementation, ToolOutcome
from automatron.utils.logging import get_logger

logger = get_logger(__name__)


def _error_result(tool_call: ToolCallPart, message: str) -> ToolResultPart:
    return ToolResultPart(
        tool_call_id=tool_call.tool_call_id,
        tool_name=tool_call.tool_name,
        is_error=True,
        result=message,
    )


async def execute_tool_call(
    tool_call: ToolCallPart,
    tool_implementations: dict[str, ToolImplementation],
    timeout: float | None = None,
) -> ToolResultPart:
    """Run one tool call. Failures become error results; only cancellation propagates."""
    tool_name = tool_call.tool_name
    implementation = tool_implementations.get(tool_name)

    if implementation is None:
        logger.error(f"Unknown tool requested: {tool_name}")
        return _error_result(tool_call, f"Tool '{tool_name}' not implemented")

    options = ToolExecutionOptions(tool_call_id=tool_call.tool_call_id)
    try:
        outcome = await asyncio.wait_for(implementation(tool_call.args, options), timeout=timeout)
    except TimeoutError as e:
        if timeout is None:
            logger.error(f"Error calling {tool_name}: {e!r}")
            return _error_result(tool_call, f"Internal error: {e!r}")
        logger.error(f"Tool {tool_name} timed out after {timeout}s")
        return _error_result(tool_call, f"Tool '{tool_name}' timed out after {timeout}s")
    except Exception as e:
        logger.error(
            f"Error calling {tool_name} with args {json.dumps(tool_call.args, default=str)}: {e}",
            exc_info=True,
        )
        return _error_result(tool_call, f"Internal error: {e!r}")

    if not isinstance(outcome, ToolOutcome):
        logger.error(f"Tool {tool_name} returned {type(outcome).__name__} instead of ToolOutcome")
        return _error_result(tool_call, f"Internal error: tool '{tool_name}' returned an invalid result")

    if outcome.is_error:
        logger.warning(f"{tool_name} reported an error: {str(outcome.result)[:200]}")
    else:
        logger.debug(f"Tool {tool_name} succeeded: {str(outcome.result)[:100]}")

    return ToolResultPart(
        tool_call_id=tool_call.tool_call_id,
        tool_name=tool_name,
        is_error=outcome.is_error,
        result=outcome.result,
    )


async def execute_tool_calls(
    tool_calls: tuple[ToolCallPart, ...],
    tool_implementations: dict[str, ToolImplementation],
    timeout: float | None = None,
) -> tuple[ToolResultPart, ...]:
    """Execute tool calls one at a time, in the order the model requested them.

    Args:
        tool_calls: Tool-call parts from the last assistant message
        tool_implementations: Tool name to implementation
        timeout: Per-call limit in seconds, None for no limit

    Returns:
        Exactly one result per call, in the same order and with the same ids
    """
    results: list[ToolResultPart] = []
    for tool_call in tool_calls:
        results.append(await execute_tool_call(tool_call, tool_implementations, timeout))
    return tuple(results)
