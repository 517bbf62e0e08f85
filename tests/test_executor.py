"""Tests for tool call execution."""

import asyncio

import pytest

from automatron.agent.executor import execute_tool_calls
from automatron.models.conversation import ToolCallPart
from automatron.tools.base import ToolExecutionOptions, ToolOutcome
from tests.fakes import raising, returning


def calls(*names: str) -> tuple[ToolCallPart, ...]:
    return tuple(
        ToolCallPart(tool_call_id=f"call_{i}", tool_name=name, args={"i": i}) for i, name in enumerate(names)
    )


class TestExecuteToolCalls:
    """Tests for execute_tool_calls."""

    @pytest.mark.asyncio
    async def test_successful_call_wrapped_in_result(self):
        """Test that an implementation's outcome becomes a tool-result part."""
        results = await execute_tool_calls(calls("lookup"), {"lookup": returning("42")})

        assert len(results) == 1
        assert results[0].tool_call_id == "call_0"
        assert results[0].tool_name == "lookup"
        assert results[0].is_error is False
        assert results[0].result == "42"

    @pytest.mark.asyncio
    async def test_reported_error_passed_through(self):
        """Test that an implementation's own isError flag is kept."""
        results = await execute_tool_calls(calls("lookup"), {"lookup": returning("not found", is_error=True)})
        assert results[0].is_error is True
        assert results[0].result == "not found"

    @pytest.mark.asyncio
    async def test_unknown_tool_is_local_error(self):
        """Test that a missing implementation yields an error citing the name and others still run."""
        results = await execute_tool_calls(calls("missing", "lookup"), {"lookup": returning("ok")})

        assert results[0].is_error is True
        assert "missing" in results[0].result
        assert results[1].is_error is False
        assert results[1].result == "ok"

    @pytest.mark.asyncio
    async def test_exception_converted_to_error_result(self):
        """Test that exceptions never escape the executor."""
        results = await execute_tool_calls(calls("explode"), {"explode": raising(RuntimeError("kaboom"))})

        assert results[0].is_error is True
        assert "Internal error" in results[0].result
        assert "kaboom" in results[0].result

    @pytest.mark.asyncio
    async def test_invalid_return_value_is_error(self):
        """Test implementations that do not return a ToolOutcome."""

        async def sloppy(args, options):
            return "just a string"

        results = await execute_tool_calls(calls("sloppy"), {"sloppy": sloppy})
        assert results[0].is_error is True

    @pytest.mark.asyncio
    async def test_cardinality_and_order_with_mixed_failures(self):
        """Test exactly one result per call, same order and ids, whatever fails."""
        implementations = {
            "ok": returning("fine"),
            "bad": raising(ValueError("nope")),
            "err": returning("tool said no", is_error=True),
        }
        tool_calls = calls("ok", "bad", "unknown", "err", "ok")

        results = await execute_tool_calls(tool_calls, implementations)

        assert len(results) == len(tool_calls)
        assert [r.tool_call_id for r in results] == [c.tool_call_id for c in tool_calls]
        assert [r.is_error for r in results] == [False, True, True, True, False]

    @pytest.mark.asyncio
    async def test_empty_batch(self):
        """Test that no calls give no results."""
        assert await execute_tool_calls((), {}) == ()

    @pytest.mark.asyncio
    async def test_calls_run_sequentially_in_request_order(self):
        """Test that one call finishes before the next one starts."""
        events: list[str] = []

        def tracking(name: str, delay: float):
            async def implementation(args, options: ToolExecutionOptions) -> ToolOutcome:
                events.append(f"start {name}")
                await asyncio.sleep(delay)
                events.append(f"end {name}")
                return ToolOutcome(is_error=False, result=options.tool_call_id)

            return implementation

        implementations = {"slow": tracking("slow", 0.02), "fast": tracking("fast", 0)}
        results = await execute_tool_calls(calls("slow", "fast"), implementations)

        assert events == ["start slow", "end slow", "start fast", "end fast"]
        assert [r.result for r in results] == ["call_0", "call_1"]

    @pytest.mark.asyncio
    async def test_implementation_receives_args_and_call_id(self):
        """Test the arguments handed to an implementation."""
        seen = {}

        async def capture(args, options):
            seen["args"] = args
            seen["id"] = options.tool_call_id
            return ToolOutcome(is_error=False, result=None)

        await execute_tool_calls(calls("capture"), {"capture": capture})
        assert seen == {"args": {"i": 0}, "id": "call_0"}

    @pytest.mark.asyncio
    async def test_stuck_tool_times_out(self):
        """Test that a per-call timeout turns a stuck tool into an error and moves on."""

        async def stuck(args, options):
            await asyncio.sleep(10)
            return ToolOutcome(is_error=False, result="never")

        results = await execute_tool_calls(calls("stuck", "ok"), {"stuck": stuck, "ok": returning("done")}, timeout=0.01)

        assert results[0].is_error is True
        assert "timed out" in results[0].result
        assert results[1].result == "done"

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self):
        """Test that cancelling the run is not swallowed as a tool error."""
        started = asyncio.Event()

        async def waiting(args, options):
            started.set()
            await asyncio.sleep(10)
            return ToolOutcome(is_error=False, result=None)

        task = asyncio.create_task(execute_tool_calls(calls("waiting"), {"waiting": waiting}))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
