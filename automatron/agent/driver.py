"""Agent driver: loops the iteration step under a cap and owns the tool context."""

import asyncio
from dataclasses import dataclass
from enum import StrEnum

from cuid2 import cuid_wrapper

from automatron.agent.iteration import run_iteration
from automatron.config import DEFAULT_MAX_ITERATIONS
from automatron.models.conversation import ConversationState, RunInterruptedLogEntry
from automatron.services.model import ModelInvoker
from automatron.tools.context import ToolContextProvider
from automatron.utils.logging import get_logger, get_run_logger

logger = get_logger(__name__)

cuid = cuid_wrapper()


class RunOutcome(StrEnum):
    """How an agent run ended."""

    COMPLETED = "completed"
    CAPPED = "capped"
    ERRORED = "errored"


@dataclass(frozen=True)
class AgentRunResult:
    """Final state of an agent run and how it got there."""

    state: ConversationState
    outcome: RunOutcome
    iterations: int
    run_id: str

    @property
    def finished(self) -> bool:
        """Always true: every run that returns has reached a terminal state."""
        return True


class AgentDriver:
    """Runs the agent loop for one conversation at a time.

    Each run acquires its own tool context from the provider and releases it
    on every exit path, including exceptions and cancellation.
    """

    def __init__(
        self,
        tool_provider: ToolContextProvider,
        invoker: ModelInvoker,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        tool_timeout: float | None = None,
        deadline: float | None = None,
    ):
        """Initialize the driver.

        Args:
            tool_provider: Source of the tool context for each run
            invoker: Language model invoker
            max_iterations: Hard cap on iteration steps per run
            tool_timeout: Per-tool-call limit in seconds
            deadline: Limit on the whole run in seconds, after tool discovery
        """
        if max_iterations < 1:
            raise ValueError(f"max_iterations must be at least 1, got {max_iterations}")
        self.tool_provider = tool_provider
        self.invoker = invoker
        self.max_iterations = max_iterations
        self.tool_timeout = tool_timeout
        self.deadline = deadline

    async def run(
        self,
        initial_state: ConversationState,
        cancel_event: asyncio.Event | None = None,
    ) -> AgentRunResult:
        """Run the agent loop from the given state until it finishes or hits the cap.

        Args:
            initial_state: Conversation to continue
            cancel_event: When set, the run stops before its next iteration

        Returns:
            Final state, outcome and iteration count

        Raises:
            ToolDiscoveryError: If the tool context cannot be acquired
        """
        run_id = cuid()
        log = get_run_logger(logger, run_id)
        log.info(
            f"Starting with {len(initial_state.messages)} messages, "
            f"max_iterations: {self.max_iterations}"
        )

        context = await self.tool_provider.acquire()

        state = initial_state
        iterations = 0
        outcome: RunOutcome | None = None

        async with context:
            try:
                async with asyncio.timeout(self.deadline):
                    while iterations < self.max_iterations:
                        if cancel_event is not None and cancel_event.is_set():
                            log.warning(f"Cancelled after {iterations} iterations")
                            state = state.append(log_entries=(RunInterruptedLogEntry(reason="cancelled"),))
                            outcome = RunOutcome.ERRORED
                            break

                        log.debug(f"Iteration {iterations + 1}/{self.max_iterations}")
                        result = await run_iteration(
                            state,
                            context.definitions,
                            context.implementations,
                            invoker=self.invoker,
                            tool_timeout=self.tool_timeout,
                        )
                        state = result.next_state
                        iterations += 1

                        if result.finished:
                            outcome = RunOutcome.ERRORED if result.errored else RunOutcome.COMPLETED
                            break
            except TimeoutError:
                log.warning(f"Exceeded the deadline of {self.deadline}s")
                reason = f"deadline of {self.deadline}s exceeded"
                state = state.append(log_entries=(RunInterruptedLogEntry(reason=reason),))
                outcome = RunOutcome.ERRORED

        if outcome is None:
            log.warning(f"Reached maximum of {self.max_iterations} iterations, stopping agent loop")
            outcome = RunOutcome.CAPPED

        log.info(f"Run {outcome} after {iterations} iterations")
        return AgentRunResult(state=state, outcome=outcome, iterations=iterations, run_id=run_id)
