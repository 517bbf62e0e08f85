"""Agentic tool-use loop."""

from automatron.agent.driver import AgentDriver, AgentRunResult, RunOutcome
from automatron.agent.iteration import IterationResult, run_iteration

__all__ = ["AgentDriver", "AgentRunResult", "IterationResult", "RunOutcome", "run_iteration"]
