"""API endpoints for the automation assistant."""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Request

from automatron import __version__
from automatron.agent.driver import AgentDriver, AgentRunResult
from automatron.config import AgentConfig
from automatron.errors import ToolDiscoveryError
from automatron.models.api import AgentRunResponse, ContinueThreadRequest, CreateThreadRequest, HealthResponse
from automatron.models.conversation import ConversationState
from automatron.services.threads import continue_thread, create_new_thread
from automatron.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


def get_agent_driver(request: Request) -> AgentDriver:
    """The driver built at startup."""
    driver = getattr(request.app.state, "agent_driver", None)
    if driver is None:
        raise HTTPException(status_code=503, detail="Agent is not configured")
    return driver


def get_agent_config(request: Request) -> AgentConfig:
    return getattr(request.app.state, "agent_config", None) or AgentConfig()


async def _run(driver: AgentDriver, state: ConversationState) -> AgentRunResponse:
    try:
        result: AgentRunResult = await driver.run(state)
    except ToolDiscoveryError as e:
        logger.error(f"Tool discovery failed: {e}")
        raise HTTPException(status_code=502, detail=str(e)) from e

    return AgentRunResponse(
        state=result.state,
        outcome=result.outcome,
        iterations=result.iterations,
        run_id=result.run_id,
    )


@router.post("/agent/threads", response_model=AgentRunResponse, tags=["Agent"])
async def create_thread(
    request: CreateThreadRequest,
    driver: AgentDriver = Depends(get_agent_driver),
    config: AgentConfig = Depends(get_agent_config),
) -> AgentRunResponse:
    """Start a new thread from the user's text and run the agent on it."""
    logger.info(f"Creating thread: {request.text[:50]}...")
    state = create_new_thread(request.text, instructions=config.instructions, timezone=config.timezone)
    return await _run(driver, state)


@router.post("/agent/threads/continue", response_model=AgentRunResponse, tags=["Agent"])
async def continue_existing_thread(
    request: ContinueThreadRequest,
    driver: AgentDriver = Depends(get_agent_driver),
    config: AgentConfig = Depends(get_agent_config),
) -> AgentRunResponse:
    """Append the user's text to a serialized thread and run the agent on it."""
    logger.info(f"Continuing thread with {len(request.state.messages)} messages: {request.text[:50]}...")
    state = continue_thread(request.state, request.text, timezone=config.timezone)
    return await _run(driver, state)


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        version=__version__,
    )
