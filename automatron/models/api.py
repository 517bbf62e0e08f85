"""Request and response models for the HTTP API."""

from datetime import datetime

from pydantic import BaseModel, Field

from automatron.agent.driver import RunOutcome
from automatron.models.conversation import ConversationState, TranscriptModel


class CreateThreadRequest(BaseModel):
    """Request model for starting a new thread."""

    text: str = Field(..., min_length=1)


class ContinueThreadRequest(TranscriptModel):
    """Request model for continuing a serialized thread."""

    state: ConversationState
    text: str = Field(..., min_length=1)


class AgentRunResponse(TranscriptModel):
    """Final state of an agent run."""

    state: ConversationState
    outcome: RunOutcome
    iterations: int
    run_id: str


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    timestamp: datetime
    version: str
