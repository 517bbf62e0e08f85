"""Conversation transcript models: messages, log entries and run state.

Everything here is frozen. A run never edits a message or a log entry once it
exists; it builds a new ConversationState with more of them appended.
"""

from datetime import UTC, datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def utc_now_iso() -> str:
    """Current time as an ISO-8601 UTC string with millisecond precision."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class TranscriptModel(BaseModel):
    """Base for transcript models, serialized with camelCase keys."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


# Message parts
class TextPart(TranscriptModel):
    """Plain text content."""

    type: Literal["text"] = "text"
    text: str


class ToolCallPart(TranscriptModel):
    """A tool invocation requested by the model."""

    type: Literal["tool-call"] = "tool-call"
    tool_call_id: str
    tool_name: str
    args: dict[str, Any] = Field(default_factory=dict)


class ToolResultPart(TranscriptModel):
    """The outcome of one tool call, matched to it by tool_call_id."""

    type: Literal["tool-result"] = "tool-result"
    tool_call_id: str
    tool_name: str
    is_error: bool = False
    result: Any = None


MessagePart = Annotated[TextPart | ToolCallPart | ToolResultPart, Field(discriminator="type")]

Role = Literal["user", "assistant", "tool", "system"]


class Message(TranscriptModel):
    """A single turn in the conversation."""

    role: Role
    content: tuple[MessagePart, ...] = ()

    @property
    def tool_calls(self) -> tuple[ToolCallPart, ...]:
        """Tool-call parts of this message, in order."""
        return tuple(part for part in self.content if isinstance(part, ToolCallPart))

    @property
    def tool_results(self) -> tuple[ToolResultPart, ...]:
        """Tool-result parts of this message, in order."""
        return tuple(part for part in self.content if isinstance(part, ToolResultPart))

    @property
    def text(self) -> str:
        """Concatenated text parts."""
        return "".join(part.text for part in self.content if isinstance(part, TextPart))


# Log entries
class _LogEntryBase(TranscriptModel):
    timestamp: str = Field(default_factory=utc_now_iso)


class ThreadCreationLogEntry(_LogEntryBase):
    type: Literal["thread-creation"] = "thread-creation"


class MessageAdditionLogEntry(_LogEntryBase):
    type: Literal["message-addition"] = "message-addition"


class ToolCallsLogEntry(_LogEntryBase):
    type: Literal["tool-calls"] = "tool-calls"
    tool_names: tuple[str, ...] = ()


class Usage(TranscriptModel):
    """Token usage reported by the model provider."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @field_validator("prompt_tokens", "completion_tokens", "total_tokens", mode="before")
    @classmethod
    def default_missing_to_zero(cls, v: Any) -> Any:
        """Providers sometimes omit counts; record those as 0 rather than null."""
        return 0 if v is None else v


class ModelInvocationLogEntry(_LogEntryBase):
    """Telemetry for one successful model call.

    ``timestamp`` equals ``started_at``; ``completed_at`` is taken after the
    response arrived.
    """

    type: Literal["model-invocation"] = "model-invocation"
    started_at: str
    completed_at: str
    finish_reason: str | None = None
    usage: Usage = Field(default_factory=Usage)
    model_id: str | None = None
    provider_metadata: dict[str, Any] | None = None


class ModelErrorLogEntry(_LogEntryBase):
    type: Literal["model-error"] = "model-error"
    error: str


class RunInterruptedLogEntry(_LogEntryBase):
    """The run was stopped by its deadline or a cancel signal."""

    type: Literal["run-interrupted"] = "run-interrupted"
    reason: str


LogEntry = Annotated[
    ThreadCreationLogEntry
    | MessageAdditionLogEntry
    | ToolCallsLogEntry
    | ModelInvocationLogEntry
    | ModelErrorLogEntry
    | RunInterruptedLogEntry,
    Field(discriminator="type"),
]


class ConversationState(TranscriptModel):
    """Messages and log entries threaded through every iteration of a run."""

    messages: tuple[Message, ...] = ()
    log_entries: tuple[LogEntry, ...] = ()

    @property
    def last_message(self) -> Message | None:
        """Most recent message, or None for an empty history."""
        return self.messages[-1] if self.messages else None

    def append(
        self,
        messages: tuple[Message, ...] = (),
        log_entries: tuple[LogEntry, ...] = (),
    ) -> "ConversationState":
        """Return a new state with the given messages and log entries appended."""
        return ConversationState(
            messages=(*self.messages, *messages),
            log_entries=(*self.log_entries, *log_entries),
        )

    def model_invocations(self) -> list[ModelInvocationLogEntry]:
        """All model-invocation entries, for usage reporting."""
        return [entry for entry in self.log_entries if isinstance(entry, ModelInvocationLogEntry)]

    def total_usage(self) -> Usage:
        """Token usage summed over every model invocation of the transcript."""
        invocations = self.model_invocations()
        return Usage(
            prompt_tokens=sum(entry.usage.prompt_tokens for entry in invocations),
            completion_tokens=sum(entry.usage.completion_tokens for entry in invocations),
            total_tokens=sum(entry.usage.total_tokens for entry in invocations),
        )

    def dump_json(self) -> str:
        """Serialize to the transcript JSON format."""
        return self.model_dump_json(by_alias=True)

    @classmethod
    def load_json(cls, data: str | bytes) -> "ConversationState":
        """Deserialize a transcript produced by dump_json."""
        return cls.model_validate_json(data)
