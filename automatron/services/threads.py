"""Thread initiation and continuation."""

import re
from datetime import UTC, datetime
from zoneinfo import ZoneInfo

from automatron.models.conversation import (
    ConversationState,
    Message,
    MessageAdditionLogEntry,
    TextPart,
    ThreadCreationLogEntry,
)

DEFAULT_TIMEZONE = "Asia/Bangkok"

AGENT_INSTRUCTIONS = """<agent_instructions>
You are automatron, a personal assistant that helps the user with their tasks.

- Be polite, concise and proactive.
- Do not make assumptions about the user or their tasks; ask when unsure.
- Use the available tools to look things up or take actions instead of guessing.
- When a tool returns an error, explain what went wrong and decide whether to try another approach.
- Every user message starts with a <user_message_time> tag giving the time it was sent.
</agent_instructions>"""

_MESSAGE_TIME_PATTERN = re.compile(r"<user_message_time>(.*?)</user_message_time>")


def format_message_time(moment: datetime, timezone: str = DEFAULT_TIMEZONE) -> str:
    """Render the timestamp tag that prefixes every user turn."""
    local = moment.astimezone(ZoneInfo(timezone))
    return f"<user_message_time>{local.isoformat(timespec='seconds')}</user_message_time>"


def extract_message_time(message: Message) -> datetime | None:
    """Parse the timestamp tag back out of a user message, if present."""
    match = _MESSAGE_TIME_PATTERN.search(message.text)
    if not match:
        return None
    try:
        return datetime.fromisoformat(match.group(1))
    except ValueError:
        return None


def create_new_thread(
    text: str,
    instructions: str | None = None,
    timezone: str = DEFAULT_TIMEZONE,
    now: datetime | None = None,
) -> ConversationState:
    """Start a conversation from the user's first message.

    The message is wrapped in the instruction template and tagged with the
    time it was sent.
    """
    moment = now or datetime.now(UTC)
    prompt = "\n\n".join(
        [
            instructions if instructions is not None else AGENT_INSTRUCTIONS,
            f"{format_message_time(moment, timezone)}\n{text}",
        ]
    ).strip()

    return ConversationState(
        messages=(Message(role="user", content=(TextPart(text=prompt),)),),
        log_entries=(ThreadCreationLogEntry(),),
    )


def continue_thread(
    state: ConversationState,
    text: str,
    timezone: str = DEFAULT_TIMEZONE,
    now: datetime | None = None,
) -> ConversationState:
    """Append a new tagged user message to an existing conversation."""
    moment = now or datetime.now(UTC)
    formatted = f"{format_message_time(moment, timezone)}\n{text}".strip()

    return state.append(
        messages=(Message(role="user", content=(TextPart(text=formatted),)),),
        log_entries=(MessageAdditionLogEntry(),),
    )
