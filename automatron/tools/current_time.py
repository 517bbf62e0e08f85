"""Current time tool."""

from datetime import UTC, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field

from automatron.tools.registry import LocalTool


class CurrentTimeInput(BaseModel):
    """Input schema for the current time tool."""

    timezone: str | None = Field(
        default=None,
        description="IANA time zone name, e.g. Asia/Bangkok. Defaults to the assistant's zone.",
        examples=["Asia/Bangkok", "Europe/London"],
    )


def create_current_time_tool(default_timezone: str = "Asia/Bangkok", clock=None) -> LocalTool:
    """Build the get_current_time tool.

    Args:
        default_timezone: Zone used when the model does not name one
        clock: Callable returning an aware datetime, for tests
    """
    now = clock or (lambda: datetime.now(UTC))

    async def get_current_time(params: CurrentTimeInput) -> str:  # noqa: RUF029
        zone_name = params.timezone or default_timezone
        try:
            zone = ZoneInfo(zone_name)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown time zone: {zone_name}") from e
        local = now().astimezone(zone)
        return f"{local.strftime('%A')}, {local.isoformat(timespec='seconds')} ({zone_name})"

    return LocalTool(
        name="get_current_time",
        description=(
            "Get the current date and time. Use this whenever the user refers to relative dates "
            "such as 'today' or 'next Monday'."
        ),
        input_schema_class=CurrentTimeInput,
        handler=get_current_time,
    )
