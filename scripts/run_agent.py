#!/usr/bin/env python3
"""Run the agent once from the command line and print the transcript."""

import argparse
import asyncio
import json
import sys
from pathlib import Path

import httpx
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.syntax import Syntax

from automatron.agent.driver import AgentRunResult
from automatron.config import load_config
from automatron.errors import AutomatronError
from automatron.models.api import AgentRunResponse
from automatron.models.conversation import ConversationState, TextPart, ToolCallPart, ToolResultPart
from automatron.services.factory import build_agent_driver
from automatron.services.threads import continue_thread, create_new_thread
from automatron.utils.logging import setup_logging

ROLE_STYLES = {"user": "cyan", "assistant": "green", "tool": "yellow", "system": "magenta"}


def render_transcript(console: Console, state: ConversationState) -> None:
    """Print every message of the transcript as a panel."""
    for message in state.messages:
        style = ROLE_STYLES.get(message.role, "white")
        for part in message.content:
            if isinstance(part, TextPart):
                body = Markdown(part.text)
                title = message.role
            elif isinstance(part, ToolCallPart):
                body = Syntax(json.dumps(part.args, indent=2, ensure_ascii=False), "json")
                title = f"Tool Call: {part.tool_name}"
            elif isinstance(part, ToolResultPart):
                body = Syntax(json.dumps(part.result, indent=2, ensure_ascii=False, default=str), "json")
                title = f"Tool Result: {part.tool_name}{' (Error)' if part.is_error else ''}"
            else:
                continue
            console.print(Panel(body, title=f"[bold {style}]{title}[/bold {style}]", border_style=style))


def render_summary(console: Console, result: AgentRunResult | AgentRunResponse) -> None:
    usage = result.state.total_usage()
    console.print(
        f"[dim]run {result.run_id}: {result.outcome} after {result.iterations} iterations, "
        f"{usage.prompt_tokens} prompt + {usage.completion_tokens} completion tokens[/dim]"
    )


async def run_local(text: str, previous: ConversationState | None) -> AgentRunResult:
    config = load_config()
    driver = build_agent_driver(config)

    if previous is not None:
        state = continue_thread(previous, text, timezone=config.timezone)
    else:
        state = create_new_thread(text, instructions=config.instructions, timezone=config.timezone)

    return await driver.run(state)


async def run_remote(server: str, text: str, previous: ConversationState | None) -> AgentRunResponse:
    async with httpx.AsyncClient(base_url=server, timeout=300.0) as client:
        if previous is not None:
            payload = {"state": json.loads(previous.dump_json()), "text": text}
            response = await client.post("/agent/threads/continue", json=payload)
        else:
            response = await client.post("/agent/threads", json={"text": text})
        response.raise_for_status()
        return AgentRunResponse.model_validate(response.json())


async def run(text: str, state_file: Path | None, save_to: Path | None, server: str | None = None) -> int:
    console = Console()
    previous = ConversationState.load_json(state_file.read_text()) if state_file is not None else None

    with console.status("Thinking..."):
        if server:
            try:
                result = await run_remote(server, text, previous)
            except httpx.HTTPError as e:
                console.print(f"[red]Request to {server} failed: {e}[/red]")
                return 1
        else:
            result = await run_local(text, previous)

    render_transcript(console, result.state)
    render_summary(console, result)

    if save_to is not None:
        save_to.write_text(result.state.dump_json())
        console.print(f"[dim]Transcript saved to {save_to}[/dim]")

    return 0


def main() -> None:
    """Main entry point for the agent CLI."""
    parser = argparse.ArgumentParser(description="Run the automatron agent on a message.")
    parser.add_argument("-t", "--text", required=True, help="Input text for the agent")
    parser.add_argument("--state", type=Path, help="Continue the transcript stored in this JSON file")
    parser.add_argument("--save", type=Path, help="Write the final transcript to this JSON file")
    parser.add_argument("--server", help="Base URL of a running automatron service, e.g. http://localhost:8000")
    args = parser.parse_args()

    setup_logging()
    try:
        sys.exit(asyncio.run(run(args.text, args.state, args.save, args.server)))
    except AutomatronError as e:
        Console(stderr=True).print(f"[red]{e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
