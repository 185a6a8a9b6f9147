"""Single-task example: a workspace assistant with file tools.

Demonstrates:
- Defining tool handlers with @tool
- Approving tool use from the terminal
- Running the multi-turn loop with Runner

Usage:
    Add OPENAI_API_KEY=sk-... to .env, then:
    uv run --env-file=.env examples/workspace_agent.py
"""

import asyncio
import os
import uuid
from pathlib import Path

from skein import (
    Approval,
    Context,
    Runner,
    Session,
    Settings,
    ToolName,
    ToolParams,
    ToolRegistry,
    configure_logging,
    tool,
)
from skein.message import Message, MessageRole
from skein.provider import OpenAIProvider


class TerminalPresenter:
    """Prints complete blocks and asks on stdin before every tool."""

    async def say(self, kind, text=None, partial=False):
        if partial or not text:
            return
        print(f"[{kind}] {text}")

    async def ask(self, kind, text=None, partial=False):
        answer = await asyncio.to_thread(input, f"Allow {kind} {text}? [y/N/feedback] ")
        answer = answer.strip()
        if answer.lower() in ("y", "yes"):
            return Approval(approved=True)
        return Approval(approved=False, feedback=answer or None)


def _resolve(context: Context, path: str) -> Path:
    return Path(context.cwd) / path


def _read_paths(params: ToolParams) -> list[str]:
    # <args><item><path>...</path></item>...</args>, or a bare <path>.
    args = params.get("args")
    if isinstance(args, ToolParams):
        return [item.get("path") for item in args.get_all("item") if isinstance(item, ToolParams)]
    path = params.get("path")
    return [path] if path else []


@tool(ToolName.READ_FILE)
async def read_file(context, invocation, approve, on_error, on_result, strip_tags):
    paths = _read_paths(invocation.params)
    if not await approve("tool", f"read {', '.join(paths)}"):
        return
    sections = []
    for path in paths:
        try:
            lines = _resolve(context, path).read_text().splitlines()
        except OSError as e:
            await on_error("reading file", e)
            return
        numbered = "\n".join(f"{i} | {line}" for i, line in enumerate(lines, 1))
        sections.append(f"<file><path>{path}</path>\n{numbered}\n</file>")
    on_result("\n".join(sections))


@tool(ToolName.LIST_FILES)
async def list_files(context, invocation, approve, on_error, on_result, strip_tags):
    path = invocation.params.get("path") or "."
    if not await approve("tool", f"list {path}"):
        return
    try:
        entries = sorted(p.name + ("/" if p.is_dir() else "") for p in _resolve(context, path).iterdir())
    except OSError as e:
        await on_error("listing files", e)
        return
    on_result("\n".join(entries) or "(empty)")


@tool(ToolName.WRITE_TO_FILE)
async def write_to_file(context, invocation, approve, on_error, on_result, strip_tags):
    path = invocation.params.get("path")
    content = strip_tags("content", invocation.params.get("content") or "")
    if not await approve("tool", f"write {len(content)} characters to {path}"):
        return
    try:
        target = _resolve(context, path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content)
    except OSError as e:
        await on_error("writing file", e)
        return
    on_result(f"Wrote {path}.")


@tool(ToolName.ATTEMPT_COMPLETION)
async def attempt_completion(context, invocation, approve, on_error, on_result, strip_tags):
    result = invocation.params.get("result") or ""
    await context.say("completion_result", result)
    on_result(result)


SYSTEM_PROMPT = (
    "You are a careful assistant working inside the user's workspace. "
    "Use exactly one tool per message. Read files before changing them, "
    "and call attempt_completion once the task is done."
)


async def main():
    settings = Settings.from_env()
    configure_logging(settings)

    context = Context(
        presenter=TerminalPresenter(),
        registry=ToolRegistry([read_file, list_files, write_to_file, attempt_completion]),
        settings=settings,
        cwd=os.getcwd(),
    )
    provider = OpenAIProvider()
    runner = Runner()
    session = Session(session_id=str(uuid.uuid4()))

    print("Workspace Assistant\n")

    while True:
        try:
            user_input = input("You: ")
        except (KeyboardInterrupt, EOFError):
            print("\nGoodbye!")
            break

        session.transcript.append(Message(role=MessageRole.USER, content=user_input))
        result = await runner.run(context, session, provider, "gpt-4o-mini", SYSTEM_PROMPT)
        print(f"({result.stop_reason} after {len(result.turns)} turns)\n")


if __name__ == "__main__":
    asyncio.run(main())
