"""Presentation cursor and tool dispatcher.

``present_assistant_message`` walks a turn's block list exactly once per
block. Stream updates may call it at any time; while a pass is running,
further calls only flag a rerun, so bursts of updates collapse into one
follow-up pass and blocks are never presented out of order.

At most one tool runs per turn. Once a tool has run (or was rejected by
the user), every later block of the turn is skipped but still consumed so
the turn can finish.
"""

import copy
import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

from skein.blocks import (
    ContentBlock,
    StructuredToolInvocation,
    TagToolInvocation,
    TextBlock,
    is_tool_block,
)
from skein.bridge import bridge_structured_call, to_tool_result
from skein.context import Context
from skein.exceptions import BridgeError, ToolValidationError, TurnAbortedError
from skein.instrumentation import record_error, record_outcome, tool_span
from skein.message import OutboundContent, TextContent
from skein.parser import clean_display_text, remove_closing_tag
from skein.tools import BROWSER_TOOL, Tool
from skein.validation import validate_structured_call

logger = logging.getLogger(__name__)


def new_turn_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass
class ToolOutcome:
    """Result of presenting one tool block."""

    ref: str
    result_text: str
    is_error: bool = False
    tool_name: str = ""


@dataclass
class TurnCursor:
    """Per-turn presentation state, owned by the dispatcher.

    Only :func:`present_assistant_message` touches ``index`` and
    ``locked``. The turn driver replaces ``blocks`` as the stream grows and
    sets ``stream_complete`` once it has ended.
    """

    turn_id: str = field(default_factory=new_turn_id)
    blocks: list[ContentBlock] = field(default_factory=list)
    index: int = 0
    locked: bool = False
    pending_rerun: bool = False
    stream_complete: bool = False
    outbound_ready: bool = False
    did_reject_tool: bool = False
    did_already_use_tool: bool = False
    user_message_content: list[OutboundContent] = field(default_factory=list)
    outcomes: list[ToolOutcome] = field(default_factory=list)

    @property
    def suppressed(self) -> bool:
        return self.did_reject_tool or self.did_already_use_tool

    def update_blocks(self, blocks: list[ContentBlock]) -> None:
        self.blocks[:] = blocks

    def add_text(self, text: str) -> None:
        self.user_message_content.append(TextContent(text=text))

    def add_outcome(self, outcome: ToolOutcome) -> None:
        self.outcomes.append(outcome)
        self.user_message_content.append(
            to_tool_result(outcome.ref, outcome.result_text, outcome.is_error)
        )


async def present_assistant_message(context: Context, cursor: TurnCursor) -> None:
    """Present every block that is ready, starting at ``cursor.index``.

    Raises:
        TurnAbortedError: The task's abort flag is set.
    """
    if context.abort:
        raise TurnAbortedError(context.task_id, cursor.turn_id)

    if cursor.locked:
        cursor.pending_rerun = True
        return

    cursor.locked = True
    try:
        while True:
            cursor.pending_rerun = False
            if context.abort:
                raise TurnAbortedError(context.task_id, cursor.turn_id)

            if cursor.index >= len(cursor.blocks):
                if cursor.stream_complete:
                    cursor.outbound_ready = True
                break

            # Later stream updates mutate the live block, not this copy.
            block = copy.deepcopy(cursor.blocks[cursor.index])
            await _present_block(context, cursor, block)

            if not block.partial or cursor.suppressed:
                cursor.index += 1
                continue
            if not cursor.pending_rerun:
                break
    finally:
        cursor.locked = False


async def _present_block(context: Context, cursor: TurnCursor, block: ContentBlock) -> None:
    try:
        if isinstance(block, TextBlock):
            await _present_text(context, cursor, block)
        elif is_tool_block(block):
            await _present_tool(context, cursor, block)
        else:
            logger.warning(f"Unknown block type {type(block).__name__}, skipping")
    except TurnAbortedError:
        raise
    except Exception as e:
        logger.exception(f"Failed to present block {cursor.index} of turn {cursor.turn_id}")
        if is_tool_block(block) and not block.partial and not cursor.suppressed:
            cursor.add_outcome(ToolOutcome(
                ref=_block_ref(block, cursor.index),
                result_text=f"Unexpected error: {e}",
                is_error=True,
                tool_name=block.name,
            ))
            cursor.did_already_use_tool = True


async def _present_text(context: Context, cursor: TurnCursor, block: TextBlock) -> None:
    if cursor.suppressed:
        return
    await context.say("text", clean_display_text(block.content), partial=block.partial)


def _block_ref(block: ContentBlock, index: int) -> str:
    if isinstance(block, StructuredToolInvocation):
        return block.call_id
    if isinstance(block, TagToolInvocation) and block.call_id:
        return block.call_id
    return f"{block.name}#{index}"


def _preview_params(block: ContentBlock) -> dict[str, Any]:
    if isinstance(block, TagToolInvocation):
        return block.params.to_dict()
    if isinstance(block, StructuredToolInvocation) and isinstance(block.arguments, dict):
        return block.arguments
    return {}


async def _present_tool(context: Context, cursor: TurnCursor, block: ContentBlock) -> None:
    if cursor.suppressed:
        logger.debug(
            f"Skipping {block.name} in turn {cursor.turn_id}: "
            "a tool was already used or rejected"
        )
        if cursor.did_reject_tool:
            cursor.add_text(f"Skipping tool [{block.name}] due to user rejecting a previous tool.")
        else:
            cursor.add_text(
                f"Tool [{block.name}] was not executed because a tool has already "
                "been used in this message. Only one tool may be used per message."
            )
        return

    if block.partial:
        preview = json.dumps({"tool": block.name, "params": _preview_params(block)})
        await context.say("tool", preview, partial=True)
        return

    ref = _block_ref(block, cursor.index)

    if block.name != BROWSER_TOOL.value:
        await context.close_browser()
    context.record_tool_usage(block.name)

    try:
        if isinstance(block, StructuredToolInvocation):
            validate_structured_call(block)
            invocation = bridge_structured_call(block)
        else:
            invocation = block
        context.validate_tool_use(invocation.name, invocation.params.to_dict())
    except ToolValidationError as e:
        await _fail_validation(context, cursor, ref, block.name, e)
        return
    except BridgeError as e:
        logger.error(f"Bridge failure for {ref}: {e}")
        cursor.add_outcome(ToolOutcome(
            ref=ref, result_text=str(e), is_error=True, tool_name=block.name,
        ))
        cursor.did_already_use_tool = True
        return

    handler = context.registry.get(invocation.name)
    if handler is None:
        logger.warning(f"Tool not found: {invocation.name}")
        cursor.add_outcome(ToolOutcome(
            ref=ref,
            result_text=(
                f"Error: unknown tool '{invocation.name}'. "
                f"Available tools: {', '.join(context.registry.names()) or 'none'}"
            ),
            is_error=True,
            tool_name=invocation.name,
        ))
        cursor.did_already_use_tool = True
        return

    outcome = await _run_tool(context, cursor, handler, invocation, ref)
    cursor.add_outcome(outcome)
    cursor.did_already_use_tool = True


async def _fail_validation(
    context: Context, cursor: TurnCursor, ref: str, name: str, error: ToolValidationError,
) -> None:
    context.consecutive_mistake_count += 1
    logger.info(f"Rejected {name} ({ref}): {error}")
    cursor.add_outcome(ToolOutcome(
        ref=ref, result_text=f"Error: {error}", is_error=True, tool_name=name,
    ))
    cursor.did_already_use_tool = True
    await context.say("error", f"{name}: {error}")


class _ResultCollector:
    """Keeps the first result a handler reports."""

    def __init__(self, ref: str, tool_name: str):
        self.ref = ref
        self.tool_name = tool_name
        self.text: str | None = None
        self.is_error = False

    def set(self, text: str, is_error: bool = False) -> None:
        if self.text is not None:
            logger.warning(f"Tool {self.ref} reported more than one result, keeping the first")
            return
        self.text = text
        self.is_error = is_error

    def outcome(self) -> ToolOutcome:
        return ToolOutcome(
            ref=self.ref,
            result_text=self.text or "",
            is_error=self.is_error,
            tool_name=self.tool_name,
        )


def _content_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for item in content:
            if isinstance(item, dict):
                parts.append(str(item.get("text", "")))
            else:
                parts.append(str(item))
        return "\n".join(p for p in parts if p)
    return str(content)


async def _run_tool(
    context: Context,
    cursor: TurnCursor,
    handler: Tool,
    invocation: TagToolInvocation,
    ref: str,
) -> ToolOutcome:
    collector = _ResultCollector(ref, invocation.name)

    async def approve(kind: str = "tool", message: str | None = None) -> bool:
        approval = await context.ask(kind, message)
        if not approval.approved:
            cursor.did_reject_tool = True
            text = "The user denied this operation."
            if approval.feedback:
                text += f"\n<feedback>\n{approval.feedback}\n</feedback>"
            collector.set(text)
            return False
        if approval.feedback:
            await context.say("user_feedback", approval.feedback)
        return True

    async def on_error(action: str, error: BaseException) -> None:
        message = f"Error {action}: {error}"
        logger.error(message)
        await context.say("error", message)
        collector.set(message, is_error=True)

    def on_result(content: Any) -> None:
        collector.set(_content_text(content))

    def strip_tags(tag: str, text: str) -> str:
        return remove_closing_tag(tag, text, invocation.partial)

    logger.info(f"Calling {invocation.name} ({ref}) with {invocation.params.to_dict()}")
    async with tool_span(invocation.name, ref) as span:
        try:
            await handler(context, invocation, approve, on_error, on_result, strip_tags)
        except Exception as e:
            logger.error(f"Tool {invocation.name} raised: {e}")
            record_error(span, e)
            return ToolOutcome(
                ref=ref,
                result_text=f"Tool execution failed: {e}",
                is_error=True,
                tool_name=invocation.name,
            )
        outcome = collector.outcome()
        record_outcome(span, outcome.is_error)
    return outcome
