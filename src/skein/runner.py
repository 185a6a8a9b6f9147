import asyncio
import logging
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass, field

from skein.blocks import ContentBlock, StructuredToolInvocation, mark_complete
from skein.context import Context
from skein.dispatcher import ToolOutcome, TurnCursor, new_turn_id, present_assistant_message
from skein.events import RawResponseEvent, RunCompleteEvent, RunItemEvent, StreamEvent
from skein.exceptions import ProviderStreamError, TurnAbortedError
from skein.instrumentation import completion_span, record_usage, turn_span
from skein.message import (
    Message,
    MessageRole,
    TextContent,
    ToolCallRequestMessage,
    ToolCallResultMessage,
)
from skein.parser import parse_assistant_message
from skein.provider import ModelProvider
from skein.session import Session
from skein.streaming import (
    ErrorChunk,
    ReasoningChunk,
    StreamChunk,
    TextChunk,
    ToolCallAccumulator,
    ToolUseDeltaChunk,
    ToolUseStartChunk,
    ToolUseStopChunk,
    UsageChunk,
)
from skein.tool_schemas import openai_tool_schemas
from skein.tools import ToolName
from skein.validation import sanitize_tool_name

logger = logging.getLogger(__name__)


@dataclass
class TurnResult:
    """Everything one assistant turn produced."""

    turn_id: str
    assistant_text: str = ""
    reasoning: str = ""
    blocks: list[ContentBlock] = field(default_factory=list)
    outcomes: list[ToolOutcome] = field(default_factory=list)
    usage: UsageChunk = field(default_factory=UsageChunk)
    did_reject_tool: bool = False

    @property
    def used_tool(self) -> bool:
        return bool(self.outcomes)

    @property
    def completed_task(self) -> bool:
        return any(
            o.tool_name == ToolName.ATTEMPT_COMPLETION.value and not o.is_error
            for o in self.outcomes
        )


@dataclass
class RunResult:
    """The result of a single Runner.run() invocation.

    ``stop_reason`` is one of ``"completed"``, ``"no_tool"``,
    ``"too_many_mistakes"``, ``"max_turns"``.
    """

    last_message: Message | None
    stop_reason: str
    turns: list[TurnResult] = field(default_factory=list)


@dataclass
class _Segment:
    """A stretch of the stream: tag-encoded text or one structured call."""

    text: str = ""
    call_id: str | None = None


class Runner:
    """Drives assistant turns through the parser, accumulator and dispatcher.

    ``iter_turn()`` consumes one provider stream. ``iter()`` is the
    multi-turn loop: it asks the provider for a turn, feeds the tool results
    back through the session transcript, and stops when the model completes
    the task, answers without using a tool, keeps making invalid tool calls,
    or runs out of turns. ``run()`` drains ``iter()``.

    Args:
        max_turns: Maximum number of provider round-trips. Defaults to the
            context's ``settings.max_turns``.
    """

    def __init__(self, max_turns: int | None = None):
        self.max_turns = max_turns

    async def run(
        self,
        context: Context,
        session: Session,
        provider: ModelProvider,
        model: str,
        system_prompt: str | None = None,
    ) -> RunResult:
        """Run turns until the task stops; returns the final result."""
        result: RunResult | None = None
        async for event in self.iter(context, session, provider, model, system_prompt):
            if isinstance(event, RunCompleteEvent):
                result = event.result
        if result is None:
            raise RuntimeError("iter() ended without emitting RunCompleteEvent")
        return result

    async def iter(
        self,
        context: Context,
        session: Session,
        provider: ModelProvider,
        model: str,
        system_prompt: str | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Run turns, yielding events as execution proceeds."""
        max_turns = self.max_turns or context.settings.max_turns
        tools = openai_tool_schemas(context.registry.names())
        turns: list[TurnResult] = []
        stop_reason = "max_turns"

        for _turn in range(max_turns):
            turn = TurnResult(turn_id=new_turn_id())
            async with completion_span(provider.system, model) as span:
                stream = provider.stream(
                    model=model,
                    messages=session.transcript,
                    tools=tools,
                    system_prompt=system_prompt,
                )
                async for event in self._stream_turn(context, session, stream, turn):
                    yield event
                record_usage(span, turn.usage)
            turns.append(turn)
            yield RunItemEvent(name="turn", data={
                "turn_id": turn.turn_id,
                "tools": [o.tool_name for o in turn.outcomes],
            })

            if turn.completed_task:
                stop_reason = "completed"
                break
            if not turn.used_tool:
                stop_reason = "no_tool"
                break
            if any(not o.is_error for o in turn.outcomes):
                context.consecutive_mistake_count = 0
            if context.consecutive_mistake_count >= context.settings.max_consecutive_mistakes:
                logger.warning(
                    f"Task {context.task_id} stopped after "
                    f"{context.consecutive_mistake_count} consecutive mistakes"
                )
                stop_reason = "too_many_mistakes"
                break

        yield RunCompleteEvent(result=RunResult(
            last_message=session.last(),
            stop_reason=stop_reason,
            turns=turns,
        ))

    async def iter_turn(
        self,
        context: Context,
        session: Session,
        stream: AsyncIterable[StreamChunk],
    ) -> AsyncIterator[StreamEvent]:
        """Consume one provider stream; the last event carries a TurnResult."""
        turn = TurnResult(turn_id=new_turn_id())
        async for event in self._stream_turn(context, session, stream, turn):
            yield event
        yield RunCompleteEvent(result=turn)

    async def run_turn(
        self,
        context: Context,
        session: Session,
        stream: AsyncIterable[StreamChunk],
    ) -> TurnResult:
        result: TurnResult | None = None
        async for event in self.iter_turn(context, session, stream):
            if isinstance(event, RunCompleteEvent):
                result = event.result
        if result is None:
            raise RuntimeError("iter_turn() ended without emitting RunCompleteEvent")
        return result

    # ------------------------------------------------------------------
    # Turn driving
    # ------------------------------------------------------------------

    async def _stream_turn(
        self,
        context: Context,
        session: Session,
        stream: AsyncIterable[StreamChunk],
        turn: TurnResult,
    ) -> AsyncIterator[StreamEvent]:
        cursor = TurnCursor(turn_id=turn.turn_id)
        acc = ToolCallAccumulator()
        segments: list[_Segment] = []
        live: dict[str, StructuredToolInvocation] = {}
        tasks: list[asyncio.Task] = []

        def schedule() -> None:
            cursor.update_blocks(_build_blocks(segments, live))
            tasks.append(asyncio.create_task(present_assistant_message(context, cursor)))

        async with turn_span(context.task_id, cursor.turn_id):
            try:
                async for chunk in stream:
                    if context.abort:
                        raise TurnAbortedError(context.task_id, cursor.turn_id)

                    if isinstance(chunk, TextChunk):
                        if not chunk.text:
                            continue
                        if not segments or segments[-1].call_id is not None:
                            segments.append(_Segment())
                        segments[-1].text += chunk.text
                        turn.assistant_text += chunk.text
                        yield RawResponseEvent(content=chunk.text)
                        schedule()

                    elif isinstance(chunk, ReasoningChunk):
                        turn.reasoning += chunk.text
                        await context.say("reasoning", turn.reasoning, partial=True)
                        yield RunItemEvent(name="reasoning", data={"text": chunk.text})

                    elif isinstance(chunk, UsageChunk):
                        _add_usage(turn.usage, chunk)
                        yield RunItemEvent(name="usage", data={
                            "input_tokens": chunk.input_tokens,
                            "output_tokens": chunk.output_tokens,
                            "total_cost": chunk.total_cost,
                        })

                    elif isinstance(chunk, ErrorChunk):
                        raise ProviderStreamError(chunk.error, chunk.message)

                    elif isinstance(chunk, ToolUseStartChunk):
                        if not acc.start(chunk.id, chunk.name, chunk.input):
                            continue
                        live[chunk.id] = StructuredToolInvocation(
                            call_id=chunk.id,
                            name=sanitize_tool_name(chunk.name),
                            arguments=acc.probe(chunk.id) or {},
                        )
                        segments.append(_Segment(call_id=chunk.id))
                        schedule()

                    elif isinstance(chunk, ToolUseDeltaChunk):
                        target = chunk.id if chunk.id is not None else acc.current_call_id
                        if not acc.delta(chunk.id, chunk.partial_json):
                            continue
                        probed = acc.probe(target)
                        if isinstance(probed, dict) and target in live:
                            live[target].arguments = probed
                            schedule()

                    elif isinstance(chunk, ToolUseStopChunk):
                        invocation = acc.complete(chunk.id)
                        if invocation is None or chunk.id not in live:
                            continue
                        _finalize(live[chunk.id], invocation)
                        yield RunItemEvent(name="tool_call", data={
                            "tool_name": invocation.name,
                            "call_id": invocation.call_id,
                            "arguments": invocation.arguments,
                        })
                        schedule()

                    else:
                        logger.warning(f"Unknown stream chunk {type(chunk).__name__}, skipping")

                for call_id in acc.pending_ids():
                    invocation = acc.complete(call_id)
                    block = live.get(call_id)
                    if block is None:
                        continue
                    if invocation is not None:
                        _finalize(block, invocation)
                    else:
                        logger.warning(f"Tool call {call_id} ended with incomplete arguments")
                        block.partial = False

                blocks = _build_blocks(segments, live)
                mark_complete(blocks)
                cursor.update_blocks(blocks)
                cursor.stream_complete = True
                tasks.append(asyncio.create_task(present_assistant_message(context, cursor)))
                await _drain(tasks)
                if not cursor.outbound_ready:
                    await present_assistant_message(context, cursor)
            finally:
                for task in tasks:
                    if not task.done():
                        task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)

        turn.blocks = list(cursor.blocks)
        turn.outcomes = list(cursor.outcomes)
        turn.did_reject_tool = cursor.did_reject_tool
        for outcome in turn.outcomes:
            yield RunItemEvent(name="tool_result", data={
                "tool_name": outcome.tool_name,
                "ref": outcome.ref,
                "output": outcome.result_text,
                "is_error": outcome.is_error,
            })
        _record_turn(session, turn, cursor, live)


def _build_blocks(
    segments: list[_Segment], live: dict[str, StructuredToolInvocation],
) -> list[ContentBlock]:
    blocks: list[ContentBlock] = []
    for i, segment in enumerate(segments):
        if segment.call_id is not None:
            blocks.append(live[segment.call_id])
            continue
        parsed = parse_assistant_message(segment.text)
        # Text followed by a structured call can no longer grow.
        if i < len(segments) - 1:
            mark_complete(parsed)
        blocks.extend(parsed)
    return blocks


def _finalize(block: StructuredToolInvocation, invocation: StructuredToolInvocation) -> None:
    block.arguments = invocation.arguments
    block.completed = True
    block.partial = False


def _add_usage(total: UsageChunk, chunk: UsageChunk) -> None:
    total.input_tokens += chunk.input_tokens
    total.output_tokens += chunk.output_tokens
    for name in ("cache_write_tokens", "cache_read_tokens", "reasoning_tokens", "total_cost"):
        value = getattr(chunk, name)
        if value is not None:
            setattr(total, name, (getattr(total, name) or 0) + value)


async def _drain(tasks: list[asyncio.Task]) -> None:
    """Wait for every presentation pass, re-raising an abort if one hit it."""
    # Passes scheduled while draining are appended to the same list.
    done = 0
    while done < len(tasks):
        batch = tasks[done:]
        done = len(tasks)
        results = await asyncio.gather(*batch, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                raise result


def _record_turn(
    session: Session,
    turn: TurnResult,
    cursor: TurnCursor,
    live: dict[str, StructuredToolInvocation],
) -> None:
    structured = {o.ref: o for o in cursor.outcomes if o.ref in live}
    if structured:
        session.transcript.append(ToolCallRequestMessage(
            role=MessageRole.ASSISTANT,
            content=turn.assistant_text,
            tool_calls=[live[ref] for ref in structured],
        ))
        for ref, outcome in structured.items():
            session.transcript.append(ToolCallResultMessage(
                role=MessageRole.TOOL,
                content=outcome.result_text,
                tool_call_id=ref,
                is_error=outcome.is_error,
            ))
    elif turn.assistant_text:
        session.transcript.append(Message(role=MessageRole.ASSISTANT, content=turn.assistant_text))

    feedback: list[str] = []
    for item in cursor.user_message_content:
        if isinstance(item, TextContent):
            feedback.append(item.text)
        elif item.tool_use_id not in structured:
            label = "Error" if item.is_error else "Result"
            feedback.append(f"[{item.tool_use_id}] {label}:\n{item.content}")
    if feedback:
        session.transcript.append(Message(role=MessageRole.USER, content="\n\n".join(feedback)))
