"""Streaming primitives for provider responses.

Providers yield the chunk dataclasses below. The
:class:`ToolCallAccumulator` rebuilds structured tool calls whose argument
JSON arrives in fragments between a start and a stop event.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Union

from skein.blocks import StructuredToolInvocation
from skein.validation import sanitize_tool_name, validate_tool_input, validate_tool_use_id

logger = logging.getLogger(__name__)


@dataclass
class TextChunk:
    """Token-level text delta."""

    text: str = ""


@dataclass
class ReasoningChunk:
    """Reasoning text, shown to the user but never parsed for tools."""

    text: str = ""


@dataclass
class UsageChunk:
    input_tokens: int = 0
    output_tokens: int = 0
    cache_write_tokens: int | None = None
    cache_read_tokens: int | None = None
    reasoning_tokens: int | None = None
    total_cost: float | None = None


@dataclass
class ErrorChunk:
    """The provider reported a failure in the middle of the stream."""

    error: str = ""
    message: str = ""


@dataclass
class ToolUseStartChunk:
    id: str
    name: str
    input: dict = field(default_factory=dict)


@dataclass
class ToolUseDeltaChunk:
    """Raw JSON fragment. ``id`` may be omitted by providers that only
    stream one tool call at a time; the fragment then goes to the most
    recently started call."""

    partial_json: str
    id: str | None = None


@dataclass
class ToolUseStopChunk:
    id: str


StreamChunk = Union[
    TextChunk, ReasoningChunk, UsageChunk, ErrorChunk,
    ToolUseStartChunk, ToolUseDeltaChunk, ToolUseStopChunk,
]


def try_parse_json(text: str) -> Any | None:
    """Speculative parse: the decoded value, or ``None`` if *text* is not
    (yet) valid JSON. Never raises."""
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None


@dataclass
class PendingToolCall:
    """A structured tool call whose arguments are still arriving."""

    call_id: str
    name: str
    raw_arguments: str = ""
    completed: bool = False
    arguments: Any = None


class ToolCallAccumulator:
    """Assembles complete tool calls from start/delta/stop events."""

    def __init__(self) -> None:
        self._pending: dict[str, PendingToolCall] = {}
        self._seen_ids: set[str] = set()
        self._current_id: str | None = None

    @property
    def current_call_id(self) -> str | None:
        return self._current_id

    def start(self, call_id: str, name: str, initial_arguments: Any = None) -> bool:
        """Register a new call. Returns False (and logs) if it was rejected."""
        if initial_arguments is None:
            initial_arguments = {}
        if not validate_tool_use_id(call_id):
            logger.error(f"Invalid tool use id: {call_id!r}")
            return False
        if not validate_tool_input(initial_arguments):
            logger.error(f"Invalid tool input for {call_id}: {initial_arguments!r}")
            return False
        if call_id in self._seen_ids:
            logger.error(f"Tool use id {call_id} was already used in this turn")
            return False

        sanitized = sanitize_tool_name(name)
        if sanitized != name:
            logger.warning(f"Tool name sanitized from '{name}' to '{sanitized}'")

        # Providers may open with {} and stream every argument as deltas.
        seed = json.dumps(initial_arguments, separators=(",", ":")) if initial_arguments else ""
        self._pending[call_id] = PendingToolCall(
            call_id=call_id, name=sanitized, raw_arguments=seed,
        )
        self._seen_ids.add(call_id)
        self._current_id = call_id
        return True

    def delta(self, call_id: str | None, fragment: str) -> bool:
        """Append a raw fragment to a pending call. Unknown ids are ignored."""
        target = call_id if call_id is not None else self._current_id
        if target is None:
            logger.warning("Received tool use delta without an active tool use")
            return False
        pending = self._pending.get(target)
        if pending is None:
            logger.warning(f"Tool use {target} not found, dropping delta")
            return False
        if pending.completed:
            logger.warning(f"Tool use {target} already completed, dropping delta")
            return False
        pending.raw_arguments += fragment
        return True

    def probe(self, call_id: str | None = None) -> Any | None:
        """Best-effort parse of the arguments received so far.

        Pure: a failed parse leaves the accumulated text untouched.
        """
        target = call_id if call_id is not None else self._current_id
        pending = self._pending.get(target) if target is not None else None
        if pending is None:
            return None
        if pending.completed:
            return pending.arguments
        return try_parse_json(pending.raw_arguments or "{}")

    def complete(self, call_id: str | None = None) -> StructuredToolInvocation | None:
        """Finalize a call after its stop event.

        Returns ``None`` when the call is unknown or its arguments do not
        parse to a JSON object; in the latter case the call stays
        registered and pending so the caller can decide what to do.
        """
        target = call_id if call_id is not None else self._current_id
        pending = self._pending.get(target) if target is not None else None
        if pending is None:
            logger.warning(f"Cannot complete unknown tool use {target}")
            return None

        if not pending.completed:
            arguments = try_parse_json(pending.raw_arguments or "{}")
            if not isinstance(arguments, dict):
                logger.error(
                    f"Failed to parse tool use input JSON for {pending.call_id}: "
                    f"{pending.raw_arguments!r}"
                )
                return None
            pending.arguments = arguments
            pending.completed = True
            if self._current_id == pending.call_id:
                self._current_id = None

        return self._to_invocation(pending)

    def drain(self) -> list[StructuredToolInvocation]:
        """Return and forget every completed call, in arrival order."""
        done = [p for p in self._pending.values() if p.completed]
        for p in done:
            del self._pending[p.call_id]
        return [self._to_invocation(p) for p in done]

    def pending_ids(self) -> list[str]:
        return [p.call_id for p in self._pending.values() if not p.completed]

    def has_pending(self) -> bool:
        return any(not p.completed for p in self._pending.values())

    def clear(self) -> None:
        self._pending.clear()
        self._seen_ids.clear()
        self._current_id = None

    @staticmethod
    def _to_invocation(pending: PendingToolCall) -> StructuredToolInvocation:
        return StructuredToolInvocation(
            call_id=pending.call_id,
            name=pending.name,
            arguments=pending.arguments,
            completed=True,
            partial=False,
        )
