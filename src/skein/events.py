"""Streaming events emitted while a task runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class StreamEvent:
    """Base for all streaming events."""


@dataclass
class RawResponseEvent(StreamEvent):
    """Token-level text delta from the provider stream."""

    content: str = ""


@dataclass
class RunItemEvent(StreamEvent):
    """A discrete step of a turn.

    ``name`` values: ``"reasoning"``, ``"tool_call"``, ``"tool_result"``,
    ``"usage"``, ``"turn"``.
    """

    name: str = ""
    data: dict = field(default_factory=dict)


@dataclass
class RunCompleteEvent(StreamEvent):
    """Final event, always the last one yielded."""

    result: Any = None
