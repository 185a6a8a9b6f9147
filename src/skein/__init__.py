from skein.instrumentation import instrument, uninstrument
from skein.blocks import (
    StructuredToolInvocation,
    TagToolInvocation,
    TextBlock,
    ToolParams,
)
from skein.config import Settings, configure_logging
from skein.context import Approval, Context
from skein.dispatcher import ToolOutcome, TurnCursor, present_assistant_message
from skein.parser import parse_assistant_message
from skein.runner import Runner, RunResult, TurnResult
from skein.session import Session
from skein.tools import Tool, ToolName, ToolRegistry, tool

__all__ = [
    "Approval",
    "Context",
    "RunResult",
    "Runner",
    "Session",
    "Settings",
    "StructuredToolInvocation",
    "TagToolInvocation",
    "TextBlock",
    "Tool",
    "ToolName",
    "ToolOutcome",
    "ToolParams",
    "ToolRegistry",
    "TurnCursor",
    "TurnResult",
    "configure_logging",
    "instrument",
    "parse_assistant_message",
    "present_assistant_message",
    "tool",
    "uninstrument",
]
