"""Pure checks run on tool calls before any side effect happens."""

import json
import re
from typing import Any

from skein.blocks import StructuredToolInvocation
from skein.exceptions import ToolValidationError


_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9_-]")


def validate_tool_use_id(call_id: Any) -> bool:
    """A call id is any non-empty string."""
    return isinstance(call_id, str) and len(call_id) > 0


def validate_tool_input(value: Any) -> bool:
    """Tool input must be a JSON object that survives serialization."""
    if not isinstance(value, dict):
        return False
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return False
    return True


def is_valid_tool_use(tool_use: Any) -> bool:
    """Shape check for a structured tool call.

    Accepts a :class:`StructuredToolInvocation` or its dict form with
    ``id``, ``name``, ``input`` (or ``parameters``) and ``partial``.
    """
    if isinstance(tool_use, StructuredToolInvocation):
        tool_use = tool_use.to_dict()
    if not isinstance(tool_use, dict):
        return False
    payload = tool_use.get("input", tool_use.get("parameters"))
    return (
        validate_tool_use_id(tool_use.get("id"))
        and isinstance(tool_use.get("name"), str)
        and validate_tool_input(payload)
        and isinstance(tool_use.get("partial"), bool)
    )


def sanitize_tool_name(name: str) -> str:
    """Replace anything outside ``[A-Za-z0-9_-]`` so the name is a valid tag."""
    return _UNSAFE_NAME_CHARS.sub("_", name)


def validate_structured_call(call: StructuredToolInvocation) -> None:
    """Raise :class:`ToolValidationError` describing the first failed check."""
    if not validate_tool_use_id(call.call_id):
        raise ToolValidationError(f"Invalid tool use id: {call.call_id!r}")
    if not call.completed:
        raise ToolValidationError(
            f"Tool call {call.call_id} ({call.name}) ended before its arguments were complete"
        )
    if not validate_tool_input(call.arguments):
        raise ToolValidationError(
            f"Invalid arguments for {call.name}: expected a JSON object, "
            "the tool call arguments could not be parsed"
        )
    if not is_valid_tool_use(call):
        raise ToolValidationError(f"Malformed tool use for {call.name}")
