"""Translation between the structured and the tag tool encodings.

The tool registry and the mode gate only understand tag invocations, so a
structured call is turned into one before it runs. Its parameters are built
straight from the argument object; the tag text from
:func:`to_invocation_text` is only for display. Results travel the other
way as :class:`ToolResultContent` keyed by the provider's call id.
"""

import json
import logging
from collections.abc import Iterable
from typing import Any

from skein.blocks import StructuredToolInvocation, TagToolInvocation, ToolParams
from skein.exceptions import BridgeError
from skein.message import ToolResultContent
from skein.tools import TOOL_NAMES

logger = logging.getLogger(__name__)

# Only this key gets the <args><item>...</item></args> treatment.
ITEM_LIST_KEY = "args"


def _scalar(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"))


def _is_item_list(key: str, value: Any) -> bool:
    return key == ITEM_LIST_KEY and isinstance(value, list) and bool(value) and all(
        isinstance(v, dict) for v in value
    )


def _render_param(key: str, value: Any) -> str:
    if value is None:
        return ""
    if _is_item_list(key, value):
        items = "".join(
            "<item>\n"
            + "".join(_render_param(k, v) for k, v in entry.items())
            + "</item>\n"
            for entry in value
        )
        return f"<{key}>\n{items}</{key}>\n"
    if isinstance(value, list) and value:
        return "".join(_render_param(key, v) for v in value)
    return f"<{key}>\n{_scalar(value)}\n</{key}>\n"


def _add_param(params: ToolParams, key: str, value: Any) -> None:
    if value is None:
        return
    if _is_item_list(key, value):
        items = ToolParams()
        for entry in value:
            items.add("item", _to_params(entry))
        params.add(key, items)
    elif isinstance(value, list) and value:
        for v in value:
            _add_param(params, key, v)
    else:
        params.add(key, _scalar(value))


def _to_params(arguments: dict[str, Any]) -> ToolParams:
    params = ToolParams()
    for key, value in arguments.items():
        _add_param(params, key, value)
    return params


def _arguments_of(call: StructuredToolInvocation) -> dict[str, Any]:
    arguments = call.arguments or {}
    if not isinstance(arguments, dict):
        raise BridgeError(f"Arguments for {call.name} are not an object")
    return arguments


def to_invocation_text(call: StructuredToolInvocation) -> str:
    """Render a structured call in the tag encoding, for display.

    An empty list renders as ``[]`` so its key stays visible.

    >>> to_invocation_text(StructuredToolInvocation("t1", "read_file", {"path": "a.py"}))
    '<read_file>\\n<path>\\na.py\\n</path>\\n</read_file>'
    """
    arguments = _arguments_of(call)
    body = "".join(_render_param(k, v) for k, v in arguments.items())
    return f"<{call.name}>\n{body}</{call.name}>"


def bridge_structured_call(
    call: StructuredToolInvocation, tool_names: Iterable[str] | None = None,
) -> TagToolInvocation:
    """Turn a completed structured call into the tag invocation the tools run.

    Every argument key survives as-is, whatever characters it holds, and
    string values are passed through verbatim.

    Raises:
        BridgeError: The tool name is unknown or the arguments are not an
            object.
    """
    names = TOOL_NAMES if tool_names is None else frozenset(tool_names)
    if call.name not in names:
        raise BridgeError(f"Failed to convert tool use {call.call_id}: unknown tool {call.name!r}")
    try:
        params = _to_params(_arguments_of(call))
    except (TypeError, ValueError) as e:
        raise BridgeError(f"Failed to convert tool use {call.call_id}: {e}") from e
    return TagToolInvocation(name=call.name, params=params, partial=False, call_id=call.call_id)


def to_tool_result(
    call_id: str, text: str | None = None, is_error: bool = False,
) -> ToolResultContent:
    """Wrap a tool's textual result. Never raises.

    An empty string is a valid result, not an error marker.
    """
    try:
        return ToolResultContent(
            tool_use_id=call_id,
            content=text or "",
            is_error=is_error,
        )
    except Exception as e:
        logger.error(f"Error converting result for {call_id}: {e}")
        return ToolResultContent(
            tool_use_id=str(call_id),
            content=f"Error converting result: {e}",
            is_error=True,
        )
