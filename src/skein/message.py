import json
from enum import Enum
from typing import Literal, Union

from pydantic import BaseModel, field_serializer

from skein.blocks import StructuredToolInvocation


class MessageRole(Enum):
    SYSTEM = "system"
    ASSISTANT = "assistant"
    USER = "user"
    TOOL = "tool"


class Message(BaseModel):
    role: MessageRole
    content: str

    @field_serializer('role')
    def serialize_role(self, role: MessageRole, _info) -> str:
        return role.value


class TextContent(BaseModel):
    """A rendered text notification in the outbound reply."""

    type: Literal["text"] = "text"
    text: str


class ToolResultContent(BaseModel):
    """Provider-facing result of one tool invocation.

    ``tool_use_id`` is the provider call id for structured calls, or the
    tag reference (``"read_file#2"``) for tag invocations.
    """

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str = ""
    is_error: bool = False


OutboundContent = Union[TextContent, ToolResultContent]


class ToolCallRequestMessage(Message):
    tool_calls: list[StructuredToolInvocation]

    @field_serializer("tool_calls")
    def serialize_tool_calls(self, tool_calls: list) -> list[dict]:
        return [
            {
                "id": t.call_id,
                "type": "function",
                "function": {
                    "arguments": json.dumps(t.arguments if isinstance(t.arguments, dict) else {}),
                    "name": t.name
                }
            }
            for t in tool_calls
        ]


class ToolCallResultMessage(Message):
    tool_call_id: str
    is_error: bool = False
