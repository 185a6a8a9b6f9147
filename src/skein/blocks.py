"""Content blocks produced while an assistant message streams in.

A turn's output is an ordered list of blocks. Blocks start out ``partial``
and are mutated in place until their terminating marker (closing tag, stop
event, a following block, or the end of the stream) has been seen.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any, ClassVar, Union


ParamValue = Union[str, "ToolParams"]


class ToolParams:
    """Ordered multimap of tool parameters.

    Keys keep the order in which they were first seen. A key that appears
    more than once (array-like parameters) keeps every entry instead of
    overwriting the previous one.
    """

    def __init__(self, items: list[tuple[str, ParamValue]] | None = None):
        self._items: list[tuple[str, ParamValue]] = list(items or [])

    def add(self, key: str, value: ParamValue) -> None:
        self._items.append((key, value))

    def get(self, key: str, default: Any = None) -> Any:
        for k, v in self._items:
            if k == key:
                return v
        return default

    def get_all(self, key: str) -> list[ParamValue]:
        return [v for k, v in self._items if k == key]

    def keys(self) -> list[str]:
        seen: list[str] = []
        for k, _ in self._items:
            if k not in seen:
                seen.append(k)
        return seen

    def items(self) -> list[tuple[str, ParamValue]]:
        return list(self._items)

    def to_dict(self) -> dict[str, Any]:
        """Collapse into a plain dict; repeated keys become lists."""
        out: dict[str, Any] = {}
        for key in self.keys():
            values = [
                v.to_dict() if isinstance(v, ToolParams) else v
                for v in self.get_all(key)
            ]
            out[key] = values[0] if len(values) == 1 else values
        return out

    def __contains__(self, key: object) -> bool:
        return any(k == key for k, _ in self._items)

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ToolParams):
            return self._items == other._items
        return NotImplemented

    def __repr__(self) -> str:
        return f"ToolParams({self._items!r})"


@dataclass
class TextBlock:
    """Free text emitted by the model."""

    kind: ClassVar[str] = "text"

    content: str = ""
    partial: bool = False


@dataclass
class TagToolInvocation:
    """A tool invocation written in the tag encoding.

    ``call_id`` is only set when the invocation was bridged from a
    structured tool call, so the result can be keyed by the provider id.
    """

    kind: ClassVar[str] = "tag_tool_use"

    name: str
    params: ToolParams = field(default_factory=ToolParams)
    partial: bool = False
    call_id: str | None = None


@dataclass
class StructuredToolInvocation:
    """A tool call delivered through start/delta/stop events."""

    kind: ClassVar[str] = "structured_tool_use"

    call_id: str
    name: str
    arguments: Any = field(default_factory=dict)
    completed: bool = False
    partial: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.kind,
            "id": self.call_id,
            "name": self.name,
            "input": self.arguments,
            "partial": self.partial,
        }


ContentBlock = Union[TextBlock, TagToolInvocation, StructuredToolInvocation]
ToolInvocation = Union[TagToolInvocation, StructuredToolInvocation]


def is_tool_block(block: ContentBlock) -> bool:
    return isinstance(block, (TagToolInvocation, StructuredToolInvocation))


def mark_complete(blocks: list[ContentBlock]) -> None:
    """Flip every block to ``partial=False`` once the stream has ended."""
    for block in blocks:
        block.partial = False
