"""Incremental parser for the tag tool encoding.

``parse_assistant_message`` is called with the *cumulative* text of the
turn every time a new text chunk arrives. It re-derives the whole block
list from scratch instead of merging deltas, so the result for a given
text never depends on how that text was chunked.

Tag grammar::

    <tool_name>
    <param>
    value
    </param>
    </tool_name>
"""

import functools
import re
from collections.abc import Iterable

from skein.blocks import ContentBlock, ParamValue, TagToolInvocation, TextBlock, ToolParams
from skein.tools import TOOL_NAMES


# Parameters holding file contents; they close on the last matching tag.
RAW_TEXT_PARAMS = frozenset({"content", "diff"})

# Parameters whose value is itself a list of tags.
NESTED_PARAMS = frozenset({"args", "follow_up"})

_PARAM_OPEN = re.compile(r"<([A-Za-z_][A-Za-z0-9_-]*)>")
_THINKING_OPEN = re.compile(r"<thinking>\s?")
_THINKING_CLOSE = re.compile(r"\s?</thinking>")
_TAG_NAME = re.compile(r"[A-Za-z_]+")


@functools.lru_cache(maxsize=32)
def _tool_open_pattern(tool_names: frozenset[str]) -> re.Pattern | None:
    if not tool_names:
        return None
    alternatives = "|".join(
        re.escape(n) for n in sorted(tool_names, key=len, reverse=True)
    )
    return re.compile(f"<({alternatives})>")


def parse_assistant_message(
    text: str, tool_names: Iterable[str] | None = None,
) -> list[ContentBlock]:
    """Split *text* into text blocks and tag tool invocations.

    Only tags naming a known tool open an invocation; anything else is
    text. A tool tag without its closing tag yields a partial invocation
    built from the parameters received so far. The trailing text block is
    partial because more text may still arrive for it.

    Args:
        text: Everything the model has emitted so far in this turn.
        tool_names: Tool tags to recognise, all known tools by default.
    """
    names = TOOL_NAMES if tool_names is None else frozenset(tool_names)
    pattern = _tool_open_pattern(names)
    blocks: list[ContentBlock] = []
    pos = 0

    while pos < len(text):
        match = pattern.search(text, pos) if pattern is not None else None
        if match is None:
            _append_text(blocks, text[pos:], partial=True)
            break

        _append_text(blocks, text[pos:match.start()], partial=False)
        name = match.group(1)
        closing = f"</{name}>"
        body_start = match.end()
        end = text.find(closing, body_start)
        if end == -1:
            params, _ = _scan_params(text[body_start:], partial=True)
            blocks.append(TagToolInvocation(name=name, params=params, partial=True))
            break

        params, _ = _scan_params(text[body_start:end], partial=False)
        blocks.append(TagToolInvocation(name=name, params=params, partial=False))
        pos = end + len(closing)

    return blocks


def _append_text(blocks: list[ContentBlock], raw: str, partial: bool) -> None:
    content = raw.strip()
    if content:
        blocks.append(TextBlock(content=content, partial=partial))


def _scan_params(
    body: str, partial: bool, nested: bool = False,
) -> tuple[ToolParams, bool]:
    """Collect ``<key>value</key>`` pairs from a tool (or parameter) body.

    Returns the parameters and whether the body held nothing but tags.
    """
    params = ToolParams()
    only_tags = True
    pos = 0

    while True:
        match = _PARAM_OPEN.search(body, pos)
        if match is None:
            if body[pos:].strip():
                only_tags = False
            break
        if body[pos:match.start()].strip():
            only_tags = False

        key = match.group(1)
        closing = f"</{key}>"
        value_start = match.end()
        if key in RAW_TEXT_PARAMS and not nested:
            value_end = body.rfind(closing, value_start)
        else:
            value_end = body.find(closing, value_start)

        if value_end == -1:
            # Unclosed parameter: keep whatever arrived as a best-effort value.
            raw = remove_closing_tag(key, body[value_start:], partial=partial)
            params.add(key, _param_value(key, raw, partial, nested))
            break

        params.add(key, _param_value(key, body[value_start:value_end], partial, nested))
        pos = value_end + len(closing)

    return params, only_tags


def _param_value(key: str, raw: str, partial: bool, nested: bool) -> ParamValue:
    if key in RAW_TEXT_PARAMS and not nested:
        value = raw[1:] if raw.startswith("\n") else raw
        return value[:-1] if value.endswith("\n") else value

    value = raw.strip()
    if (nested or key in NESTED_PARAMS) and value.startswith("<"):
        children, only_tags = _scan_params(value, partial, nested=True)
        if only_tags and len(children):
            return children
    return value


def remove_closing_tag(tag: str, text: str, partial: bool = True) -> str:
    """Trim a partially streamed ``</tag>`` from the end of *text*.

    Only applies while the enclosing block is partial; complete text is
    returned unchanged.
    """
    if not partial:
        return text
    fragment = "".join(f"(?:{re.escape(c)})?" for c in tag)
    return re.sub(rf"\s?</?{fragment}$", "", text)


def clean_display_text(content: str) -> str:
    """Prepare a text block for display.

    Thinking markers are always removed. A trailing ``<``, ``</`` or
    ``<name`` fragment with no closing bracket yet is dropped so a tag
    that is still streaming never flashes on screen.
    """
    if not content:
        return content
    content = _THINKING_OPEN.sub("", content)
    content = _THINKING_CLOSE.sub("", content)

    last_open = content.rfind("<")
    if last_open == -1:
        return content
    possible_tag = content[last_open:]
    if ">" in possible_tag:
        return content

    if possible_tag.startswith("</"):
        tag_content = possible_tag[2:].strip()
    else:
        tag_content = possible_tag[1:].strip()
    is_likely_tag_name = _TAG_NAME.fullmatch(tag_content) is not None
    is_bare_bracket = possible_tag in ("<", "</")
    if is_bare_bracket or is_likely_tag_name:
        content = content[:last_open].strip()
    return content
