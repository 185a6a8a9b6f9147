from dataclasses import dataclass, field
from unittest.mock import AsyncMock

import httpx
import openai
import pytest

from skein.message import Message, MessageRole
from skein.provider import OpenAIProvider, OpenRouter, VLLMProvider
from skein.streaming import (
    ErrorChunk,
    TextChunk,
    ToolUseDeltaChunk,
    ToolUseStartChunk,
    ToolUseStopChunk,
    UsageChunk,
)


# ---------------------------------------------------------------------------
# Fake OpenAI streaming objects
# ---------------------------------------------------------------------------

@dataclass
class FakeFunction:
    name: str | None = None
    arguments: str | None = None


@dataclass
class FakeToolCallDelta:
    index: int
    id: str | None = None
    function: FakeFunction | None = None


@dataclass
class FakeDelta:
    content: str | None = None
    tool_calls: list[FakeToolCallDelta] | None = None


@dataclass
class FakeChoice:
    delta: FakeDelta
    finish_reason: str | None = None


@dataclass
class FakeUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0


@dataclass
class FakeChunk:
    choices: list[FakeChoice] = field(default_factory=list)
    usage: FakeUsage | None = None


class FakeStream:
    def __init__(self, chunks, error=None):
        self.chunks = chunks
        self.error = error

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error


def delta_chunk(content=None, tool_calls=None):
    return FakeChunk(choices=[FakeChoice(delta=FakeDelta(content=content, tool_calls=tool_calls))])


async def collect(provider, **kwargs):
    messages = [Message(role=MessageRole.USER, content="hi")]
    return [c async for c in provider.stream(model="gpt-4o", messages=messages, **kwargs)]


def _provider(stream):
    provider = OpenAIProvider(api_key="sk-test")
    provider.client.chat.completions.create = AsyncMock(return_value=stream)
    return provider


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------

def test_openai_provider_reads_env(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-from-env")
    assert OpenAIProvider().client.api_key == "sk-from-env"


def test_openrouter_base_url(monkeypatch):
    monkeypatch.setenv("OPENROUTER_API_KEY", "or-key")
    provider = OpenRouter()
    assert provider.client.api_key == "or-key"
    assert str(provider.client.base_url).startswith("https://openrouter.ai/api/v1")
    assert provider.system == "openrouter"


def test_vllm_base_url():
    provider = VLLMProvider("localhost", 8000)
    assert provider.base_url == "http://localhost:8000/v1"


# ---------------------------------------------------------------------------
# Streaming
# ---------------------------------------------------------------------------

class TestStream:
    @pytest.mark.asyncio
    async def test_text_and_usage(self):
        provider = _provider(FakeStream([
            delta_chunk(content="Hel"),
            delta_chunk(content="lo"),
            FakeChunk(usage=FakeUsage(prompt_tokens=12, completion_tokens=3)),
        ]))

        chunks = await collect(provider)

        assert chunks == [
            TextChunk(text="Hel"),
            TextChunk(text="lo"),
            UsageChunk(input_tokens=12, output_tokens=3),
        ]

    @pytest.mark.asyncio
    async def test_tool_call_fragments_become_start_delta_stop(self):
        provider = _provider(FakeStream([
            delta_chunk(tool_calls=[FakeToolCallDelta(
                index=0, id="call_1", function=FakeFunction(name="read_file", arguments=""),
            )]),
            delta_chunk(tool_calls=[FakeToolCallDelta(index=0, function=FakeFunction(arguments='{"path":'))]),
            delta_chunk(tool_calls=[FakeToolCallDelta(index=0, function=FakeFunction(arguments='"a.py"}'))]),
        ]))

        chunks = await collect(provider)

        assert chunks == [
            ToolUseStartChunk(id="call_1", name="read_file"),
            ToolUseDeltaChunk(partial_json='{"path":', id="call_1"),
            ToolUseDeltaChunk(partial_json='"a.py"}', id="call_1"),
            ToolUseStopChunk(id="call_1"),
        ]

    @pytest.mark.asyncio
    async def test_next_call_stops_the_previous_one(self):
        provider = _provider(FakeStream([
            delta_chunk(tool_calls=[FakeToolCallDelta(
                index=0, id="call_1", function=FakeFunction(name="read_file", arguments="{}"),
            )]),
            delta_chunk(tool_calls=[FakeToolCallDelta(
                index=1, id="call_2", function=FakeFunction(name="list_files", arguments="{}"),
            )]),
        ]))

        chunks = await collect(provider)

        assert [type(c).__name__ for c in chunks] == [
            "ToolUseStartChunk", "ToolUseDeltaChunk", "ToolUseStopChunk",
            "ToolUseStartChunk", "ToolUseDeltaChunk", "ToolUseStopChunk",
        ]
        assert chunks[2] == ToolUseStopChunk(id="call_1")
        assert chunks[5] == ToolUseStopChunk(id="call_2")

    @pytest.mark.asyncio
    async def test_request_shape(self):
        provider = _provider(FakeStream([]))
        tools = [{"type": "function", "function": {"name": "read_file"}}]

        await collect(provider, tools=tools, system_prompt="Be brief.")

        kwargs = provider.client.chat.completions.create.call_args.kwargs
        assert kwargs["stream"] is True
        assert kwargs["tools"] == tools
        assert kwargs["parallel_tool_calls"] is False
        assert kwargs["messages"][0] == {"role": "system", "content": "Be brief."}

    @pytest.mark.asyncio
    async def test_no_tools_omits_tool_arguments(self):
        provider = _provider(FakeStream([]))
        await collect(provider, tools=[])
        kwargs = provider.client.chat.completions.create.call_args.kwargs
        assert "tools" not in kwargs
        assert "parallel_tool_calls" not in kwargs

    @pytest.mark.asyncio
    async def test_api_error_becomes_error_chunk(self):
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        error = openai.APIConnectionError(request=request)
        provider = _provider(FakeStream([delta_chunk(content="par")], error=error))

        chunks = await collect(provider)

        assert chunks[0] == TextChunk(text="par")
        assert isinstance(chunks[-1], ErrorChunk)
        assert chunks[-1].error == "APIConnectionError"
