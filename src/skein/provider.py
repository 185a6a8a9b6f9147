import logging
import os
import uuid
from collections.abc import AsyncIterator

import openai
from openai import AsyncOpenAI

from skein.message import Message, ToolCallRequestMessage, ToolCallResultMessage
from skein.streaming import (
    ErrorChunk,
    StreamChunk,
    TextChunk,
    ToolUseDeltaChunk,
    ToolUseStartChunk,
    ToolUseStopChunk,
    UsageChunk,
)

logger = logging.getLogger(__name__)


def to_openai_messages(
    messages: list[Message], system_prompt: str | None = None,
) -> list[dict]:
    """Serialize the transcript for the chat completions API.

    The system prompt is injected at call time and never stored in the
    transcript.
    """
    out: list[dict] = []
    if system_prompt:
        out.append({"role": "system", "content": system_prompt})
    for m in messages:
        if isinstance(m, ToolCallResultMessage):
            out.append(m.model_dump(exclude={"is_error"}))
        elif isinstance(m, ToolCallRequestMessage):
            dumped = m.model_dump()
            dumped["content"] = dumped["content"] or None
            out.append(dumped)
        else:
            out.append(m.model_dump())
    return out


class ModelProvider:
    """Source of :class:`~skein.streaming.StreamChunk` streams.

    ``system`` names the provider in tracing spans.
    """

    system: str = "unknown"

    def stream(
            self,
            model: str,
            messages: list[Message],
            tools: list[dict] | None = None,
            system_prompt: str | None = None,
    ) -> AsyncIterator[StreamChunk]:
        raise NotImplementedError


class OpenAIProvider(ModelProvider):
    """Streaming adapter for OpenAI-compatible chat completion endpoints.

    Tool-call fragments arrive keyed by index; they are re-emitted as the
    start/delta/stop triple, with a stop for a call as soon as the next one
    begins or the stream finishes.
    """

    system = "openai"

    def __init__(
            self,
            api_key: str | None = None,
            base_url: str | None = None,
            timeout: float = 600.0,
    ):
        if not api_key:
            api_key = os.getenv("OPENAI_API_KEY")
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            max_retries=5,
            timeout=timeout,
        )

    async def stream(
            self,
            model: str,
            messages: list[Message],
            tools: list[dict] | None = None,
            system_prompt: str | None = None,
    ) -> AsyncIterator[StreamChunk]:
        kwargs = {}
        if tools:
            kwargs["tools"] = tools
            kwargs["parallel_tool_calls"] = False
        try:
            response = await self.client.chat.completions.create(
                model=model,
                messages=to_openai_messages(messages, system_prompt),
                stream=True,
                stream_options={"include_usage": True},
                **kwargs,
            )
            ids: dict[int, str] = {}
            open_id: str | None = None
            async for chunk in response:
                if chunk.usage is not None:
                    yield UsageChunk(
                        input_tokens=chunk.usage.prompt_tokens or 0,
                        output_tokens=chunk.usage.completion_tokens or 0,
                    )
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta
                if delta.content:
                    yield TextChunk(text=delta.content)
                for fragment in delta.tool_calls or []:
                    if fragment.index not in ids:
                        if open_id is not None:
                            yield ToolUseStopChunk(id=open_id)
                        ids[fragment.index] = fragment.id or f"call_{uuid.uuid4().hex[:24]}"
                        open_id = ids[fragment.index]
                        name = fragment.function.name if fragment.function else ""
                        yield ToolUseStartChunk(id=open_id, name=name or "")
                    arguments = fragment.function.arguments if fragment.function else None
                    if arguments:
                        yield ToolUseDeltaChunk(partial_json=arguments, id=ids[fragment.index])
            if open_id is not None:
                yield ToolUseStopChunk(id=open_id)
        except openai.APIError as e:
            logger.error(f"{self.system} stream failed: {e}")
            yield ErrorChunk(error=type(e).__name__, message=str(e))


class OpenRouter(OpenAIProvider):

    system = "openrouter"

    def __init__(self, api_key: str | None = None):
        if not api_key:
            api_key = os.getenv("OPENROUTER_API_KEY")
        super().__init__(
            api_key=api_key,
            base_url="https://openrouter.ai/api/v1",
            timeout=180.0,
        )


class VLLMProvider(OpenAIProvider):

    system = "vllm"

    def __init__(self, url: str, port: int):
        self.base_url = f"http://{url}:{port}/v1"
        super().__init__(api_key="DUMMY", base_url=self.base_url)
