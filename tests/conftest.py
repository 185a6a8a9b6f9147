import json
from dataclasses import dataclass, field

import pytest

from skein.config import Settings
from skein.context import Approval, Context
from skein.provider import ModelProvider
from skein.streaming import (
    StreamChunk,
    TextChunk,
    ToolUseDeltaChunk,
    ToolUseStartChunk,
    ToolUseStopChunk,
)
from skein.tools import ToolName, ToolRegistry, tool


# ---------------------------------------------------------------------------
# UI and browser doubles
# ---------------------------------------------------------------------------

class FakePresenter:
    """Presenter that records every call. Approves unless told otherwise."""

    def __init__(self, approve: bool = True, feedback: str | None = None):
        self.approve = approve
        self.feedback = feedback
        self.said: list[tuple[str, str | None, bool]] = []
        self.asked: list[tuple[str, str | None]] = []

    async def say(self, kind, text=None, partial=False):
        self.said.append((kind, text, partial))

    async def ask(self, kind, text=None, partial=False):
        self.asked.append((kind, text))
        return Approval(approved=self.approve, feedback=self.feedback)

    def kinds(self) -> list[str]:
        return [kind for kind, _, _ in self.said]

    def complete_texts(self) -> list[str]:
        return [text for kind, text, partial in self.said if kind == "text" and not partial]


@dataclass
class FakeBrowser:
    is_open: bool = True
    close_calls: int = 0

    async def close(self):
        self.close_calls += 1
        self.is_open = False


# ---------------------------------------------------------------------------
# Recording tool handlers
# ---------------------------------------------------------------------------

@dataclass
class HandlerLog:
    calls: list = field(default_factory=list)

    def names(self) -> list[str]:
        return [inv.name for inv in self.calls]


def make_registry(log: HandlerLog, *names: ToolName) -> ToolRegistry:
    """Registry whose handlers approve, record the invocation and echo its params."""
    registry = ToolRegistry()
    for name in names:
        @tool(name)
        async def handler(context, invocation, approve, on_error, on_result, strip_tags):
            log.calls.append(invocation)
            if not await approve("tool", json.dumps(invocation.params.to_dict())):
                return
            on_result(f"{invocation.name} ok: {json.dumps(invocation.params.to_dict())}")
        registry.register(handler)
    return registry


@pytest.fixture
def presenter():
    return FakePresenter()


@pytest.fixture
def handler_log():
    return HandlerLog()


@pytest.fixture
def make_context(presenter, handler_log):
    """Factory fixture building a Context around the fake presenter.

    Registers recording handlers for *tools* (every tool kind by default).
    """
    def _make(tools=None, registry=None, **settings):
        if registry is None:
            registry = make_registry(handler_log, *(tools or list(ToolName)))
        return Context(
            presenter=presenter,
            registry=registry,
            settings=Settings(**settings),
            task_id="task-1",
        )
    return _make


# ---------------------------------------------------------------------------
# Stream helpers
# ---------------------------------------------------------------------------

async def stream_of(*chunks: StreamChunk):
    for chunk in chunks:
        yield chunk


def text_chunks(text: str, size: int = 7) -> list[TextChunk]:
    """Split *text* into fixed-size text chunks."""
    return [TextChunk(text=text[i:i + size]) for i in range(0, len(text), size)]


def structured_call(
    call_id: str, name: str, arguments: dict, pieces: int = 3,
) -> list[StreamChunk]:
    """start/delta*/stop chunks with the JSON split into *pieces* fragments."""
    raw = json.dumps(arguments)
    step = max(1, len(raw) // pieces)
    deltas = [
        ToolUseDeltaChunk(partial_json=raw[i:i + step], id=call_id)
        for i in range(0, len(raw), step)
    ]
    return [ToolUseStartChunk(id=call_id, name=name), *deltas, ToolUseStopChunk(id=call_id)]


class MockProvider(ModelProvider):
    """Provider that replays pre-queued chunk lists. No network calls."""

    system = "mock"

    def __init__(self):
        self.turns: list[list[StreamChunk]] = []
        self.call_log: list[dict] = []

    async def stream(self, model, messages, tools=None, system_prompt=None):
        self.call_log.append({
            "model": model,
            "messages": list(messages),
            "tools": tools,
            "system_prompt": system_prompt,
        })
        for chunk in self.turns.pop(0):
            yield chunk


@pytest.fixture
def mock_provider():
    return MockProvider()
