from __future__ import annotations

import logging
import os
import uuid
from dataclasses import dataclass, field
from typing import Any, Protocol

from skein.config import Settings
from skein.modes import validate_tool_use
from skein.tools import ToolRegistry

logger = logging.getLogger(__name__)


@dataclass
class Approval:
    """The user's answer to an approval request."""

    approved: bool
    feedback: str | None = None


class Presenter(Protocol):
    """UI surface the dispatcher renders into."""

    async def say(self, kind: str, text: str | None = None, partial: bool = False) -> None:
        ...

    async def ask(self, kind: str, text: str | None = None, partial: bool = False) -> Approval:
        ...


class BrowserSession(Protocol):
    """Long-lived interactive session kept open only by ``browser_action``."""

    @property
    def is_open(self) -> bool:
        ...

    async def close(self) -> None:
        ...


@dataclass
class Context:
    """Collaborators a task hands to the dispatcher and to tool handlers.

    This is deliberately narrow: the UI (``say``/``ask``), the tool
    registry, the mode settings, and the few counters the dispatcher
    updates. Per-turn cursor state lives in
    :class:`~skein.dispatcher.TurnCursor`, not here.

    Args:
        presenter: UI surface receiving text and approval requests.
        registry: Handlers for every tool kind this task supports.
        settings: Mode, feature flags and limits.
        task_id: Identifier used in logs and abort errors.
        cwd: Workspace root handed to tools.
        browser: The shared browser session, if one exists.
    """

    presenter: Presenter
    registry: ToolRegistry
    settings: Settings = field(default_factory=Settings)
    task_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    cwd: str = field(default_factory=os.getcwd)
    browser: BrowserSession | None = None
    abort: bool = False
    consecutive_mistake_count: int = 0
    tool_usage: dict[str, int] = field(default_factory=dict)

    async def say(self, kind: str, text: str | None = None, partial: bool = False) -> None:
        await self.presenter.say(kind, text, partial)

    async def ask(self, kind: str, text: str | None = None, partial: bool = False) -> Approval:
        return await self.presenter.ask(kind, text, partial)

    def record_tool_usage(self, name: str) -> None:
        self.tool_usage[name] = self.tool_usage.get(name, 0) + 1
        logger.debug(f"Tool usage for task {self.task_id}: {name}={self.tool_usage[name]}")

    def validate_tool_use(self, name: str, params: dict[str, Any]) -> None:
        """Mode gate for the active settings; raises on violation."""
        validate_tool_use(
            name,
            self.settings.mode,
            self.settings.custom_modes,
            self.settings.experiments,
            params,
        )

    async def close_browser(self) -> None:
        if self.browser is not None and self.browser.is_open:
            logger.info(f"Closing browser session for task {self.task_id}")
            await self.browser.close()
