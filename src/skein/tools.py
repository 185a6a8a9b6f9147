import inspect
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from skein.blocks import TagToolInvocation

if TYPE_CHECKING:
    from skein.context import Context


class ToolName(str, Enum):
    """Every tool kind the dispatcher knows how to route."""

    READ_FILE = "read_file"
    FETCH_INSTRUCTIONS = "fetch_instructions"
    SEARCH_FILES = "search_files"
    LIST_FILES = "list_files"
    LIST_CODE_DEFINITION_NAMES = "list_code_definition_names"
    APPLY_DIFF = "apply_diff"
    WRITE_TO_FILE = "write_to_file"
    INSERT_CONTENT = "insert_content"
    SEARCH_AND_REPLACE = "search_and_replace"
    BROWSER_ACTION = "browser_action"
    EXECUTE_COMMAND = "execute_command"
    USE_MCP_TOOL = "use_mcp_tool"
    ACCESS_MCP_RESOURCE = "access_mcp_resource"
    ASK_FOLLOWUP_QUESTION = "ask_followup_question"
    ATTEMPT_COMPLETION = "attempt_completion"
    SWITCH_MODE = "switch_mode"
    NEW_TASK = "new_task"


TOOL_NAMES: frozenset[str] = frozenset(t.value for t in ToolName)

TOOL_GROUPS: dict[str, tuple[ToolName, ...]] = {
    "read": (
        ToolName.READ_FILE,
        ToolName.FETCH_INSTRUCTIONS,
        ToolName.SEARCH_FILES,
        ToolName.LIST_FILES,
        ToolName.LIST_CODE_DEFINITION_NAMES,
    ),
    "edit": (
        ToolName.APPLY_DIFF,
        ToolName.WRITE_TO_FILE,
        ToolName.INSERT_CONTENT,
        ToolName.SEARCH_AND_REPLACE,
    ),
    "browser": (ToolName.BROWSER_ACTION,),
    "command": (ToolName.EXECUTE_COMMAND,),
    "mcp": (ToolName.USE_MCP_TOOL, ToolName.ACCESS_MCP_RESOURCE),
    "modes": (ToolName.SWITCH_MODE, ToolName.NEW_TASK),
}

# Usable from every mode.
ALWAYS_AVAILABLE_TOOLS: frozenset[ToolName] = frozenset({
    ToolName.ASK_FOLLOWUP_QUESTION,
    ToolName.ATTEMPT_COMPLETION,
    ToolName.SWITCH_MODE,
    ToolName.NEW_TASK,
})

# The one tool allowed to keep the browser session open.
BROWSER_TOOL = ToolName.BROWSER_ACTION


ApproveFn = Callable[..., Awaitable[bool]]
ErrorFn = Callable[[str, BaseException], Awaitable[None]]
ResultFn = Callable[[Any], None]
StripTagsFn = Callable[[str, str], str]
ToolHandler = Callable[..., Any]


class Tool(BaseModel):
    """A handler bound to one :class:`ToolName`.

    Handlers are called as ``handler(context, invocation, approve, on_error,
    on_result, strip_tags)`` and may be sync or async. They report their
    result through ``on_result`` exactly once, or through ``on_error``.
    """

    func: ToolHandler = Field(exclude=True)
    name: ToolName
    model_config = {"arbitrary_types_allowed": True}

    async def __call__(
        self,
        context: "Context",
        invocation: TagToolInvocation,
        approve: ApproveFn,
        on_error: ErrorFn,
        on_result: ResultFn,
        strip_tags: StripTagsFn,
    ) -> None:
        result = self.func(context, invocation, approve, on_error, on_result, strip_tags)
        if inspect.isawaitable(result):
            await result


def tool(name: ToolName | str) -> Callable[[ToolHandler], Tool]:
    """Decorator turning a handler function into a :class:`Tool`.

    Example::

        @tool(ToolName.READ_FILE)
        async def read_file(context, invocation, approve, on_error, on_result, strip_tags):
            if not await approve("tool", invocation.params.get("path")):
                return
            on_result(Path(invocation.params.get("path")).read_text())
    """
    tool_name = ToolName(name)

    def decorator(func: ToolHandler) -> Tool:
        return Tool(func=func, name=tool_name)

    return decorator


class ToolRegistry:
    """Closed mapping from :class:`ToolName` to its handler."""

    def __init__(self, tools: list[Tool] | None = None):
        self._tools: dict[ToolName, Tool] = {}
        for t in tools or []:
            self.register(t)

    def register(self, t: Tool) -> None:
        if t.name in self._tools:
            raise ValueError(f"Duplicate tool name: '{t.name.value}'")
        self._tools[t.name] = t

    @staticmethod
    def resolve(name: str) -> ToolName | None:
        """Map a raw name onto a known tool kind, ``None`` when unknown."""
        try:
            return ToolName(name)
        except ValueError:
            return None

    def get(self, name: str) -> Tool | None:
        tool_name = self.resolve(name)
        if tool_name is None:
            return None
        return self._tools.get(tool_name)

    def names(self) -> list[str]:
        return [t.value for t in self._tools]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.get(name) is not None

    def __len__(self) -> int:
        return len(self._tools)
