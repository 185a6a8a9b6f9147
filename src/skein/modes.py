"""
Modes and the tool permission gate.

A mode grants a set of tool groups. A group can carry options restricting
which files its edit tools may touch. Experimental tools additionally need
their feature flag switched on.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from skein.exceptions import FileRestrictionError, ToolPermissionError
from skein.tools import ALWAYS_AVAILABLE_TOOLS, TOOL_GROUPS, ToolName

logger = logging.getLogger(__name__)


@dataclass
class GroupOptions:
    """Restrictions attached to a tool group inside a mode.

    Attributes:
        file_regex: Paths the group's edit tools may write to.
        description: Human-readable summary of the restriction.
    """
    file_regex: Optional[str] = None
    description: Optional[str] = None


GroupEntry = Union[str, tuple[str, GroupOptions]]


@dataclass
class ModeConfig:
    """Configuration for an operational mode.

    Attributes:
        slug: Unique identifier for the mode (e.g. "code").
        name: Display name.
        groups: Tool groups, either a bare group name or
            ``(group, GroupOptions)``.
    """
    slug: str
    name: str
    groups: list[GroupEntry] = field(default_factory=list)

    def group_names(self) -> list[str]:
        return [g if isinstance(g, str) else g[0] for g in self.groups]

    def group_options(self, group: str) -> Optional[GroupOptions]:
        for entry in self.groups:
            if isinstance(entry, tuple) and entry[0] == group:
                return entry[1]
        return None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ModeConfig":
        """Build a mode from its JSON form.

        Groups are either ``"read"`` or ``["edit", {"file_regex": "..."}]``.
        """
        groups: list[GroupEntry] = []
        for entry in data.get("groups", []):
            if isinstance(entry, str):
                groups.append(entry)
            else:
                group, options = entry
                groups.append((group, GroupOptions(**options)))
        return cls(slug=data["slug"], name=data.get("name", data["slug"]), groups=groups)


CODE_MODE = ModeConfig(
    slug="code",
    name="Code",
    groups=["read", "edit", "browser", "command", "mcp"],
)

ARCHITECT_MODE = ModeConfig(
    slug="architect",
    name="Architect",
    groups=[
        "read",
        ("edit", GroupOptions(file_regex=r"\.md$", description="Markdown files only")),
        "browser",
        "mcp",
    ],
)

ASK_MODE = ModeConfig(
    slug="ask",
    name="Ask",
    groups=["read", "browser", "mcp"],
)

DEBUG_MODE = ModeConfig(
    slug="debug",
    name="Debug",
    groups=["read", "edit", "browser", "command", "mcp"],
)

BUILTIN_MODES: list[ModeConfig] = [CODE_MODE, ARCHITECT_MODE, ASK_MODE, DEBUG_MODE]
DEFAULT_MODE = CODE_MODE.slug

# Tools that stay disabled unless the named feature flag is on.
EXPERIMENTAL_TOOLS: dict[ToolName, str] = {
    ToolName.SEARCH_AND_REPLACE: "search_and_replace",
    ToolName.INSERT_CONTENT: "insert_content",
}

# Parameters holding the path an edit tool writes to.
_EDIT_PATH_PARAMS = ("path",)


def get_mode(slug: str, custom_modes: Optional[list[ModeConfig]] = None) -> Optional[ModeConfig]:
    """Look a mode up by slug. Custom modes shadow built-in ones."""
    for mode in custom_modes or []:
        if mode.slug == slug:
            return mode
    for mode in BUILTIN_MODES:
        if mode.slug == slug:
            return mode
    return None


def _group_of(tool: ToolName) -> Optional[str]:
    for group, members in TOOL_GROUPS.items():
        if tool in members:
            return group
    return None


def is_tool_allowed_for_mode(
    name: str,
    mode: str,
    custom_modes: Optional[list[ModeConfig]] = None,
    experiments: Optional[dict[str, bool]] = None,
    params: Optional[dict[str, Any]] = None,
) -> bool:
    """Boolean form of :func:`validate_tool_use`."""
    try:
        validate_tool_use(name, mode, custom_modes, experiments, params)
    except ToolPermissionError:
        return False
    return True


def validate_tool_use(
    name: str,
    mode: str,
    custom_modes: Optional[list[ModeConfig]] = None,
    experiments: Optional[dict[str, bool]] = None,
    params: Optional[dict[str, Any]] = None,
) -> None:
    """Raise if *name* may not run in *mode* with *params*.

    Args:
        name: Tool name as it appeared in the invocation.
        mode: Active mode slug.
        custom_modes: User-defined modes, overriding built-ins by slug.
        experiments: Feature flags.
        params: Flattened invocation parameters.

    Raises:
        ToolPermissionError: Unknown tool or mode, tool outside the mode's
            groups, or experimental tool with its flag off.
        FileRestrictionError: Edit tool targeting a file outside the
            mode's allowed pattern.
    """
    try:
        tool = ToolName(name)
    except ValueError:
        raise ToolPermissionError(f"Unknown tool: {name}") from None

    flag = EXPERIMENTAL_TOOLS.get(tool)
    if flag is not None and not (experiments or {}).get(flag, False):
        raise ToolPermissionError(
            f"Tool '{name}' requires the '{flag}' experiment to be enabled"
        )

    if tool in ALWAYS_AVAILABLE_TOOLS:
        return

    mode_config = get_mode(mode, custom_modes)
    if mode_config is None:
        raise ToolPermissionError(f"Unknown mode: {mode}")

    group = _group_of(tool)
    if group is None or group not in mode_config.group_names():
        raise ToolPermissionError(f"Tool '{name}' is not allowed in {mode} mode.")

    options = mode_config.group_options(group)
    if options is None or options.file_regex is None or group != "edit":
        return
    for key in _EDIT_PATH_PARAMS:
        path = (params or {}).get(key)
        if isinstance(path, str) and path and not re.search(options.file_regex, path):
            logger.info(f"Blocked {name} on {path} in {mode} mode")
            raise FileRestrictionError(mode_config.name, options.file_regex, path, options.description)
