"""Error types raised inside the presentation and dispatch pipeline."""


class SkeinError(Exception):
    """Base class for every error raised by skein."""


class TurnAbortedError(SkeinError):
    """The task was aborted while a turn was being presented.

    Fatal for the turn only: no further blocks are presented and no outcome
    is synthesized for blocks that were not reached.
    """

    def __init__(self, task_id: str, turn_id: str):
        super().__init__(f"task {task_id} turn {turn_id} aborted")
        self.task_id = task_id
        self.turn_id = turn_id


class ToolValidationError(SkeinError):
    """A tool invocation failed a shape or argument check."""


class ToolPermissionError(ToolValidationError):
    """The tool is not allowed in the current mode."""


class FileRestrictionError(ToolPermissionError):
    """The mode only allows edits to files matching a pattern."""

    def __init__(self, mode: str, pattern: str, path: str, description: str | None = None):
        detail = f" ({description})" if description else ""
        super().__init__(
            f"This mode ({mode}) can only edit files matching pattern: "
            f"{pattern}{detail}. Got: {path}"
        )
        self.mode = mode
        self.pattern = pattern
        self.path = path


class BridgeError(SkeinError):
    """A structured tool call could not be converted to the tag encoding."""


class ProviderStreamError(SkeinError):
    """The provider reported an error in the middle of a stream."""

    def __init__(self, error: str, message: str = ""):
        super().__init__(f"{error}: {message}" if message else error)
        self.error = error
        self.message = message
