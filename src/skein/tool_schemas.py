"""Function-calling schemas advertised to providers for every tool kind."""

from collections.abc import Iterable
from typing import Any

from skein.tools import ToolName


def _string(description: str, **extra: Any) -> dict[str, Any]:
    return {"type": "string", "description": description, **extra}


def _integer(description: str) -> dict[str, Any]:
    return {"type": "integer", "description": description}


def _boolean(description: str) -> dict[str, Any]:
    return {"type": "boolean", "description": description}


_PATH = _string("File path relative to the workspace directory.")

TOOL_SCHEMAS: dict[ToolName, dict[str, Any]] = {
    ToolName.READ_FILE: {
        "description": (
            "Read the contents of one or more files (at most 5 per request). "
            "Output is line-numbered, e.g. '1 | const x = 1'."
        ),
        "properties": {
            "args": {
                "type": "array",
                "description": "Files to read, each with a 'path'.",
                "items": {
                    "type": "object",
                    "properties": {"path": _PATH},
                    "required": ["path"],
                },
            },
        },
        "required": ["args"],
    },
    ToolName.FETCH_INSTRUCTIONS: {
        "description": "Fetch instructions to perform a task.",
        "properties": {
            "task": _string(
                "The task to get instructions for.",
                enum=["create_mcp_server", "create_mode"],
            ),
        },
        "required": ["task"],
    },
    ToolName.SEARCH_FILES: {
        "description": "Regex search across files in a directory, with surrounding context.",
        "properties": {
            "path": _string("Directory to search recursively."),
            "regex": _string("Regular expression to search for."),
            "file_pattern": _string("Optional glob filtering the files searched, e.g. '*.py'."),
        },
        "required": ["path", "regex"],
    },
    ToolName.LIST_FILES: {
        "description": "List files and directories inside a directory.",
        "properties": {
            "path": _string("Directory to list."),
            "recursive": _boolean("List recursively instead of only the top level."),
        },
        "required": ["path"],
    },
    ToolName.LIST_CODE_DEFINITION_NAMES: {
        "description": "List classes, functions and methods defined in a file or directory.",
        "properties": {"path": _string("File or directory to analyze.")},
        "required": ["path"],
    },
    ToolName.APPLY_DIFF: {
        "description": (
            "Apply SEARCH/REPLACE blocks to an existing file. The SEARCH section "
            "must match the current content exactly, whitespace included."
        ),
        "properties": {
            "path": _PATH,
            "diff": _string(
                "One or more blocks of the form\n"
                "<<<<<<< SEARCH\n:start_line: N\n-------\n[old]\n=======\n[new]\n>>>>>>> REPLACE"
            ),
        },
        "required": ["path", "diff"],
    },
    ToolName.WRITE_TO_FILE: {
        "description": "Create a file, or overwrite it with complete new content.",
        "properties": {
            "path": _PATH,
            "content": _string("The complete file content, without line numbers."),
            "line_count": _integer("Number of lines in the content, empty lines included."),
        },
        "required": ["path", "content", "line_count"],
    },
    ToolName.INSERT_CONTENT: {
        "description": "Insert lines into a file without modifying existing content.",
        "properties": {
            "path": _PATH,
            "line": _integer("1-based line to insert before; 0 appends at the end."),
            "content": _string("The content to insert."),
        },
        "required": ["path", "line", "content"],
    },
    ToolName.SEARCH_AND_REPLACE: {
        "description": "Find and replace text or regex matches within a file.",
        "properties": {
            "path": _PATH,
            "search": _string("Text or pattern to search for."),
            "replace": _string("Replacement text."),
            "start_line": _integer("Optional first line of the range to search."),
            "end_line": _integer("Optional last line of the range to search."),
            "use_regex": _boolean("Treat 'search' as a regular expression."),
            "ignore_case": _boolean("Match case-insensitively."),
        },
        "required": ["path", "search", "replace"],
    },
    ToolName.BROWSER_ACTION: {
        "description": "Drive the shared browser session. Start with 'launch' and end with 'close'.",
        "properties": {
            "action": _string(
                "The action to perform.",
                enum=["launch", "hover", "click", "type", "resize", "scroll_down", "scroll_up", "close"],
            ),
            "url": _string("URL to open, for 'launch'."),
            "coordinate": _string("'x,y' position, for 'click' and 'hover'."),
            "size": _string("'width,height', for 'resize'."),
            "text": _string("Text to type, for 'type'."),
        },
        "required": ["action"],
    },
    ToolName.EXECUTE_COMMAND: {
        "description": "Run a CLI command in the workspace.",
        "properties": {
            "command": _string("The command to execute."),
            "cwd": _string("Optional working directory."),
        },
        "required": ["command"],
    },
    ToolName.USE_MCP_TOOL: {
        "description": "Call a tool provided by a connected MCP server.",
        "properties": {
            "server_name": _string("Name of the MCP server."),
            "tool_name": _string("Name of the tool to call."),
            "arguments": {"type": "object", "description": "Arguments matching the tool's input schema."},
        },
        "required": ["server_name", "tool_name", "arguments"],
    },
    ToolName.ACCESS_MCP_RESOURCE: {
        "description": "Read a resource exposed by a connected MCP server.",
        "properties": {
            "server_name": _string("Name of the MCP server."),
            "uri": _string("URI of the resource."),
        },
        "required": ["server_name", "uri"],
    },
    ToolName.ASK_FOLLOWUP_QUESTION: {
        "description": "Ask the user a question when required information is missing.",
        "properties": {
            "question": _string("The question to ask."),
            "follow_up": {
                "type": "array",
                "description": "Two to four suggested answers.",
                "items": {
                    "type": "object",
                    "properties": {
                        "suggest": _string("A suggested answer."),
                        "mode": _string("Optional mode to switch to with this answer."),
                    },
                    "required": ["suggest"],
                },
            },
        },
        "required": ["question", "follow_up"],
    },
    ToolName.ATTEMPT_COMPLETION: {
        "description": "Present the final result of the task to the user.",
        "properties": {"result": _string("The final result, phrased without a trailing question.")},
        "required": ["result"],
    },
    ToolName.SWITCH_MODE: {
        "description": "Ask to switch to another mode.",
        "properties": {
            "mode_slug": _string("Slug of the mode to switch to, e.g. 'code' or 'ask'."),
            "reason": _string("Why the switch is needed."),
        },
        "required": ["mode_slug"],
    },
    ToolName.NEW_TASK: {
        "description": "Start a new task in the given mode.",
        "properties": {
            "mode": _string("Slug of the mode for the new task."),
            "message": _string("Initial instructions for the new task."),
        },
        "required": ["mode", "message"],
    },
}


def tool_schema(name: ToolName | str) -> dict[str, Any]:
    """The ``{"type": "function", ...}`` schema for one tool kind."""
    tool_name = ToolName(name)
    schema = TOOL_SCHEMAS[tool_name]
    return {
        "type": "function",
        "function": {
            "name": tool_name.value,
            "description": schema["description"],
            "parameters": {
                "type": "object",
                "properties": schema["properties"],
                "required": schema["required"],
                "additionalProperties": False,
            },
        },
    }


def openai_tool_schemas(names: Iterable[str] | None = None) -> list[dict[str, Any]]:
    """Schemas for *names* (every tool kind by default), in catalogue order."""
    wanted = None if names is None else set(names)
    return [
        tool_schema(t)
        for t in ToolName
        if wanted is None or t.value in wanted
    ]
