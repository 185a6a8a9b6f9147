import pytest

from skein.exceptions import FileRestrictionError, ToolPermissionError
from skein.modes import (
    BUILTIN_MODES,
    DEFAULT_MODE,
    GroupOptions,
    ModeConfig,
    get_mode,
    is_tool_allowed_for_mode,
    validate_tool_use,
)


class TestGetMode:
    def test_builtin(self):
        assert get_mode("code").name == "Code"
        assert DEFAULT_MODE == "code"
        assert {m.slug for m in BUILTIN_MODES} == {"code", "architect", "ask", "debug"}

    def test_unknown(self):
        assert get_mode("nope") is None

    def test_custom_mode_shadows_builtin(self):
        locked = ModeConfig(slug="code", name="Locked", groups=["read"])
        assert get_mode("code", [locked]) is locked

    def test_from_dict(self):
        mode = ModeConfig.from_dict({
            "slug": "py",
            "groups": ["read", ["edit", {"file_regex": r"\.py$", "description": "Python"}]],
        })
        assert mode.name == "py"
        assert mode.group_names() == ["read", "edit"]
        assert mode.group_options("edit") == GroupOptions(file_regex=r"\.py$", description="Python")
        assert mode.group_options("read") is None


class TestValidateToolUse:
    def test_read_allowed_in_ask(self):
        validate_tool_use("read_file", "ask")

    def test_edit_denied_in_ask(self):
        with pytest.raises(ToolPermissionError, match="not allowed in ask mode"):
            validate_tool_use("write_to_file", "ask", params={"path": "a.py"})

    def test_unknown_tool(self):
        with pytest.raises(ToolPermissionError, match="Unknown tool"):
            validate_tool_use("rm_rf", "code")

    def test_unknown_mode(self):
        with pytest.raises(ToolPermissionError, match="Unknown mode"):
            validate_tool_use("read_file", "nope")

    def test_always_available_tools_skip_mode_checks(self):
        validate_tool_use("attempt_completion", "nope")
        validate_tool_use("ask_followup_question", "ask")

    def test_architect_edits_markdown_only(self):
        validate_tool_use("write_to_file", "architect", params={"path": "docs/plan.md"})
        with pytest.raises(FileRestrictionError) as exc_info:
            validate_tool_use("write_to_file", "architect", params={"path": "main.py"})
        assert exc_info.value.path == "main.py"
        assert "Markdown files only" in str(exc_info.value)

    def test_file_restriction_is_a_permission_error(self):
        assert issubclass(FileRestrictionError, ToolPermissionError)

    def test_experimental_tool_needs_flag(self):
        with pytest.raises(ToolPermissionError, match="search_and_replace"):
            validate_tool_use("search_and_replace", "code")
        validate_tool_use("search_and_replace", "code", experiments={"search_and_replace": True})

    def test_experimental_flag_does_not_bypass_mode(self):
        with pytest.raises(ToolPermissionError):
            validate_tool_use("insert_content", "ask", experiments={"insert_content": True})

    def test_custom_mode_restricts_tools(self):
        locked = ModeConfig(slug="code", name="Locked", groups=["read"])
        with pytest.raises(ToolPermissionError):
            validate_tool_use("execute_command", "code", custom_modes=[locked])

    def test_boolean_form(self):
        assert is_tool_allowed_for_mode("execute_command", "code")
        assert not is_tool_allowed_for_mode("execute_command", "ask")
        assert not is_tool_allowed_for_mode("write_to_file", "architect", params={"path": "a.py"})
