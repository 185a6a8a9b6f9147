import pytest

from skein.blocks import StructuredToolInvocation
from skein.exceptions import ToolValidationError
from skein.validation import (
    is_valid_tool_use,
    sanitize_tool_name,
    validate_structured_call,
    validate_tool_input,
    validate_tool_use_id,
)


class TestPredicates:
    def test_tool_use_id(self):
        assert validate_tool_use_id("toolu_1")
        assert not validate_tool_use_id("")
        assert not validate_tool_use_id(None)
        assert not validate_tool_use_id(42)

    def test_tool_input(self):
        assert validate_tool_input({})
        assert validate_tool_input({"path": "a.py", "n": [1, 2]})
        assert not validate_tool_input([])
        assert not validate_tool_input("{}")
        assert not validate_tool_input({"obj": object()})

    def test_is_valid_tool_use_dict(self):
        assert is_valid_tool_use({"id": "t1", "name": "read_file", "input": {}, "partial": False})
        assert is_valid_tool_use({"id": "t1", "name": "read_file", "parameters": {}, "partial": True})
        assert not is_valid_tool_use({"id": "t1", "name": "read_file", "input": {}})
        assert not is_valid_tool_use({"id": "", "name": "read_file", "input": {}, "partial": False})
        assert not is_valid_tool_use("read_file")

    def test_is_valid_tool_use_invocation(self):
        call = StructuredToolInvocation(call_id="t1", name="read_file", arguments={"path": "a"})
        assert is_valid_tool_use(call)

    @pytest.mark.parametrize("raw, expected", [
        ("read_file", "read_file"),
        ("mcp.server/tool", "mcp_server_tool"),
        ("weird name", "weird_name"),
        ("dash-ok", "dash-ok"),
    ])
    def test_sanitize_tool_name(self, raw, expected):
        assert sanitize_tool_name(raw) == expected


class TestValidateStructuredCall:
    def test_complete_call_passes(self):
        call = StructuredToolInvocation(
            call_id="t1", name="read_file", arguments={"path": "a.py"}, completed=True, partial=False,
        )
        validate_structured_call(call)

    def test_incomplete_call_fails(self):
        call = StructuredToolInvocation(
            call_id="t1", name="read_file", arguments={"path": "a"}, completed=False, partial=False,
        )
        with pytest.raises(ToolValidationError, match="ended before"):
            validate_structured_call(call)

    def test_non_object_arguments_fail(self):
        call = StructuredToolInvocation(
            call_id="t1", name="read_file", arguments=None, completed=True, partial=False,
        )
        with pytest.raises(ToolValidationError, match="expected a JSON object"):
            validate_structured_call(call)

    def test_missing_id_fails(self):
        call = StructuredToolInvocation(
            call_id="", name="read_file", arguments={}, completed=True, partial=False,
        )
        with pytest.raises(ToolValidationError, match="Invalid tool use id"):
            validate_structured_call(call)
