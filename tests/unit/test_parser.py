from hypothesis import given, settings, strategies as st

from skein.blocks import TagToolInvocation, TextBlock, ToolParams
from skein.parser import (
    clean_display_text,
    parse_assistant_message,
    remove_closing_tag,
)


READ_A = "Let me look.\n<read_file>\n<path>\na.py\n</path>\n</read_file>"


# -------------------------------------------------------------------
# Segmentation
# -------------------------------------------------------------------


class TestSegmentation:
    def test_plain_text_is_one_partial_block(self):
        blocks = parse_assistant_message("Hello there")
        assert blocks == [TextBlock(content="Hello there", partial=True)]

    def test_empty_text_has_no_blocks(self):
        assert parse_assistant_message("") == []
        assert parse_assistant_message("  \n ") == []

    def test_complete_tool_after_text(self):
        blocks = parse_assistant_message(READ_A)
        assert len(blocks) == 2
        assert blocks[0] == TextBlock(content="Let me look.", partial=False)
        tool = blocks[1]
        assert isinstance(tool, TagToolInvocation)
        assert tool.name == "read_file"
        assert tool.partial is False
        assert tool.params.get("path") == "a.py"

    def test_text_after_tool_is_trailing_partial(self):
        blocks = parse_assistant_message(READ_A + "\nDone.")
        assert isinstance(blocks[-1], TextBlock)
        assert blocks[-1].content == "Done."
        assert blocks[-1].partial is True

    def test_unclosed_tool_is_partial_with_params_so_far(self):
        blocks = parse_assistant_message("<read_file>\n<path>\nsrc/ma")
        assert len(blocks) == 1
        tool = blocks[0]
        assert tool.partial is True
        assert tool.params.get("path") == "src/ma"

    def test_partial_closing_tag_is_trimmed_from_value(self):
        blocks = parse_assistant_message("<read_file>\n<path>\na.py\n</pa")
        assert blocks[0].params.get("path") == "a.py"

    def test_unknown_tags_stay_text(self):
        blocks = parse_assistant_message("<div>\nhello\n</div>")
        assert len(blocks) == 1
        assert isinstance(blocks[0], TextBlock)
        assert "<div>" in blocks[0].content

    def test_restricted_tool_names(self):
        blocks = parse_assistant_message(READ_A, tool_names=["list_files"])
        assert all(isinstance(b, TextBlock) for b in blocks)

    def test_two_tools_in_order(self):
        text = (
            "<read_file>\n<path>\na.py\n</path>\n</read_file>\n"
            "<list_files>\n<path>\n.\n</path>\n</list_files>"
        )
        blocks = parse_assistant_message(text)
        assert [b.name for b in blocks] == ["read_file", "list_files"]
        assert not any(b.partial for b in blocks)


# -------------------------------------------------------------------
# Parameters
# -------------------------------------------------------------------


class TestParameters:
    def test_content_keeps_inner_whitespace(self):
        text = (
            "<write_to_file>\n<path>\nx.py\n</path>\n"
            "<content>\n\ndef f():\n    return 1\n\n</content>\n"
            "<line_count>\n3\n</line_count>\n</write_to_file>"
        )
        tool = parse_assistant_message(text)[0]
        assert tool.params.get("content") == "\ndef f():\n    return 1\n"
        assert tool.params.get("line_count") == "3"

    def test_content_closes_on_last_closing_tag(self):
        text = (
            "<write_to_file>\n<path>\ndoc.md\n</path>\n"
            "<content>\nuse </content> to close\n</content>\n</write_to_file>"
        )
        tool = parse_assistant_message(text)[0]
        assert tool.params.get("content") == "use </content> to close"

    def test_repeated_keys_are_kept(self):
        text = (
            "<search_files>\n<path>\nsrc\n</path>\n<path>\ntests\n</path>\n"
            "<regex>\nTODO\n</regex>\n</search_files>"
        )
        params = parse_assistant_message(text)[0].params
        assert params.get_all("path") == ["src", "tests"]
        assert params.keys() == ["path", "regex"]
        assert params.to_dict() == {"path": ["src", "tests"], "regex": "TODO"}

    def test_nested_args(self):
        text = (
            "<read_file>\n<args>\n"
            "<file>\n<path>\na.py\n</path>\n</file>\n"
            "<file>\n<path>\nb.py\n</path>\n</file>\n"
            "</args>\n</read_file>"
        )
        args = parse_assistant_message(text)[0].params.get("args")
        assert isinstance(args, ToolParams)
        assert args.to_dict() == {"file": [{"path": "a.py"}, {"path": "b.py"}]}

    def test_nested_value_with_free_text_stays_string(self):
        text = "<ask_followup_question>\n<follow_up>\n<b>bold</b> text\n</follow_up>\n</ask_followup_question>"
        params = parse_assistant_message(text)[0].params
        assert params.get("follow_up") == "<b>bold</b> text"


# -------------------------------------------------------------------
# Incremental behaviour
# -------------------------------------------------------------------


class TestIncremental:
    def test_identical_text_parses_identically(self):
        assert parse_assistant_message(READ_A) == parse_assistant_message(READ_A)

    def test_block_indices_are_stable_across_prefixes(self):
        text = READ_A + "\nAnd now the listing.\n<list_files>\n<path>\n.\n</path>\n</list_files>"
        final = parse_assistant_message(text)
        for end in range(1, len(text) + 1):
            blocks = parse_assistant_message(text[:end])
            for i, block in enumerate(blocks[:-1]):
                assert block == final[i]

    @settings(max_examples=200)
    @given(st.text(alphabet="ab <>/\n_" + "read_file" + "path", max_size=80))
    def test_only_last_block_may_be_partial(self, text):
        blocks = parse_assistant_message(text)
        assert all(not b.partial for b in blocks[:-1])

    @given(st.text(max_size=60))
    def test_parsing_never_raises(self, text):
        parse_assistant_message(text)


# -------------------------------------------------------------------
# Display helpers
# -------------------------------------------------------------------


class TestDisplayHelpers:
    def test_thinking_markers_removed(self):
        assert clean_display_text("Hello <thinking>plan</thinking> world") == "Hello plan world"

    def test_dangling_tag_fragment_removed(self):
        assert clean_display_text("Working on it <read_fi") == "Working on it"
        assert clean_display_text("Working on it <") == "Working on it"
        assert clean_display_text("Working on it </") == "Working on it"

    def test_closed_tag_kept(self):
        assert clean_display_text("x <b>y</b>") == "x <b>y</b>"

    def test_non_tag_fragment_kept(self):
        assert clean_display_text("1 <2") == "1 <2"

    def test_remove_closing_tag_partial(self):
        assert remove_closing_tag("path", "a.py\n</pa") == "a.py"
        assert remove_closing_tag("path", "a.py\n<") == "a.py"

    def test_remove_closing_tag_complete_unchanged(self):
        assert remove_closing_tag("path", "a.py\n</pa", partial=False) == "a.py\n</pa"
