"""Tests for utils/portable_text.py."""

from utils.portable_text import flatten_blocks, is_portable_text, remove_stop_words

BLOCKS = [
    {
        "_type": "block",
        "children": [
            {"_type": "span", "text": "This is a paragraph"},
            {"_type": "span", "text": "with two spans"},
        ],
    },
    {"_type": "image", "asset": {"_ref": "image-abc"}},
    {"_type": "block", "children": [{"_type": "span", "text": "Second block"}]},
]


class TestFlattenBlocks:
    """Tests for flatten_blocks."""

    def test_joins_span_text(self):
        """Test span text from every block is joined."""
        assert flatten_blocks(BLOCKS) == "This is a paragraph with two spans Second block"

    def test_removes_stop_words(self):
        blocks = [{"_type": "block", "children": [{"_type": "span", "text": "This is a paragraph"}]}]
        assert flatten_blocks(blocks, strip_stop_words=True) == "paragraph"

    def test_skips_empty_and_missing_children(self):
        blocks = [
            {"_type": "block"},
            {"_type": "block", "children": [{"_type": "span", "text": ""}, {"_type": "span"}]},
        ]
        assert flatten_blocks(blocks) == ""

    def test_none(self):
        assert flatten_blocks(None) == ""


class TestRemoveStopWords:
    """Tests for remove_stop_words."""

    def test_case_insensitive(self):
        assert remove_stop_words(["The", "Quick", "fox", "AND", "dog"]) == ["Quick", "fox", "dog"]


class TestIsPortableText:
    """Tests for is_portable_text."""

    def test_detects_blocks(self):
        assert is_portable_text(BLOCKS)

    def test_rejects_other_values(self):
        assert not is_portable_text([])
        assert not is_portable_text("text")
        assert not is_portable_text(["a", "b"])
        assert not is_portable_text([{"_type": "image"}])
