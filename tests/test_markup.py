"""Tests for the reasoning span parser."""

import pytest

from client.markup import PlainSpan, ReasoningSpan, parse_content


class TestParseContent:
    def test_plain(self):
        assert parse_content("just text") == (PlainSpan("just text"),)

    def test_empty(self):
        assert parse_content("") == ()

    def test_reasoning_then_answer(self):
        assert parse_content("<think>let me see</think>The answer is 4") == (
            ReasoningSpan("let me see"),
            PlainSpan("The answer is 4"),
        )

    def test_text_around_reasoning(self):
        assert parse_content("a<think>b</think>c") == (
            PlainSpan("a"),
            ReasoningSpan("b"),
            PlainSpan("c"),
        )

    def test_multiple_blocks(self):
        spans = parse_content("<think>one</think>x<think>two</think>")
        assert spans == (ReasoningSpan("one"), PlainSpan("x"), ReasoningSpan("two"))

    def test_unclosed_reasoning(self):
        assert parse_content("<think>still going") == (ReasoningSpan("still going", closed=False),)

    def test_just_opened(self):
        assert parse_content("<think>") == (ReasoningSpan("", closed=False),)

    def test_stray_close_tag_is_text(self):
        assert parse_content("a</think>b") == (PlainSpan("a</think>b"),)


class TestStreaming:
    @pytest.mark.parametrize("partial", ["<", "<t", "<thi", "<think"])
    def test_partial_open_tag_held_back(self, partial):
        assert parse_content(f"hello {partial}", streaming=True) == (PlainSpan("hello "),)

    def test_partial_close_tag_held_back(self):
        assert parse_content("<think>abc</thi", streaming=True) == (
            ReasoningSpan("abc", closed=False),
        )

    def test_partial_tag_kept_when_final(self):
        assert parse_content("a <thi") == (PlainSpan("a <thi"),)

    def test_prefix_of_growing_stream(self):
        full = "<think>hmm</think>Hi"
        for end in range(len(full) + 1):
            spans = parse_content(full[:end], streaming=True)
            assert "<" not in "".join(s.text for s in spans)
