"""Tests for HTML rendering of chat messages."""

from client.render import render_content, render_markdown, render_message
from client.state import Message


class TestMarkdown:
    def test_basic_formatting(self):
        html = render_markdown("**bold** and *soft*")
        assert "<strong>bold</strong>" in html
        assert "<em>soft</em>" in html

    def test_links_open_in_new_tab(self):
        html = render_markdown("[docs](https://example.com)")
        assert 'href="https://example.com"' in html
        assert 'target="_blank"' in html
        assert 'rel="noreferrer"' in html

    def test_images_are_constrained(self):
        html = render_markdown("![cat](/uploads/cat.png)")
        assert 'class="message-image"' in html
        assert "max-width: 100%" in html

    def test_tables(self):
        html = render_markdown("| a | b |\n|---|---|\n| 1 | 2 |")
        assert "<table>" in html
        assert "<td>2</td>" in html

    def test_strikethrough(self):
        assert "<s>gone</s>" in render_markdown("~~gone~~")

    def test_raw_html_is_escaped(self):
        html = render_markdown("<script>alert(1)</script>")
        assert "<script>" not in html
        assert "&lt;script&gt;" in html

    def test_highlighted_code(self):
        html = render_markdown("```python\nx = 1\n```")
        assert 'class="language-python"' in html
        assert "<span" in html

    def test_unknown_language_is_plain(self):
        html = render_markdown("```nosuchlang\n<b>\n```")
        assert "&lt;b&gt;" in html
        assert "<span" not in html

    def test_empty(self):
        assert render_markdown("") == ""


class TestReasoning:
    def test_reasoning_block(self):
        html = render_content("<think>hmm</think>Hi")
        assert html.startswith('<div class="think"><p>hmm</p>')
        assert html.endswith("<p>Hi</p>\n")

    def test_open_reasoning_block(self):
        html = render_content("<think>still thinking", streaming=True)
        assert '<div class="think open">' in html

    def test_streaming_hides_partial_tag(self):
        assert "&lt;thi" not in render_content("Hello <thi", streaming=True)


class TestMessages:
    def test_image_message(self):
        html = render_message(
            Message(id="1", role="user", content='/uploads/a"b.png', content_type="image")
        )
        assert html.startswith('<img src="/uploads/a&quot;b.png"')
        assert 'alt="User content"' in html

    def test_streaming_text_message(self):
        message = Message(id="1", role="assistant", content="<think>a", is_streaming=True)
        assert "think open" in render_message(message)
