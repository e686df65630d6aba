"""Render chat messages to HTML.

Markdown goes through markdown-it-py with tables and strikethrough
enabled; fenced code with a language is highlighted by Pygments.
Reasoning spans are rendered into a muted, indented block.
"""

from html import escape

from markdown_it import MarkdownIt
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from client.markup import PlainSpan, ReasoningSpan, parse_content
from client.state import Message

REASONING_CLASS = "think"
IMAGE_STYLE = "max-width: 100%; height: auto;"

_formatter = HtmlFormatter(nowrap=True)


def _highlight_code(code: str, lang: str, attrs: str) -> str:
    if not lang:
        return ""
    try:
        lexer = get_lexer_by_name(lang)
    except ClassNotFound:
        return ""
    return highlight(code, lexer, _formatter)


def _render_link_open(self, tokens, idx, options, env):
    tokens[idx].attrSet("target", "_blank")
    tokens[idx].attrSet("rel", "noreferrer")
    return self.renderToken(tokens, idx, options, env)


def _render_image(self, tokens, idx, options, env):
    tokens[idx].attrSet("class", "message-image")
    tokens[idx].attrSet("style", IMAGE_STYLE)
    return self.image(tokens, idx, options, env)


def create_markdown() -> MarkdownIt:
    md = MarkdownIt("commonmark", {"html": False, "linkify": False, "highlight": _highlight_code})
    md.enable(["table", "strikethrough"])
    md.add_render_rule("link_open", _render_link_open)
    md.add_render_rule("image", _render_image)
    return md


_markdown = create_markdown()


def render_markdown(content: str) -> str:
    if not content:
        return ""
    return _markdown.render(content)


def render_content(content: str, streaming: bool = False) -> str:
    """Render text content, giving reasoning spans their own block."""
    parts: list[str] = []
    for span in parse_content(content, streaming=streaming):
        if isinstance(span, ReasoningSpan):
            state = "" if span.closed else " open"
            parts.append(
                f'<div class="{REASONING_CLASS}{state}">{render_markdown(span.text)}</div>'
            )
        elif isinstance(span, PlainSpan):
            parts.append(render_markdown(span.text))
    return "".join(parts)


def render_message(message: Message) -> str:
    if message.content_type == "image":
        return (
            f'<img src="{escape(message.content, quote=True)}" alt="User content" '
            f'class="message-image" style="{IMAGE_STYLE}">'
        )
    return render_content(message.content, streaming=message.is_streaming)
