"""Split message content into plain and reasoning spans.

Models wrap their reasoning in ``<think>...</think>``. The parser turns
that pseudo-markup into a sequence of tagged spans so renderers never
splice HTML into the raw text.
"""

from dataclasses import dataclass

OPEN_TAG = "<think>"
CLOSE_TAG = "</think>"


@dataclass(frozen=True)
class PlainSpan:
    text: str


@dataclass(frozen=True)
class ReasoningSpan:
    text: str
    closed: bool = True


Span = PlainSpan | ReasoningSpan


def _partial_tag_length(text: str, tag: str) -> int:
    """Length of the longest proper prefix of `tag` that ends `text`."""
    for size in range(min(len(tag) - 1, len(text)), 0, -1):
        if text.endswith(tag[:size]):
            return size
    return 0


def parse_content(text: str, streaming: bool = False) -> tuple[Span, ...]:
    """Parse content into spans.

    A reasoning block that is still open at the end of the text becomes a
    `ReasoningSpan` with ``closed=False``. While streaming, a trailing
    fragment of a tag (``"<thi"``) is held back until the next delta shows
    what it is.
    """
    spans: list[Span] = []
    pos = 0
    inside = False

    while pos < len(text):
        tag = CLOSE_TAG if inside else OPEN_TAG
        index = text.find(tag, pos)
        if index == -1:
            chunk = text[pos:]
            if streaming:
                chunk = chunk[: len(chunk) - _partial_tag_length(chunk, tag)]
            if chunk or inside:
                spans.append(ReasoningSpan(chunk, closed=False) if inside else PlainSpan(chunk))
            inside = False
            break

        chunk = text[pos:index]
        if inside:
            spans.append(ReasoningSpan(chunk))
        elif chunk:
            spans.append(PlainSpan(chunk))
        inside = not inside
        pos = index + len(tag)

    if inside:
        spans.append(ReasoningSpan("", closed=False))
    return tuple(spans)
