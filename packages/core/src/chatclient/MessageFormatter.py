"""Tokenizer that turns raw chat text into typed formatting segments.

Recognized markup, one level deep and never nested:

    ```codeblock```   highest priority, may span lines
    **bold**          single line
    *italic*          single line
    `code`            single line

Fenced code blocks are cut out first; the text around them is then scanned
left to right for the inline patterns. Unterminated delimiters are kept as
literal text. Segment contents never include their delimiters, so putting
each kind's delimiters back around its content reproduces the input.
"""

from enum import Enum

from chatclient.models import Segment

FENCE = "```"

# Characters an inline pattern may not cross.
_INLINE_LINE_BREAKS = frozenset("\n\r\u2028\u2029")
_CODE_LINE_BREAKS = frozenset("\n")


class ScanState(Enum):
    """Where the scanner currently is relative to a formatting match."""

    OUTSIDE = "outside"
    IN_BOLD = "bold"
    IN_ITALIC = "italic"
    IN_CODE = "code"
    IN_CODEBLOCK = "codeblock"


_DELIMITERS: dict[ScanState, str] = {
    ScanState.IN_BOLD: "**",
    ScanState.IN_ITALIC: "*",
    ScanState.IN_CODE: "`",
    ScanState.IN_CODEBLOCK: FENCE,
}


def delimiter_for(kind: str) -> str:
    """Return the delimiter that surrounds segments of ``kind`` in raw text."""
    if kind == "text":
        return ""
    return _DELIMITERS[ScanState(kind)]


def format_message(raw: str) -> list[Segment]:
    """Split raw chat text into an ordered list of segments.

    Never fails. Empty input yields an empty list; any other input without
    recognizable markup yields exactly one ``text`` segment.
    """
    if not raw:
        return []

    segments: list[Segment] = []
    plain_start = 0
    for start, end in _find_codeblocks(raw):
        _scan_inline(raw[plain_start:start], segments)
        segments.append(
            Segment(kind="codeblock", content=raw[start + len(FENCE):end - len(FENCE)])
        )
        plain_start = end
    _scan_inline(raw[plain_start:], segments)

    return segments or [Segment(kind="text", content=raw)]


def reconstruct(segments: list[Segment]) -> str:
    """Reinsert each segment's delimiters and join the result."""
    parts = []
    for segment in segments:
        delimiter = delimiter_for(segment.kind)
        parts.append(f"{delimiter}{segment.content}{delimiter}")
    return "".join(parts)


def _find_codeblocks(text: str) -> list[tuple[int, int]]:
    """Return ``(start, end)`` spans of fenced blocks, fences included.

    Each opening fence closes at the nearest following fence.
    """
    spans: list[tuple[int, int]] = []
    pos = 0
    while True:
        start = text.find(FENCE, pos)
        if start == -1:
            return spans
        close = text.find(FENCE, start + len(FENCE))
        if close == -1:
            # No later fence can close either, so the rest is plain text.
            return spans
        end = close + len(FENCE)
        spans.append((start, end))
        pos = end


def _scan_inline(text: str, segments: list[Segment]) -> None:
    """Append the segments for a span that contains no code blocks."""
    state = ScanState.OUTSIDE
    plain_start = 0
    content_start = 0
    pos = 0
    length = len(text)

    while pos < length:
        if state is ScanState.OUTSIDE:
            candidate = _open_at(text, pos)
            if candidate is None:
                pos += 1
                continue
            state = candidate
            content_start = pos + len(_DELIMITERS[state])
            pos = content_start
            continue

        delimiter = _DELIMITERS[state]
        if text.startswith(delimiter, pos):
            opened_at = content_start - len(delimiter)
            if opened_at > plain_start:
                segments.append(Segment(kind="text", content=text[plain_start:opened_at]))
            segments.append(Segment(kind=state.value, content=text[content_start:pos]))
            pos += len(delimiter)
            plain_start = pos
            state = ScanState.OUTSIDE
            continue

        pos += 1

    if plain_start < length:
        segments.append(Segment(kind="text", content=text[plain_start:]))


def _open_at(text: str, pos: int) -> ScanState | None:
    """Return the state entered by a pattern that matches at ``pos``.

    A pattern only opens when its closing delimiter exists on the same
    line, so the scanner never has to backtrack out of a state. Bold is
    tried before italic, which is tried before inline code.
    """
    char = text[pos]
    if char == "*":
        if text.startswith("**", pos) and _closes(text, pos + 2, "**", _INLINE_LINE_BREAKS):
            return ScanState.IN_BOLD
        if _closes(text, pos + 1, "*", _INLINE_LINE_BREAKS):
            return ScanState.IN_ITALIC
    elif char == "`":
        if _closes(text, pos + 1, "`", _CODE_LINE_BREAKS):
            return ScanState.IN_CODE
    return None


def _closes(text: str, start: int, delimiter: str, stop_chars: frozenset[str]) -> bool:
    """Whether ``delimiter`` occurs at or after ``start`` before any stop char."""
    for pos in range(start, len(text)):
        if text.startswith(delimiter, pos):
            return True
        if text[pos] in stop_chars:
            return False
    return False
