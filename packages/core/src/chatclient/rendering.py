"""Sanitize-on-render for formatted segments.

Segment contents come from remote replies and are never trusted. Every
segment is sanitized before display regardless of its kind: tags are
stripped and the remainder is escaped, so the output is inert text.
"""

import html
import re

from chatclient.models import Segment

# Tags, comments, declarations and unterminated tag openers. A "<" that is
# not followed by a tag name, "/", "!" or "?" is plain text and is escaped.
_TAG_PATTERN = re.compile(
    r"<!--.*?-->|</?[A-Za-z][^>]*>|<[!?][^>]*>|</?[A-Za-z!?][^>]*$",
    re.DOTALL,
)
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b-\x1f\x7f]")

_HTML_WRAPPERS = {
    "text": ("", ""),
    "bold": ("<strong>", "</strong>"),
    "italic": ("<em>", "</em>"),
    "code": ("<code>", "</code>"),
    "codeblock": ("<pre><code>", "</code></pre>"),
}

_ANSI_RESET = "\033[0m"
_ANSI_STYLES = {
    "text": "",
    "bold": "\033[1m",
    "italic": "\033[3m",
    "code": "\033[36m",
    "codeblock": "\033[36m",
}


def sanitize(text: str) -> str:
    """Strip all markup from ``text`` and HTML-escape what is left."""
    stripped = _TAG_PATTERN.sub("", text)
    return html.escape(stripped, quote=True)


def render_html(segments: list[Segment]) -> str:
    """Render segments as HTML with every segment's content sanitized."""
    parts = []
    for segment in segments:
        opening, closing = _HTML_WRAPPERS[segment.kind]
        parts.append(f"{opening}{sanitize(segment.content)}{closing}")
    return "".join(parts)


def render_terminal(segments: list[Segment]) -> str:
    """Render segments for a terminal using ANSI styles.

    Control characters in the content are dropped so a reply cannot emit
    its own escape sequences.
    """
    parts = []
    for segment in segments:
        content = _CONTROL_CHARS.sub("", segment.content)
        style = _ANSI_STYLES[segment.kind]
        if segment.kind == "codeblock":
            content = "\n" + content.strip("\n") + "\n"
        parts.append(f"{style}{content}{_ANSI_RESET}" if style else content)
    return "".join(parts)
