"""Page parser and plain-text renderer.

Single-pass algorithm over a tldr page. Every non-empty line must start with
one of the page markers; example lines must also end with a backtick.
Anything else is a PARSE_PAGE error naming the offending line.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

from tldrcache.errors import ErrorCode, TldrCacheError

LineKind = Literal["title", "description", "bullet", "example", "blank"]

_MARKERS: tuple[tuple[str, LineKind], ...] = (
    ("# ", "title"),
    ("> ", "description"),
    ("- ", "bullet"),
    ("`", "example"),
)
# The last "}}" closes the placeholder: "{{a}}}" holds "a}".
_PLACEHOLDER_RE = re.compile(r"\{\{(.+?)\}\}(?!\})")
_OPTION_RE = re.compile(r"^\[(-[^|\]]*)\|([^|\]]+)\]$")


@dataclass(frozen=True)
class PageLine:
    kind: LineKind
    text: str
    lineno: int


def _parse_error(source: str, lineno: int, line: str, hint: str) -> TldrCacheError:
    return TldrCacheError(
        code=ErrorCode.PARSE_PAGE,
        message=f"'{source}' is not a valid tldr page. (line {lineno}):\n\n    {line}\n\n{hint}",
    )


def parse_page(content: str, source: str = "<page>") -> list[PageLine]:
    """Split a page into typed lines with markers removed."""
    lines: list[PageLine] = []

    for lineno, raw in enumerate(content.splitlines(), start=1):
        line = raw.rstrip()

        if not line.strip():
            lines.append(PageLine("blank", "", lineno))
            continue

        for marker, kind in _MARKERS:
            if line.startswith(marker):
                break
        else:
            raise _parse_error(
                source,
                lineno,
                line,
                "Every non-empty line must begin with either '# ', '> ', '- ' or '`'.",
            )

        text = line[len(marker) :]
        if kind == "example":
            if not text.endswith("`"):
                raise _parse_error(
                    source,
                    lineno,
                    line,
                    "Every line with an example must end with a backtick '`'.",
                )
            text = text[:-1]

        lines.append(PageLine(kind, text, lineno))

    return lines


def _expand_placeholder(match: re.Match[str]) -> str:
    inside = match.group(1)
    # "{{[-s|--long]}}" shows the long form of the option.
    option = _OPTION_RE.match(inside)
    if option:
        return option.group(2)
    return inside


def render_page(
    lines: list[PageLine],
    *,
    compact: bool = False,
    indent: int = 2,
    example_indent: int = 4,
) -> str:
    """Render parsed lines as indented plain text."""
    out: list[str] = []
    pad = " " * indent

    for line in lines:
        if line.kind == "blank":
            if not compact:
                out.append("")
        elif line.kind == "title":
            if not compact:
                out.append("")
            out.append(pad + line.text)
        elif line.kind == "example":
            text = line.text.replace("\\{\\{", "\0o").replace("\\}\\}", "\0c")
            text = _PLACEHOLDER_RE.sub(_expand_placeholder, text)
            text = text.replace("\0o", "{{").replace("\0c", "}}")
            out.append(" " * example_indent + text)
        else:
            out.append(pad + line.text)

    if not compact:
        out.append("")
    return "\n".join(out) + "\n"
