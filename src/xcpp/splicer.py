from collections.abc import Iterator
from typing import NamedTuple

TRIGRAPHS = {
    "=": "#",
    "/": "\\",
    "'": "^",
    "(": "[",
    ")": "]",
    "!": "|",
    "<": "{",
    ">": "}",
    "-": "~",
}


class LogicalChar(NamedTuple):
    char: str
    line: int
    column: int


def splice(source: str, *, trigraphs: bool = False) -> Iterator[LogicalChar]:
    """Yield the logical characters of ``source`` with their physical positions.

    ``\\r\\n`` and lone ``\\r`` are folded into a single ``\\n``. A backslash
    immediately followed by a line terminator is removed together with the
    terminator, so the next physical line continues the current logical one.
    A backslash at the very end of the input has nothing to splice and is kept.
    """
    index = 0
    line = 1
    column = 1
    length = len(source)
    while index < length:
        ch, width = _read_char(source, index, trigraphs)
        if ch == "\\":
            newline_width = _newline_width(source, index + width)
            if newline_width:
                index += width + newline_width
                line += 1
                column = 1
                continue
        if ch == "\r":
            ch = "\n"
            width = _newline_width(source, index)
        yield LogicalChar(ch, line, column)
        index += width
        if ch == "\n":
            line += 1
            column = 1
        else:
            column += width


def _read_char(source: str, index: int, trigraphs: bool) -> tuple[str, int]:
    ch = source[index]
    if (
        trigraphs
        and ch == "?"
        and source.startswith("??", index)
        and index + 2 < len(source)
        and source[index + 2] in TRIGRAPHS
    ):
        return TRIGRAPHS[source[index + 2]], 3
    return ch, 1


def _newline_width(source: str, index: int) -> int:
    if source.startswith("\r\n", index):
        return 2
    if index < len(source) and source[index] in "\r\n":
        return 1
    return 0
