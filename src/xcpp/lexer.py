from collections import deque
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, replace
from enum import Enum, auto
from typing import cast

from xcpp.diag import SourceError, SourcePosition
from xcpp.splicer import LogicalChar, splice

ASM_KEYWORDS = frozenset({"asm", "__asm", "__asm__"})

PUNCTUATORS: tuple[str, ...] = (
    "...",
    ">>=",
    "<<=",
    "->",
    "++",
    "--",
    "&&",
    "||",
    "<=",
    ">=",
    "==",
    "!=",
    "+=",
    "-=",
    "*=",
    "/=",
    "%=",
    "&=",
    "|=",
    "^=",
    "<<",
    ">>",
    "##",
    "<:",
    ":>",
    "<%",
    "%>",
    "%:",
    "%:%:",
    "[",
    "]",
    "(",
    ")",
    "{",
    "}",
    ".",
    "&",
    "*",
    "+",
    "-",
    "~",
    "!",
    "/",
    "%",
    "<",
    ">",
    "^",
    "|",
    "?",
    ":",
    ";",
    "=",
    ",",
    "#",
)

PUNCTUATORS_SORTED: tuple[str, ...] = cast(
    tuple[str, ...], tuple(sorted(PUNCTUATORS, key=len, reverse=True))
)
_LONGEST_PUNCTUATOR = len(PUNCTUATORS_SORTED[0])

DIGRAPHS = {
    "<:": "[",
    ":>": "]",
    "<%": "{",
    "%>": "}",
    "%:": "#",
    "%:%:": "##",
}


class TokenKind(Enum):
    IDENT = auto()
    PUNCTUATOR = auto()
    PP_NUMBER = auto()
    CHAR_CONST = auto()
    STRING_LITERAL = auto()
    HEADER_NAME = auto()
    ASM_BLOCK = auto()
    OTHER = auto()
    DIRECTIVE_HASH = auto()
    NEWLINE = auto()
    EOF = auto()


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    lexeme: str | None
    position: SourcePosition
    hide_set: frozenset[str] = frozenset()
    leading_space: bool = False

    @property
    def line(self) -> int:
        return self.position.line

    @property
    def column(self) -> int:
        return self.position.column

    @property
    def text(self) -> str:
        return "" if self.lexeme is None else self.lexeme

    def is_punctuator(self, text: str) -> bool:
        if self.kind is not TokenKind.PUNCTUATOR or self.lexeme is None:
            return False
        return DIGRAPHS.get(self.lexeme, self.lexeme) == text

    def derive(
        self,
        *,
        position: SourcePosition,
        hide_set: frozenset[str],
        leading_space: bool | None = None,
    ) -> "Token":
        return replace(
            self,
            position=position,
            hide_set=hide_set,
            leading_space=self.leading_space if leading_space is None else leading_space,
        )


class LexerError(SourceError):
    stage = "lex"


class UnterminatedLiteral(LexerError):
    code = "XCPP-LEX-0001"


class UnterminatedComment(LexerError):
    code = "XCPP-LEX-0002"


class UnterminatedAsmBlock(LexerError):
    code = "XCPP-LEX-0003"


def lex(source: str, *, filename: str = "<input>", trigraphs: bool = False) -> list[Token]:
    return list(Scanner(source, filename=filename, trigraphs=trigraphs))


def lex_fragment(text: str, *, filename: str = "<scratch>") -> list[Token]:
    """Scan ``text`` as a run of tokens inside a line, without directives."""
    return [
        token
        for token in Scanner(text, filename=filename, directives=False)
        if token.kind not in {TokenKind.NEWLINE, TokenKind.EOF}
    ]


class Scanner:
    def __init__(
        self,
        source: str,
        *,
        filename: str = "<input>",
        trigraphs: bool = False,
        directives: bool = True,
    ) -> None:
        self._chars = splice(source, trigraphs=trigraphs)
        self._buffer: deque[LogicalChar] = deque()
        self._filename = filename
        self._directives = directives
        self._line = 1
        self._column = 1
        self._at_line_start = True
        self._in_directive = False
        self._directive_keyword = False
        self._header_name = False
        self._asm_pending = False

    def __iter__(self) -> Iterator[Token]:
        return self.tokens()

    def tokens(self) -> Iterator[Token]:
        while True:
            leading_space = self._skip_whitespace_and_comments()
            position = self._position()
            if self._eof():
                if not self._at_line_start:
                    self._end_line()
                    yield Token(TokenKind.NEWLINE, "\n", position)
                yield Token(TokenKind.EOF, None, position, leading_space=leading_space)
                return
            if self._peek() == "\n":
                self._advance()
                self._end_line()
                yield Token(TokenKind.NEWLINE, "\n", position, leading_space=leading_space)
                continue
            kind, lexeme = self._read_token(position)
            self._at_line_start = False
            yield Token(kind, lexeme, position, leading_space=leading_space)

    def _read_token(self, position: SourcePosition) -> tuple[TokenKind, str]:
        asm_pending, self._asm_pending = self._asm_pending, False
        if self._directives and self._at_line_start and self._starts_directive():
            self._in_directive = True
            self._directive_keyword = True
            return TokenKind.DIRECTIVE_HASH, self._take(1 if self._peek() == "#" else 2)
        expecting_keyword, self._directive_keyword = self._directive_keyword, False
        if self._header_name:
            self._header_name = False
            header_name = self._maybe_read_header_name()
            if header_name is not None:
                return TokenKind.HEADER_NAME, header_name
        if asm_pending and self._peek() == "{":
            return TokenKind.ASM_BLOCK, self._read_asm_block(position)
        literal = self._maybe_read_literal()
        if literal is not None:
            return literal
        if self._is_number_start():
            return TokenKind.PP_NUMBER, self._read_pp_number()
        if self._is_identifier_start():
            lexeme = self._read_identifier()
            if expecting_keyword and lexeme == "include":
                self._header_name = True
            elif not self._in_directive and lexeme in ASM_KEYWORDS:
                self._asm_pending = True
            return TokenKind.IDENT, lexeme
        punct = self._maybe_read_punctuator()
        if punct is not None:
            return TokenKind.PUNCTUATOR, punct
        return TokenKind.OTHER, self._advance()

    def _peek(self, offset: int = 0) -> str:
        while len(self._buffer) <= offset:
            item = next(self._chars, None)
            if item is None:
                return ""
            self._buffer.append(item)
        return self._buffer[offset].char

    def _advance(self) -> str:
        if self._peek() == "":
            return ""
        item = self._buffer.popleft()
        if item.char == "\n":
            self._line = item.line + 1
            self._column = 1
        else:
            self._line = item.line
            self._column = item.column + 1
        return item.char

    def _take(self, count: int) -> str:
        return "".join(self._advance() for _ in range(count))

    def _eof(self) -> bool:
        return self._peek() == ""

    def _position(self, offset: int = 0) -> SourcePosition:
        if self._peek(offset) == "":
            return SourcePosition(self._filename, self._line, self._column)
        item = self._buffer[offset]
        return SourcePosition(self._filename, item.line, item.column)

    def _end_line(self) -> None:
        self._at_line_start = True
        self._in_directive = False
        self._directive_keyword = False
        self._header_name = False

    def _starts_directive(self) -> bool:
        ch = self._peek()
        return ch == "#" or (ch == "%" and self._peek(1) == ":")

    def _skip_whitespace_and_comments(self) -> bool:
        skipped = False
        while not self._eof():
            ch = self._peek()
            if ch in " \t\v\f":
                self._advance()
                skipped = True
                continue
            if ch == "/" and self._peek(1) == "/":
                while not self._eof() and self._peek() != "\n":
                    self._advance()
                skipped = True
                continue
            if ch == "/" and self._peek(1) == "*":
                start = self._position()
                self._advance()
                self._advance()
                while True:
                    if self._eof():
                        raise UnterminatedComment("Unterminated block comment", start)
                    if self._peek() == "*" and self._peek(1) == "/":
                        self._advance()
                        self._advance()
                        break
                    self._advance()
                skipped = True
                continue
            break
        return skipped

    def _is_identifier_start(self) -> bool:
        ch = self._peek()
        return ch == "_" or ch.isalpha()

    def _read_identifier(self) -> str:
        chars = [self._advance()]
        while True:
            ch = self._peek()
            if ch == "_" or ch.isalnum():
                chars.append(self._advance())
                continue
            return "".join(chars)

    def _maybe_read_literal(self) -> tuple[TokenKind, str] | None:
        ch = self._peek()
        if ch in {'"', "'"}:
            prefix_length = 0
        elif ch == "u" and self._peek(1) == "8" and self._peek(2) in {'"', "'"}:
            prefix_length = 2
        elif ch in {"u", "U", "L"} and self._peek(1) in {'"', "'"}:
            prefix_length = 1
        else:
            return None
        quote = self._peek(prefix_length)
        start = self._position(prefix_length)
        prefix = self._take(prefix_length)
        kind = TokenKind.STRING_LITERAL if quote == '"' else TokenKind.CHAR_CONST
        return kind, prefix + self._read_quoted(quote, start)

    def _read_quoted(self, quote: str, start: SourcePosition) -> str:
        chars = [self._advance()]
        while True:
            ch = self._peek()
            if ch in {"", "\n"}:
                what = "string literal" if quote == '"' else "character constant"
                raise UnterminatedLiteral(f"Unterminated {what}", start)
            chars.append(self._advance())
            if ch == quote:
                return "".join(chars)
            if ch == "\\" and self._peek() not in {"", "\n"}:
                chars.append(self._advance())

    def _is_number_start(self) -> bool:
        ch = self._peek()
        if ch.isdigit():
            return True
        return ch == "." and self._peek(1).isdigit()

    def _read_pp_number(self) -> str:
        chars = [self._advance()]
        while not self._eof():
            ch = self._peek()
            next_ch = self._peek(1)
            if ch in {"e", "E", "p", "P"} and next_ch in {"+", "-"}:
                chars.append(self._advance())
                chars.append(self._advance())
                continue
            if ch.isalnum() or ch in {".", "_"}:
                chars.append(self._advance())
                continue
            break
        return "".join(chars)

    def _maybe_read_punctuator(self) -> str | None:
        window = "".join(self._peek(offset) for offset in range(_LONGEST_PUNCTUATOR))
        for punct in PUNCTUATORS_SORTED:
            if window.startswith(punct):
                return self._take(len(punct))
        return None

    def _maybe_read_header_name(self) -> str | None:
        ch = self._peek()
        if ch not in {"<", '"'}:
            return None
        end_char = ">" if ch == "<" else '"'
        offset = 1
        while True:
            current = self._peek(offset)
            if current in {"", "\n"}:
                return None
            if current == end_char:
                return self._take(offset + 1)
            offset += 1

    def _read_asm_block(self, start: SourcePosition) -> str:
        chars: list[str] = []
        depth = 0
        while True:
            ch = self._peek()
            if ch == "":
                raise UnterminatedAsmBlock("Unterminated asm block", start)
            chars.append(self._advance())
            if ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return "".join(chars)


def render_tokens(tokens: Iterable[Token]) -> str:
    parts: list[str] = []
    for token in tokens:
        if parts and token.leading_space:
            parts.append(" ")
        parts.append(token.text)
    return "".join(parts)
