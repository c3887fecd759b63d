import string
from collections.abc import Iterable, Iterator

from xcpp.lexer import Token, TokenKind


def merge_string_literals(tokens: Iterable[Token]) -> Iterator[Token]:
    """Concatenate runs of adjacent string literals into one literal each.

    Literal bodies are joined as written, escapes are left unresolved. Two
    literals with different encoding prefixes are not merged.
    """
    pending: Token | None = None
    for token in tokens:
        if token.kind is not TokenKind.STRING_LITERAL:
            if pending is not None:
                yield pending
                pending = None
            yield token
            continue
        if pending is None:
            pending = token
            continue
        merged = _concatenate(pending, token)
        if merged is None:
            yield pending
            pending = token
        else:
            pending = merged
    if pending is not None:
        yield pending


def split_string_literal(lexeme: str) -> tuple[str, str]:
    quote = lexeme.index('"')
    return lexeme[:quote], lexeme[quote + 1 : -1]


def _concatenate(left: Token, right: Token) -> Token | None:
    left_prefix, left_body = split_string_literal(left.text)
    right_prefix, right_body = split_string_literal(right.text)
    if left_prefix and right_prefix and left_prefix != right_prefix:
        return None
    prefix = left_prefix or right_prefix
    if right_body and right_body[0] in string.hexdigits and _ends_with_open_escape(left_body):
        # a numeric escape at the end of the left body would swallow the
        # next digit, so spell that digit as a full three-digit octal escape
        right_body = f"\\{ord(right_body[0]):03o}{right_body[1:]}"
    return Token(
        TokenKind.STRING_LITERAL,
        f'{prefix}"{left_body}{right_body}"',
        left.position,
        left.hide_set,
        left.leading_space,
    )


def _ends_with_open_escape(body: str) -> bool:
    index = 0
    open_escape = False
    while index < len(body):
        if body[index] != "\\":
            open_escape = False
            index += 1
            continue
        kind = body[index + 1] if index + 1 < len(body) else ""
        if kind == "x":
            end = index + 2
            while end < len(body) and body[end] in string.hexdigits:
                end += 1
            open_escape = end == len(body)
            index = end
            continue
        if kind and kind in string.octdigits:
            end = index + 1
            while end < len(body) and end - index <= 3 and body[end] in string.octdigits:
                end += 1
            open_escape = end == len(body) and end - index - 1 < 3
            index = end
            continue
        open_escape = False
        index += 2
    return open_escape
