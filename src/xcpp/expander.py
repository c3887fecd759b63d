from collections import deque
from collections.abc import Callable, Iterable, Iterator, Sequence

from xcpp.diag import PreprocessorError, SourceError
from xcpp.lexer import LexerError, Token, TokenKind, lex_fragment
from xcpp.macros import VA_ARGS, MacroDefinition, MacroTable

Reporter = Callable[[SourceError], object]


class MacroArityMismatch(PreprocessorError):
    code = "XCPP-PP-0203"


class UnterminatedMacroInvocation(PreprocessorError):
    code = "XCPP-PP-0204"


class InvalidTokenPaste(PreprocessorError):
    code = "XCPP-PP-0205"


class _TokenStream:
    def __init__(self, tokens: Iterable[Token]) -> None:
        self._tokens = iter(tokens)
        self._pending: deque[Token] = deque()

    def next(self) -> Token | None:
        if self._pending:
            return self._pending.popleft()
        return next(self._tokens, None)

    def peek(self) -> Token | None:
        if not self._pending:
            token = next(self._tokens, None)
            if token is None:
                return None
            self._pending.append(token)
        return self._pending[0]

    def push_front(self, tokens: Sequence[Token]) -> None:
        self._pending.extendleft(reversed(tokens))


class MacroExpander:
    def __init__(self, macros: MacroTable, *, report: Reporter | None = None) -> None:
        self._macros = macros
        self._report = report

    def expand(self, tokens: Iterable[Token]) -> Iterator[Token]:
        stream = _TokenStream(tokens)
        while True:
            token = stream.next()
            if token is None:
                return
            if not self._expand_into(token, stream):
                yield token

    def _expand_into(self, token: Token, stream: _TokenStream) -> bool:
        if token.kind is not TokenKind.IDENT or token.text in token.hide_set:
            return False
        macro = self._macros.get(token.text)
        if macro is None:
            builtin = _builtin_token(token)
            if builtin is None:
                return False
            stream.push_front([builtin])
            return True
        if macro.parameters is None:
            hide_set = token.hide_set | {macro.name}
            stream.push_front(self._substitute(macro, None, token, hide_set))
            return True
        following = stream.peek()
        if following is None or not following.is_punctuator("("):
            return False
        consumed = [following]
        stream.next()
        try:
            args, closing = _collect_arguments(token, stream, consumed)
            arguments = _bind_arguments(macro, args, token)
        except PreprocessorError as error:
            self._emit(error)
            # painted so a rescan of the same tokens does not report it again
            painted = token.derive(
                position=token.position, hide_set=token.hide_set | {macro.name}
            )
            stream.push_front([painted, *consumed])
            return True
        hide_set = (token.hide_set & closing.hide_set) | {macro.name}
        stream.push_front(self._substitute(macro, arguments, token, hide_set))
        return True

    def _substitute(
        self,
        macro: MacroDefinition,
        arguments: dict[str, list[Token]] | None,
        site: Token,
        hide_set: frozenset[str],
    ) -> list[Token]:
        body = macro.replacement
        paste_operators = {id(token) for token in body if token.is_punctuator("##")}
        expanded_arguments: dict[str, list[Token]] = {}
        pieces: list[Token | None] = []
        index = 0
        while index < len(body):
            token = body[index]
            if arguments is not None and token.is_punctuator("#") and index + 1 < len(body):
                operand = body[index + 1].text
                if operand in arguments:
                    pieces.append(_stringize(arguments[operand], token))
                    index += 2
                    continue
            if arguments is not None and token.kind is TokenKind.IDENT and token.text in arguments:
                pasted = (index > 0 and id(body[index - 1]) in paste_operators) or (
                    index + 1 < len(body) and id(body[index + 1]) in paste_operators
                )
                if pasted:
                    replacement = arguments[token.text]
                else:
                    if token.text not in expanded_arguments:
                        expanded_arguments[token.text] = list(self.expand(arguments[token.text]))
                    replacement = expanded_arguments[token.text]
                if replacement:
                    first, *rest = replacement
                    pieces.append(
                        first.derive(
                            position=first.position,
                            hide_set=first.hide_set,
                            leading_space=token.leading_space,
                        )
                    )
                    pieces.extend(rest)
                elif pasted:
                    pieces.append(None)
                index += 1
                continue
            pieces.append(token)
            index += 1
        produced = self._paste(pieces, paste_operators, site)
        return [
            token.derive(
                position=site.position,
                hide_set=token.hide_set | hide_set,
                leading_space=site.leading_space if offset == 0 else None,
            )
            for offset, token in enumerate(produced)
        ]

    def _paste(
        self,
        pieces: list[Token | None],
        paste_operators: set[int],
        site: Token,
    ) -> list[Token]:
        out: list[Token | None] = []
        index = 0
        while index < len(pieces):
            piece = pieces[index]
            is_paste = piece is not None and id(piece) in paste_operators
            if is_paste and out and index + 1 < len(pieces):
                left = out.pop()
                out.extend(self._paste_pair(left, pieces[index + 1], site))
                index += 2
                continue
            out.append(piece)
            index += 1
        return [piece for piece in out if piece is not None]

    def _paste_pair(
        self, left: Token | None, right: Token | None, site: Token
    ) -> list[Token | None]:
        if left is None:
            return [right]
        if right is None:
            return [left]
        try:
            tokens = lex_fragment(left.text + right.text, filename=site.position.filename)
        except LexerError:
            tokens = []
        if len(tokens) != 1:
            self._emit(
                InvalidTokenPaste(
                    f"Pasting '{left.text}' and '{right.text}' does not give a valid token",
                    site.position,
                )
            )
            return [left, right]
        return [
            Token(
                tokens[0].kind,
                tokens[0].lexeme,
                left.position,
                left.hide_set | right.hide_set,
                left.leading_space,
            )
        ]

    def _emit(self, error: SourceError) -> None:
        if self._report is None:
            raise error
        self._report(error)


def _collect_arguments(
    name: Token, stream: _TokenStream, consumed: list[Token]
) -> tuple[list[list[Token]], Token]:
    args: list[list[Token]] = [[]]
    depth = 0
    while True:
        token = stream.next()
        if token is None or token.kind is TokenKind.EOF:
            if token is not None:
                consumed.append(token)
            raise UnterminatedMacroInvocation(
                f"Unterminated invocation of macro '{name.text}'", name.position
            )
        consumed.append(token)
        if token.is_punctuator("("):
            depth += 1
        elif token.is_punctuator(")"):
            if depth == 0:
                return args, token
            depth -= 1
        elif token.is_punctuator(",") and depth == 0:
            args.append([])
            continue
        args[-1].append(token)


def _bind_arguments(
    macro: MacroDefinition, args: list[list[Token]], name: Token
) -> dict[str, list[Token]]:
    assert macro.parameters is not None
    if macro.permits_empty_arguments and args == [[]]:
        args = []
    expected = len(macro.parameters)
    if macro.is_variadic:
        if len(args) < expected:
            raise MacroArityMismatch(
                f"Macro '{macro.name}' expects at least {expected} argument(s), got {len(args)}",
                name.position,
            )
    elif len(args) != expected:
        raise MacroArityMismatch(
            f"Macro '{macro.name}' expects {expected} argument(s), got {len(args)}",
            name.position,
        )
    bound = dict(zip(macro.parameters, args))
    if macro.is_variadic:
        bound[VA_ARGS] = _join_arguments(args[expected:], name)
    return bound


def _join_arguments(args: list[list[Token]], name: Token) -> list[Token]:
    out: list[Token] = []
    for index, arg in enumerate(args):
        if index > 0:
            out.append(Token(TokenKind.PUNCTUATOR, ",", name.position))
        out.extend(arg)
    return out


def _stringize(argument: list[Token], hash_token: Token) -> Token:
    parts: list[str] = []
    for token in argument:
        if parts and token.leading_space:
            parts.append(" ")
        text = token.text
        if token.kind in {TokenKind.STRING_LITERAL, TokenKind.CHAR_CONST}:
            text = text.replace("\\", "\\\\").replace('"', '\\"')
        parts.append(text)
    return Token(
        TokenKind.STRING_LITERAL,
        '"' + "".join(parts) + '"',
        hash_token.position,
        leading_space=hash_token.leading_space,
    )


def _builtin_token(token: Token) -> Token | None:
    if token.text == "__FILE__":
        return Token(
            TokenKind.STRING_LITERAL,
            quote_string_literal(token.position.filename),
            token.position,
            token.hide_set,
            token.leading_space,
        )
    if token.text == "__LINE__":
        return Token(
            TokenKind.PP_NUMBER,
            str(token.position.line),
            token.position,
            token.hide_set,
            token.leading_space,
        )
    return None


def quote_string_literal(text: str) -> str:
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'
