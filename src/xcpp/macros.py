import re
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from enum import Enum, auto

from xcpp.diag import PreprocessorError, SourcePosition
from xcpp.lexer import LexerError, Token, TokenKind, lex_fragment, render_tokens

_IDENT_RE = re.compile(r"[A-Za-z_]\w*")
_COMMAND_LINE = SourcePosition("<command line>", 1, 1)

PREDEFINED_MACROS = (
    "__STDC_NO_ATOMICS__=1",
    "__STDC_NO_COMPLEX__=1",
    "__STDC_NO_THREADS__=1",
    "__STDC_NO_VLA__=1",
)
BUILTIN_MACROS = frozenset({"__FILE__", "__LINE__"})
VA_ARGS = "__VA_ARGS__"


class MalformedDirective(PreprocessorError):
    code = "XCPP-PP-0104"


class InvalidMacroDefinition(MalformedDirective):
    code = "XCPP-PP-0201"


class MacroRedefinitionConflict(PreprocessorError):
    code = "XCPP-PP-0202"


class MacroKind(Enum):
    OBJECT_LIKE = auto()
    FUNCTION_LIKE = auto()


@dataclass(frozen=True)
class MacroDefinition:
    name: str
    replacement: tuple[Token, ...]
    parameters: tuple[str, ...] | None = None
    is_variadic: bool = False
    position: SourcePosition | None = field(default=None, compare=False)

    @property
    def kind(self) -> MacroKind:
        if self.parameters is None:
            return MacroKind.OBJECT_LIKE
        return MacroKind.FUNCTION_LIKE

    @property
    def permits_empty_arguments(self) -> bool:
        """``F()`` supplies no arguments at all, rather than one empty one."""
        return self.parameters == ()

    def is_parameter(self, name: str) -> bool:
        if self.parameters is None:
            return False
        return name in self.parameters or (self.is_variadic and name == VA_ARGS)

    def signature(self) -> str:
        if self.parameters is None:
            return self.name
        params = list(self.parameters)
        if self.is_variadic:
            params.append("...")
        return f"{self.name}({','.join(params)})"

    def is_equivalent(self, other: "MacroDefinition") -> bool:
        return (
            self.parameters == other.parameters
            and self.is_variadic == other.is_variadic
            and _spelling(self.replacement) == _spelling(other.replacement)
        )


def _spelling(tokens: Sequence[Token]) -> tuple[tuple[TokenKind, str, bool], ...]:
    return tuple(
        (token.kind, token.text, index > 0 and token.leading_space)
        for index, token in enumerate(tokens)
    )


class MacroTable:
    """Macro definitions of one translation unit, keyed by name."""

    def __init__(self) -> None:
        self._macros: dict[str, MacroDefinition] = {}

    @classmethod
    def with_predefined(
        cls,
        defines: Sequence[str] = (),
        undefs: Sequence[str] = (),
    ) -> "MacroTable":
        table = cls()
        for define in (*PREDEFINED_MACROS, *defines):
            table.install(parse_cli_define(define))
        for name in undefs:
            if _IDENT_RE.fullmatch(name) is None:
                raise InvalidMacroDefinition(f"Invalid macro name in -U: {name}")
            table.undef(name)
        return table

    def define(self, macro: MacroDefinition) -> None:
        existing = self._macros.get(macro.name)
        if existing is None:
            self._macros[macro.name] = macro
            return
        if existing.is_equivalent(macro):
            return
        message = f"Macro '{macro.name}' redefined with a different body"
        if existing.position is not None:
            message += f" (previous definition at {existing.position})"
        raise MacroRedefinitionConflict(message, macro.position)

    def install(self, macro: MacroDefinition) -> None:
        self._macros[macro.name] = macro

    def undef(self, name: str) -> bool:
        return self._macros.pop(name, None) is not None

    def get(self, name: str) -> MacroDefinition | None:
        return self._macros.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._macros

    def __len__(self) -> int:
        return len(self._macros)

    def __iter__(self) -> Iterator[str]:
        return iter(self._macros)

    def dump(self) -> tuple[str, ...]:
        return tuple(
            f"{macro.signature()}={render_tokens(macro.replacement)}"
            for _, macro in sorted(self._macros.items())
        )


def parse_define(tokens: Sequence[Token], position: SourcePosition) -> MacroDefinition:
    """Build a definition from the tokens following ``#define``.

    A ``(`` glued to the macro name opens a parameter list; with any
    whitespace in between it is the first replacement token instead.
    """
    if not tokens:
        raise InvalidMacroDefinition("Macro name missing", position)
    name_token = tokens[0]
    if name_token.kind is not TokenKind.IDENT:
        raise InvalidMacroDefinition("Macro name must be an identifier", name_token.position)
    name = name_token.text
    if name in BUILTIN_MACROS or name == "defined":
        raise InvalidMacroDefinition(f"Cannot define builtin macro '{name}'", name_token.position)
    rest = tokens[1:]
    parameters: tuple[str, ...] | None = None
    is_variadic = False
    if rest and rest[0].is_punctuator("(") and not rest[0].leading_space:
        parameters, is_variadic, body_start = _parse_parameters(rest, name_token.position)
        rest = rest[body_start:]
    macro = MacroDefinition(
        name,
        _strip_leading_space(rest),
        parameters,
        is_variadic,
        name_token.position,
    )
    _validate_replacement(macro)
    return macro


def _parse_parameters(
    tokens: Sequence[Token], position: SourcePosition
) -> tuple[tuple[str, ...], bool, int]:
    if len(tokens) > 1 and tokens[1].is_punctuator(")"):
        return (), False, 2
    params: list[str] = []
    index = 1
    while True:
        if index >= len(tokens):
            raise InvalidMacroDefinition("Missing ')' in macro parameter list", position)
        token = tokens[index]
        if token.is_punctuator("..."):
            index += 1
            if index >= len(tokens) or not tokens[index].is_punctuator(")"):
                raise InvalidMacroDefinition("Expected ')' after '...'", token.position)
            return tuple(params), True, index + 1
        if token.kind is not TokenKind.IDENT or token.text == VA_ARGS:
            raise InvalidMacroDefinition("Invalid macro parameter", token.position)
        if token.text in params:
            raise InvalidMacroDefinition(
                f"Duplicate macro parameter '{token.text}'", token.position
            )
        params.append(token.text)
        index += 1
        if index >= len(tokens):
            raise InvalidMacroDefinition("Missing ')' in macro parameter list", position)
        separator = tokens[index]
        if separator.is_punctuator(")"):
            return tuple(params), False, index + 1
        if not separator.is_punctuator(","):
            raise InvalidMacroDefinition(
                "Expected ',' or ')' in macro parameter list", separator.position
            )
        index += 1


def _strip_leading_space(tokens: Sequence[Token]) -> tuple[Token, ...]:
    if not tokens:
        return ()
    first = tokens[0]
    first = first.derive(position=first.position, hide_set=first.hide_set, leading_space=False)
    return (first, *tokens[1:])


def _validate_replacement(macro: MacroDefinition) -> None:
    body = macro.replacement
    if body and (body[0].is_punctuator("##") or body[-1].is_punctuator("##")):
        raise InvalidMacroDefinition(
            "'##' cannot appear at either end of a macro expansion", body[0].position
        )
    for index, token in enumerate(body):
        if token.kind is TokenKind.IDENT and token.text == VA_ARGS and not macro.is_variadic:
            raise InvalidMacroDefinition(
                "__VA_ARGS__ can only appear in the expansion of a variadic macro",
                token.position,
            )
        if macro.parameters is None or not token.is_punctuator("#"):
            continue
        operand = body[index + 1] if index + 1 < len(body) else None
        if operand is None or not macro.is_parameter(operand.text):
            raise InvalidMacroDefinition(
                "'#' is not followed by a macro parameter", token.position
            )


def parse_cli_define(define: str) -> MacroDefinition:
    if "=" in define:
        head, replacement = define.split("=", 1)
    else:
        head, replacement = define, "1"
    name_match = _IDENT_RE.match(head)
    tail = head[name_match.end() :] if name_match is not None else None
    if tail is None or (tail and not tail.startswith("(")):
        raise InvalidMacroDefinition(f"Invalid macro definition: {define}")
    try:
        tokens = lex_fragment(f"{head} {replacement}", filename=_COMMAND_LINE.filename)
    except LexerError as error:
        raise InvalidMacroDefinition(f"Invalid macro definition: {define}") from error
    return parse_define(tokens, _COMMAND_LINE)
