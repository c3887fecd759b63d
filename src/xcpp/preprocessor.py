from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from pathlib import Path

from xcpp.diag import DiagnosticLog, PreprocessorError, SourcePosition
from xcpp.expander import MacroExpander
from xcpp.lexer import LexerError, Scanner, Token, TokenKind, render_tokens
from xcpp.macros import MacroTable, MalformedDirective, parse_define
from xcpp.merger import merge_string_literals
from xcpp.options import FrontendOptions, normalize_options

_IN_MEMORY_FILENAMES = frozenset({"<input>", "<stdin>"})


class UnknownDirective(PreprocessorError):
    code = "XCPP-PP-0101"
    severity = "warning"


class UnresolvedInclude(PreprocessorError):
    code = "XCPP-PP-0102"


class ErrorDirective(PreprocessorError):
    code = "XCPP-PP-0103"


class IncludeReadError(PreprocessorError):
    code = "XCPP-PP-0301"


class IncludeCycle(PreprocessorError):
    code = "XCPP-PP-0302"


@dataclass
class IncludeFrame:
    identity: str
    filename: str
    directory: Path | None
    position: SourcePosition


@dataclass(frozen=True)
class Pragma:
    position: SourcePosition
    text: str


@dataclass(frozen=True)
class _IncludedFile:
    identity: str
    directory: Path
    source: str


class IncludeStack:
    """Files currently being read, outermost first; no file appears twice."""

    def __init__(self, *, max_depth: int = 200) -> None:
        self._frames: list[IncludeFrame] = []
        self._max_depth = max_depth

    def check(self, identity: str, *, site: SourcePosition | None = None) -> None:
        if identity in self:
            raise IncludeCycle(f"Circular include of {identity}", site)
        if len(self._frames) >= self._max_depth:
            raise IncludeCycle("#include nested too deeply", site)

    def push(self, frame: IncludeFrame, *, site: SourcePosition | None = None) -> None:
        self.check(frame.identity, site=site)
        self._frames.append(frame)

    def pop(self) -> IncludeFrame:
        return self._frames.pop()

    @property
    def top(self) -> IncludeFrame | None:
        return self._frames[-1] if self._frames else None

    def __contains__(self, identity: object) -> bool:
        return any(frame.identity == identity for frame in self._frames)

    def __len__(self) -> int:
        return len(self._frames)


def _format_include_trace(
    source: str,
    line: int,
    include_name: str,
    include_path: str,
    is_angled: bool,
) -> str:
    reference = _format_include_reference(include_name, is_angled)
    return f"{source}:{line}: #include {reference} -> {include_path}"


def _format_include_reference(include_name: str, is_angled: bool) -> str:
    if is_angled:
        return f"<{include_name}>"
    return f'"{include_name}"'


class Preprocessor:
    def __init__(
        self,
        options: FrontendOptions | None = None,
        *,
        log: DiagnosticLog | None = None,
    ) -> None:
        self._options = normalize_options(options)
        self.log = DiagnosticLog(warn_as_error=self._options.warn_as_error) if log is None else log
        self.macros = MacroTable.with_predefined(self._options.defines, self._options.undefs)
        self.include_stack = IncludeStack(max_depth=self._options.max_include_depth)
        self.include_trace: list[str] = []
        self.pragmas: list[Pragma] = []
        self._once: set[str] = set()
        self._expander = MacroExpander(self.macros, report=self.log.report)

    def tokens(self, source: str, *, filename: str = "<input>") -> Iterator[Token]:
        text = self._translation_unit(source, filename)
        return merge_string_literals(self._expander.expand(text))

    def _translation_unit(self, source: str, filename: str) -> Iterator[Token]:
        if filename in _IN_MEMORY_FILENAMES:
            identity, directory = filename, None
        else:
            resolved = Path(filename).resolve()
            identity, directory = str(resolved), resolved.parent
        frame = IncludeFrame(identity, filename, directory, SourcePosition(filename, 1, 1))
        yield from self._file_tokens(frame, source)
        yield Token(TokenKind.EOF, None, frame.position)

    def _file_tokens(self, frame: IncludeFrame, source: str) -> Iterator[Token]:
        self.include_stack.push(frame)
        try:
            scanner = Scanner(source, filename=frame.filename, trigraphs=self._options.trigraphs)
            line: list[Token] = []
            try:
                for token in scanner:
                    if token.kind is TokenKind.EOF:
                        frame.position = token.position
                        break
                    if token.kind is not TokenKind.NEWLINE:
                        line.append(token)
                        continue
                    frame.position = token.position
                    if line and line[0].kind is TokenKind.DIRECTIVE_HASH:
                        yield from self._directive(line, frame)
                    else:
                        yield from line
                    line = []
            except LexerError as error:
                self.log.report(error)
        finally:
            self.include_stack.pop()

    def _directive(self, line: list[Token], frame: IncludeFrame) -> Iterator[Token]:
        if len(line) == 1:
            return
        try:
            included = self._dispatch(line[0], line[1], line[2:], frame)
        except PreprocessorError as error:
            self.log.report(error)
            return
        if included is not None:
            child = IncludeFrame(
                included.identity,
                included.identity,
                included.directory,
                SourcePosition(included.identity, 1, 1),
            )
            yield from self._file_tokens(child, included.source)

    def _dispatch(
        self,
        hash_token: Token,
        keyword: Token,
        operands: list[Token],
        frame: IncludeFrame,
    ) -> _IncludedFile | None:
        name = keyword.text if keyword.kind is TokenKind.IDENT else None
        if name == "define":
            self.macros.define(parse_define(operands, keyword.position))
            return None
        if name == "undef":
            self._handle_undef(keyword, operands)
            return None
        if name == "include":
            return self._handle_include(keyword, operands, frame)
        if name == "pragma":
            self._handle_pragma(hash_token, operands, frame)
            return None
        if name == "error":
            raise ErrorDirective(render_tokens(operands) or "#error", hash_token.position)
        raise UnknownDirective(
            f"Unknown preprocessor directive: #{keyword.text}", keyword.position
        )

    def _handle_undef(self, keyword: Token, operands: list[Token]) -> None:
        if not operands or operands[0].kind is not TokenKind.IDENT:
            raise MalformedDirective("Expected macro name after #undef", keyword.position)
        self.macros.undef(operands[0].text)

    def _handle_pragma(self, hash_token: Token, operands: list[Token], frame: IncludeFrame) -> None:
        if len(operands) == 1 and operands[0].text == "once":
            self._once.add(frame.identity)
            return
        self.pragmas.append(Pragma(hash_token.position, render_tokens(operands)))

    def _handle_include(
        self, keyword: Token, operands: list[Token], frame: IncludeFrame
    ) -> _IncludedFile | None:
        include_name, is_angled = self._parse_include_operand(operands, keyword.position)
        include_path = self._resolve_include(
            include_name, is_angled=is_angled, directory=frame.directory
        )
        if include_path is None:
            raise UnresolvedInclude(
                f"Include not found: {_format_include_reference(include_name, is_angled)}",
                keyword.position,
            )
        identity = str(include_path)
        if identity in self._once:
            return None
        self.include_trace.append(
            _format_include_trace(frame.filename, keyword.line, include_name, identity, is_angled)
        )
        self.include_stack.check(identity, site=keyword.position)
        try:
            source = include_path.read_text(encoding="utf-8")
        except (OSError, UnicodeError) as error:
            raise IncludeReadError(
                f"Unable to read include: {include_name}: {error}", keyword.position
            ) from error
        return _IncludedFile(identity, include_path.parent, source)

    def _parse_include_operand(
        self, operands: Sequence[Token], position: SourcePosition
    ) -> tuple[str, bool]:
        if len(operands) == 1 and operands[0].kind is TokenKind.HEADER_NAME:
            header_name = operands[0].text
            return header_name[1:-1], header_name.startswith("<")
        expanded = list(merge_string_literals(self._expander.expand(operands)))
        if (
            len(expanded) == 1
            and expanded[0].kind is TokenKind.STRING_LITERAL
            and expanded[0].text.startswith('"')
        ):
            return expanded[0].text[1:-1], False
        if (
            len(expanded) >= 3
            and expanded[0].is_punctuator("<")
            and expanded[-1].is_punctuator(">")
        ):
            return render_tokens(expanded[1:-1]), True
        raise MalformedDirective('#include expects "FILENAME" or <FILENAME>', position)

    def _resolve_include(
        self,
        include_name: str,
        *,
        is_angled: bool,
        directory: Path | None,
    ) -> Path | None:
        search_roots: list[Path] = []
        if is_angled:
            search_roots.extend(Path(path) for path in self._options.angled_search_path())
        else:
            if directory is not None:
                search_roots.append(directory)
            search_roots.extend(Path(path) for path in self._options.quoted_search_path())
        for root in search_roots:
            candidate = root / include_name
            if candidate.is_file():
                return candidate.resolve()
        return None
