import sys
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO

from xcpp.diag import Diagnostic, DiagnosticLog, FrontendError, PreprocessorError
from xcpp.lexer import Token
from xcpp.options import FrontendOptions, normalize_options
from xcpp.preprocessor import Pragma, Preprocessor


@dataclass(frozen=True)
class PreprocessResult:
    filename: str
    source: str
    tokens: list[Token]
    diagnostics: tuple[Diagnostic, ...]
    include_trace: tuple[str, ...]
    macro_table: tuple[str, ...]
    pragmas: tuple[Pragma, ...]


def read_source(path: str, *, stdin: TextIO | None = None) -> tuple[str, str]:
    if path == "-":
        stream = sys.stdin if stdin is None else stdin
        return "<stdin>", stream.read()
    resolved = Path(path)
    return str(resolved), resolved.read_text(encoding="utf-8")


def preprocess_source(
    source: str,
    *,
    filename: str = "<input>",
    options: FrontendOptions | None = None,
) -> PreprocessResult:
    normalized_options = normalize_options(options)
    log = DiagnosticLog(warn_as_error=normalized_options.warn_as_error)
    try:
        preprocessor = Preprocessor(normalized_options, log=log)
    except PreprocessorError as error:
        log.report(error)
        raise FrontendError(log.entries) from error
    tokens = list(preprocessor.tokens(source, filename=filename))
    if log.has_errors:
        raise FrontendError(log.entries)
    return PreprocessResult(
        filename,
        source,
        tokens,
        log.entries,
        tuple(preprocessor.include_trace),
        preprocessor.macros.dump(),
        tuple(preprocessor.pragmas),
    )


def preprocess_path(
    path: str | Path, *, options: FrontendOptions | None = None
) -> PreprocessResult:
    filename, source = read_source(str(path))
    return preprocess_source(source, filename=filename, options=options)


def format_token(token: Token) -> str:
    if token.lexeme is None:
        return f"{token.line}:{token.column}\t{token.kind.name}"
    return f"{token.line}:{token.column}\t{token.kind.name}\t{token.lexeme}"


def format_tokens(tokens: list[Token]) -> list[str]:
    return [format_token(token) for token in tokens]
