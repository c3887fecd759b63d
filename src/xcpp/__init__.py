import argparse
import json
import sys
from collections.abc import Sequence
from typing import TextIO, cast

from xcpp.diag import Diagnostic
from xcpp.frontend import FrontendError, format_tokens, preprocess_source, read_source
from xcpp.options import DiagFormat, FrontendOptions


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="xcpp",
        description="Scan and preprocess C source into a token stream.",
    )
    parser.add_argument("input", help="path to a C source file, or - to read from stdin")
    parser.add_argument("-I", dest="include_dirs", action="append", default=[], help="include path")
    parser.add_argument(
        "-iquote",
        dest="quote_include_dirs",
        action="append",
        default=[],
        help="quote include path",
    )
    parser.add_argument(
        "-isystem",
        dest="system_include_dirs",
        action="append",
        default=[],
        help="system include path",
    )
    parser.add_argument("-D", dest="defines", action="append", default=[], help="define macro")
    parser.add_argument("-U", dest="undefs", action="append", default=[], help="undefine macro")
    parser.add_argument(
        "-trigraphs",
        dest="trigraphs",
        action="store_true",
        help="replace trigraph sequences before scanning",
    )
    parser.add_argument(
        "-Werror",
        dest="warn_as_error",
        action="store_true",
        help="treat warnings as errors",
    )
    parser.add_argument(
        "--diag-format",
        choices=("human", "json"),
        default="human",
        help="diagnostic output format",
    )
    parser.add_argument("--dump-tokens", action="store_true", help="print the output token stream")
    parser.add_argument(
        "--dump-include-trace",
        action="store_true",
        help="print include resolution trace",
    )
    parser.add_argument(
        "--dump-macro-table",
        action="store_true",
        help="print final macro table",
    )
    parser.add_argument("--dump-pragmas", action="store_true", help="print recorded pragmas")
    return parser


def _print_diagnostics(diagnostics: Sequence[Diagnostic], diag_format: DiagFormat) -> None:
    for diagnostic in diagnostics:
        if diag_format == "json":
            print(json.dumps(diagnostic.as_dict(), separators=(",", ":")), file=sys.stderr)
        else:
            print(diagnostic, file=sys.stderr)


def main(argv: Sequence[str] | None = None, *, stdin: TextIO | None = None) -> int:
    parser = _build_arg_parser()
    try:
        args = parser.parse_args(list(argv) if argv is not None else sys.argv[1:])
    except SystemExit as error:
        return cast(int, error.code)
    options = FrontendOptions(
        include_dirs=tuple(args.include_dirs),
        quote_include_dirs=tuple(args.quote_include_dirs),
        system_include_dirs=tuple(args.system_include_dirs),
        defines=tuple(args.defines),
        undefs=tuple(args.undefs),
        trigraphs=args.trigraphs,
        diag_format=args.diag_format,
        warn_as_error=args.warn_as_error,
    )
    try:
        filename, source = read_source(args.input, stdin=stdin)
    except (OSError, UnicodeError) as error:
        print(f"xcpp: I/O error: {error}", file=sys.stderr)
        return 1
    try:
        result = preprocess_source(source, filename=filename, options=options)
    except FrontendError as error:
        _print_diagnostics(error.diagnostics, options.diag_format)
        return 1
    _print_diagnostics(result.diagnostics, options.diag_format)
    if args.dump_tokens:
        for line in format_tokens(result.tokens):
            print(line)
    if args.dump_include_trace:
        for line in result.include_trace:
            print(line)
    if args.dump_macro_table:
        for line in result.macro_table:
            print(line)
    if args.dump_pragmas:
        for pragma in result.pragmas:
            print(f"{pragma.position}: #pragma {pragma.text}")
    if not (
        args.dump_tokens or args.dump_include_trace or args.dump_macro_table or args.dump_pragmas
    ):
        print(f"xcpp: ok: {result.filename}")
    return 0
