import io
import json
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path

from tests import _bootstrap  # noqa: F401
from xcpp import main


class CliTests(unittest.TestCase):
    def _run_main(self, argv: list[str], *, stdin_text: str = "") -> tuple[int, str, str]:
        stdout = io.StringIO()
        stderr = io.StringIO()
        with redirect_stdout(stdout), redirect_stderr(stderr):
            code = main(argv, stdin=io.StringIO(stdin_text))
        return code, stdout.getvalue(), stderr.getvalue()

    def test_main_success(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "ok.c"
            path.write_text("int main(){return 0;}", encoding="utf-8")
            code, stdout, stderr = self._run_main([str(path)])
        self.assertEqual(code, 0)
        self.assertEqual(stderr, "")
        self.assertEqual(stdout, f"xcpp: ok: {path}\n")

    def test_main_dump_tokens(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "ok.c"
            path.write_text("int main(){return 0;}", encoding="utf-8")
            code, stdout, stderr = self._run_main([str(path), "--dump-tokens"])
        self.assertEqual(code, 0)
        self.assertEqual(stderr, "")
        self.assertIn("1:1\tIDENT\tint", stdout)
        self.assertIn("1:22\tEOF", stdout)

    def test_main_reads_stdin(self) -> None:
        code, stdout, stderr = self._run_main(["-", "--dump-tokens"], stdin_text="x\n")
        self.assertEqual(code, 0)
        self.assertEqual(stderr, "")
        self.assertEqual(stdout, "1:1\tIDENT\tx\n2:1\tEOF\n")

    def test_main_defines_and_undefs(self) -> None:
        code, stdout, _ = self._run_main(
            ["-", "-DVALUE=42", "-D", "FLAG", "-U__STDC_NO_VLA__", "--dump-tokens"],
            stdin_text="VALUE FLAG __STDC_NO_VLA__\n",
        )
        self.assertEqual(code, 0)
        self.assertIn("1:1\tPP_NUMBER\t42", stdout)
        self.assertIn("1:7\tPP_NUMBER\t1", stdout)
        self.assertIn("1:12\tIDENT\t__STDC_NO_VLA__", stdout)

    def test_main_dump_include_trace(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            (root / "inc.h").write_text("int x;\n", encoding="utf-8")
            path = root / "ok.c"
            path.write_text('#include "inc.h"\nint main(void){return x;}\n', encoding="utf-8")
            code, stdout, stderr = self._run_main([str(path), "--dump-include-trace"])
        self.assertEqual(code, 0)
        self.assertEqual(stderr, "")
        self.assertIn("ok.c:1: #include", stdout)
        self.assertIn('"inc.h" ->', stdout)

    def test_main_include_dirs(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            (root / "inc").mkdir()
            (root / "inc" / "lib.h").write_text("lib\n", encoding="utf-8")
            (root / "sys").mkdir()
            (root / "sys" / "sys.h").write_text("sys\n", encoding="utf-8")
            path = root / "ok.c"
            path.write_text("#include <lib.h>\n#include <sys.h>\n", encoding="utf-8")
            code, stdout, stderr = self._run_main(
                [
                    str(path),
                    "-I",
                    str(root / "inc"),
                    "-isystem",
                    str(root / "sys"),
                    "--dump-tokens",
                ]
            )
        self.assertEqual(code, 0, stderr)
        self.assertIn("\tIDENT\tlib", stdout)
        self.assertIn("\tIDENT\tsys", stdout)

    def test_main_dump_macro_table(self) -> None:
        code, stdout, _ = self._run_main(
            ["-", "--dump-macro-table"], stdin_text="#define F(a, b) a + b\n"
        )
        self.assertEqual(code, 0)
        self.assertIn("F(a,b)=a + b\n", stdout)
        self.assertIn("__STDC_NO_ATOMICS__=1\n", stdout)

    def test_main_dump_pragmas(self) -> None:
        code, stdout, _ = self._run_main(
            ["-", "--dump-pragmas"], stdin_text="\n#pragma pack(push, 1)\n"
        )
        self.assertEqual(code, 0)
        self.assertEqual(stdout, "<stdin>:2:1: #pragma pack(push, 1)\n")

    def test_main_trigraphs(self) -> None:
        code, stdout, _ = self._run_main(
            ["-", "-trigraphs", "--dump-tokens"], stdin_text="??=define X 1\nX\n"
        )
        self.assertEqual(code, 0)
        self.assertIn("2:1\tPP_NUMBER\t1", stdout)

    def test_main_reports_errors(self) -> None:
        code, stdout, stderr = self._run_main(["-"], stdin_text='char *s = "abc;\n')
        self.assertEqual(code, 1)
        self.assertEqual(stdout, "")
        self.assertEqual(stderr, "<stdin>:1:11: lex: error: Unterminated string literal\n")

    def test_main_json_diagnostics(self) -> None:
        code, _, stderr = self._run_main(
            ["-", "--diag-format", "json"], stdin_text="#error nope\n"
        )
        self.assertEqual(code, 1)
        payload = json.loads(stderr.strip())
        self.assertEqual(
            payload,
            {
                "stage": "preprocess",
                "severity": "error",
                "filename": "<stdin>",
                "line": 1,
                "column": 1,
                "code": "XCPP-PP-0103",
                "message": "nope",
            },
        )

    def test_main_warning_keeps_success(self) -> None:
        code, stdout, stderr = self._run_main(["-"], stdin_text="#ident \"x\"\n")
        self.assertEqual(code, 0)
        self.assertEqual(stdout, "xcpp: ok: <stdin>\n")
        self.assertEqual(
            stderr, "<stdin>:1:2: preprocess: warning: Unknown preprocessor directive: #ident\n"
        )

    def test_main_werror(self) -> None:
        code, stdout, stderr = self._run_main(["-", "-Werror"], stdin_text="#ident \"x\"\n")
        self.assertEqual(code, 1)
        self.assertEqual(stdout, "")
        self.assertIn("preprocess: error: Unknown preprocessor directive", stderr)

    def test_main_invalid_define(self) -> None:
        code, _, stderr = self._run_main(["-", "-D1X"], stdin_text="x\n")
        self.assertEqual(code, 1)
        self.assertIn("Invalid macro definition: 1X", stderr)

    def test_main_unterminated_define(self) -> None:
        code, stdout, stderr = self._run_main(["-", '-DX="abc'], stdin_text="x\n")
        self.assertEqual(code, 1)
        self.assertEqual(stdout, "")
        self.assertIn('Invalid macro definition: X="abc', stderr)

    def test_main_io_error(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            code, stdout, stderr = self._run_main([str(Path(tmp) / "missing.c")])
        self.assertEqual(code, 1)
        self.assertEqual(stdout, "")
        self.assertTrue(stderr.startswith("xcpp: I/O error: "))

    def test_main_help_and_usage_errors(self) -> None:
        code, stdout, _ = self._run_main(["--help"])
        self.assertEqual(code, 0)
        self.assertIn("usage: xcpp", stdout)
        code, _, stderr = self._run_main([])
        self.assertEqual(code, 2)
        self.assertIn("usage: xcpp", stderr)
        code, _, _ = self._run_main(["-", "--diag-format", "xml"])
        self.assertEqual(code, 2)


if __name__ == "__main__":
    unittest.main()
