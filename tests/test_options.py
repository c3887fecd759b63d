import unittest

from tests import _bootstrap  # noqa: F401
from xcpp.options import FrontendOptions, normalize_options


class FrontendOptionsTests(unittest.TestCase):
    def test_defaults(self) -> None:
        options = FrontendOptions()
        self.assertEqual(options.include_dirs, ())
        self.assertEqual(options.defines, ())
        self.assertFalse(options.trigraphs)
        self.assertFalse(options.warn_as_error)
        self.assertEqual(options.max_include_depth, 200)
        self.assertEqual(options.diag_format, "human")

    def test_invalid_diag_format(self) -> None:
        with self.assertRaises(ValueError):
            FrontendOptions(diag_format="xml")  # type: ignore[arg-type]

    def test_invalid_include_depth(self) -> None:
        with self.assertRaises(ValueError):
            FrontendOptions(max_include_depth=0)

    def test_search_paths(self) -> None:
        options = FrontendOptions(
            include_dirs=("inc",),
            quote_include_dirs=("quote",),
            system_include_dirs=("sys",),
        )
        self.assertEqual(options.quoted_search_path(), ("quote", "inc", "sys"))
        self.assertEqual(options.angled_search_path(), ("inc", "sys"))

    def test_normalize_options(self) -> None:
        self.assertEqual(normalize_options(None), FrontendOptions())
        options = FrontendOptions(trigraphs=True)
        self.assertIs(normalize_options(options), options)


if __name__ == "__main__":
    unittest.main()
