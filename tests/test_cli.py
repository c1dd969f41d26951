"""
Command-line front-end: argument merging, ignore files and exit codes.
"""
from __future__ import annotations

import contextlib
import io
import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from code_packager import cli
from code_packager.core import ConfigFileError, load_ignore_file


class _CliCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self._old_cwd = Path.cwd()
        os.chdir(self.root)
        self._no_colorama = patch.object(cli, "colorama_init")
        self._no_colorama.start()

    def tearDown(self) -> None:
        self._no_colorama.stop()
        os.chdir(self._old_cwd)
        self._tmp.cleanup()

    def _main(self, *argv: str):
        out, err = io.StringIO(), io.StringIO()
        code = 0
        with contextlib.redirect_stdout(out), contextlib.redirect_stderr(err):
            try:
                cli.main(list(argv))
            except SystemExit as e:
                code = e.code
        return code, out.getvalue(), err.getvalue()


class BuildConfigTests(_CliCase):
    def test_defaults(self):
        config = cli.build_config(cli._parse_args([]))
        self.assertEqual(config.input_dir, ".")
        self.assertEqual(config.output_file, "src_code.txt")
        self.assertEqual(config.extra_files, ())
        self.assertEqual(config.ignore_patterns, ())

    def test_rule_entries_precede_flags(self):
        ns = cli._parse_args(
            ["--rule", "Cargo.toml + src + !target", "-a", "README.md", "--ignore", "*.tmp"]
        )
        config = cli.build_config(ns)
        self.assertEqual(config.extra_files, ("Cargo.toml", "src", "README.md"))
        self.assertEqual(config.ignore_patterns, ("target", "*.tmp"))

    def test_custom_separator(self):
        ns = cli._parse_args(["--rule", "a | !b", "--rule-separator", "|"])
        config = cli.build_config(ns)
        self.assertEqual(config.extra_files, ("a",))
        self.assertEqual(config.ignore_patterns, ("b",))

    def test_config_file_patterns_follow_ignore_flags(self):
        (self.root / "ignores.txt").write_text("# comment\n\nbuild\n  *.log  \n", encoding="utf-8")
        ns = cli._parse_args(["--ignore", "dist", "--config", "ignores.txt"])
        config = cli.build_config(ns)
        self.assertEqual(config.ignore_patterns, ("dist", "build", "*.log"))


class LoadIgnoreFileTests(_CliCase):
    def test_missing(self):
        with self.assertRaises(ConfigFileError):
            load_ignore_file(self.root / "nope.txt")

    def test_directory(self):
        with self.assertRaises(ConfigFileError):
            load_ignore_file(self.root)


class MainTests(_CliCase):
    def test_success(self):
        (self.root / "src").mkdir()
        (self.root / "src" / "a.py").write_text("print('a')\n", encoding="utf-8")
        (self.root / "Manifest").write_text("m\n", encoding="utf-8")

        code, out, _ = self._main("-i", "src", "-o", "packed.txt", "--rule", "Manifest")

        self.assertEqual(code, 0)
        self.assertIn("Source code successfully packaged to packed.txt", out)
        self.assertEqual(
            (self.root / "packed.txt").read_text(encoding="utf-8"),
            "```Manifest\nm\n```\n\n```src/a.py\nprint('a')\n```\n\n",
        )

    def test_error_exits_with_one_and_reports_chain(self):
        (self.root / "src").mkdir()
        (self.root / "src" / "bad.bin").write_bytes(b"\xff\xfe")

        code, _, err = self._main("-i", "src", "-o", "packed.txt")

        self.assertEqual(code, 1)
        self.assertIn("Error: Failed to process input directory", err)
        self.assertIn("caused by: Failed to process file:", err)

    def test_bad_config_file(self):
        code, _, err = self._main("--config", "missing.txt")
        self.assertEqual(code, 1)
        self.assertIn("does not exist", err)

    def test_version(self):
        code, out, _ = self._main("--version")
        self.assertEqual(code, 0)
        self.assertIn(cli.__version__, out)


if __name__ == "__main__":
    unittest.main()
