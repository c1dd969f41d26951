"""
Code Packager - A tool for packaging source code files into one text file.

This package walks a directory tree, prunes entries matching ignore patterns,
adds explicitly listed files and globs, and writes every selected file into
a single output document, each one framed by a fenced header carrying its
path.
"""

__version__ = "0.1.0"
__author__ = "Code Packager Team"

from .core import (  # noqa: E402
    ConfigFileError,
    DirectoryReadError,
    FileReadError,
    InvalidPatternError,
    OutputError,
    PackagerConfig,
    PackagerError,
    PackageSummary,
    merge_rule_config,
    package_code,
    parse_rule_string,
)

__all__ = [
    "ConfigFileError",
    "DirectoryReadError",
    "FileReadError",
    "InvalidPatternError",
    "OutputError",
    "PackagerConfig",
    "PackagerError",
    "PackageSummary",
    "merge_rule_config",
    "package_code",
    "parse_rule_string",
]
