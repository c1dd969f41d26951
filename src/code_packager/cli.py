"""
CLI entrypoint for code_packager package.
"""
import argparse
import sys
from pathlib import Path
from typing import List, Optional

from colorama import Fore, Style, init as colorama_init

from . import __version__
from .core import (
    DEFAULT_OUTPUT_FILE,
    PackagerConfig,
    PackagerError,
    load_ignore_file,
    merge_rule_config,
    package_code,
    parse_rule_string,
)

def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="code-packager",
        description="Package source code files into a single fenced text file.",
    )
    p.add_argument("-i", "--input", metavar="DIR", default=".", help="Input directory path")
    p.add_argument(
        "-o",
        "--output",
        metavar="FILE",
        default=DEFAULT_OUTPUT_FILE,
        help=f"Output file path (default: {DEFAULT_OUTPUT_FILE})",
    )
    p.add_argument(
        "-a",
        "--add",
        metavar="FILE",
        action="append",
        default=[],
        help="Extra files to include (supports glob patterns)",
    )
    p.add_argument(
        "--ignore",
        metavar="PATTERN",
        action="append",
        default=[],
        help="Ignore files/directories matching pattern",
    )
    p.add_argument(
        "--rule",
        metavar="RULE_STRING",
        help='Rule string for including/excluding files (e.g. "Cargo.toml + src + !target")',
    )
    p.add_argument(
        "--rule-separator",
        metavar="SEPARATOR",
        default="+",
        help="Separator used in rule string (default: +)",
    )
    p.add_argument(
        "--config",
        type=Path,
        help="Path to a file with extra ignore patterns (one per line)",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return p.parse_args(argv)


def _report(e: BaseException) -> None:
    print(Fore.RED + f"Error: {e}" + Style.RESET_ALL, file=sys.stderr)
    cause = e.__cause__
    while cause is not None:
        print(f"  caused by: {cause}", file=sys.stderr)
        cause = cause.__cause__


def build_config(ns: argparse.Namespace) -> PackagerConfig:
    """Merge ``--rule``, ``--add``/``--ignore`` and ``--config`` into a config."""
    rule_extra: List[str] = []
    rule_ignore: List[str] = []
    if ns.rule is not None:
        rule_extra, rule_ignore = parse_rule_string(ns.rule, ns.rule_separator)

    cli_ignore = list(ns.ignore)
    if ns.config:
        cli_ignore.extend(load_ignore_file(ns.config))
        if ns.verbose:
            print(f"[code_packager] Loaded extra patterns from {ns.config}")

    extra_files, ignore_patterns = merge_rule_config(rule_extra, rule_ignore, ns.add, cli_ignore)
    return PackagerConfig(
        input_dir=ns.input,
        output_file=ns.output,
        extra_files=extra_files,
        ignore_patterns=ignore_patterns,
    )


def main(argv: Optional[List[str]] = None) -> None:
    colorama_init()
    try:
        ns = _parse_args(argv)

        try:
            config = build_config(ns)
            package_code(config, verbose=ns.verbose)
        except PackagerError as e:
            _report(e)
            sys.exit(1)

        print(f"Source code successfully packaged to {config.output_file}")

    except KeyboardInterrupt:
        print("\nCancelled.", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Unexpected error: {e}", file=sys.stderr)
        sys.exit(1)

if __name__ == "__main__":
    main()
