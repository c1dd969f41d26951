"""
Core logic for code_packager package.
"""

from __future__ import annotations

import fnmatch
import glob
import itertools
import os
import re
from dataclasses import dataclass, field
from pathlib import Path, PurePath
from typing import List, NamedTuple, Optional, Sequence, TextIO, Tuple, Union

from colorama import Fore, Style

# Exceptions
class PackagerError(Exception):
    """Base exception for code_packager errors."""


class InvalidPatternError(PackagerError):
    """Raised when an ignore pattern or an include glob has invalid syntax."""


class ConfigFileError(PackagerError):
    """Raised when an ignore-pattern file cannot be used."""


class OutputError(PackagerError):
    """Raised when the output file cannot be created or written."""


class DirectoryReadError(PackagerError):
    """Raised when a directory cannot be listed."""


class FileReadError(PackagerError):
    """Raised when a source file cannot be opened or decoded as text."""


# Defaults & helpers
FENCE = "```"
DEFAULT_INPUT_DIR = "src"
DEFAULT_OUTPUT_FILE = "src_code.txt"

StrPath = Union[str, "os.PathLike[str]"]


@dataclass(frozen=True)
class PackagerConfig:
    """Configuration for one packaging run."""

    input_dir: str = DEFAULT_INPUT_DIR
    output_file: str = DEFAULT_OUTPUT_FILE
    extra_files: Tuple[str, ...] = field(default_factory=tuple)
    ignore_patterns: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "extra_files", tuple(self.extra_files))
        object.__setattr__(self, "ignore_patterns", tuple(self.ignore_patterns))


class PackageSummary(NamedTuple):
    files: int
    chars: int
    output: Path


class IgnorePattern(NamedTuple):
    """An ignore glob and the regexes it was compiled into."""

    source: str
    regexes: Tuple[re.Pattern[str], ...]

    def matches(self, text: str) -> bool:
        return any(rx.match(text) for rx in self.regexes)


def _echo(msg: str, color: str = Fore.CYAN) -> None:
    print(color + f"[code_packager] {msg}" + Style.RESET_ALL)


# Rule strings
def parse_rule_string(rule_string: str, separator: str) -> Tuple[List[str], List[str]]:
    """Split *rule_string* on *separator* into ``(extra_files, ignore_patterns)``.

    Items prefixed with ``!`` are ignore patterns (the prefix is dropped),
    everything else is an extra file. Blank items are skipped and
    surrounding whitespace is trimmed.

    >>> parse_rule_string("file.txt + src + !target", " + ")
    (['file.txt', 'src'], ['target'])
    """
    extra_files: List[str] = []
    ignore_patterns: List[str] = []

    items = rule_string.split(separator) if separator else [rule_string]
    for item in items:
        trimmed = item.strip()
        if not trimmed:
            continue

        if trimmed.startswith("!"):
            pattern = trimmed[1:].strip()
            if pattern:
                ignore_patterns.append(pattern)
        else:
            extra_files.append(trimmed)

    return extra_files, ignore_patterns


def merge_rule_config(
    rule_extra: Sequence[str],
    rule_ignore: Sequence[str],
    cli_extra: Sequence[str],
    cli_ignore: Sequence[str],
) -> Tuple[List[str], List[str]]:
    """Concatenate rule-derived entries with CLI entries, rule entries first."""
    return [*rule_extra, *cli_extra], [*rule_ignore, *cli_ignore]


# Glob syntax
def glob_syntax_error(pattern: str) -> Optional[str]:
    """Describe why *pattern* is not a valid glob, or return None.

    Two shapes are rejected: an unclosed ``[`` and a ``**`` that is not a
    whole path component.
    """
    for segment in pattern.replace("\\", "/").split("/"):
        if "**" in segment and segment != "**":
            return "'**' must be a whole path component"

    i = 0
    while i < len(pattern):
        if pattern[i] == "[":
            # "[]...]" and "[!]...]" take the first ']' literally
            start = i + 2 if pattern[i + 1 : i + 2] == "!" else i + 1
            close = pattern.find("]", start + 1)
            if close == -1:
                return "unclosed '['"
            i = close
        i += 1

    return None


def check_glob_syntax(pattern: str) -> None:
    """Raise :class:`InvalidPatternError` for a malformed include glob."""
    reason = glob_syntax_error(pattern)
    if reason:
        raise InvalidPatternError(f"Invalid file pattern: {pattern} ({reason})")


# Ignore patterns
def load_ignore_file(config_path: Path) -> List[str]:
    """Read newline-separated ignore patterns from *config_path*."""
    if not config_path.exists():
        raise ConfigFileError(f"Config file '{config_path}' does not exist")

    if not config_path.is_file():
        raise ConfigFileError(f"'{config_path}' is not a file")

    try:
        with config_path.open("r", encoding="utf-8") as fh:
            return [ln.strip() for ln in fh if ln.strip() and not ln.lstrip().startswith("#")]
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigFileError(f"Could not read config file '{config_path}': {e}") from e


def compile_ignore_pattern(pattern: str) -> IgnorePattern:
    """Compile one ignore glob, matched against the whole path string.

    ``*`` and ``?`` also match ``/``. A ``**/`` component may match zero
    directories, so ``**/a.rs`` matches ``a.rs`` as well as ``x/y/a.rs``.
    ``!`` and ``#`` carry no special meaning outside brackets.
    """
    reason = glob_syntax_error(pattern)
    if reason:
        raise InvalidPatternError(f"Invalid ignore pattern: {pattern} ({reason})")

    components = pattern.split("/")
    choices: List[Tuple[str, ...]] = []
    for i, component in enumerate(components):
        last = i == len(components) - 1
        if component == "**" and not last:
            choices.append(("*/", ""))
        else:
            choices.append((component.replace("**", "*") + ("" if last else "/"),))

    variants = sorted({"".join(c) for c in itertools.product(*choices)})
    regexes = tuple(re.compile(fnmatch.translate(v)) for v in variants)
    return IgnorePattern(pattern, regexes)


def compile_ignore_patterns(patterns: Sequence[str]) -> List[IgnorePattern]:
    """Compile every pattern up front; the first bad one aborts."""
    return [compile_ignore_pattern(p) for p in patterns]


def should_ignore(path: StrPath, ignore_patterns: Sequence[IgnorePattern], base_dir: StrPath) -> bool:
    """True if any pattern matches *path* as given or relative to *base_dir*."""
    full = os.fspath(path)
    try:
        relative: Optional[str] = str(PurePath(full).relative_to(base_dir))
    except ValueError:
        relative = None

    for pattern in ignore_patterns:
        if pattern.matches(full):
            return True
        if relative is not None and pattern.matches(relative):
            return True

    return False


# Output
def write_file_to_output(file_path: StrPath, output: TextIO) -> int:
    """Append *file_path* to *output* as a fenced block; return chars written."""
    try:
        with open(file_path, "r", encoding="utf-8", newline="") as fh:
            content = fh.read()
    except (OSError, UnicodeDecodeError) as e:
        raise FileReadError(f"Failed to read file: {os.fspath(file_path)}") from e

    try:
        output.write(f"{FENCE}{os.fspath(file_path)}\n")
        output.write(content)
        if not content.endswith("\n"):
            output.write("\n")
        output.write(f"{FENCE}\n\n")
    except (OSError, ValueError) as e:
        raise OutputError(f"Could not write '{os.fspath(file_path)}' to output: {e}") from e

    return len(content)


# Traversal
def process_directory(
    dir_path: str,
    output: TextIO,
    ignore_patterns: Sequence[IgnorePattern],
    base_dir: str,
    *,
    skip: Optional[Path] = None,
) -> Tuple[int, int]:
    """Recursively write every non-ignored file under *dir_path*.

    Entries are visited in name order and reported as *dir_path* joined
    with the entry name. Ignored directories are not descended into.
    *skip* is a resolved path that is never read, used to keep the output
    file out of its own contents.

    Returns ``(files, chars)`` written.
    """
    try:
        with os.scandir(dir_path) as it:
            entries = sorted(it, key=lambda e: e.name)
    except OSError as e:
        raise DirectoryReadError(f"Failed to read directory: {dir_path}") from e

    files = chars = 0
    for entry in entries:
        path = entry.path
        if should_ignore(path, ignore_patterns, base_dir):
            continue

        if entry.is_dir():
            sub_files, sub_chars = process_directory(
                path, output, ignore_patterns, base_dir, skip=skip
            )
            files += sub_files
            chars += sub_chars
        elif entry.is_file():
            if skip is not None and Path(path).resolve() == skip:
                continue
            try:
                chars += write_file_to_output(path, output)
            except FileReadError as e:
                raise FileReadError(f"Failed to process file: {path}") from e
            files += 1

    return files, chars


def _open_output(out_path: Path) -> TextIO:
    out_dir = out_path.parent
    if not out_dir.exists():
        try:
            out_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise OutputError(f"Could not create output directory '{out_dir}': {e}") from e

    try:
        return out_path.open("w", encoding="utf-8", newline="\n")
    except OSError as e:
        raise OutputError(f"Failed to create output file: {out_path}") from e


def _process_extra_entry(
    file_pattern: str,
    output: TextIO,
    compiled: Sequence[IgnorePattern],
    skip: Path,
    verbose: bool,
) -> Tuple[int, int]:
    check_glob_syntax(file_pattern)
    matches = sorted(glob.glob(file_pattern, recursive=True, include_hidden=True))
    if verbose and not matches:
        _echo(f"No match for {file_pattern}", Fore.YELLOW)

    files = chars = 0
    for match in matches:
        path = Path(match)
        if not path.exists():
            continue

        if path.is_dir():
            if verbose:
                _echo(f"Walking extra directory {match}")
            try:
                sub_files, sub_chars = process_directory(match, output, compiled, match, skip=skip)
            except (DirectoryReadError, FileReadError) as e:
                raise type(e)(f"Failed to process extra directory: {match}") from e
            files += sub_files
            chars += sub_chars
        elif path.is_file():
            if path.resolve() == skip:
                # explicitly named output: it holds exactly the blocks written so far
                output.flush()
            if verbose:
                _echo(f"Adding extra file {match}")
            try:
                chars += write_file_to_output(match, output)
            except FileReadError as e:
                raise FileReadError(f"Failed to process extra file: {match}") from e
            files += 1

    return files, chars


def package_code(config: PackagerConfig, *, verbose: bool = False) -> PackageSummary:
    """Package source files into ``config.output_file``.

    Extra files are processed first, in order: each entry is expanded as a
    glob, matched directories are walked with themselves as the base for
    ignore matching, and matched files are written without any ignore
    filtering. The input directory is walked last, unless it is missing
    or is ``"."``.
    """
    compiled = compile_ignore_patterns(config.ignore_patterns)
    if verbose and compiled:
        _echo(f"Compiled {len(compiled)} ignore pattern(s)")

    out_path = Path(config.output_file)
    files = chars = 0

    output = _open_output(out_path)
    try:
        with output:
            skip = out_path.resolve()

            for file_pattern in config.extra_files:
                sub_files, sub_chars = _process_extra_entry(
                    file_pattern, output, compiled, skip, verbose
                )
                files += sub_files
                chars += sub_chars

            input_dir = config.input_dir
            if Path(input_dir).exists() and Path(input_dir) != Path("."):
                if verbose:
                    _echo(f"Walking input directory {input_dir}")
                try:
                    sub_files, sub_chars = process_directory(
                        input_dir, output, compiled, input_dir, skip=skip
                    )
                except (DirectoryReadError, FileReadError) as e:
                    raise type(e)("Failed to process input directory") from e
                files += sub_files
                chars += sub_chars
            elif verbose:
                _echo(f"Input directory {input_dir} skipped", Fore.YELLOW)
    except OSError as e:
        raise OutputError(f"Failed to write output file: {out_path}") from e

    if verbose:
        _echo(f"Done → {out_path}. {files} files, {chars} chars written.", Fore.GREEN)

    return PackageSummary(files=files, chars=chars, output=out_path)
