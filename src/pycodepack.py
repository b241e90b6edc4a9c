#!/usr/bin/env python3
"""
pycodepack: bundle the source files of a project into a single text file.

This tool walks a root directory, keeps the files written in the requested
languages (skipping anything under `bin/` or `debug/` build folders), sorts
them by name or by type and concatenates them into one output file, optionally
with a per-file source note, an author header and without blank lines.

The `create-rsp` command asks for the same options interactively and saves
them as a one-line response file, which can be replayed later with
`pycodepack @file.rsp`.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from enum import Enum
import logging
import os
from pathlib import Path
import shlex
from typing import Callable, Iterable, Optional


logger = logging.getLogger(__name__)

# Closed set of supported languages: token -> file extension.
LANGUAGE_EXTENSIONS: dict[str, str] = {
    "cs": ".cs",
    "js": ".js",
    "py": ".py",
    "cpp": ".cpp",
}

ALL_LANGUAGES = "all"

# Directory names never descended into (case-insensitive).
EXCLUDED_DIRECTORIES = frozenset({"bin", "debug"})

SEPARATOR = "*" * 65

NO_FILES_MESSAGE = "No code files found for the specified languages."


class ColorFormatter(logging.Formatter):
    """
    Custom logging formatter that adds ANSI color codes to log messages.

    This formatter applies color coding based on log levels for better
    readability in terminal output.
    """

    COLORS = {
        logging.DEBUG: "\033[36m",  # CYAN
        logging.INFO: "\033[32m",  # Green
        logging.WARNING: "\033[33m",  # Yellow
        logging.ERROR: "\033[31m",  # Red
        logging.CRITICAL: "\033[41m",  # Red background
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelno, "")
        message = super().format(record)
        if color:
            message = f"{color}{message}{self.RESET}"
        return message


# -- Errors --


class BundleError(Exception):
    """Base class for failures that abort a bundle run."""


class SourceNotFoundError(BundleError):
    """The root directory to bundle does not exist."""


class OutputWriteError(BundleError):
    """The output file could not be opened or written."""


class SourceReadError(BundleError):
    """A selected source file could not be read."""


class InvalidSortOptionError(ValueError):
    """The sort option is neither 'name' nor 'type'."""


class WizardAborted(Exception):
    """The interactive wizard was interrupted before completion."""


# -- Values --


class SortKey(Enum):
    """Ordering applied to the selected files before concatenation."""

    BY_NAME = "name"
    BY_TYPE = "type"


class Outcome(Enum):
    """Terminal state of a bundle run."""

    SUCCESS = "success"
    EMPTY_SELECTION = "empty_selection"
    SOURCE_NOT_FOUND = "source_not_found"
    INVALID_SORT_OPTION = "invalid_sort_option"
    OUTPUT_WRITE_ERROR = "output_write_error"
    SOURCE_READ_ERROR = "source_read_error"


@dataclass(frozen=True)
class BundleConfig:
    """Options of a single bundle run.

    Attributes:
        languages (frozenset[str]):
            Normalized language tokens, or the single token "all".
        output_path (Path):
            File the bundle is written to.
        include_note (bool):
            Whether to write a `// Source:` line before each file.
        sort_key (SortKey):
            Ordering of the files in the bundle.
        remove_empty_lines (bool):
            Whether to drop blank and whitespace-only lines.
        author (str | None):
            Optional author written once at the top of the bundle.
    """

    languages: frozenset[str]
    output_path: Path
    include_note: bool = False
    sort_key: SortKey = SortKey.BY_NAME
    remove_empty_lines: bool = False
    author: Optional[str] = None

    def __post_init__(self):
        if not self.languages:
            raise ValueError("At least one language is required.")
        if not isinstance(self.sort_key, SortKey):
            raise InvalidSortOptionError(
                f"Invalid sort option '{self.sort_key}'. Must be 'name' or 'type'."
            )


@dataclass(frozen=True)
class CandidateFile:
    """A file discovered under the root directory."""

    path: Path
    extension: str

    @classmethod
    def from_path(cls, path: Path) -> CandidateFile:
        return cls(path=path, extension=path.suffix.lower())


@dataclass(frozen=True)
class BundleResult:
    """Outcome of `run_bundle`, one of the `Outcome` states."""

    outcome: Outcome
    output_path: Optional[Path] = None
    files_written: int = 0
    message: str = ""

    @property
    def ok(self) -> bool:
        """True unless the run failed; an empty selection is not a failure."""
        return self.outcome in (Outcome.SUCCESS, Outcome.EMPTY_SELECTION)


# -- Extension registry --


def extension_for(token: str) -> str | None:
    """Return the file extension of a language token, or None if unknown."""
    return LANGUAGE_EXTENSIONS.get(token.strip().lower())


def is_valid_token(token: str) -> bool:
    """Check whether `token` is a known language or the literal 'all'."""
    token = token.strip().lower()
    return token == ALL_LANGUAGES or token in LANGUAGE_EXTENSIONS


def supported_extensions() -> frozenset[str]:
    return frozenset(LANGUAGE_EXTENSIONS.values())


# -- Validation contract, shared by the CLI and the wizard --


def parse_languages(values: Iterable[str]) -> frozenset[str]:
    """Normalize language arguments into a set of tokens.

    Each value may hold several tokens separated by commas and/or spaces.
    Unknown tokens are kept; `select` ignores them.

    Args:
        values (Iterable[str]):
            Raw language arguments.

    Returns:
        frozenset[str]:
            Lowercased, trimmed tokens.

    Raises:
        ValueError:
            If no token is left after normalization.
    """
    tokens = set()
    for value in values:
        for token in value.replace(",", " ").split():
            tokens.add(token.lower())
    if not tokens:
        raise ValueError("Languages cannot be empty.")
    return frozenset(tokens)


def check_languages(tokens: Iterable[str]) -> frozenset[str]:
    """Strict variant of the language check: every token must be known."""
    tokens = frozenset(tokens)
    invalid = sorted(t for t in tokens if not is_valid_token(t))
    if invalid:
        raise ValueError(
            f"Invalid language(s): {', '.join(invalid)}. "
            f"Valid languages are: {', '.join(LANGUAGE_EXTENSIONS)} "
            f"(or '{ALL_LANGUAGES}')."
        )
    return tokens


def parse_sort_key(value: str | None) -> SortKey:
    """Parse a sort option, defaulting to `SortKey.BY_NAME` when blank."""
    if value is None or not value.strip():
        return SortKey.BY_NAME
    try:
        return SortKey(value.strip().lower())
    except ValueError:
        raise InvalidSortOptionError(
            f"Invalid sort option '{value}'. Must be 'name' or 'type'."
        ) from None


def parse_yes_no(value: str) -> bool:
    answer = value.strip().lower()
    if answer in ("y", "yes"):
        return True
    if answer in ("n", "no"):
        return False
    raise ValueError("Please enter 'y' or 'n'.")


def validate_output_path(value: str) -> Path:
    """Check that an output path is given and its directory exists.

    Returns:
        Path:
            The absolute output path.
    """
    if not value.strip():
        raise ValueError("Output file name cannot be empty.")
    path = Path(os.path.abspath(os.path.expanduser(value.strip())))
    if not path.parent.is_dir():
        raise ValueError(f"Directory '{path.parent}' does not exist.")
    return path


def validate_response_file(value: str) -> Path:
    if not value.strip():
        raise ValueError("Response file name cannot be empty.")
    return Path(value.strip())


def parse_author(value: str | None) -> str | None:
    if value is None or not value.strip():
        return None
    return value.strip()


# -- Pipeline stages --


def collect(root: Path) -> list[Path]:
    """
    Collect all regular files under `root`, skipping any file whose directory
    path has a `bin` or `debug` segment, the root's own ancestors included.

    Args:
        root (Path):
            Directory to walk.

    Returns:
        list[Path]:
            Absolute file paths in filesystem traversal order.

    Raises:
        SourceNotFoundError:
            If `root` does not exist or is not a directory.
    """
    root = Path(os.path.abspath(root))
    if not root.is_dir():
        raise SourceNotFoundError(f"Source folder '{root}' not found.")

    logger.debug("Collecting files from root: %s", root)
    files: list[Path] = []
    if any(part.lower() in EXCLUDED_DIRECTORIES for part in root.parts):
        logger.debug("Root lies inside an excluded directory, nothing to collect.")
        return files
    for dirpath, dirnames, filenames in os.walk(root):
        # Prune excluded directories so they are never descended into.
        dirnames[:] = [d for d in dirnames if d.lower() not in EXCLUDED_DIRECTORIES]
        for name in filenames:
            path = Path(dirpath) / name
            if path.is_file():
                files.append(path)
    logger.debug("Collected %d files.", len(files))
    return files


def select(paths: Iterable[Path], languages: Iterable[str]) -> list[Path]:
    """Keep the paths whose extension matches the requested languages.

    Args:
        paths (Iterable[Path]):
            Candidate file paths.
        languages (Iterable[str]):
            Language tokens, or the single token "all" for every supported
            extension. Unknown tokens are ignored.

    Returns:
        list[Path]:
            Matching paths, in input order. May be empty.
    """
    tokens = {t.strip().lower() for t in languages}
    if tokens == {ALL_LANGUAGES}:
        extensions = supported_extensions()
    else:
        extensions = set()
        for token in sorted(tokens):
            extension = extension_for(token)
            if extension is None:
                logger.debug("Ignoring unknown language '%s'.", token)
                continue
            extensions.add(extension)
    logger.debug("Selecting extensions: %s", sorted(extensions))

    candidates = [CandidateFile.from_path(Path(p)) for p in paths]
    return [c.path for c in candidates if c.extension in extensions]


def order(paths: Iterable[Path], sort_key: SortKey) -> list[Path]:
    """
    Return a new list of `paths` sorted by full path (`BY_NAME`) or by
    extension with the full path breaking ties (`BY_TYPE`).
    """
    if sort_key is SortKey.BY_NAME:
        return sorted(paths, key=str)
    if sort_key is SortKey.BY_TYPE:
        return sorted(paths, key=lambda p: (p.suffix.lower(), str(p)))
    raise InvalidSortOptionError(f"Invalid sort option '{sort_key}'.")


def _read_lines(path: Path) -> list[str]:
    try:
        # Undecodable bytes become U+FFFD instead of failing the whole run.
        with open(path, "r", encoding="utf-8-sig", errors="replace") as f:
            content = f.read()
    except OSError as e:
        raise SourceReadError(f"Could not read '{path}': {e}") from e
    lines = content.split("\n")
    # A final line break terminates the last line, it does not start a new one.
    if lines and lines[-1] == "":
        lines.pop()
    return lines


def write_bundle(paths: Iterable[Path], config: BundleConfig) -> int:
    """Write the bundle of `paths` to `config.output_path`.

    The output file is truncated first. Each file is written as an optional
    `// Source:` note, its lines, and the separator block. The first
    unreadable file aborts the whole run.

    Args:
        paths (Iterable[Path]):
            Files to bundle, already ordered.
        config (BundleConfig):
            Bundle options.

    Returns:
        int:
            The number of files written.

    Raises:
        OutputWriteError:
            If the output file cannot be opened or written.
        SourceReadError:
            If a source file cannot be read.
    """
    count = 0
    try:
        # Non UTF-8 file names and arguments are written back as their raw bytes.
        with open(
            config.output_path, "w", encoding="utf-8", errors="surrogateescape"
        ) as out:
            if config.author and config.author.strip():
                out.write(f"// Author: {config.author}\n")

            for path in paths:
                if config.include_note:
                    out.write(f"// Source: {path}\n")

                lines = _read_lines(path)
                if config.remove_empty_lines:
                    lines = [line for line in lines if line.strip()]

                for line in lines:
                    out.write(line + "\n")
                out.write(f"\n{SEPARATOR}\n\n")

                count += 1
                logger.debug("  - %s (%d lines)", path, len(lines))
    except (OSError, UnicodeError) as e:
        raise OutputWriteError(
            f"Could not write output file '{config.output_path}': {e}"
        ) from e
    return count


def run_bundle(root: Path, config: BundleConfig) -> BundleResult:
    """Run the whole bundle pipeline: collect, select, order and write.

    Args:
        root (Path):
            Directory holding the sources.
        config (BundleConfig):
            Bundle options.

    Returns:
        BundleResult:
            The outcome of the run. Failures are reported here, not raised.
    """
    output_path = Path(os.path.abspath(config.output_path))

    try:
        files = collect(root)
    except SourceNotFoundError as e:
        return BundleResult(Outcome.SOURCE_NOT_FOUND, message=str(e))

    # Never bundle a previous bundle sitting under the root.
    resolved_output = output_path.resolve()
    files = [f for f in files if f.resolve() != resolved_output]

    selected = select(files, config.languages)
    if not selected:
        return BundleResult(
            Outcome.EMPTY_SELECTION, output_path=output_path, message=NO_FILES_MESSAGE
        )
    logger.debug("Selected %d of %d files.", len(selected), len(files))

    ordered = order(selected, config.sort_key)
    try:
        count = write_bundle(ordered, config)
    except OutputWriteError as e:
        return BundleResult(
            Outcome.OUTPUT_WRITE_ERROR, output_path=output_path, message=str(e)
        )
    except SourceReadError as e:
        return BundleResult(
            Outcome.SOURCE_READ_ERROR, output_path=output_path, message=str(e)
        )

    return BundleResult(
        Outcome.SUCCESS,
        output_path=output_path,
        files_written=count,
        message=f"Bundle created: {output_path}",
    )


# -- Response file wizard --


@dataclass(frozen=True)
class WizardField:
    """One question of the wizard, with the parser validating the answer."""

    name: str
    prompt: str
    parse: Callable[[str], object]


WIZARD_FIELDS = [
    WizardField(
        "output_path", "Output file name (with path if needed): ", validate_output_path
    ),
    WizardField(
        "languages",
        "Languages (comma separated, or 'all'): ",
        lambda value: check_languages(parse_languages([value])),
    ),
    WizardField("include_note", "Include note? (y/n): ", parse_yes_no),
    WizardField(
        "sort_key", "Sort by 'name' or 'type' (default: name): ", parse_sort_key
    ),
    WizardField("remove_empty_lines", "Remove empty lines? (y/n): ", parse_yes_no),
    WizardField("author", "Author name (optional): ", parse_author),
    WizardField(
        "response_file", "Enter response file name (.rsp): ", validate_response_file
    ),
]


def run_wizard(
    input_func: Optional[Callable[[str], str]] = None,
    output_func: Optional[Callable[[str], None]] = None,
) -> tuple[BundleConfig, Path]:
    """Ask for every bundle option, re-prompting a field until it is valid.

    Args:
        input_func (Callable[[str], str]):
            Reads one answer given a prompt. Defaults to `input`.
        output_func (Callable[[str], None]):
            Shows error messages. Defaults to `print`.

    Returns:
        tuple[BundleConfig, Path]:
            The collected configuration and the response file path.

    Raises:
        WizardAborted:
            If input ends or the user interrupts the wizard.
    """
    input_func = input_func or input
    output_func = output_func or print

    answers: dict[str, object] = {}
    for wizard_field in WIZARD_FIELDS:
        while True:
            try:
                raw = input_func(wizard_field.prompt)
            except (EOFError, KeyboardInterrupt):
                raise WizardAborted("Response file creation cancelled.") from None
            try:
                answers[wizard_field.name] = wizard_field.parse(raw)
            except ValueError as e:
                output_func(f"Error: {e} Please try again.")
                continue
            break

    response_file = answers.pop("response_file")
    return BundleConfig(**answers), response_file


def response_file_args(config: BundleConfig) -> list[str]:
    """Turn a configuration back into `bundle` command-line arguments."""
    args = [
        "bundle",
        "--output",
        os.path.abspath(config.output_path),
        "--language",
        *sorted(config.languages),
    ]
    if config.include_note:
        args.append("--note")
    args += ["--sort", config.sort_key.value]
    if config.remove_empty_lines:
        args.append("--remove-empty-lines")
    if config.author:
        args += ["--author", config.author]
    return args


def format_response_file(config: BundleConfig) -> str:
    return shlex.join(response_file_args(config))


def create_response_file(
    input_func: Optional[Callable[[str], str]] = None,
    output_func: Optional[Callable[[str], None]] = None,
) -> Path:
    """Run the wizard and save its answers as a one-line response file.

    Raises:
        WizardAborted:
            If the wizard is interrupted.
        OSError:
            If the response file cannot be written.
    """
    output_func = output_func or print
    config, response_file = run_wizard(input_func, output_func)
    response_file.write_text(format_response_file(config) + "\n", encoding="utf-8")
    output_func(f"Response file '{response_file}' created successfully!")
    return response_file


# -- Command line --


class ResponseFileParser(argparse.ArgumentParser):
    """Argument parser reading `@file` arguments as shell-style lines."""

    def convert_arg_line_to_args(self, arg_line: str) -> list[str]:
        return shlex.split(arg_line)


def config_from_args(args: argparse.Namespace) -> BundleConfig:
    """Build the bundle configuration from parsed `bundle` arguments.

    Raises:
        ValueError:
            If the languages are empty.
        InvalidSortOptionError:
            If the sort option is unknown.
    """
    return BundleConfig(
        languages=parse_languages(args.language),
        output_path=Path(os.path.abspath(os.path.expanduser(args.output))),
        include_note=args.note,
        sort_key=parse_sort_key(args.sort),
        remove_empty_lines=args.remove_empty_lines,
        author=parse_author(args.author),
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv (list[str] | None):
            List of command-line arguments. If None, uses sys.argv.

    Returns:
        argparse.Namespace:
            Parsed arguments.
    """
    parser = ResponseFileParser(
        description="Bundle code files into a single file.",
        fromfile_prefix_chars="@",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    bundle_parser = subparsers.add_parser(
        "bundle", help="Bundle code files to a single file"
    )
    bundle_parser.add_argument(
        "-l",
        "--language",
        nargs="+",
        required=True,
        help="Languages to include (space or comma separated, or 'all')",
    )
    bundle_parser.add_argument(
        "-o",
        "--output",
        type=str,
        required=True,
        help="Output file path and name",
    )
    bundle_parser.add_argument(
        "-n",
        "--note",
        action="store_true",
        help="Include a note with the source path of each file",
    )
    bundle_parser.add_argument(
        "-s",
        "--sort",
        type=str,
        default="name",
        help="Sort files by 'name' or 'type' (default: name)",
    )
    bundle_parser.add_argument(
        "-r",
        "--remove-empty-lines",
        action="store_true",
        help="Remove empty lines",
    )
    bundle_parser.add_argument(
        "-a",
        "--author",
        type=str,
        default=None,
        help="Author name to include at the top",
    )
    bundle_parser.add_argument(
        "--root",
        type=str,
        default=".",
        help="Root directory to bundle (default: current dir)",
    )

    subparsers.add_parser(
        "create-rsp", help="Create a response file for the bundle command"
    )
    return parser.parse_args(argv)


def bundle_command(args: argparse.Namespace) -> int:
    """Handle `bundle`: report the outcome as a single line."""
    try:
        config = config_from_args(args)
    except InvalidSortOptionError as e:
        result = BundleResult(Outcome.INVALID_SORT_OPTION, message=str(e))
    except ValueError as e:
        logger.error("%s", e)
        return 0
    else:
        root = Path(os.path.abspath(os.path.expanduser(args.root)))
        logger.debug("Bundling %s into %s", root, config.output_path)
        result = run_bundle(root, config)

    if result.outcome is Outcome.SUCCESS:
        logger.info("Bundled %d file(s).", result.files_written)
        print(result.message)
    elif result.outcome is Outcome.EMPTY_SELECTION:
        print(result.message)
    else:
        logger.error("%s", result.message)
    return 0


def create_rsp_command(args: argparse.Namespace) -> int:
    """Handle `create-rsp`."""
    try:
        create_response_file()
    except WizardAborted as e:
        print()
        logger.error("%s", e)
    except OSError as e:
        logger.error("Could not write response file: %s", e)
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the pycodepack command-line tool.

    Args:
        argv (list[str] | None):
            Command-line arguments. If None, uses sys.argv.

    Returns:
        int:
            Exit code. Handled failures are reported as text and return 0.
    """
    args = parse_args(argv)

    # Set up logging.
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(ColorFormatter("%(levelname)s: %(message)s"))
        logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if args.verbose else logging.INFO)

    try:
        if args.command == "create-rsp":
            return create_rsp_command(args)
        return bundle_command(args)
    except Exception as e:
        logger.debug("Unexpected failure", exc_info=True)
        logger.error("Error: %s", e)
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
