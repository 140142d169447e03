"""
Command-line argument parsing for Schedule Bot.

The bot takes the locations of its configuration file, data folder and log
folder, and optionally the name of the entry store file inside the data
folder. Everything else comes from config.yml.
"""

import argparse
import sys
from pathlib import Path
from typing import NamedTuple

from ..core.version import get_version
from .paths import PathConfig


class PathValidationError(Exception):
    """Raised when a command-line path is unusable."""


class ParsedArgs(NamedTuple):
    """Container for parsed command-line arguments."""

    config_file: Path
    data_folder: Path
    log_folder: Path
    entries_file: str | None


def _resolve(path_str: str, label: str) -> Path:
    try:
        return Path(path_str).expanduser().resolve()
    except (OSError, ValueError) as e:
        raise PathValidationError(f"Invalid {label} path: {e}") from e


def validate_config_file_path(config_file_str: str) -> Path:
    """
    Resolve the configuration file path.

    The file itself may be missing (a sample is written next to it), but its
    directory must exist.

    Raises:
        PathValidationError: If the path is a directory or has no parent
    """
    config_file = _resolve(config_file_str, "config file")
    if config_file.is_dir():
        raise PathValidationError(f"Config file path exists but is not a file: {config_file}")
    if not config_file.parent.exists():
        raise PathValidationError(
            f"Parent directory for config file does not exist: {config_file.parent}"
        )
    return config_file


def validate_folder_path(path_str: str, folder_name: str) -> Path:
    """
    Resolve a folder path that will be created on demand.

    Raises:
        PathValidationError: If something other than a directory is in the way
    """
    path = _resolve(path_str, folder_name)
    if path.exists() and not path.is_dir():
        raise PathValidationError(
            f"{folder_name.capitalize()} path exists but is not a directory: {path}"
        )
    return path


def validate_entries_file_name(name: str) -> str:
    """
    Check an entry store file name.

    The store always lives inside the data folder, so only a bare ``.json``
    file name is accepted.

    Raises:
        PathValidationError: If the name contains a directory or another suffix
    """
    name = name.strip()
    if not name or Path(name).name != name:
        raise PathValidationError(f"Entries file must be a file name, got '{name}'")
    if not name.endswith(".json"):
        raise PathValidationError(f"Entries file must end in .json, got '{name}'")
    return name


def create_argument_parser() -> argparse.ArgumentParser:
    """Create the argument parser for Schedule Bot."""
    parser = argparse.ArgumentParser(
        prog="schedule-bot",
        description="Schedule Bot - starts, ends, repeats and announces scheduled events",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  schedule-bot --config-file /etc/schedule-bot/config.yml
  schedule-bot --data-folder /var/lib/schedule-bot --entries-file guild-events.json
""",
    )
    _ = parser.add_argument(
        "--config-file",
        default="config.yml",
        help="Path to the configuration file (default: %(default)s)",
        metavar="PATH",
    )
    _ = parser.add_argument(
        "--data-folder",
        default="data",
        help="Folder holding the entry store, created if missing (default: %(default)s)",
        metavar="PATH",
    )
    _ = parser.add_argument(
        "--log-folder",
        default="logs",
        help="Folder for log files, created if missing (default: %(default)s)",
        metavar="PATH",
    )
    _ = parser.add_argument(
        "--entries-file",
        default=None,
        help="Entry store file name inside the data folder, overrides storage.entries_file",
        metavar="NAME",
    )
    _ = parser.add_argument("--version", action="version", version=f"%(prog)s {get_version()}")
    return parser


def parse_arguments(args: list[str] | None = None) -> ParsedArgs:
    """
    Parse and validate command-line arguments.

    Raises:
        SystemExit: On invalid arguments, an unusable path, --help or --version
    """
    parsed = create_argument_parser().parse_args(args)

    try:
        entries_file: str | None = parsed.entries_file
        return ParsedArgs(
            config_file=validate_config_file_path(parsed.config_file),
            data_folder=validate_folder_path(parsed.data_folder, "data folder"),
            log_folder=validate_folder_path(parsed.log_folder, "log folder"),
            entries_file=(
                validate_entries_file_name(entries_file) if entries_file is not None else None
            ),
        )
    except PathValidationError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


def apply_parsed_args(parsed_args: ParsedArgs, path_config: PathConfig) -> None:
    """
    Create the data and log folders and publish the paths.

    Raises:
        OSError: If a folder cannot be created
    """
    parsed_args.data_folder.mkdir(parents=True, exist_ok=True)
    parsed_args.log_folder.mkdir(parents=True, exist_ok=True)
    path_config.set_paths(
        config_file=parsed_args.config_file,
        data_folder=parsed_args.data_folder,
        log_folder=parsed_args.log_folder,
    )
    if parsed_args.entries_file is not None:
        path_config.set_entries_file(parsed_args.entries_file)
