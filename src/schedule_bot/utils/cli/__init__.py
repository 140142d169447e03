"""Command-line and path handling for Schedule Bot."""

from .args import ParsedArgs, apply_parsed_args, parse_arguments
from .paths import PathConfig, get_path_config

__all__ = [
    "ParsedArgs",
    "apply_parsed_args",
    "parse_arguments",
    "PathConfig",
    "get_path_config",
]
