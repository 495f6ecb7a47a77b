"""
Shadow Secret CLI package.

Commands are auto-discovered from ``cli/commands/*.py``; each module exposes
``SUMMARY``, ``register_args(parser)`` and ``main(args) -> int``.

Framework utilities for building CLI commands:
- _output: Output formatting (JSON/text modes)
- _args: Common argument registration helpers
"""
from ._output import OutputFormatter, format_json, print_error, print_success
from ._args import add_config_flag, add_json_flag

__all__ = [
    "OutputFormatter",
    "format_json",
    "print_success",
    "print_error",
    "add_json_flag",
    "add_config_flag",
]
