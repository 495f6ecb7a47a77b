"""Process utilities for releasing target files before restoration."""

from .terminator import (
    DEFAULT_BLOCKING_PROCESSES,
    ProcessMatch,
    find_processes,
    terminate_processes,
)

__all__ = [
    "DEFAULT_BLOCKING_PROCESSES",
    "ProcessMatch",
    "find_processes",
    "terminate_processes",
]
