"""File I/O utilities for Shadow Secret.

Single source of truth for how target files are touched:
- Exact text reads (UTF-8, no newline translation) under a shared lock
- In-place rewrites (truncate + write + fsync) under an exclusive lock
- Permission capture and re-application on POSIX
- YAML reads with consistent error handling for configuration files

Target files are never replaced through a temp file + rename: the inode,
ownership and hard links of a target must survive injection and restoration.
"""
from __future__ import annotations

import fcntl
import os
import stat
import threading
from pathlib import Path
from typing import Any, Optional, Set, Tuple, Union

import yaml

from .exceptions import FileIOError

PathLike = Union[str, Path]


def read_text_exact(path: PathLike) -> str:
    """Read a UTF-8 text file exactly as stored on disk.

    Line endings and a leading byte-order mark are preserved so that the
    content can later be written back byte for byte.

    Raises:
        FileIOError: If the file is missing, unreadable or not valid UTF-8.
    """

    path = Path(path)
    if not path.exists():
        raise FileIOError(f"File not found: {path}", path=path)
    if not path.is_file():
        raise FileIOError(f"Not a regular file: {path}", path=path)

    try:
        with open(path, "r", encoding="utf-8", newline="") as f:
            fcntl.flock(f.fileno(), fcntl.LOCK_SH)
            try:
                return f.read()
            finally:
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)
    except UnicodeDecodeError as exc:
        raise FileIOError(f"File is not valid UTF-8: {path}: {exc}", path=path) from exc
    except OSError as exc:
        raise FileIOError(f"Failed to read {path}: {exc}", path=path) from exc


# Paths this process holds an exclusive lock on, keyed with the owning thread.
# A signal handler that restores a file while the same thread is inside
# write_text_in_place for it must not wait on its own flock.
_HELD_LOCKS: Set[Tuple[int, str]] = set()


def write_text_in_place(path: PathLike, content: str, *, create: bool = False) -> None:
    """Replace the full content of ``path`` without changing its inode.

    - The file is opened read/write, locked exclusively, truncated and rewritten
    - Writes are unbuffered, so an interrupted call leaves nothing to flush on close
    - Data is fsync'd before the lock is released
    - A nested call for a path the current thread already holds skips the lock
    - Missing files raise unless ``create`` is True

    Raises:
        FileIOError: If the file cannot be opened or written.
    """

    path = Path(path)
    mode = "r+b"
    if not path.exists():
        if not create:
            raise FileIOError(f"File not found: {path}", path=path)
        mode = "wb"

    data = content.encode("utf-8")
    key = (threading.get_ident(), str(path.absolute()))
    nested = key in _HELD_LOCKS
    if not nested:
        _HELD_LOCKS.add(key)

    try:
        with open(path, mode, buffering=0) as f:
            if not nested:
                fcntl.flock(f.fileno(), fcntl.LOCK_EX)
            try:
                f.seek(0)
                f.truncate()
                view = memoryview(data)
                while view:
                    written = f.write(view)
                    view = view[written:]
                os.fsync(f.fileno())
            finally:
                if not nested:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
    except OSError as exc:
        raise FileIOError(f"Failed to write {path}: {exc}", path=path) from exc
    finally:
        if not nested:
            _HELD_LOCKS.discard(key)


def file_mode(path: PathLike) -> Optional[int]:
    """Return the permission bits of ``path`` (POSIX only, else None)."""

    if os.name != "posix":
        return None
    try:
        return stat.S_IMODE(os.stat(path).st_mode)
    except OSError as exc:
        raise FileIOError(f"Failed to get file metadata: {path}: {exc}", path=path) from exc


def apply_mode(path: PathLike, mode: Optional[int]) -> None:
    """Re-apply captured permission bits; no-op when ``mode`` is None."""

    if mode is None:
        return
    try:
        os.chmod(path, mode)
    except OSError as exc:
        raise FileIOError(f"Failed to restore permissions for {path}: {exc}", path=path) from exc


def read_yaml(path: PathLike, default: Any = None, raise_on_error: bool = False) -> Any:
    """Read YAML with error handling.

    Returns default if file is missing or invalid, unless raise_on_error is True.

    Examples:
        >>> config = read_yaml(Path("shadow-secret.yaml"), default={})
        >>> assert isinstance(config, dict)
    """
    path = Path(path)
    if not path.exists():
        if raise_on_error:
            raise FileNotFoundError(f"File not found: {path}")
        return default

    try:
        with open(path, "r", encoding="utf-8") as f:
            fcntl.flock(f.fileno(), fcntl.LOCK_SH)
            data = yaml.safe_load(f)
            fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        return data if data is not None else default
    except Exception:
        if raise_on_error:
            raise
        return default


__all__ = [
    "PathLike",
    "read_text_exact",
    "write_text_in_place",
    "file_mode",
    "apply_mode",
    "read_yaml",
]
