"""Registry of pre-images awaiting restoration.

A :class:`BackupLedger` is created once by the caller and passed to both the
injection and the restoration paths. Termination handlers reach it through
the :class:`~shadow_secret.core.restoration.RestorationCoordinator` that owns
it, never through module state.

The lock is reentrant: Python runs signal handlers on the main thread
between bytecodes, so a handler may fire while the main thread is inside
``register``. Every critical section is a single dict operation, so the
handler always observes either the old or the new entry.
"""
from __future__ import annotations

import threading
from pathlib import Path
from typing import Dict, List

from .file_io import PathLike


class BackupLedger:
    """Thread-safe ``path -> original content`` map with drain semantics.

    At most one entry exists per path. Registering a path again replaces the
    stored pre-image with the newer one; nested injections into the same file
    are therefore not unwound layer by layer.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._entries: Dict[str, str] = {}

    @staticmethod
    def _key(path: PathLike) -> str:
        return str(Path(path).absolute())

    def register(self, path: PathLike, original_content: str) -> None:
        """Insert or overwrite the pre-image for ``path``."""
        key = self._key(path)
        with self._lock:
            self._entries[key] = original_content

    def drain(self) -> Dict[str, str]:
        """Return every entry and leave the ledger empty."""
        with self._lock:
            entries, self._entries = self._entries, {}
        return entries

    def is_empty(self) -> bool:
        with self._lock:
            return not self._entries

    def paths(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, (str, Path)):
            return False
        key = self._key(path)
        with self._lock:
            return key in self._entries

    def __repr__(self) -> str:
        return f"BackupLedger(entries={len(self)})"


__all__ = ["BackupLedger"]
