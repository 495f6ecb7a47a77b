"""Pre-image capture for target files."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .file_io import PathLike, apply_mode, file_mode, read_text_exact, write_text_in_place


@dataclass(frozen=True)
class FileSnapshot:
    """Original content (and POSIX permission bits) of a file.

    Snapshots are plain values: copying one is free of side effects and
    ``restore`` may be called any number of times with the same result.
    """

    path: Path
    content: str
    mode: Optional[int] = None

    @classmethod
    def create(cls, path: PathLike) -> "FileSnapshot":
        """Capture the current content of ``path``.

        Raises:
            FileIOError: If the file is missing, unreadable or not UTF-8.
        """
        target = Path(path)
        content = read_text_exact(target)
        return cls(path=target, content=content, mode=file_mode(target))

    def restore(self) -> None:
        """Rewrite the file with the captured content and permissions.

        A file deleted since the snapshot was taken is recreated.

        Raises:
            FileIOError: If the file cannot be written or chmod'ed.
        """
        write_text_in_place(self.path, self.content, create=True)
        apply_mode(self.path, self.mode)

    def matches_disk(self) -> bool:
        """True when the file on disk still holds the captured content."""
        try:
            return read_text_exact(self.path) == self.content
        except OSError:
            return False


__all__ = ["FileSnapshot"]
