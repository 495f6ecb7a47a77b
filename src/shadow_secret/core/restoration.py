"""Restoration of every file recorded in a :class:`BackupLedger`.

``cleanup_and_restore`` is the single entry point used by the signal
handler, the fault hook and normal shutdown. It is idempotent: the first
caller drains the ledger, later callers find it empty and return at once.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Sequence

from .exceptions import FileIOError
from .file_io import PathLike, write_text_in_place
from .ledger import BackupLedger
from .process import DEFAULT_BLOCKING_PROCESSES, ProcessMatch, terminate_processes

logger = logging.getLogger(__name__)


def restore_file(path: PathLike, original_content: str) -> None:
    """Write ``original_content`` back to ``path``.

    Raises:
        FileIOError: If the file cannot be written.
    """
    write_text_in_place(path, original_content, create=True)


@dataclass
class RestorationReport:
    attempted: int = 0
    restored: int = 0
    failures: Dict[str, str] = field(default_factory=dict)
    terminated_processes: List[ProcessMatch] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def to_dict(self) -> Dict[str, object]:
        return {
            "attempted": self.attempted,
            "restored": self.restored,
            "failures": dict(self.failures),
            "terminated_processes": [
                {"pid": p.pid, "name": p.name} for p in self.terminated_processes
            ],
        }


class RestorationCoordinator:
    """Drain a ledger and put every file back to its pre-image.

    Args:
        ledger: The ledger populated by injections.
        blocking_processes: Process names terminated before files are rewritten.
        terminator: Callable used to terminate processes (overridable in tests).
    """

    def __init__(
        self,
        ledger: BackupLedger,
        *,
        blocking_processes: Sequence[str] = DEFAULT_BLOCKING_PROCESSES,
        terminator: Callable[[Iterable[str]], List[ProcessMatch]] = terminate_processes,
    ) -> None:
        self.ledger = ledger
        self.blocking_processes = tuple(blocking_processes)
        self._terminator = terminator
        self._depth = 0

    @property
    def in_progress(self) -> bool:
        """True while a ``cleanup_and_restore`` call is running."""
        return self._depth > 0

    def cleanup_and_restore(self) -> RestorationReport:
        """Terminate blocking processes, then restore every registered file.

        A failure on one file never prevents the others from being attempted.
        With an empty ledger nothing is touched.
        """
        if self.ledger.is_empty():
            logger.info("No backups to restore")
            return RestorationReport()

        self._depth += 1
        try:
            return self._restore_all()
        finally:
            self._depth -= 1

    def _restore_all(self) -> RestorationReport:
        report = RestorationReport()
        logger.info("Starting cleanup...")

        if self.blocking_processes:
            try:
                report.terminated_processes = list(self._terminator(self.blocking_processes))
            except Exception as exc:
                logger.warning("Failed to terminate blocking processes: %s", exc)

        backups = self.ledger.drain()
        report.attempted = len(backups)

        for path, content in backups.items():
            try:
                restore_file(path, content)
            except FileIOError as exc:
                report.failures[path] = str(exc)
                logger.error(
                    "FAILED TO RESTORE %s: %s -- the file may still contain secrets", path, exc
                )
                continue
            report.restored += 1
            logger.info("Restored: %s", path)

        if report.ok:
            logger.info("Cleanup complete: %d/%d files restored", report.restored, report.attempted)
        else:
            logger.error(
                "Cleanup incomplete: %d/%d files restored", report.restored, report.attempted
            )
        return report


__all__ = ["RestorationCoordinator", "RestorationReport", "restore_file"]
