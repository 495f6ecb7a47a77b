"""Secret injection into existing target files.

Guarantees:
- Only existing files are modified, in place; no new files are created
- A snapshot is taken and registered for restoration before any write
- A failed injection leaves the target with its original content
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .exceptions import FileIOError, ShadowSecretError
from .file_io import PathLike, write_text_in_place
from .ledger import BackupLedger
from .placeholders import resolve_placeholder
from .snapshot import FileSnapshot
from .substitution import substitute

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TargetDescriptor:
    """A file plus the placeholders to resolve within it."""

    path: Path
    placeholders: Tuple[str, ...]
    name: Optional[str] = None

    @classmethod
    def of(cls, path: PathLike, placeholders: Iterable[str], name: Optional[str] = None) -> "TargetDescriptor":
        return cls(path=Path(path), placeholders=tuple(placeholders), name=name)

    @property
    def label(self) -> str:
        return self.name or str(self.path)


def inject(
    target: TargetDescriptor,
    secrets: Mapping[str, str],
    *,
    ledger: Optional[BackupLedger] = None,
) -> FileSnapshot:
    """Substitute the target's placeholders in place and return its snapshot.

    Sequence:
    1. Snapshot the file (abort before any mutation on failure)
    2. Substitute using the snapshot's content, so the pre-image and the
       substituted text come from the same read
    3. Register the pre-image in ``ledger`` when one is given, so a signal
       arriving during or right after the write restores the file
    4. Overwrite the file; the ledger entry is kept if the write fails

    Raises:
        FileIOError: If the file cannot be read or written.
        FormatError: If a JSON/YAML target does not parse.
    """
    path = target.path
    logger.debug("Starting injection for: %s", path)
    logger.debug("Placeholders: %s", list(target.placeholders))
    logger.debug("Secret keys: %s", sorted(secrets))

    snapshot = FileSnapshot.create(path)
    modified = substitute(snapshot.content, secrets, target.placeholders, path=path)

    if ledger is not None:
        ledger.register(path, snapshot.content)

    if modified != snapshot.content:
        try:
            write_text_in_place(path, modified)
        except FileIOError:
            # A truncate may have happened before the write failed.
            try:
                snapshot.restore()
            except FileIOError as restore_exc:
                logger.error("Failed to roll back %s after write error: %s", path, restore_exc)
            raise
    else:
        logger.debug("No placeholder resolved in %s; file left untouched", path)

    logger.debug("Injection completed for: %s", path)
    return snapshot


@dataclass
class InjectionReport:
    injected: List[TargetDescriptor] = field(default_factory=list)
    failures: Dict[str, ShadowSecretError] = field(default_factory=dict)
    unresolved: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures


def unresolved_placeholders(target: TargetDescriptor, secrets: Mapping[str, str]) -> List[str]:
    """Placeholders of ``target`` with no matching secret."""
    return [p for p in target.placeholders if resolve_placeholder(p) not in secrets]


def inject_all(
    targets: Sequence[TargetDescriptor],
    secrets: Mapping[str, str],
    ledger: BackupLedger,
    *,
    stop_on_error: bool = True,
) -> InjectionReport:
    """Inject every target, registering each pre-image in ``ledger``.

    With ``stop_on_error`` the first failing target ends the run; already
    injected targets stay registered so the caller can restore them.
    """
    report = InjectionReport()
    for target in targets:
        missing = unresolved_placeholders(target, secrets)
        if missing:
            report.unresolved[str(target.path)] = missing
            logger.warning("No secret found for %s in %s", ", ".join(missing), target.label)
        try:
            inject(target, secrets, ledger=ledger)
        except ShadowSecretError as exc:
            report.failures[str(target.path)] = exc
            logger.error("Failed to inject secrets into %s: %s", target.path, exc)
            if stop_on_error:
                break
            continue
        report.injected.append(target)
        logger.info("Injected %d placeholder(s) into %s", len(target.placeholders), target.label)
    return report


__all__ = [
    "TargetDescriptor",
    "InjectionReport",
    "inject",
    "inject_all",
    "unresolved_placeholders",
]
