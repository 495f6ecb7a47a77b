"""
Termination of processes that keep target files open.

Tools such as a Node.js dev server may hold an injected config file open or
rewrite it on exit. Before files are restored, processes whose name is on a
short allow-list are terminated so that the restored content sticks.

IMPORTANT
---------
The current process and its ancestors are never matched, even when their
name is on the allow-list (e.g. ``node`` wrapping the CLI through npm).
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Iterable, List, Set

import psutil

logger = logging.getLogger(__name__)

DEFAULT_BLOCKING_PROCESSES = ("node", "openclaw")

_TERMINATE_WAIT_SECONDS = 1.0


@dataclass(frozen=True)
class ProcessMatch:
    pid: int
    name: str


def _normalize_name(name: str) -> str:
    name = name.strip().lower()
    return name[:-4] if name.endswith(".exe") else name


def _protected_pids() -> Set[int]:
    """PIDs of this process and all of its ancestors."""
    pids = {os.getpid()}
    try:
        pids.update(p.pid for p in psutil.Process(os.getpid()).parents())
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        pass
    return pids


def find_processes(names: Iterable[str]) -> List[ProcessMatch]:
    """Return running processes whose name matches one of ``names``.

    Matching is exact and case-insensitive (a trailing ``.exe`` is ignored).
    """
    wanted = {_normalize_name(n) for n in names if str(n).strip()}
    if not wanted:
        return []

    protected = _protected_pids()
    matches: List[ProcessMatch] = []
    for proc in psutil.process_iter(["pid", "name"]):
        name = proc.info.get("name") or ""
        pid = proc.info.get("pid")
        if pid is None or pid in protected:
            continue
        if _normalize_name(name) in wanted:
            matches.append(ProcessMatch(pid=pid, name=name))
    return matches


def terminate_processes(
    names: Iterable[str], *, timeout: float = _TERMINATE_WAIT_SECONDS
) -> List[ProcessMatch]:
    """Terminate matching processes, escalating to kill after ``timeout``.

    Processes that vanish or cannot be signalled are logged and skipped.

    Returns:
        The processes that were signalled.
    """
    signalled: List[ProcessMatch] = []
    handles: List[psutil.Process] = []

    for match in find_processes(names):
        logger.info("Terminating process: %s (PID: %d)", match.name, match.pid)
        try:
            proc = psutil.Process(match.pid)
            proc.terminate()
        except psutil.NoSuchProcess:
            continue
        except psutil.AccessDenied:
            logger.warning("Failed to terminate %s (PID: %d): access denied", match.name, match.pid)
            continue
        signalled.append(match)
        handles.append(proc)

    if handles:
        _, alive = psutil.wait_procs(handles, timeout=timeout)
        for proc in alive:
            try:
                proc.kill()
            except (psutil.NoSuchProcess, psutil.AccessDenied) as exc:
                logger.warning("Failed to kill PID %d: %s", proc.pid, exc)

    if signalled:
        logger.info("Terminated %d blocking process(es)", len(signalled))
    else:
        logger.info("No blocking processes found")
    return signalled


__all__ = [
    "DEFAULT_BLOCKING_PROCESSES",
    "ProcessMatch",
    "find_processes",
    "terminate_processes",
]
