"""Injection and restoration core for Shadow Secret."""
from __future__ import annotations

from .exceptions import (
    ConfigError,
    FileIOError,
    FormatError,
    ShadowSecretError,
    TriggerInstallError,
    VaultError,
)
from .injector import InjectionReport, TargetDescriptor, inject, inject_all
from .ledger import BackupLedger
from .placeholders import resolve_placeholder
from .restoration import RestorationCoordinator, RestorationReport, restore_file
from .snapshot import FileSnapshot
from .substitution import FileFormat, classify_format, substitute, substitute_text
from .triggers import TerminationTriggers

__all__ = [
    "BackupLedger",
    "ConfigError",
    "FileFormat",
    "FileIOError",
    "FileSnapshot",
    "FormatError",
    "InjectionReport",
    "RestorationCoordinator",
    "RestorationReport",
    "ShadowSecretError",
    "TargetDescriptor",
    "TerminationTriggers",
    "TriggerInstallError",
    "VaultError",
    "classify_format",
    "inject",
    "inject_all",
    "resolve_placeholder",
    "restore_file",
    "substitute",
    "substitute_text",
]
