from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Mapping


class ShadowSecretError(Exception):
    """Base exception for Shadow Secret."""

    context: Dict[str, Any]

    def __init__(self, message: str = "", *, context: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        if context is not None:
            # Store a shallow copy to avoid accidental mutation.
            self.context = dict(context)
        else:
            self.context = {}

    def to_json_error(self) -> Dict[str, Any]:
        """Return a JSON-serializable error payload."""
        return {
            "message": str(self),
            "code": self.__class__.__name__,
            "context": self.context,
        }


class FileIOError(ShadowSecretError, OSError):
    """Raised when a target file is missing, unreadable or unwritable."""

    def __init__(
        self,
        message: str = "",
        *,
        path: Path | str | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        ctx = dict(context or {})
        if path is not None:
            ctx["path"] = str(path)
        ShadowSecretError.__init__(self, message, context=ctx)
        OSError.__init__(self, message)
        self.path = None if path is None else Path(path)


class FormatError(ShadowSecretError, ValueError):
    """Raised when a structured (JSON/YAML) target file cannot be parsed."""

    def __init__(
        self,
        message: str = "",
        *,
        path: Path | str | None = None,
        diagnostic: str | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        ctx = dict(context or {})
        if path is not None:
            ctx["path"] = str(path)
        if diagnostic:
            ctx["diagnostic"] = diagnostic
        ShadowSecretError.__init__(self, message, context=ctx)
        ValueError.__init__(self, message)
        self.path = None if path is None else Path(path)
        self.diagnostic = diagnostic


class ConfigError(ShadowSecretError, ValueError):
    """Raised when the configuration file is missing or invalid."""

    def __init__(self, message: str = "", *, context: Mapping[str, Any] | None = None) -> None:
        ShadowSecretError.__init__(self, message, context=context)
        ValueError.__init__(self, message)


class VaultError(ShadowSecretError, RuntimeError):
    """Raised when secrets cannot be loaded from the encrypted vault."""

    def __init__(self, message: str = "", *, context: Mapping[str, Any] | None = None) -> None:
        ShadowSecretError.__init__(self, message, context=context)
        RuntimeError.__init__(self, message)


class TriggerInstallError(ShadowSecretError, RuntimeError):
    """Raised when a termination handler cannot be installed at startup."""

    def __init__(self, message: str = "", *, context: Mapping[str, Any] | None = None) -> None:
        ShadowSecretError.__init__(self, message, context=context)
        RuntimeError.__init__(self, message)


__all__ = [
    "ShadowSecretError",
    "FileIOError",
    "FormatError",
    "ConfigError",
    "VaultError",
    "TriggerInstallError",
]
