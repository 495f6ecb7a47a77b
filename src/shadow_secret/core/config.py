"""
Shadow Secret configuration (YAML, schema-validated).

Configuration sources (first match wins):
1. Explicit ``--config`` path
2. ``SHADOW_SECRET_CONFIG`` environment variable
3. ``shadow-secret.yaml`` or ``project.yaml`` in the working directory
4. Global config: ``~/.config/shadow-secret/global.yaml``

The selected file is deep-merged over the bundled defaults
(``shadow_secret/data/config/defaults.yaml``) and validated against
``shadow_secret/data/schemas/config.schema.yaml``.

Relative paths inside the file (vault source, target paths, log file) are
resolved against the directory containing the config file, not the CWD.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import jsonschema
import yaml

from shadow_secret.data import read_yaml as read_data_yaml

from .exceptions import ConfigError
from .file_io import PathLike, read_yaml
from .injector import TargetDescriptor
from .placeholders import is_placeholder
from .process import DEFAULT_BLOCKING_PROCESSES

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "SHADOW_SECRET_CONFIG"
PROJECT_CONFIG_NAMES = ("shadow-secret.yaml", "project.yaml")
SCHEMA_FILE = "config.schema.yaml"


def global_config_path() -> Path:
    return Path.home() / ".config" / "shadow-secret" / "global.yaml"


def resolve_path(path_str: str, config_dir: Path) -> Path:
    """Resolve ``path_str``: absolute as-is, ``~`` expanded, else relative to ``config_dir``."""
    path = Path(path_str)
    if path.is_absolute():
        return path
    if path_str.startswith("~"):
        return path.expanduser()
    return config_dir / path


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge dictionaries without mutating inputs.

    Lists in ``override`` replace lists in ``base``.

    Example:
        >>> deep_merge({"a": 1, "b": {"c": 2}}, {"b": {"d": 3}})
        {'a': 1, 'b': {'c': 2, 'd': 3}}
    """
    result: Dict[str, Any] = dict(base)
    for key, value in (override or {}).items():
        if isinstance(result.get(key), dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


@dataclass(frozen=True)
class VaultConfig:
    source: str
    engine: str = "sops"
    vault_path: Optional[str] = None
    age_key_path: Optional[str] = None
    require_mount: bool = False


@dataclass(frozen=True)
class TargetConfig:
    name: str
    path: str
    placeholders: Tuple[str, ...]


@dataclass(frozen=True)
class CleanupConfig:
    blocking_processes: Tuple[str, ...] = DEFAULT_BLOCKING_PROCESSES


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"
    file: Optional[str] = None


@dataclass(frozen=True)
class ShadowSecretConfig:
    vault: VaultConfig
    targets: Tuple[TargetConfig, ...]
    cleanup: CleanupConfig = field(default_factory=CleanupConfig)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    config_path: Optional[Path] = None

    @property
    def config_dir(self) -> Path:
        if self.config_path is None:
            return Path.cwd()
        return self.config_path.resolve().parent

    def vault_source_path(self) -> Path:
        """Path of the encrypted vault; ``vault_path`` overrides ``source``."""
        raw = self.vault.vault_path or self.vault.source
        return resolve_path(raw, self.config_dir)

    def age_key_file(self) -> Optional[Path]:
        if not self.vault.age_key_path:
            return None
        return resolve_path(self.vault.age_key_path, self.config_dir)

    def log_file(self) -> Optional[Path]:
        if not self.logging.file:
            return None
        return resolve_path(self.logging.file, self.config_dir)

    def target_descriptors(self) -> List[TargetDescriptor]:
        return [
            TargetDescriptor.of(resolve_path(t.path, self.config_dir), t.placeholders, name=t.name)
            for t in self.targets
        ]

    def warnings(self) -> List[str]:
        """Non-fatal issues (placeholders that do not use ``$`` syntax)."""
        issues: List[str] = []
        for target in self.targets:
            for placeholder in target.placeholders:
                if not is_placeholder(placeholder):
                    issues.append(
                        f"target '{target.name}': placeholder '{placeholder}' does not start with '$'"
                    )
        return issues


def _schema() -> Dict[str, Any]:
    return read_data_yaml("schemas", SCHEMA_FILE)


def _defaults() -> Dict[str, Any]:
    return read_data_yaml("config", "defaults.yaml") or {}


def validate_config_data(data: Dict[str, Any]) -> List[str]:
    """Validate raw config data and return error messages (empty if valid)."""
    validator_cls = jsonschema.validators.validator_for(_schema())
    validator = validator_cls(_schema())
    errors: List[str] = []
    for error in sorted(validator.iter_errors(data), key=lambda e: list(e.path)):
        location = ".".join(str(p) for p in error.path) or "<root>"
        errors.append(f"{location}: {error.message}")
    return errors


def config_from_dict(data: Dict[str, Any], *, config_path: Optional[Path] = None) -> ShadowSecretConfig:
    """Build a validated :class:`ShadowSecretConfig` from raw YAML data.

    Raises:
        ConfigError: If the merged data does not satisfy the schema.
    """
    if not isinstance(data, dict):
        raise ConfigError(
            f"Configuration must be a mapping, got {type(data).__name__}",
            context={"path": str(config_path) if config_path else None},
        )

    merged = deep_merge(_defaults(), data)
    errors = validate_config_data(merged)
    if errors:
        raise ConfigError(
            "Invalid configuration:\n" + "\n".join(f"  - {e}" for e in errors),
            context={"path": str(config_path) if config_path else None, "errors": errors},
        )

    vault = merged["vault"]
    cleanup = merged.get("cleanup") or {}
    log_cfg = merged.get("logging") or {}
    return ShadowSecretConfig(
        vault=VaultConfig(
            source=vault["source"],
            engine=vault.get("engine", "sops"),
            vault_path=vault.get("vault_path"),
            age_key_path=vault.get("age_key_path"),
            require_mount=bool(vault.get("require_mount", False)),
        ),
        targets=tuple(
            TargetConfig(name=t["name"], path=t["path"], placeholders=tuple(t["placeholders"]))
            for t in merged["targets"]
        ),
        cleanup=CleanupConfig(
            blocking_processes=tuple(cleanup.get("blocking_processes", DEFAULT_BLOCKING_PROCESSES))
        ),
        logging=LoggingSettings(
            level=str(log_cfg.get("level") or "INFO").upper(),
            file=log_cfg.get("file"),
        ),
        config_path=config_path,
    )


def load_config(path: PathLike) -> ShadowSecretConfig:
    """Load and validate the configuration file at ``path``.

    Raises:
        ConfigError: If the file is missing, is not valid YAML, or is invalid.
    """
    config_path = Path(path)
    try:
        data = read_yaml(config_path, default=None, raise_on_error=True)
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {config_path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse config file {config_path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Failed to read config file {config_path}: {exc}") from exc

    if data is None:
        raise ConfigError(f"Config file is empty: {config_path}")

    config = config_from_dict(data, config_path=config_path)
    for warning in config.warnings():
        logger.warning("%s", warning)
    return config


def find_config_file(explicit: Optional[PathLike] = None, *, cwd: Optional[Path] = None) -> Path:
    """Locate the configuration file to use.

    Raises:
        ConfigError: If no configuration file can be found.
    """
    if explicit:
        return Path(explicit)

    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()

    base = cwd or Path.cwd()
    for name in PROJECT_CONFIG_NAMES:
        candidate = base / name
        if candidate.exists():
            return candidate

    global_path = global_config_path()
    if global_path.exists():
        logger.info("Using global configuration from %s", global_path)
        return global_path

    raise ConfigError(
        "No Shadow Secret configuration found.\n"
        "Create one of:\n"
        f"  1. Project-specific: {PROJECT_CONFIG_NAMES[0]} (in the current directory)\n"
        f"  2. Global: {global_path}\n"
        f"or point {CONFIG_ENV_VAR} at a configuration file."
    )


__all__ = [
    "CONFIG_ENV_VAR",
    "VaultConfig",
    "TargetConfig",
    "CleanupConfig",
    "LoggingSettings",
    "ShadowSecretConfig",
    "config_from_dict",
    "deep_merge",
    "find_config_file",
    "global_config_path",
    "load_config",
    "resolve_path",
    "validate_config_data",
]
