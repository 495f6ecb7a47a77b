"""In-memory secret vault backed by SOPS.

Secrets are decrypted by running ``sops -d <file>`` and parsing its stdout
directly; decrypted material is never written to disk.

Supported vault formats (by extension of the encrypted file):
- ENV (``KEY=value`` lines, ``#`` comments, optional quotes)
- JSON (flat object, or SOPS ``{"data": {...}}``)
- YAML (flat mapping, or SOPS ``data:`` mapping)
"""
from __future__ import annotations

import json
import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Any, Dict, Iterator, Mapping, Optional

import yaml

from .exceptions import VaultError
from .file_io import PathLike

logger = logging.getLogger(__name__)

SOPS_BINARY = "sops"
SOPS_TIMEOUT_SECONDS = 60.0
AGE_KEY_ENV_VAR = "SOPS_AGE_KEY_FILE"


class Vault(Mapping[str, str]):
    """Read-only mapping of secret name to secret value."""

    def __init__(self, secrets: Mapping[str, str]) -> None:
        self._secrets: Dict[str, str] = dict(secrets)

    @classmethod
    def load(
        cls,
        encrypted_path: PathLike,
        *,
        age_key_path: Optional[PathLike] = None,
        require_mount: bool = False,
    ) -> "Vault":
        """Decrypt ``encrypted_path`` with SOPS and parse the output.

        Raises:
            VaultError: If SOPS is unavailable, decryption fails, or the
                decrypted content holds no usable secrets.
        """
        path = Path(encrypted_path)
        if not path.exists():
            hint = " (is the encrypted volume mounted?)" if require_mount else ""
            raise VaultError(f"Vault file not found: {path}{hint}", context={"path": str(path)})

        output = run_sops_decrypt(path, age_key_path=age_key_path)
        return cls(parse_output(path, output))

    def __getitem__(self, key: str) -> str:
        return self._secrets[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._secrets)

    def __len__(self) -> int:
        return len(self._secrets)

    def __repr__(self) -> str:
        # Never expose values.
        return f"Vault(keys={sorted(self._secrets)})"


def run_sops_decrypt(path: Path, *, age_key_path: Optional[PathLike] = None) -> str:
    """Run ``sops -d`` on ``path`` and return its stdout."""
    if shutil.which(SOPS_BINARY) is None:
        raise VaultError("SOPS is not installed or not in PATH. Please install SOPS first.")

    env = dict(os.environ)
    if age_key_path:
        env[AGE_KEY_ENV_VAR] = str(Path(age_key_path).expanduser())

    logger.debug("Decrypting vault %s with sops", path)
    try:
        result = subprocess.run(
            [SOPS_BINARY, "-d", str(path)],
            capture_output=True,
            env=env,
            timeout=SOPS_TIMEOUT_SECONDS,
            check=False,
        )
    except subprocess.TimeoutExpired as exc:
        raise VaultError(f"SOPS timed out after {SOPS_TIMEOUT_SECONDS}s decrypting {path}") from exc
    except OSError as exc:
        raise VaultError(f"Failed to execute SOPS on '{path}': {exc}") from exc

    if result.returncode != 0:
        stderr = result.stderr.decode("utf-8", errors="replace").strip()
        raise VaultError(
            f"SOPS decryption failed: {stderr or 'Unknown error'}",
            context={"path": str(path), "returncode": result.returncode},
        )

    try:
        return result.stdout.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise VaultError("SOPS output is not valid UTF-8") from exc


# ============================================================================
# Output parsing
# ============================================================================

def parse_env(content: str) -> Dict[str, str]:
    secrets: Dict[str, str] = {}
    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key, value = key.strip(), value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
            value = value[1:-1]
        secrets[key] = value

    if not secrets:
        raise VaultError("No secrets found in ENV format. Expected 'key=value' pairs.")
    return secrets


def _flat_strings(data: Any, fmt: str) -> Dict[str, str]:
    """Extract a flat string mapping, honoring the SOPS ``data`` nesting."""
    if isinstance(data, dict) and isinstance(data.get("data"), dict):
        data = data["data"]
    if not isinstance(data, dict):
        raise VaultError(f"{fmt} must be a mapping of key-value pairs")

    secrets: Dict[str, str] = {}
    for key, value in data.items():
        if not isinstance(key, str):
            raise VaultError(f"{fmt} key must be a string, found: {key!r}")
        if not isinstance(value, str):
            raise VaultError(
                f"{fmt} value for key '{key}' must be a string, found: {type(value).__name__}"
            )
        secrets[key] = value

    if not secrets:
        raise VaultError(f"No secrets found in {fmt} format. Expected key-value pairs with string values.")
    return secrets


def parse_json(content: str) -> Dict[str, str]:
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise VaultError(f"Failed to parse JSON output from SOPS: {exc}") from exc
    return _flat_strings(data, "JSON")


def parse_yaml(content: str) -> Dict[str, str]:
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        raise VaultError(f"Failed to parse YAML output from SOPS: {exc}") from exc
    return _flat_strings(data, "YAML")


def autodetect(content: str) -> Dict[str, str]:
    """Try JSON, then YAML, then ENV."""
    stripped = content.lstrip()
    if stripped.startswith("{"):
        try:
            return parse_json(content)
        except VaultError:
            logger.debug("Vault output starts with '{' but is not a JSON mapping")
    if ":" in content:
        try:
            return parse_yaml(content)
        except VaultError:
            logger.debug("Vault output is not a YAML mapping")
    try:
        return parse_env(content)
    except VaultError as exc:
        raise VaultError(
            "Unable to auto-detect format. Please use a file extension: .env, .json, .yaml, or .yml"
        ) from exc


def parse_output(path: PathLike, content: str) -> Dict[str, str]:
    """Parse decrypted vault content according to the extension of ``path``."""
    suffix = Path(path).suffix.lower()
    if suffix in (".env", ".dotenv"):
        return parse_env(content)
    if suffix == ".json":
        return parse_json(content)
    if suffix in (".yaml", ".yml"):
        return parse_yaml(content)
    return autodetect(content)


__all__ = [
    "Vault",
    "run_sops_decrypt",
    "parse_env",
    "parse_json",
    "parse_yaml",
    "parse_output",
    "autodetect",
]
