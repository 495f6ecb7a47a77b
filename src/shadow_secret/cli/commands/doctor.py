"""
Shadow Secret doctor command.

SUMMARY: Check prerequisites (sops, age, key file, configuration)
"""

from __future__ import annotations

import argparse
import os
import shutil
from pathlib import Path
from typing import Callable, Dict, List, Optional

from shadow_secret.cli import OutputFormatter, add_config_flag
from shadow_secret.core.config import find_config_file, load_config
from shadow_secret.core.exceptions import ConfigError
from shadow_secret.core.vault import AGE_KEY_ENV_VAR, SOPS_BINARY

SUMMARY = "Check prerequisites (sops, age, key file, configuration)"

INSTALL_HINTS = {
    "sops": "https://github.com/getsops/sops/releases",
    "age": "https://github.com/FiloSottile/age/releases",
}


def register_args(parser: argparse.ArgumentParser) -> None:
    """Register command-specific arguments."""
    add_config_flag(parser)


def _check_binary(name: str) -> Dict[str, object]:
    found = shutil.which(name)
    if found:
        return {"name": f"{name} installed", "ok": True, "detail": found}
    return {
        "name": f"{name} installed",
        "ok": False,
        "detail": f"'{name}' is not installed or not in PATH. Install from: {INSTALL_HINTS.get(name, name)}",
    }


def _check_key_env() -> Dict[str, object]:
    value = os.environ.get(AGE_KEY_ENV_VAR)
    if value:
        return {"name": f"${AGE_KEY_ENV_VAR} set", "ok": True, "detail": value}
    return {
        "name": f"${AGE_KEY_ENV_VAR} set",
        "ok": False,
        "detail": f"Set it with: export {AGE_KEY_ENV_VAR}=/path/to/key.txt",
    }


def _check_key_file() -> Optional[Dict[str, object]]:
    value = os.environ.get(AGE_KEY_ENV_VAR)
    if not value:
        return None
    key_file = Path(value).expanduser()
    if key_file.is_file():
        return {"name": "age key file exists", "ok": True, "detail": str(key_file)}
    return {"name": "age key file exists", "ok": False, "detail": f"Key file not found: {key_file}"}


def _check_config(explicit: Optional[str]) -> Dict[str, object]:
    try:
        path = find_config_file(explicit)
        config = load_config(path)
    except ConfigError as exc:
        return {"name": "configuration valid", "ok": False, "detail": str(exc)}

    vault_path = config.vault_source_path()
    if not vault_path.exists():
        return {
            "name": "configuration valid",
            "ok": False,
            "detail": f"{path}: vault file not found: {vault_path}",
        }
    return {"name": "configuration valid", "ok": True, "detail": str(path)}


def run_checks(explicit_config: Optional[str] = None) -> List[Dict[str, object]]:
    checks: List[Callable[[], Optional[Dict[str, object]]]] = [
        lambda: _check_binary(SOPS_BINARY),
        lambda: _check_binary("age"),
        _check_key_env,
        _check_key_file,
        lambda: _check_config(explicit_config),
    ]
    results = []
    for check in checks:
        result = check()
        if result is not None:
            results.append(result)
    return results


def main(args: argparse.Namespace) -> int:
    """Run every prerequisite check."""
    formatter = OutputFormatter(json_mode=getattr(args, "json", False))

    results = run_checks(getattr(args, "config", None))
    passed = all(r["ok"] for r in results)

    formatter.text("🔍 Shadow Secret Doctor")
    formatter.text("Checking prerequisites...\n")
    for index, result in enumerate(results, start=1):
        mark = "✓" if result["ok"] else "✗"
        formatter.text(f"{index}. {result['name']}... {mark}")
        if not result["ok"]:
            formatter.text(f"   ❌ {result['detail']}")

    formatter.success(
        {"checks": results, "passed": passed},
        "\n✅ All checks passed! Your system is ready."
        if passed
        else "\n❌ Some checks failed. Please fix the issues above.",
        status="success" if passed else "failed",
    )
    return 0 if passed else 1
