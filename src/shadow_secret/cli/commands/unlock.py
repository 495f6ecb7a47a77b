"""
Shadow Secret unlock command.

SUMMARY: Inject vault secrets into target files until interrupted

Loads the configuration and the vault, installs the termination triggers,
injects every target and then waits. Ctrl+C (or SIGTERM/SIGHUP) restores
every injected file to its original content.
"""

from __future__ import annotations

import argparse
import logging
import signal
import time

from shadow_secret.cli import OutputFormatter, add_config_flag, print_error
from shadow_secret.core.config import find_config_file, load_config
from shadow_secret.core.injector import inject_all
from shadow_secret.core.ledger import BackupLedger
from shadow_secret.core.logging_setup import configure_logging
from shadow_secret.core.restoration import RestorationCoordinator, RestorationReport
from shadow_secret.core.triggers import TerminationTriggers
from shadow_secret.core.vault import Vault

SUMMARY = "Inject vault secrets into target files until interrupted"

logger = logging.getLogger(__name__)


def register_args(parser: argparse.ArgumentParser) -> None:
    """Register command-specific arguments."""
    add_config_flag(parser)
    parser.add_argument(
        "--no-wait",
        action="store_true",
        help="Restore immediately after injecting (useful for dry runs)",
    )


def wait_for_termination() -> None:
    """Block until a signal handler ends the process."""
    pause = getattr(signal, "pause", None)
    while True:
        if pause is not None:
            pause()
        else:
            time.sleep(1)


def _report_restoration(formatter: OutputFormatter, restoration: RestorationReport) -> None:
    formatter.text(f"🔒 Restored {restoration.restored}/{restoration.attempted} file(s)")
    for path, message in restoration.failures.items():
        print_error(f"FAILED TO RESTORE {path}: {message} (the file may still contain secrets)")


def main(args: argparse.Namespace) -> int:
    """Unlock secrets: inject, then wait for termination."""
    formatter = OutputFormatter(json_mode=getattr(args, "json", False))

    config_path = find_config_file(getattr(args, "config", None))
    formatter.text("🔓 Shadow Secret Unlock")
    formatter.text(f"Loading configuration from: {config_path}\n")

    config = load_config(config_path)
    configure_logging(
        level=getattr(args, "log_level", None) or config.logging.level,
        log_path=config.log_file(),
    )
    formatter.text("✓ Configuration loaded and validated")

    vault_path = config.vault_source_path()
    formatter.text(f"📖 Loading secrets from: {vault_path}")
    vault = Vault.load(
        vault_path,
        age_key_path=config.age_key_file(),
        require_mount=config.vault.require_mount,
    )
    formatter.text(f"✓ Loaded {len(vault)} secret(s)")

    ledger = BackupLedger()
    coordinator = RestorationCoordinator(
        ledger,
        blocking_processes=config.cleanup.blocking_processes,
    )
    # Installed before the first write; a failure here aborts with no file touched.
    triggers = TerminationTriggers(coordinator).install()

    formatter.text("\n🎯 Injecting secrets into targets...")
    report = inject_all(config.target_descriptors(), vault, ledger, stop_on_error=True)

    if not report.ok:
        restoration = coordinator.cleanup_and_restore()
        triggers.uninstall()
        failures = {path: str(exc) for path, exc in report.failures.items()}
        if formatter.json_mode:
            formatter.success(
                {
                    "injected": [str(t.path) for t in report.injected],
                    "failures": failures,
                    "restoration": restoration.to_dict(),
                },
                "",
                status="error",
            )
        else:
            for path, message in failures.items():
                print_error(f"Failed to inject secrets into {path}: {message}")
            _report_restoration(formatter, restoration)
            formatter.text("💡 Run 'shadow-secret doctor' to check your configuration.")
        return 1

    for target in report.injected:
        formatter.text(f"  → {target.label}: injected {len(target.placeholders)} placeholder(s)")
    formatter.success(
        {
            "injected": [str(t.path) for t in report.injected],
            "unresolved": report.unresolved,
        },
        "\n🎉 Secrets are now unlocked and injected!\n"
        "Press Ctrl+C to lock secrets and restore original files.",
        status="unlocked",
    )

    if getattr(args, "no_wait", False):
        restoration = coordinator.cleanup_and_restore()
        triggers.uninstall()
        _report_restoration(formatter, restoration)
        return 0 if restoration.ok else 1

    logger.info("Waiting for termination signal")
    wait_for_termination()
    return 0
