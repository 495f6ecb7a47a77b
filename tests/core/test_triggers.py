"""
Tests for the termination triggers.

Handlers are installed for real (signal.signal, sys.excepthook,
threading.excepthook) and always uninstalled again by the fixture.
"""
from __future__ import annotations

import os
import signal
import sys
import threading
import time
from pathlib import Path

import pytest

import shadow_secret.core.triggers as triggers_mod
from shadow_secret.core.exceptions import TriggerInstallError
from shadow_secret.core.ledger import BackupLedger
from shadow_secret.core.restoration import RestorationCoordinator
from shadow_secret.core.triggers import TerminationTriggers


@pytest.fixture
def injected(tmp_path: Path, ledger: BackupLedger) -> Path:
    f = tmp_path / "a.env"
    f.write_text("A=secret\n", encoding="utf-8")
    ledger.register(f, "A=$A\n")
    return f


@pytest.fixture
def triggers(coordinator: RestorationCoordinator):
    t = TerminationTriggers(coordinator, use_atexit=False)
    yield t
    t.uninstall()


def test_install_and_uninstall_signal_handlers(triggers: TerminationTriggers) -> None:
    previous = signal.getsignal(signal.SIGTERM)

    triggers.install()
    assert triggers.installed
    assert signal.getsignal(signal.SIGTERM) == triggers._on_signal
    assert signal.getsignal(signal.SIGINT) == triggers._on_signal

    triggers.uninstall()
    assert not triggers.installed
    assert signal.getsignal(signal.SIGTERM) == previous


def test_install_is_idempotent(triggers: TerminationTriggers) -> None:
    triggers.install()
    hook = sys.excepthook
    triggers.install()
    assert sys.excepthook is hook


def test_signal_restores_then_exits_zero(triggers: TerminationTriggers, injected: Path) -> None:
    triggers.install()
    with pytest.raises(SystemExit) as excinfo:
        triggers._on_signal(signal.SIGINT, None)
    assert excinfo.value.code == 0
    assert injected.read_text(encoding="utf-8") == "A=$A\n"


@pytest.mark.skipif(os.name != "posix", reason="POSIX signals only")
def test_real_sigterm_restores(triggers: TerminationTriggers, injected: Path) -> None:
    triggers.install()
    with pytest.raises(SystemExit):
        os.kill(os.getpid(), signal.SIGTERM)
        for _ in range(100):
            time.sleep(0.01)
    assert injected.read_text(encoding="utf-8") == "A=$A\n"


def test_signal_during_restoration_does_not_exit(ledger: BackupLedger, injected: Path) -> None:
    coordinator = RestorationCoordinator(ledger, blocking_processes=())
    coordinator._depth = 1
    t = TerminationTriggers(coordinator, use_atexit=False)

    t._on_signal(signal.SIGTERM, None)

    assert injected.read_text(encoding="utf-8") == "A=secret\n"


def test_unhandled_exception_restores_and_delegates(
    coordinator: RestorationCoordinator, injected: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    seen = []
    monkeypatch.setattr(sys, "excepthook", lambda *args: seen.append(args[0]))
    t = TerminationTriggers(coordinator, use_atexit=False).install()
    try:
        err = ValueError("boom")
        sys.excepthook(ValueError, err, None)
    finally:
        t.uninstall()

    assert seen == [ValueError]
    assert injected.read_text(encoding="utf-8") == "A=$A\n"


def test_thread_exception_restores_and_delegates(
    coordinator: RestorationCoordinator, injected: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    seen = []
    monkeypatch.setattr(threading, "excepthook", lambda args: seen.append(args.exc_type))
    t = TerminationTriggers(coordinator, use_atexit=False).install()
    try:
        def worker() -> None:
            raise RuntimeError("worker crashed")

        thread = threading.Thread(target=worker)
        thread.start()
        thread.join()
    finally:
        t.uninstall()

    assert seen == [RuntimeError]
    assert injected.read_text(encoding="utf-8") == "A=$A\n"


def test_uninstall_restores_previous_hooks(
    triggers: TerminationTriggers, monkeypatch: pytest.MonkeyPatch
) -> None:
    def marker(*args):
        return None

    monkeypatch.setattr(sys, "excepthook", marker)
    triggers.install()
    assert sys.excepthook != marker
    triggers.uninstall()
    assert sys.excepthook is marker


def test_install_outside_main_thread_fails(coordinator: RestorationCoordinator) -> None:
    errors = []
    hook_before = sys.excepthook

    def install() -> None:
        try:
            TerminationTriggers(coordinator, use_atexit=False).install()
        except TriggerInstallError as exc:
            errors.append(exc)

    thread = threading.Thread(target=install)
    thread.start()
    thread.join()

    assert len(errors) == 1
    assert "signal" in str(errors[0])
    assert sys.excepthook is hook_before


def test_atexit_registration(coordinator: RestorationCoordinator, injected: Path, monkeypatch) -> None:
    registered = []
    unregistered = []
    monkeypatch.setattr(triggers_mod.atexit, "register", registered.append)
    monkeypatch.setattr(triggers_mod.atexit, "unregister", unregistered.append)

    t = TerminationTriggers(coordinator).install()
    t.uninstall()

    assert registered == [t._on_exit]
    assert unregistered == [t._on_exit]

    registered[0]()
    assert injected.read_text(encoding="utf-8") == "A=$A\n"


def test_restore_now_logs_instead_of_raising(ledger: BackupLedger, caplog) -> None:
    class Exploding(RestorationCoordinator):
        def cleanup_and_restore(self):
            raise RuntimeError("unexpected")

    t = TerminationTriggers(Exploding(ledger), use_atexit=False)
    assert t.restore_now() is None
    assert "Restoration failed" in caplog.text


def test_context_manager(coordinator: RestorationCoordinator) -> None:
    with TerminationTriggers(coordinator, use_atexit=False) as t:
        assert t.installed
    assert not t.installed
