from __future__ import annotations

import threading
from pathlib import Path

from shadow_secret.core.ledger import BackupLedger


def test_new_ledger_is_empty() -> None:
    ledger = BackupLedger()
    assert ledger.is_empty()
    assert len(ledger) == 0
    assert ledger.drain() == {}


def test_register_and_drain(tmp_path: Path) -> None:
    ledger = BackupLedger()
    a, b = tmp_path / "a.json", tmp_path / "b.env"
    ledger.register(a, "A")
    ledger.register(b, "B")

    assert a in ledger
    assert str(b) in ledger
    assert len(ledger) == 2

    drained = ledger.drain()

    assert drained == {str(a): "A", str(b): "B"}
    assert ledger.is_empty()
    assert ledger.drain() == {}


def test_registering_same_path_keeps_latest(tmp_path: Path) -> None:
    ledger = BackupLedger()
    f = tmp_path / "a.env"
    ledger.register(f, "first")
    ledger.register(f, "second")

    assert len(ledger) == 1
    assert ledger.drain() == {str(f): "second"}


def test_relative_and_absolute_paths_share_an_entry(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    ledger = BackupLedger()
    ledger.register("a.env", "first")
    ledger.register(tmp_path / "a.env", "second")
    assert ledger.paths() == [str(tmp_path / "a.env")]


def test_contains_rejects_non_paths() -> None:
    ledger = BackupLedger()
    assert 42 not in ledger


def test_concurrent_registration(tmp_path: Path) -> None:
    ledger = BackupLedger()

    def writer(offset: int) -> None:
        for i in range(100):
            ledger.register(tmp_path / f"f{offset}-{i}", str(i))

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(ledger.drain()) == 400
    assert ledger.is_empty()
