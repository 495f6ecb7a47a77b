from __future__ import annotations

import json
import os
import signal
import sys
import threading
import time
from pathlib import Path

import pytest
import yaml

import shadow_secret.cli.commands.doctor as doctor_mod
import shadow_secret.cli.commands.unlock as unlock_mod
import shadow_secret.core.restoration as restoration_mod
import shadow_secret.core.triggers as triggers_mod
from shadow_secret.cli._dispatcher import build_parser, discover_commands, main
from shadow_secret.core.exceptions import FileIOError
from shadow_secret.core.logging_setup import reset_logging_for_tests
from shadow_secret.core.vault import Vault


@pytest.fixture(autouse=True)
def _clean_process_state(monkeypatch: pytest.MonkeyPatch):
    """Put back every process-wide hook a command may install."""
    handled = [getattr(signal, name) for name in ("SIGINT", "SIGTERM", "SIGHUP") if hasattr(signal, name)]
    saved_signals = {s: signal.getsignal(s) for s in handled}
    monkeypatch.setattr(sys, "excepthook", sys.excepthook)
    monkeypatch.setattr(threading, "excepthook", threading.excepthook)
    monkeypatch.setattr(triggers_mod.atexit, "register", lambda func: func)
    monkeypatch.setattr(triggers_mod.atexit, "unregister", lambda func: None)
    yield
    for signum, handler in saved_signals.items():
        signal.signal(signum, handler)
    reset_logging_for_tests()


@pytest.fixture
def project(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    root.mkdir()
    (root / "vault.enc.env").write_text("ENC[...]", encoding="utf-8")
    (root / "settings.json").write_text('{\n  "apiKey": "$API_KEY",\n  "port": 3000\n}\n', encoding="utf-8")
    (root / ".env").write_text("API_KEY=$API_KEY\n", encoding="utf-8")
    config = {
        "vault": {"source": "vault.enc.env", "engine": "sops"},
        "targets": [
            {"name": "settings", "path": "settings.json", "placeholders": ["$API_KEY"]},
            {"name": "dotenv", "path": ".env", "placeholders": ["$API_KEY"]},
        ],
        "cleanup": {"blocking_processes": []},
    }
    (root / "shadow-secret.yaml").write_text(yaml.safe_dump(config, sort_keys=False), encoding="utf-8")
    return root


@pytest.fixture
def fake_vault(monkeypatch: pytest.MonkeyPatch):
    loads = []

    class FakeVault:
        @staticmethod
        def load(path, **kwargs):
            loads.append(Path(path))
            return Vault({"API_KEY": "sk-live-123"})

    monkeypatch.setattr(unlock_mod, "Vault", FakeVault)
    return loads


class TestDispatcher:
    def test_commands_discovered(self) -> None:
        assert {"unlock", "doctor"} <= set(discover_commands())

    def test_no_command_prints_help(self, capsys) -> None:
        assert main([]) == 0
        assert "unlock" in capsys.readouterr().out

    def test_version(self, capsys) -> None:
        with pytest.raises(SystemExit) as excinfo:
            build_parser().parse_args(["--version"])
        assert excinfo.value.code == 0
        assert "shadow-secret" in capsys.readouterr().out

    def test_errors_are_reported_not_raised(self, tmp_path: Path, capsys) -> None:
        assert main(["unlock", "--config", str(tmp_path / "missing.yaml")]) == 1
        assert "Config file not found" in capsys.readouterr().err

    def test_json_errors(self, tmp_path: Path, capsys) -> None:
        assert main(["--json", "unlock", "--config", str(tmp_path / "missing.yaml")]) == 1
        payload = json.loads(capsys.readouterr().err)
        assert payload["error"] == "ConfigError"
        assert payload["details"]["code"] == "ConfigError"


class TestDoctor:
    def test_all_checks_pass(self, project: Path, tmp_path: Path, monkeypatch, capsys) -> None:
        key = tmp_path / "key.txt"
        key.write_text("AGE-SECRET-KEY-1", encoding="utf-8")
        monkeypatch.setenv("SOPS_AGE_KEY_FILE", str(key))
        monkeypatch.setattr(doctor_mod.shutil, "which", lambda name: f"/usr/bin/{name}")

        rc = main(["--json", "doctor", "--config", str(project / "shadow-secret.yaml")])

        payload = json.loads(capsys.readouterr().out)
        assert rc == 0
        assert payload["passed"] is True
        assert all(c["ok"] for c in payload["checks"])

    def test_missing_tools_fail(self, tmp_path: Path, monkeypatch, capsys) -> None:
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr(doctor_mod.shutil, "which", lambda name: None)

        rc = main(["doctor"])

        out = capsys.readouterr().out
        assert rc == 1
        assert "'sops' is not installed" in out
        assert "'age' is not installed" in out
        assert "SOPS_AGE_KEY_FILE" in out
        assert "Some checks failed" in out

    def test_missing_key_file(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("SOPS_AGE_KEY_FILE", str(tmp_path / "nope.txt"))
        results = {r["name"]: r for r in doctor_mod.run_checks()}
        assert results["age key file exists"]["ok"] is False


class TestUnlock:
    def test_no_wait_injects_then_restores(self, project: Path, fake_vault, capsys) -> None:
        settings_before = (project / "settings.json").read_text(encoding="utf-8")
        env_before = (project / ".env").read_text(encoding="utf-8")

        rc = main(["--json", "unlock", "--config", str(project / "shadow-secret.yaml"), "--no-wait"])

        payload = json.loads(capsys.readouterr().out)
        assert rc == 0
        assert payload["status"] == "unlocked"
        assert payload["injected"] == [str(project / "settings.json"), str(project / ".env")]
        assert fake_vault == [project / "vault.enc.env"]
        assert (project / "settings.json").read_text(encoding="utf-8") == settings_before
        assert (project / ".env").read_text(encoding="utf-8") == env_before

    def test_waits_with_secrets_injected_and_restores_on_signal(
        self, project: Path, fake_vault, monkeypatch
    ) -> None:
        seen = {}

        def wait() -> None:
            seen["settings"] = json.loads((project / "settings.json").read_text(encoding="utf-8"))
            seen["env"] = (project / ".env").read_text(encoding="utf-8")
            os.kill(os.getpid(), signal.SIGTERM)
            for _ in range(100):
                time.sleep(0.01)

        monkeypatch.setattr(unlock_mod, "wait_for_termination", wait)

        with pytest.raises(SystemExit) as excinfo:
            main(["unlock", "--config", str(project / "shadow-secret.yaml")])

        assert excinfo.value.code == 0
        assert seen["settings"] == {"apiKey": "sk-live-123", "port": 3000}
        assert seen["env"] == "API_KEY=sk-live-123\n"
        assert "$API_KEY" in (project / "settings.json").read_text(encoding="utf-8")
        assert (project / ".env").read_text(encoding="utf-8") == "API_KEY=$API_KEY\n"

    def test_failed_injection_restores_earlier_targets(self, project: Path, fake_vault, capsys) -> None:
        config_path = project / "shadow-secret.yaml"
        config = yaml.safe_load(config_path.read_text(encoding="utf-8"))
        config["targets"].append({"name": "gone", "path": "missing.json", "placeholders": ["$API_KEY"]})
        config_path.write_text(yaml.safe_dump(config, sort_keys=False), encoding="utf-8")
        sigterm_before = signal.getsignal(signal.SIGTERM)

        rc = main(["unlock", "--config", str(config_path)])

        captured = capsys.readouterr()
        assert rc == 1
        assert "Failed to inject secrets into" in captured.err
        assert "Restored 2/2 file(s)" in captured.out
        assert "FAILED TO RESTORE" not in captured.err
        assert (project / ".env").read_text(encoding="utf-8") == "API_KEY=$API_KEY\n"
        assert "$API_KEY" in (project / "settings.json").read_text(encoding="utf-8")
        assert signal.getsignal(signal.SIGTERM) == sigterm_before

    def test_no_wait_text_output_reports_restored_count(self, project: Path, fake_vault, capsys) -> None:
        rc = main(["unlock", "--config", str(project / "shadow-secret.yaml"), "--no-wait"])

        out = capsys.readouterr().out
        assert rc == 0
        assert "Restored 2/2 file(s)" in out
        assert (project / ".env").read_text(encoding="utf-8") == "API_KEY=$API_KEY\n"

    def test_no_wait_restore_failure_is_reported(
        self, project: Path, fake_vault, monkeypatch, capsys
    ) -> None:
        real_restore = restoration_mod.restore_file

        def restore_file(path, content):
            if str(path).endswith(".env"):
                raise FileIOError("read-only file system", path=path)
            real_restore(path, content)

        monkeypatch.setattr(restoration_mod, "restore_file", restore_file)

        rc = main(["unlock", "--config", str(project / "shadow-secret.yaml"), "--no-wait"])

        captured = capsys.readouterr()
        assert rc == 1
        assert "Restored 1/2 file(s)" in captured.out
        assert f"FAILED TO RESTORE {(project / '.env').absolute()}" in captured.err
        assert "read-only file system" in captured.err
        assert "$API_KEY" in (project / "settings.json").read_text(encoding="utf-8")
