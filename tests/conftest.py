import sys
from pathlib import Path

import pytest

# Keep the repository free of Python bytecode and __pycache__ artifacts during tests.
sys.dont_write_bytecode = True

TESTS_ROOT = Path(__file__).resolve().parent
REPO_ROOT = TESTS_ROOT.parent
SRC_ROOT = REPO_ROOT / "src"

# Make src/ importable as 'shadow_secret'
for p in (SRC_ROOT, TESTS_ROOT):
    if str(p) not in sys.path:
        sys.path.insert(0, str(p))

from shadow_secret.core.ledger import BackupLedger  # noqa: E402
from shadow_secret.core.restoration import RestorationCoordinator  # noqa: E402
from shadow_secret.data import clear_caches  # noqa: E402

from helpers.fakes import RecordingTerminator  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Keep tests away from the user's real configuration and key files."""
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.delenv("SHADOW_SECRET_CONFIG", raising=False)
    monkeypatch.delenv("SOPS_AGE_KEY_FILE", raising=False)
    clear_caches()
    yield
    clear_caches()


@pytest.fixture
def ledger() -> BackupLedger:
    return BackupLedger()


@pytest.fixture
def terminator() -> RecordingTerminator:
    return RecordingTerminator()


@pytest.fixture
def coordinator(ledger: BackupLedger, terminator: RecordingTerminator) -> RestorationCoordinator:
    return RestorationCoordinator(ledger, terminator=terminator)
