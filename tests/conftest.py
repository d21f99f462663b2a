from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ernest.security.credentials import CredentialVault  # noqa: E402
from tests.helpers import DeferredExecutor, MemoryKeyring, RecordingSink  # noqa: E402


@pytest.fixture()
def memory_keyring() -> MemoryKeyring:
    return MemoryKeyring()


@pytest.fixture()
def vault(memory_keyring) -> CredentialVault:
    return CredentialVault("ernest-test", backend=memory_keyring)


@pytest.fixture()
def deferred_executor() -> DeferredExecutor:
    return DeferredExecutor()


@pytest.fixture()
def recording_sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture()
def project(tmp_path: Path) -> Path:
    """A project root with a minimal ``.export.toml`` and one document."""
    root = tmp_path / "site"
    root.mkdir()
    (root / ".export.toml").write_text("version = 1\n", encoding="utf-8")
    (root / "docs").mkdir()
    (root / "docs" / "page.md").write_text("# Page\n", encoding="utf-8")
    return root
