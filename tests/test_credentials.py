from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path

import pytest
from keyring.errors import KeyringError

from ernest.security.credentials import (
    CredentialKind,
    CredentialStoreError,
    CredentialTarget,
    CredentialValueError,
    CredentialVault,
    ProjectRootNotFound,
    credential_key,
)


def test_credential_key_is_deterministic_and_hashes_root(tmp_path: Path):
    root = tmp_path / "project"
    key = credential_key(root, CredentialTarget.FTP, "staging", CredentialKind.PASSWORD)
    digest = hashlib.sha256(str(root).encode("utf-8")).hexdigest()

    assert key == f"ftp:password:staging:{digest}"
    assert key == credential_key(root, "ftp", "staging", "password")
    assert str(root) not in key


def test_credential_key_defaults_profile_and_separates_projects(tmp_path: Path):
    first = credential_key(tmp_path / "a", "netlify", None, "token")
    second = credential_key(tmp_path / "b", "netlify", None, "token")
    assert first.startswith("netlify:token:default:")
    assert first != second


def test_set_get_delete_round_trip(project: Path, vault: CredentialVault, memory_keyring):
    doc = project / "docs" / "page.md"
    vault.set(doc, CredentialTarget.FTP, "staging", CredentialKind.PASSWORD, "  s3cret  ")

    assert vault.get(doc, CredentialTarget.FTP, "staging", CredentialKind.PASSWORD) == "s3cret"
    # Any document in the same project resolves to the same entry.
    assert vault.get(project / "other.md", "ftp", "staging", "password") == "s3cret"
    assert len(memory_keyring.entries) == 1
    (service, _key), = memory_keyring.entries
    assert service == "ernest-test"

    vault.delete(doc, CredentialTarget.FTP, "staging", CredentialKind.PASSWORD)
    assert vault.get(doc, CredentialTarget.FTP, "staging", CredentialKind.PASSWORD) is None


def test_get_missing_returns_none(project: Path, vault: CredentialVault):
    assert vault.get(project / "page.md", "netlify", None, "token") is None


def test_delete_is_idempotent(project: Path, vault: CredentialVault):
    doc = project / "page.md"
    vault.delete(doc, "netlify", None, "token")
    vault.delete(doc, "netlify", None, "token")


def test_blank_value_is_rejected(project: Path, vault: CredentialVault, memory_keyring):
    with pytest.raises(CredentialValueError, match="Credential value is empty"):
        vault.set(project / "page.md", "ftp", "staging", "password", "   ")
    assert memory_keyring.entries == {}


def test_operations_require_a_project_root(tmp_path: Path, vault: CredentialVault):
    doc = tmp_path / "page.md"
    with pytest.raises(ProjectRootNotFound, match="No .export.toml found"):
        vault.get(doc, "ftp", None, "password")
    with pytest.raises(ProjectRootNotFound):
        vault.set(doc, "ftp", None, "password", "x")
    with pytest.raises(ProjectRootNotFound):
        vault.delete(doc, "ftp", None, "password")


def test_backend_errors_become_store_errors(project: Path, memory_keyring):
    class BrokenKeyring(type(memory_keyring)):
        def get_password(self, service, username):
            raise KeyringError("locked")

    vault = CredentialVault("ernest-test", backend=BrokenKeyring())
    with pytest.raises(CredentialStoreError, match="locked"):
        vault.get(project / "page.md", "ftp", None, "password")


def test_operations_emit_audit_records(project: Path, vault: CredentialVault, caplog):
    doc = project / "page.md"
    with caplog.at_level(logging.INFO, logger="ernest.security.credentials"):
        vault.set(doc, "netlify", None, "token", "sekrit-value")
        vault.get(doc, "netlify", None, "token")

    events = [
        json.loads(record.getMessage())
        for record in caplog.records
        if record.name == "ernest.security.credentials"
    ]
    assert [event["event"] for event in events] == ["credentials.write", "credentials.read"]
    assert events[0]["target"] == "netlify"
    assert events[0]["profile"] == "default"
    assert all("sekrit-value" not in json.dumps(event) for event in events)


def test_equivalent_path_spellings_share_credentials(project: Path, vault: CredentialVault):
    doc = project / "docs" / "page.md"
    vault.set(doc, "ftp", "staging", "password", "pw")

    detour = project / "docs" / ".." / "docs" / "page.md"
    assert vault.get(detour, "ftp", "staging", "password") == "pw"
    assert vault.get(str(detour), CredentialTarget.FTP, "staging", CredentialKind.PASSWORD) == "pw"
