from __future__ import annotations

import hashlib
import json
import logging
import os
import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from ernest.config.settings import runtime_settings
from ernest.core.project import find_project_root

LOGGER = logging.getLogger(__name__)
AUDIT_LOGGER = logging.getLogger("ernest.security.credentials")


class CredentialTarget(str, Enum):
    FTP = "ftp"
    NETLIFY = "netlify"
    VERCEL = "vercel"
    GIT = "git"


class CredentialKind(str, Enum):
    PASSWORD = "password"
    TOKEN = "token"


class CredentialStoreError(RuntimeError):
    """Raised when the OS secret store cannot satisfy a request."""


class ProjectRootNotFound(CredentialStoreError):
    """Raised when no ``.export.toml`` exists above the document."""


class CredentialValueError(ValueError):
    """Raised when a credential value is blank."""


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _key_fingerprint(key: str) -> str:
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:16]


def credential_key(
    project_root: str | os.PathLike[str],
    target: CredentialTarget | str,
    profile: Optional[str],
    kind: CredentialKind | str,
) -> str:
    """Derive the secret-store key for a project credential.

    The project root only ever appears hashed, so the filesystem layout does
    not leak into the secret store's key namespace.
    """
    digest = hashlib.sha256(str(project_root).encode("utf-8")).hexdigest()
    return ":".join(
        (
            CredentialTarget(target).value,
            CredentialKind(kind).value,
            profile or "default",
            digest,
        )
    )


class CredentialVault:
    """
    Project-scoped credentials on top of :mod:`keyring`.

    Every operation re-derives the project root from the document path so a
    credential is tied to the project identity.  Operations run under a lock so
    concurrent ``set``/``get`` calls on the same key never interleave.
    """

    def __init__(self, service: Optional[str] = None, *, backend: Any = None) -> None:
        self.service = service or runtime_settings().keyring_service
        self._backend = backend if backend is not None else keyring
        self._lock = threading.RLock()

    # ------------------------------------------------------------------ keys
    def resolve_key(
        self,
        document_path: str | os.PathLike[str],
        target: CredentialTarget | str,
        profile: Optional[str],
        kind: CredentialKind | str,
    ) -> str:
        root = find_project_root(document_path)
        if root is None:
            raise ProjectRootNotFound("No .export.toml found in parent folders")
        return credential_key(root, target, profile, kind)

    def _audit(self, event: str, key: str, **fields: Any) -> None:
        target, kind, profile, _digest = key.split(":", 3)
        payload = {
            "event": event,
            "timestamp": _utc_timestamp(),
            "service": self.service,
            "target": target,
            "kind": kind,
            "profile": profile,
            "fingerprint": _key_fingerprint(key),
        }
        payload.update(fields)
        AUDIT_LOGGER.info(json.dumps(payload))

    # ------------------------------------------------------------- operations
    def get(
        self,
        document_path: str | os.PathLike[str],
        target: CredentialTarget | str,
        profile: Optional[str],
        kind: CredentialKind | str,
    ) -> Optional[str]:
        key = self.resolve_key(document_path, target, profile, kind)
        with self._lock:
            try:
                value = self._backend.get_password(self.service, key)
            except KeyringError as exc:
                raise CredentialStoreError(str(exc)) from exc
        self._audit("credentials.read", key, present=value is not None)
        return value

    def set(
        self,
        document_path: str | os.PathLike[str],
        target: CredentialTarget | str,
        profile: Optional[str],
        kind: CredentialKind | str,
        value: str,
    ) -> None:
        cleaned = (value or "").strip()
        if not cleaned:
            raise CredentialValueError("Credential value is empty")
        key = self.resolve_key(document_path, target, profile, kind)
        with self._lock:
            try:
                self._backend.set_password(self.service, key, cleaned)
            except KeyringError as exc:
                raise CredentialStoreError(str(exc)) from exc
        self._audit("credentials.write", key)

    def delete(
        self,
        document_path: str | os.PathLike[str],
        target: CredentialTarget | str,
        profile: Optional[str],
        kind: CredentialKind | str,
    ) -> None:
        key = self.resolve_key(document_path, target, profile, kind)
        with self._lock:
            try:
                self._backend.delete_password(self.service, key)
            except PasswordDeleteError:
                LOGGER.debug("Credential already absent", extra={"service": self.service})
                return
            except KeyringError as exc:
                raise CredentialStoreError(str(exc)) from exc
        self._audit("credentials.delete", key)


__all__ = [
    "CredentialKind",
    "CredentialStoreError",
    "CredentialTarget",
    "CredentialValueError",
    "CredentialVault",
    "ProjectRootNotFound",
    "credential_key",
]
