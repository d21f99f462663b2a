"""Credential storage for export targets."""

from .credentials import (
    CredentialKind,
    CredentialStoreError,
    CredentialTarget,
    CredentialValueError,
    CredentialVault,
    ProjectRootNotFound,
    credential_key,
)

__all__ = [
    "CredentialKind",
    "CredentialStoreError",
    "CredentialTarget",
    "CredentialValueError",
    "CredentialVault",
    "ProjectRootNotFound",
    "credential_key",
]
