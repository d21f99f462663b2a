from __future__ import annotations

from fastapi import APIRouter, Request
from pydantic import BaseModel, ConfigDict, Field

from ernest.security.credentials import CredentialKind, CredentialTarget, CredentialVault

router = APIRouter(prefix="/api/credentials", tags=["Credentials"])


class CredentialRef(BaseModel):
    """Identifies one secret: the document's project, target, profile and kind."""

    file_path: str = Field(alias="filePath", min_length=1)
    target: CredentialTarget
    profile: str | None = None
    kind: CredentialKind

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class CredentialWrite(CredentialRef):
    value: str


def _vault(request: Request) -> CredentialVault:
    return request.app.state.vault


@router.post("/lookup")
def lookup_credential(payload: CredentialRef, request: Request) -> dict[str, str | None]:
    value = _vault(request).get(
        payload.file_path, payload.target, payload.profile, payload.kind
    )
    return {"value": value}


@router.put("")
def store_credential(payload: CredentialWrite, request: Request) -> dict[str, bool]:
    _vault(request).set(
        payload.file_path, payload.target, payload.profile, payload.kind, payload.value
    )
    return {"ok": True}


@router.post("/delete")
def delete_credential(payload: CredentialRef, request: Request) -> dict[str, bool]:
    _vault(request).delete(
        payload.file_path, payload.target, payload.profile, payload.kind
    )
    return {"ok": True}


__all__ = ["CredentialRef", "CredentialWrite", "router"]
