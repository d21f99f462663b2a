from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from pydantic import BaseModel, ConfigDict, Field

from ernest.core.export_jobs import ExportJobManager
from ernest.exporters.common import ExportRequest, ExportTarget

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/api/export", tags=["Export"])


class ExportJobRequest(BaseModel):
    file_path: str = Field(alias="filePath", min_length=1)
    target: ExportTarget
    profile: str | None = None

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


def _manager(request: Request) -> ExportJobManager:
    return request.app.state.export_manager


@router.post("/jobs")
def start_export(payload: ExportJobRequest, request: Request) -> dict[str, str]:
    job_id = _manager(request).submit(
        ExportRequest.build(payload.file_path, payload.target, payload.profile)
    )
    return {"jobId": job_id}


@router.post("/jobs/{job_id}/cancel")
def cancel_export(job_id: str, request: Request) -> dict[str, bool]:
    _manager(request).cancel(job_id)
    return {"ok": True}


@router.delete("/jobs/{job_id}")
def cleanup_export(job_id: str, request: Request) -> dict[str, bool]:
    _manager(request).cleanup(job_id)
    return {"ok": True}


__all__ = ["ExportJobRequest", "router"]
