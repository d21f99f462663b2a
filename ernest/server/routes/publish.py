from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, Field

from ernest.publish import deploy_project, publish_project

router = APIRouter(prefix="/api", tags=["Publish"])


class PublishRequest(BaseModel):
    project_root: str = Field(alias="projectRoot")
    files: List[str] = Field(default_factory=list)
    output_dir: str | None = Field(default=None, alias="outputDir")

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class DeployRequest(BaseModel):
    project_root: str = Field(alias="projectRoot")
    remote: str
    branch: str | None = None
    output_dir: str | None = Field(default=None, alias="outputDir")

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


@router.post("/publish")
def publish(payload: PublishRequest) -> Dict[str, Any]:
    return publish_project(payload.project_root, payload.files, payload.output_dir).to_dict()


@router.post("/deploy")
def deploy(payload: DeployRequest) -> Dict[str, Any]:
    return deploy_project(
        payload.project_root, payload.remote, payload.branch, payload.output_dir
    ).to_dict()


__all__ = ["DeployRequest", "PublishRequest", "router"]
