"""Static snapshot publish and git deploy."""

from .snapshot import (
    DeployResult,
    PublishError,
    PublishResult,
    deploy_project,
    publish_project,
)

__all__ = [
    "DeployResult",
    "PublishError",
    "PublishResult",
    "deploy_project",
    "publish_project",
]
