"""
Per-project export configuration (``.export.toml``).

The file is parsed with :mod:`tomllib` and validated through pydantic models.
Each target section exposes an explicit ``resolve`` merge so override rules
stay auditable: profile value first, then the section value, then the builtin
default.
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Literal, Mapping, Optional, Tuple, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ernest.core.project import config_path, find_project_root
from ernest.exporters.common import ExportErrorCode

SUPPORTED_VERSION = 1

GitMode = Literal["add-only", "add-and-commit"]
GitCheck = Literal["repo", "status", "clean"]
FtpProtocol = Literal["ftp", "sftp"]
VercelEnvironment = Literal["production", "preview"]

DEFAULT_SFTP_PORT = 22
DEFAULT_FTP_PORT = 21


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------
class ExportConfigError(RuntimeError):
    """Base class for configuration failures; carries the export error code."""

    code: ExportErrorCode = ExportErrorCode.CONFIG_INVALID

    def __init__(self, message: str, detail: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class ConfigMissing(ExportConfigError):
    code = ExportErrorCode.CONFIG_MISSING


class ConfigInvalid(ExportConfigError):
    code = ExportErrorCode.CONFIG_INVALID


class UnsupportedConfigVersion(ExportConfigError):
    code = ExportErrorCode.UNSUPPORTED_CONFIG_VERSION


class ProfileMissing(ExportConfigError):
    code = ExportErrorCode.PROFILE_MISSING


class ProfileDisabled(ExportConfigError):
    code = ExportErrorCode.PROFILE_DISABLED


class ProfileRequired(ExportConfigError):
    code = ExportErrorCode.PROFILE_REQUIRED


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------
class _ConfigModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class GitProfile(_ConfigModel):
    enabled: bool
    repo_path: Optional[str] = None
    mode: Optional[GitMode] = None
    checks: Optional[List[GitCheck]] = None


class FtpProfile(_ConfigModel):
    enabled: bool
    host: Optional[str] = None
    port: Optional[int] = Field(default=None, ge=1, le=65535)
    username: Optional[str] = None
    remote_path: Optional[str] = None


class NetlifyProfile(_ConfigModel):
    enabled: bool
    site_id: Optional[str] = None
    trigger_deploy: Optional[bool] = None


class VercelProfile(_ConfigModel):
    enabled: bool
    project_name: Optional[str] = None
    deploy_hook_url: Optional[str] = None
    environment: Optional[VercelEnvironment] = None


@dataclass(frozen=True)
class ResolvedGitConfig:
    repo_path: str
    mode: GitMode
    checks: Tuple[GitCheck, ...]


@dataclass(frozen=True)
class ResolvedFtpConfig:
    protocol: FtpProtocol
    host: str
    port: int
    username: str
    remote_path: str


@dataclass(frozen=True)
class ResolvedNetlifyConfig:
    site_id: Optional[str]
    trigger_deploy: bool


@dataclass(frozen=True)
class ResolvedVercelConfig:
    project_name: Optional[str]
    deploy_hook_url: Optional[str]
    environment: VercelEnvironment


class GitSection(_ConfigModel):
    enabled: bool
    mode: Optional[GitMode] = None
    checks: List[GitCheck] = Field(default_factory=lambda: ["repo"])
    profiles: Dict[str, GitProfile] = Field(default_factory=dict)

    def resolve(self, profile: Optional[GitProfile]) -> ResolvedGitConfig:
        mode: GitMode = (profile.mode if profile else None) or self.mode or "add-only"
        checks = profile.checks if profile and profile.checks is not None else self.checks
        repo_path = (profile.repo_path if profile else None) or "."
        return ResolvedGitConfig(repo_path=repo_path, mode=mode, checks=tuple(checks))


class FtpSection(_ConfigModel):
    enabled: bool
    protocol: Optional[FtpProtocol] = None
    profiles: Dict[str, FtpProfile] = Field(default_factory=dict)

    def resolve(self, profile: FtpProfile) -> ResolvedFtpConfig:
        protocol: FtpProtocol = self.protocol or "sftp"
        if not profile.host:
            raise ConfigInvalid("Invalid FTP profile", "Missing FTP host")
        if not profile.remote_path:
            raise ConfigInvalid("Invalid FTP profile", "Missing remote path")
        default_port = DEFAULT_SFTP_PORT if protocol == "sftp" else DEFAULT_FTP_PORT
        return ResolvedFtpConfig(
            protocol=protocol,
            host=profile.host,
            port=profile.port or default_port,
            username=profile.username or "",
            remote_path=profile.remote_path,
        )


class NetlifySection(_ConfigModel):
    enabled: bool
    site_id: Optional[str] = None
    trigger_deploy: bool = False
    profiles: Dict[str, NetlifyProfile] = Field(default_factory=dict)

    def resolve(self, profile: Optional[NetlifyProfile]) -> ResolvedNetlifyConfig:
        site_id = (profile.site_id if profile else None) or self.site_id
        trigger = self.trigger_deploy
        if profile is not None and profile.trigger_deploy is not None:
            trigger = profile.trigger_deploy
        return ResolvedNetlifyConfig(site_id=site_id, trigger_deploy=trigger)


class VercelSection(_ConfigModel):
    enabled: bool
    project_name: Optional[str] = None
    deploy_hook_url: Optional[str] = None
    environment: VercelEnvironment = "production"
    profiles: Dict[str, VercelProfile] = Field(default_factory=dict)

    def resolve(self, profile: Optional[VercelProfile]) -> ResolvedVercelConfig:
        return ResolvedVercelConfig(
            project_name=(profile.project_name if profile else None) or self.project_name,
            deploy_hook_url=(profile.deploy_hook_url if profile else None)
            or self.deploy_hook_url,
            environment=(profile.environment if profile else None) or self.environment,
        )


class ProjectConfig(_ConfigModel):
    version: int
    git: Optional[GitSection] = None
    ftp: Optional[FtpSection] = None
    netlify: Optional[NetlifySection] = None
    vercel: Optional[VercelSection] = None

    def validate_semantics(self) -> None:
        """Raise the first semantic problem found, in a fixed order."""
        if self.version != SUPPORTED_VERSION:
            raise UnsupportedConfigVersion(
                "Invalid export configuration",
                f"unsupported config version: {self.version}",
            )
        if self.netlify and self.netlify.enabled and self.netlify.site_id is None:
            raise ConfigInvalid(
                "Invalid export configuration",
                "netlify enabled but site_id is missing",
            )
        if self.vercel and self.vercel.enabled:
            if self.vercel.project_name is None:
                raise ConfigInvalid(
                    "Invalid export configuration",
                    "vercel enabled but project_name is missing",
                )
            if self.vercel.deploy_hook_url is None:
                raise ConfigInvalid(
                    "Invalid export configuration",
                    "vercel enabled but deploy_hook_url is missing",
                )
        if self.ftp:
            for name, profile in self.ftp.profiles.items():
                if profile.enabled and profile.host is None:
                    raise ConfigInvalid(
                        "Invalid export configuration",
                        f"ftp profile '{name}' is enabled but host is missing",
                    )


# ---------------------------------------------------------------------------
# Profile selection
# ---------------------------------------------------------------------------
_P = TypeVar("_P", GitProfile, FtpProfile, NetlifyProfile, VercelProfile)


def select_profile(
    profiles: Mapping[str, _P], name: Optional[str], *, label: str
) -> Optional[_P]:
    """Return the named profile, or ``None`` when no name was requested."""
    if not name:
        return None
    profile = profiles.get(name)
    if profile is None:
        raise ProfileMissing(f"{label} profile not found", name)
    if not profile.enabled:
        raise ProfileDisabled(f"{label} profile is disabled", name)
    return profile


def require_profile(
    profiles: Mapping[str, _P], name: Optional[str], *, label: str
) -> _P:
    if not name:
        raise ProfileRequired(f"{label} export requires a profile")
    profile = select_profile(profiles, name, label=label)
    assert profile is not None
    return profile


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------
def parse_config(raw: str) -> ProjectConfig:
    try:
        data = tomllib.loads(raw)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigInvalid("Invalid .export.toml", str(exc)) from exc
    try:
        config = ProjectConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigInvalid("Invalid .export.toml", str(exc)) from exc
    config.validate_semantics()
    return config


def read_config(path: Path) -> ProjectConfig:
    try:
        raw = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigMissing("Unable to read .export.toml", str(exc)) from exc
    return parse_config(raw)


def locate_config(document_path: str | os.PathLike[str]) -> Path:
    root = find_project_root(document_path)
    if root is None:
        raise ConfigMissing("No .export.toml found in parent folders")
    return config_path(root)


def load(document_path: str | os.PathLike[str]) -> ProjectConfig:
    """Find, read and validate the configuration governing ``document_path``."""
    return read_config(locate_config(document_path))


__all__ = [
    "ConfigInvalid",
    "ConfigMissing",
    "ExportConfigError",
    "FtpProfile",
    "FtpSection",
    "GitProfile",
    "GitSection",
    "NetlifyProfile",
    "NetlifySection",
    "ProfileDisabled",
    "ProfileMissing",
    "ProfileRequired",
    "ProjectConfig",
    "ResolvedFtpConfig",
    "ResolvedGitConfig",
    "ResolvedNetlifyConfig",
    "ResolvedVercelConfig",
    "SUPPORTED_VERSION",
    "UnsupportedConfigVersion",
    "VercelProfile",
    "VercelSection",
    "load",
    "locate_config",
    "parse_config",
    "read_config",
    "require_profile",
    "select_profile",
]
