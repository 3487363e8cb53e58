"""Data models used by the launcher services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, Tuple

from shared.cancellation import NEVER_CANCELLED, CancellationToken

LATEST_POINTER_SCHEMA_VERSION = 1


class LauncherError(RuntimeError):
    """Base class for failures surfaced to the user as a single message."""

    stage = "launcher"

    @property
    def user_message(self) -> str:
        return str(self)


class DownloadError(LauncherError):
    """Raised when a payload cannot be downloaded."""

    stage = "download"

    def __init__(self, message: str, *, url: str | None = None, status: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status = status


class ButlerError(LauncherError):
    """Raised when the diff-apply tool is unavailable or fails."""

    stage = "apply"

    def __init__(self, message: str, *, output: str = "") -> None:
        super().__init__(message)
        self.output = output

    @property
    def user_message(self) -> str:
        if self.output:
            return f"{self}\n{self.output.strip()}"
        return str(self)


class InstallError(LauncherError):
    """Raised when an installation cannot be prepared or updated."""

    stage = "install"


class RuntimeProvisionError(LauncherError):
    """Raised when a compatible Java runtime cannot be provided."""

    stage = "runtime"


class LaunchError(LauncherError):
    """Raised when the game process cannot be started."""

    stage = "launch"


class TransferStatus(str, Enum):
    COMPLETED = "completed"
    CACHED = "cached"
    CANCELLED = "cancelled"


class ApplyStatus(str, Enum):
    APPLIED = "applied"
    CANCELLED = "cancelled"


class OrchestratorState(str, Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    INSTALLED = "installed"
    NEEDS_INSTALL = "needs_install"
    DOWNLOADING = "downloading"
    APPLYING = "applying"
    PATCHING = "patching"
    PROVISIONING_RUNTIME = "provisioning_runtime"
    LAUNCHING = "launching"
    RUNNING = "running"
    STOPPED = "stopped"
    ERRORED = "errored"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ProgressEvent:
    """Progress report consumed by the UI layer."""

    stage: str
    percent: int
    message: str
    bytes_downloaded: int | None = None
    bytes_total: int | None = None


@dataclass(frozen=True)
class GameStateEvent:
    state: str
    pid: int | None = None
    exit_code: int | None = None


@dataclass(frozen=True)
class LatestPointer:
    """Concrete version that ``latest`` resolved to for a branch."""

    version: int
    updated_at: datetime
    schema_version: int = LATEST_POINTER_SCHEMA_VERSION

    def to_json(self) -> dict[str, Any]:
        return {
            "schemaVersion": self.schema_version,
            "version": self.version,
            "updatedAt": self.updated_at.isoformat(),
        }

    @classmethod
    def from_json(cls, payload: Mapping[str, Any]) -> "LatestPointer | None":
        schema_version = payload.get("schemaVersion", 1)
        if not isinstance(schema_version, int) or schema_version > LATEST_POINTER_SCHEMA_VERSION:
            return None
        version = payload.get("version")
        if isinstance(version, bool) or not isinstance(version, int) or version < 0:
            return None
        try:
            updated_at = datetime.fromisoformat(str(payload.get("updatedAt")))
        except ValueError:
            return None
        return cls(version=version, updated_at=updated_at, schema_version=schema_version)


@dataclass(frozen=True)
class RemoteInfo:
    """Result of a bodiless existence probe."""

    exists: bool
    content_length: int | None = None


@dataclass(frozen=True)
class DownloadTask:
    """A payload to stream to ``destination`` via a ``.part`` sibling."""

    url: str
    destination: Path
    expected_size: int | None = None
    token: CancellationToken = NEVER_CANCELLED

    @property
    def staging_path(self) -> Path:
        return self.destination.with_name(self.destination.name + ".part")


@dataclass(frozen=True)
class DownloadResult:
    status: TransferStatus
    path: Path
    bytes_written: int = 0

    @property
    def cancelled(self) -> bool:
        return self.status is TransferStatus.CANCELLED


@dataclass(frozen=True)
class PatchStep:
    """One archive in a differential chain."""

    version: int
    url: str
    size: int | None = None


@dataclass(frozen=True)
class PatchSequencePlan:
    """Ordered versions that move ``installed_version`` to ``target_version``."""

    installed_version: int
    target_version: int
    steps: Tuple[PatchStep, ...] = ()

    @property
    def versions(self) -> list[int]:
        return [step.version for step in self.steps]

    @property
    def is_empty(self) -> bool:
        return not self.steps


@dataclass(frozen=True)
class LaunchRequest:
    """What the user asked to run."""

    branch: str = "release"
    version: int = 0
    player_name: str = "Player"
    player_uuid: str = ""
    identity_token: str | None = None
    session_token: str | None = None
    target_domain: str | None = None
    patch_enabled: bool = True

    @property
    def authenticated(self) -> bool:
        return bool(self.identity_token and self.session_token)


@dataclass(frozen=True)
class ProcessInvocation:
    """Fully resolved command line for the game client."""

    command: Tuple[str, ...]
    working_directory: Path
    environment: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class LaunchOutcome:
    """Final state of one orchestration run."""

    state: OrchestratorState
    message: str = ""
    version: int | None = None
    pid: int | None = None
    warnings: Tuple[str, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.state in {OrchestratorState.RUNNING, OrchestratorState.STOPPED}


__all__ = [
    "ApplyStatus",
    "ButlerError",
    "DownloadError",
    "DownloadResult",
    "DownloadTask",
    "GameStateEvent",
    "InstallError",
    "LATEST_POINTER_SCHEMA_VERSION",
    "LatestPointer",
    "LaunchError",
    "LaunchOutcome",
    "LaunchRequest",
    "LauncherError",
    "OrchestratorState",
    "PatchSequencePlan",
    "PatchStep",
    "ProcessInvocation",
    "ProgressEvent",
    "RemoteInfo",
    "RuntimeProvisionError",
    "TransferStatus",
]
