"""Public API for the game launcher package."""

from __future__ import annotations

from services.launcher.builder import (
    LauncherContext,
    build_binary_patcher,
    build_orchestrator,
    build_version_resolver,
    schedule_launch,
)
from services.launcher.butler import ButlerAdapter
from services.launcher.constants import (
    APP_DIR_ENV,
    MAX_ARCHIVE_ENTRIES,
    MAX_ARCHIVE_FILE_SIZE,
    MAX_ARCHIVE_TOTAL_BYTES,
    MAX_COMPRESSION_RATIO,
)
from services.launcher.downloads import DownloadManager
from services.launcher.instances import InstanceLayout, LatestPointerStore, normalize_branch
from services.launcher.models import (
    ButlerError,
    DownloadError,
    InstallError,
    LaunchError,
    LaunchOutcome,
    LaunchRequest,
    LauncherError,
    OrchestratorState,
    ProgressEvent,
    RuntimeProvisionError,
)
from services.launcher.orchestrator import InstallationOrchestrator
from services.launcher.process import GameProcessLauncher, LaunchContext, LaunchHooks
from services.launcher.progress import LoggingProgressSink, ProgressSink
from services.launcher.runtime import RuntimeProvisioner
from services.launcher.sequencer import DiffSequencer
from services.launcher.versions import VersionResolver

__all__ = [
    "APP_DIR_ENV",
    "MAX_ARCHIVE_ENTRIES",
    "MAX_ARCHIVE_FILE_SIZE",
    "MAX_ARCHIVE_TOTAL_BYTES",
    "MAX_COMPRESSION_RATIO",
    "ButlerAdapter",
    "ButlerError",
    "DiffSequencer",
    "DownloadError",
    "DownloadManager",
    "GameProcessLauncher",
    "InstallError",
    "InstallationOrchestrator",
    "InstanceLayout",
    "LatestPointerStore",
    "LaunchContext",
    "LaunchError",
    "LaunchHooks",
    "LaunchOutcome",
    "LaunchRequest",
    "LauncherContext",
    "LauncherError",
    "LoggingProgressSink",
    "OrchestratorState",
    "ProgressEvent",
    "ProgressSink",
    "RuntimeProvisionError",
    "RuntimeProvisioner",
    "VersionResolver",
    "build_binary_patcher",
    "build_orchestrator",
    "build_version_resolver",
    "normalize_branch",
    "schedule_launch",
]
