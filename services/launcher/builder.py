"""Helpers for constructing and scheduling the launch orchestrator."""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping

from app.config import LauncherConfig, get_app_config, load_runtime_table
from app.version import get_app_version
from domain.patching import BinaryPatcher
from services.launcher.butler import ButlerAdapter
from services.launcher.constants import APP_DIR_ENV, DEFAULT_APP_DIRNAME
from services.launcher.downloads import DownloadManager
from services.launcher.instances import InstanceLayout, LatestPointerStore
from services.launcher.models import LaunchOutcome, LaunchRequest, OrchestratorState
from services.launcher.orchestrator import InstallationOrchestrator
from services.launcher.process import GameProcessLauncher, LaunchHooks
from services.launcher.progress import ProgressSink
from services.launcher.recovery import InstanceRecovery
from services.launcher.runtime import RuntimeProvisioner
from services.launcher.sequencer import DiffSequencer
from services.launcher.versions import VersionResolver
from shared.cancellation import NEVER_CANCELLED, CancellationToken
from shared.platform import HostPlatform, detect_platform

_LOGGER = logging.getLogger(__name__)


def default_app_dir() -> Path:
    override = os.environ.get(APP_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / DEFAULT_APP_DIRNAME


@dataclass(frozen=True)
class LauncherContext:
    """Process-wide settings handed to every launcher component."""

    config: LauncherConfig
    app_dir: Path
    platform: HostPlatform
    runtime_table: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_environment(
        cls,
        *,
        config: LauncherConfig | None = None,
        app_dir: Path | None = None,
        platform: HostPlatform | None = None,
    ) -> "LauncherContext":
        return cls(
            config=config or get_app_config(),
            app_dir=Path(app_dir) if app_dir is not None else default_app_dir(),
            platform=platform or detect_platform(),
            runtime_table=load_runtime_table(),
        )

    @property
    def layout(self) -> InstanceLayout:
        return InstanceLayout(self.app_dir, self.platform)


def build_version_resolver(context: LauncherContext) -> VersionResolver:
    layout = context.layout
    return VersionResolver(
        layout,
        LatestPointerStore(layout),
        patch_server=context.config.patch_server,
        probing=context.config.versions,
    )


def build_binary_patcher(context: LauncherContext) -> BinaryPatcher:
    patching = context.config.patching
    return BinaryPatcher(
        context.platform,
        patcher_version=get_app_version(),
        original_domain=patching.original_domain,
        min_domain_length=patching.min_domain_length,
        max_domain_length=patching.max_domain_length,
    )


def build_orchestrator(
    context: LauncherContext,
    *,
    sink: ProgressSink | None = None,
    hooks: LaunchHooks | None = None,
) -> InstallationOrchestrator:
    """Wire an :class:`InstallationOrchestrator` from real components."""

    config = context.config
    layout = context.layout
    pointers = LatestPointerStore(layout)
    downloads = DownloadManager(
        chunk_size=config.downloads.chunk_size, timeout=config.downloads.timeout_seconds
    )
    resolver = VersionResolver(
        layout, pointers, patch_server=config.patch_server, probing=config.versions
    )
    _LOGGER.debug(
        "Building launcher for %s/%s in %s", context.platform.os_name, context.platform.arch, layout.app_dir
    )
    return InstallationOrchestrator(
        layout=layout,
        pointers=pointers,
        resolver=resolver,
        downloads=downloads,
        sequencer=DiffSequencer(
            resolver,
            layout,
            max_patch_bytes=config.patch_server.max_patch_bytes,
            archive_extension=config.patch_server.archive_extension,
        ),
        butler=ButlerAdapter(layout, downloads, config.butler),
        patcher=build_binary_patcher(context),
        runtime=RuntimeProvisioner(layout, downloads, config.runtime, runtime_table=context.runtime_table),
        launcher=GameProcessLauncher(layout, config.launch, hooks=hooks),
        patching=config.patching,
        recovery=InstanceRecovery(),
        sink=sink,
    )


def _run_launch(
    orchestrator: InstallationOrchestrator,
    request: LaunchRequest,
    token: CancellationToken,
    on_complete: Callable[[LaunchOutcome], None] | None,
) -> None:
    try:
        outcome = orchestrator.run(request, token)
    except Exception as exc:  # pragma: no cover - defensive guard
        _LOGGER.exception("Unexpected error while launching the game")
        outcome = LaunchOutcome(OrchestratorState.ERRORED, f"Unexpected error: {exc}")
    if on_complete is not None:
        on_complete(outcome)


def schedule_launch(
    request: LaunchRequest,
    *,
    context: LauncherContext | None = None,
    orchestrator: InstallationOrchestrator | None = None,
    token: CancellationToken = NEVER_CANCELLED,
    sink: ProgressSink | None = None,
    hooks: LaunchHooks | None = None,
    on_complete: Callable[[LaunchOutcome], None] | None = None,
) -> threading.Thread:
    """Run one launch on a background thread and report its outcome."""

    if orchestrator is None:
        orchestrator = build_orchestrator(context or LauncherContext.from_environment(), sink=sink, hooks=hooks)
    thread = threading.Thread(
        target=_run_launch,
        args=(orchestrator, request, token, on_complete),
        name="hylaunch-launch",
        daemon=True,
    )
    thread.start()
    return thread


__all__ = [
    "LauncherContext",
    "build_binary_patcher",
    "build_orchestrator",
    "build_version_resolver",
    "default_app_dir",
    "schedule_launch",
]
