"""Install, update and launch flow for one game instance."""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from app.config import PatchingConfig
from domain.patching import BinaryPatcher, PatchError, UnsafePatchError
from services.launcher.butler import ButlerAdapter
from services.launcher.downloads import DownloadManager
from services.launcher.instances import InstanceLayout, LatestPointerStore, normalize_branch
from services.launcher.models import (
    ApplyStatus,
    ButlerError,
    DownloadTask,
    InstallError,
    LauncherError,
    LaunchOutcome,
    LaunchRequest,
    OrchestratorState,
    TransferStatus,
)
from services.launcher.process import GameProcessLauncher, LaunchContext, RunningGame
from services.launcher.progress import (
    GAME_STOPPED,
    STAGE_APPLY,
    STAGE_BUTLER,
    STAGE_DOWNLOAD,
    STAGE_LAUNCH,
    STAGE_PATCHING,
    STAGE_RANGES,
    STAGE_RUNTIME,
    STAGE_UPDATE,
    ProgressReporter,
    ProgressSink,
)
from services.launcher.recovery import InstanceRecovery
from services.launcher.runtime import RuntimeProvisioner
from services.launcher.sequencer import DiffSequencer
from services.launcher.versions import VersionResolver
from shared.cancellation import NEVER_CANCELLED, CancellationToken

_LOGGER = logging.getLogger(__name__)


class InstallationOrchestrator:
    """Runs ``resolve -> install or update -> patch -> runtime -> launch``.

    One instance drives one run at a time. Cancellation is checked between
    steps only: an in-flight download stops at the next chunk and removes its
    staging file, an in-flight apply is allowed to finish. Update failures on
    an existing installation are logged and the existing files are launched.
    """

    def __init__(
        self,
        *,
        layout: InstanceLayout,
        pointers: LatestPointerStore,
        resolver: VersionResolver,
        downloads: DownloadManager,
        sequencer: DiffSequencer,
        butler: ButlerAdapter,
        patcher: BinaryPatcher,
        runtime: RuntimeProvisioner,
        launcher: GameProcessLauncher,
        patching: PatchingConfig,
        recovery: InstanceRecovery | None = None,
        sink: ProgressSink | None = None,
    ) -> None:
        self._layout = layout
        self._pointers = pointers
        self._resolver = resolver
        self._downloads = downloads
        self._sequencer = sequencer
        self._butler = butler
        self._patcher = patcher
        self._runtime = runtime
        self._launcher = launcher
        self._patching = patching
        self._recovery = recovery or InstanceRecovery()
        self._sink = sink
        self._progress = ProgressReporter(sink)
        self._state = OrchestratorState.IDLE
        self._state_lock = threading.Lock()
        self._game: RunningGame | None = None

    @property
    def state(self) -> OrchestratorState:
        return self._state

    @property
    def game(self) -> RunningGame | None:
        return self._game

    def run(
        self,
        request: LaunchRequest,
        token: CancellationToken = NEVER_CANCELLED,
        *,
        wait: bool = False,
    ) -> LaunchOutcome:
        """Execute one full run and return its final outcome.

        With ``wait`` the call blocks until the game exits and the outcome is
        ``STOPPED``; otherwise it returns as soon as the process is running.
        """

        self._progress = ProgressReporter(self._sink)
        self._game = None
        warnings: list[str] = []
        try:
            return self._run(request, token, warnings, wait)
        except (LauncherError, UnsafePatchError) as exc:
            return self._fail(exc.user_message, warnings, exc)
        except OSError as exc:
            return self._fail(f"Launch failed: {exc}", warnings, exc)

    def _run(
        self, request: LaunchRequest, token: CancellationToken, warnings: list[str], wait: bool
    ) -> LaunchOutcome:
        branch = normalize_branch(request.branch)
        tracks_latest = request.version <= 0

        self._set_state(OrchestratorState.RESOLVING)
        target = self._resolver.resolve_latest(branch) if tracks_latest else request.version
        if token.cancelled:
            return self._cancelled(warnings)

        instance_dir = self._layout.resolve_instance(branch, request.version)
        if self._layout.is_client_present(instance_dir):
            self._set_state(OrchestratorState.INSTALLED)
            version = target
            if tracks_latest:
                if not self._update(branch, instance_dir, target, token, warnings):
                    return self._cancelled(warnings)
                pointer = self._pointers.read(branch)
                version = pointer.version if pointer is not None else target
        else:
            self._set_state(OrchestratorState.NEEDS_INSTALL)
            if target <= 0:
                raise InstallError(f"No {branch} game versions are available to install")
            if not self._install(branch, instance_dir, target, tracks_latest, token):
                return self._cancelled(warnings)
            version = target

        if token.cancelled:
            return self._cancelled(warnings)
        game_dir = self._layout.game_dir(instance_dir)
        self._patch(request, game_dir, warnings)

        if token.cancelled:
            return self._cancelled(warnings)
        self._set_state(OrchestratorState.PROVISIONING_RUNTIME)
        status = self._runtime.ensure_runtime(self._progress.stage(STAGE_RUNTIME), token)
        if status is TransferStatus.CANCELLED or token.cancelled:
            return self._cancelled(warnings)

        self._set_state(OrchestratorState.LAUNCHING)
        invocation = self._launcher.build_invocation(request, instance_dir, self._runtime.java_path)
        context = LaunchContext(request=request, instance_dir=instance_dir, version=version)
        self._game = self._launcher.start(invocation, context, self._on_game_state)
        self._mark_running()
        self._progress.report(STAGE_LAUNCH, 100, "Game running")

        outcome = LaunchOutcome(
            OrchestratorState.RUNNING,
            "Game running",
            version=version,
            pid=self._game.pid,
            warnings=tuple(warnings),
        )
        if wait:
            exit_code = self._game.wait()
            outcome = LaunchOutcome(
                OrchestratorState.STOPPED,
                f"Game exited with code {exit_code}",
                version=version,
                pid=outcome.pid,
                warnings=outcome.warnings,
            )
        return outcome

    def _install(
        self,
        branch: str,
        instance_dir: Path,
        version: int,
        tracks_latest: bool,
        token: CancellationToken,
    ) -> bool:
        _LOGGER.info("Installing %s version %d into %s", branch, version, instance_dir)
        if self._butler.ensure_installed(self._progress.stage(STAGE_BUTLER), token) is TransferStatus.CANCELLED:
            return False
        if token.cancelled:
            return False

        self._set_state(OrchestratorState.DOWNLOADING)
        archive = self._sequencer.full_cache_path(branch, version, tracks_latest=tracks_latest)
        task = DownloadTask(self._resolver.archive_url(branch, version), archive, token=token)
        result = self._downloads.download(task, self._progress.download(STAGE_DOWNLOAD, "Downloading game"))
        if result.cancelled or token.cancelled:
            return False

        self._set_state(OrchestratorState.APPLYING)
        try:
            status = self._apply_with_recovery(archive, instance_dir, token)
        except ButlerError:
            archive.unlink(missing_ok=True)
            raise
        if status is ApplyStatus.CANCELLED:
            return False
        if tracks_latest:
            self._pointers.write(branch, version)
        return True

    def _apply_with_recovery(self, archive: Path, instance_dir: Path, token: CancellationToken) -> ApplyStatus:
        populated = instance_dir.is_dir() and any(instance_dir.iterdir())
        report = self._progress.stage(STAGE_APPLY)
        try:
            return self._butler.apply_patch(archive, instance_dir, report, token)
        except ButlerError as exc:
            if not populated:
                raise
            _LOGGER.warning("Apply into existing directory %s failed (%s); rebuilding it", instance_dir, exc)
        self._recovery.rebuild(instance_dir)
        return self._butler.apply_patch(archive, instance_dir, report, token)

    def _update(
        self,
        branch: str,
        instance_dir: Path,
        target: int,
        token: CancellationToken,
        warnings: list[str],
    ) -> bool:
        """Apply the diff chain up to ``target``; ``False`` only when cancelled."""

        game_dir = self._layout.game_dir(instance_dir)
        pointer = self._pointers.read(branch)
        installed = pointer.version if pointer is not None else self._infer_installed(branch, game_dir)
        if installed <= 0:
            _LOGGER.info("Installed %s version is unknown; launching the existing files", branch)
            return True
        if target <= installed:
            _LOGGER.info("%s version %d is up to date", branch, installed)
            return True

        try:
            plan = self._sequencer.validate(branch, self._sequencer.plan(branch, installed, target))
            _LOGGER.info("Updating %s from %d via %s", branch, installed, plan.versions)
            butler = self._butler.ensure_installed(self._progress.stage(STAGE_BUTLER), token)
            if butler is TransferStatus.CANCELLED:
                return False

            start, end = STAGE_RANGES[STAGE_BUTLER][1], STAGE_RANGES[STAGE_UPDATE][1]
            count = len(plan.steps)
            for index, step in enumerate(plan.steps):
                if token.cancelled:
                    return False
                low = start + (end - start) * index // count
                high = start + (end - start) * (index + 1) // count
                middle = (low + high) // 2

                self._set_state(OrchestratorState.DOWNLOADING)
                archive = self._sequencer.patch_cache_path(branch, step.version)
                result = self._downloads.download(
                    DownloadTask(step.url, archive, expected_size=step.size, token=token),
                    self._progress.download(
                        STAGE_UPDATE, f"Downloading update {step.version}", window=(low, middle)
                    ),
                )
                if result.cancelled or token.cancelled:
                    return False

                self._set_state(OrchestratorState.APPLYING)
                applied = self._butler.apply_patch(
                    archive, game_dir, self._progress.stage(STAGE_UPDATE, window=(middle, high)), token
                )
                if applied is ApplyStatus.CANCELLED:
                    return False
                self._pointers.write(branch, step.version)
        except (LauncherError, OSError) as exc:
            _LOGGER.warning("Update of %s to %d failed: %s", branch, target, exc, exc_info=True)
            detail = exc.user_message if isinstance(exc, LauncherError) else str(exc)
            warnings.append(f"Update to version {target} failed: {detail}")
        return True

    def _infer_installed(self, branch: str, game_dir: Path) -> int:
        # Only directories written by butler can be matched to a cached archive.
        if not self._layout.has_butler_receipt(game_dir):
            _LOGGER.info("No butler receipt in %s; not guessing its version", game_dir)
            return 0
        installed = self._sequencer.infer_installed_version(branch)
        if installed > 0:
            try:
                self._pointers.write(branch, installed)
            except OSError as exc:
                _LOGGER.warning("Unable to record inferred %s version %d: %s", branch, installed, exc)
        return installed

    def _patch(self, request: LaunchRequest, game_dir: Path, warnings: list[str]) -> None:
        if not request.patch_enabled:
            return
        self._set_state(OrchestratorState.PATCHING)
        target_domain = request.target_domain or self._patching.default_target_domain
        report = self._progress.stage(STAGE_PATCHING)
        report(0, f"Redirecting to {target_domain}")
        try:
            result = self._patcher.patch_installation(game_dir, target_domain)
        except UnsafePatchError:
            raise
        except PatchError as exc:
            _LOGGER.warning("Patching %s failed: %s", game_dir, exc)
            warnings.append(exc.user_message)
        except OSError as exc:
            _LOGGER.warning("Patching %s failed: %s", game_dir, exc, exc_info=True)
            warnings.append(f"Could not patch game files: {exc}")
        else:
            for warning in result.warnings:
                _LOGGER.warning("%s", warning)
                warnings.append(warning)
        report(100, "Patching finished")

    def _on_game_state(self, state: str, pid: int | None, exit_code: int | None) -> None:
        if state == GAME_STOPPED:
            self._set_state(OrchestratorState.STOPPED)
        self._progress.game_state(state, pid=pid, exit_code=exit_code)

    def _set_state(self, state: OrchestratorState) -> None:
        with self._state_lock:
            previous, self._state = self._state, state
        if previous is not state:
            _LOGGER.debug("Orchestrator state %s -> %s", previous.value, state.value)

    def _mark_running(self) -> None:
        # The monitor thread may already have reported a fast exit.
        with self._state_lock:
            if self._state is not OrchestratorState.STOPPED:
                self._state = OrchestratorState.RUNNING

    def _cancelled(self, warnings: list[str]) -> LaunchOutcome:
        self._set_state(OrchestratorState.CANCELLED)
        _LOGGER.info("Launch cancelled")
        return LaunchOutcome(OrchestratorState.CANCELLED, "Launch cancelled", warnings=tuple(warnings))

    def _fail(self, message: str, warnings: list[str], exc: BaseException) -> LaunchOutcome:
        self._set_state(OrchestratorState.ERRORED)
        _LOGGER.error("Launch failed: %s", message, exc_info=exc)
        return LaunchOutcome(OrchestratorState.ERRORED, message, warnings=tuple(warnings))


__all__ = ["InstallationOrchestrator"]
