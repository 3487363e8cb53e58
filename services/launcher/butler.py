"""Wrapper around the external ``butler`` diff-apply tool."""

from __future__ import annotations

import logging
import re
import shutil
import subprocess
import threading
from pathlib import Path
from typing import Callable, Iterable

from app.config import ButlerConfig
from domain.patching import client_executable_path
from services.launcher import constants
from services.launcher.archive import ArchiveError, extract_zip_safely, make_executable
from services.launcher.downloads import DownloadManager
from services.launcher.instances import InstanceLayout
from services.launcher.models import ApplyStatus, ButlerError, DownloadError, DownloadTask, TransferStatus
from shared.cancellation import NEVER_CANCELLED, CancellationToken
from shared.platform import ARCH_AMD64

_LOGGER = logging.getLogger(__name__)

_PERCENT_PATTERN = re.compile(r"(\d+(?:\.\d+)?)%")
_LEFTOVER_PATTERNS = ("*.tmp", "sf-*")

# Receives (percent, message) with percent in 0..100.
StageProgress = Callable[[int, str], None]
Runner = Callable[..., subprocess.CompletedProcess]
PopenFactory = Callable[..., subprocess.Popen]


def parse_progress(line: str) -> int | None:
    """Return the last percentage mentioned in ``line`` as an int."""

    matches = _PERCENT_PATTERN.findall(line)
    if not matches:
        return None
    value = float(matches[-1])
    return max(0, min(100, int(value)))


class ButlerAdapter:
    """Installs ``butler`` on demand and applies patch archives with it."""

    def __init__(
        self,
        layout: InstanceLayout,
        downloads: DownloadManager,
        config: ButlerConfig,
        *,
        runner: Runner = subprocess.run,
        popen: PopenFactory = subprocess.Popen,
    ) -> None:
        self._layout = layout
        self._downloads = downloads
        self._config = config
        self._runner = runner
        self._popen = popen

    @property
    def executable(self) -> Path:
        return self._layout.butler_dir / f"butler{self._layout.platform.executable_suffix}"

    @property
    def download_url(self) -> str:
        platform = self._layout.platform
        # Only an amd64 build is published for macOS; it runs under Rosetta.
        arch = ARCH_AMD64 if platform.is_macos else platform.arch
        return self._config.url_template.format(os=platform.os_name, arch=arch)

    def is_installed(self) -> bool:
        return self.executable.is_file() and self._verify()

    def ensure_installed(
        self,
        on_progress: StageProgress | None = None,
        token: CancellationToken = NEVER_CANCELLED,
    ) -> TransferStatus:
        """Install ``butler`` if needed; ``CACHED`` means it was already usable."""

        report = on_progress or (lambda percent, message: None)
        if self.is_installed():
            report(100, "Butler is ready")
            return TransferStatus.CACHED

        archive = self._layout.app_dir / constants.BUTLER_CACHE_DIRNAME / constants.BUTLER_ARCHIVE_NAME
        _LOGGER.info("Installing butler from %s", self.download_url)
        report(0, "Downloading butler")
        try:
            result = self._downloads.download(
                DownloadTask(self.download_url, archive, token=token),
                lambda percent, done, total: report(percent * 80 // 100, "Downloading butler"),
            )
        except DownloadError as exc:
            raise ButlerError(f"Unable to download butler: {exc}") from exc
        if result.cancelled:
            return TransferStatus.CANCELLED

        report(85, "Extracting butler")
        shutil.rmtree(self._layout.butler_dir, ignore_errors=True)
        try:
            extract_zip_safely(archive, self._layout.butler_dir)
        except ArchiveError as exc:
            archive.unlink(missing_ok=True)
            raise ButlerError(f"Unable to extract butler: {exc}") from exc
        make_executable(self.executable)

        if not self._verify():
            raise ButlerError(f"Butler at {self.executable} failed its self check")
        report(100, "Butler is ready")
        _LOGGER.info("Butler installed at %s", self.executable)
        return TransferStatus.COMPLETED

    def apply_patch(
        self,
        archive: Path,
        target_dir: Path,
        on_progress: StageProgress | None = None,
        token: CancellationToken = NEVER_CANCELLED,
    ) -> ApplyStatus:
        """Apply ``archive`` to ``target_dir``.

        Cancellation is only honoured before the tool starts; a running apply
        is allowed to finish so the directory is never left half patched.
        """

        if token.cancelled:
            return ApplyStatus.CANCELLED
        if not self.executable.is_file():
            raise ButlerError("Butler is not installed")
        if not archive.is_file():
            raise ButlerError(f"Patch archive {archive} does not exist")

        target_dir.mkdir(parents=True, exist_ok=True)
        staging = target_dir / constants.BUTLER_STAGING_DIRNAME
        staging.mkdir(parents=True, exist_ok=True)
        command = [str(self.executable), "apply", "--staging-dir", str(staging)]
        if self._layout.platform.is_windows:
            command.append("--save-interval=60")
        command.extend([str(archive), str(target_dir)])
        _LOGGER.info("Running %s", " ".join(command))

        try:
            returncode, timed_out, stderr_text = self._run_apply(command, target_dir, on_progress)
        finally:
            self._clean_leftovers(target_dir, staging)

        if timed_out:
            raise ButlerError(
                f"Butler did not finish within {self._config.apply_timeout_seconds} seconds",
                output=stderr_text,
            )
        if returncode != 0:
            raise ButlerError(f"Butler apply failed with exit code {returncode}", output=stderr_text)

        client = client_executable_path(target_dir, self._layout.platform)
        if client.is_file() and not self._layout.platform.is_windows:
            make_executable(client)
        if on_progress is not None:
            on_progress(100, "Patch applied")
        _LOGGER.info("Applied %s to %s", archive.name, target_dir)
        return ApplyStatus.APPLIED

    def _run_apply(
        self, command: list[str], cwd: Path, on_progress: StageProgress | None
    ) -> tuple[int, bool, str]:
        try:
            process = self._popen(
                command,
                cwd=str(cwd),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                bufsize=1,
            )
        except OSError as exc:
            raise ButlerError(f"Unable to start butler: {exc}") from exc

        stderr_lines: list[str] = []
        reader = threading.Thread(
            target=_drain, args=(process.stderr, stderr_lines), name="hylaunch-butler-stderr", daemon=True
        )
        reader.start()
        timed_out = threading.Event()

        def _kill() -> None:
            timed_out.set()
            _LOGGER.error("Butler exceeded %s seconds; terminating", self._config.apply_timeout_seconds)
            process.kill()

        timer = threading.Timer(self._config.apply_timeout_seconds, _kill)
        timer.daemon = True
        timer.start()
        last_percent = -1
        try:
            for line in process.stdout or ():
                percent = parse_progress(line)
                if percent is None or percent == last_percent:
                    continue
                last_percent = percent
                if on_progress is not None:
                    on_progress(percent, line.strip())
            returncode = process.wait()
        finally:
            timer.cancel()
        reader.join(timeout=5)
        stderr_text = "".join(stderr_lines)
        if stderr_text.strip():
            _LOGGER.debug("Butler stderr: %s", stderr_text.strip())
        return returncode, timed_out.is_set(), stderr_text

    def _verify(self) -> bool:
        try:
            completed = self._runner(
                [str(self.executable), "version"],
                capture_output=True,
                text=True,
                timeout=self._config.verify_timeout_seconds,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            _LOGGER.warning("Butler self check failed: %s", exc)
            return False
        if completed.returncode != 0:
            _LOGGER.warning("Butler self check exited with %s", completed.returncode)
            return False
        return True

    @staticmethod
    def _clean_leftovers(target_dir: Path, staging: Path) -> None:
        shutil.rmtree(staging, ignore_errors=True)
        for pattern in _LEFTOVER_PATTERNS:
            for leftover in target_dir.rglob(pattern):
                if leftover.is_file():
                    try:
                        leftover.unlink()
                    except OSError:
                        _LOGGER.debug("Unable to remove %s", leftover, exc_info=True)


def _drain(stream: Iterable[str] | None, sink: list[str]) -> None:
    if stream is None:
        return
    for line in stream:
        sink.append(line)


__all__ = ["ButlerAdapter", "StageProgress", "parse_progress"]
