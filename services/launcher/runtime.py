"""Provisioning of the Java runtime the game client needs."""

from __future__ import annotations

import logging
import os
import re
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Mapping

from app.config import RuntimeConfig
from services.launcher import constants
from services.launcher.archive import (
    ArchiveError,
    extract_archive,
    flatten_single_directory,
    make_executable,
)
from services.launcher.downloads import DownloadManager
from services.launcher.hashing import matches_sha256
from services.launcher.instances import InstanceLayout
from services.launcher.models import DownloadError, DownloadTask, RuntimeProvisionError, TransferStatus
from shared.cancellation import NEVER_CANCELLED, CancellationToken
from shared.platform import ARCH_ARM64, HostPlatform

_LOGGER = logging.getLogger(__name__)

_VERSION_PATTERN = re.compile(r'version "?([0-9][^"\s]*)')
_SHIM_MARKER = b"#!"
_REAL_SUFFIX = ".real"
_API_OS_NAMES = {"windows": "windows", "darwin": "mac", "linux": "linux"}

Runner = Callable[..., subprocess.CompletedProcess]
StageProgress = Callable[[int, str], None]


@dataclass(frozen=True)
class RuntimeSource:
    url: str
    sha256: str | None = None
    origin: str = "table"


def parse_java_major(output: str) -> int | None:
    """Extract the major version from ``java -version`` output."""

    match = _VERSION_PATTERN.search(output)
    if match is None:
        return None
    version = match.group(1)
    parts = re.split(r"[._+\-]", version)
    try:
        if parts[0] == "1" and len(parts) > 1:
            return int(parts[1])
        return int(parts[0])
    except ValueError:
        return None


def render_shim(filtered_prefix: str) -> str:
    return (
        "#!/bin/bash\n"
        'DIR="$(cd "$(dirname "$0")" && pwd)"\n'
        "args=()\n"
        'for arg in "$@"; do\n'
        '  case "$arg" in\n'
        f"    {filtered_prefix}*) ;;\n"
        '    *) args+=("$arg") ;;\n'
        "  esac\n"
        "done\n"
        f'exec "$DIR/java{_REAL_SUFFIX}" "${{args[@]}}"\n'
    )


def table_source(table: Mapping[str, Any], family: str, platform: HostPlatform) -> RuntimeSource | None:
    """Look up ``{family: {os: {arch: url | {url, sha256}}}}``."""

    entry: Any = table.get(family)
    for key in (platform.os_name, platform.arch):
        if not isinstance(entry, Mapping):
            return None
        entry = entry.get(key)
    if isinstance(entry, str) and entry.strip():
        return RuntimeSource(entry.strip())
    if isinstance(entry, Mapping):
        url = entry.get("url")
        digest = entry.get("sha256")
        if isinstance(url, str) and url.strip():
            return RuntimeSource(url.strip(), digest if isinstance(digest, str) else None)
    return None


class RuntimeProvisioner:
    """Ensures ``<app>/jre`` holds a runtime that can start the client."""

    def __init__(
        self,
        layout: InstanceLayout,
        downloads: DownloadManager,
        config: RuntimeConfig,
        *,
        runtime_table: Mapping[str, Any] | None = None,
        runner: Runner = subprocess.run,
    ) -> None:
        self._layout = layout
        self._downloads = downloads
        self._config = config
        self._table = runtime_table or {}
        self._runner = runner

    @property
    def platform(self) -> HostPlatform:
        return self._layout.platform

    @property
    def runtime_dir(self) -> Path:
        return self._layout.runtime_dir

    @property
    def binary_path(self) -> Path:
        return self.runtime_dir / "bin" / f"java{self.platform.executable_suffix}"

    @property
    def java_path(self) -> Path:
        """Path handed to the client as its runtime executable."""

        if self.platform.is_macos:
            return self._mac_home / "bin" / "java"
        return self.binary_path

    @property
    def marker_path(self) -> Path:
        return self.runtime_dir / constants.RUNTIME_MARKER_FILENAME

    @property
    def _mac_home(self) -> Path:
        return self._layout.app_dir / constants.MAC_RUNTIME_LINK_DIRNAME / "Contents" / "Home"

    def installed_version(self) -> str | None:
        try:
            return self.marker_path.read_text(encoding="utf-8").strip() or None
        except OSError:
            return None

    def is_ready(self) -> bool:
        if self.installed_version() != self._config.required_version:
            return False
        if not self.binary_path.is_file():
            return False
        return self.check_requirements(self.binary_path)

    def check_requirements(self, java: Path) -> bool:
        """Run the version and garbage-collector probes against ``java``."""

        version_probe = self._probe([str(java), "-version"])
        if version_probe is None or version_probe.returncode != 0:
            _LOGGER.warning("Runtime at %s did not report a version", java)
            return False
        major = parse_java_major(f"{version_probe.stdout}\n{version_probe.stderr}")
        if major is None or major < self._config.minimum_major:
            _LOGGER.warning(
                "Runtime at %s is major version %s; %s or newer is required",
                java,
                major,
                self._config.minimum_major,
            )
            return False
        gc_probe = self._probe([str(java), self._config.gc_probe_flag, "-version"])
        if gc_probe is None or gc_probe.returncode != 0:
            _LOGGER.warning("Runtime at %s rejects %s", java, self._config.gc_probe_flag)
            return False
        return True

    def download_sources(self) -> list[RuntimeSource]:
        sources: list[RuntimeSource] = []
        from_table = table_source(self._table, self._config.family, self.platform)
        if from_table is not None:
            sources.append(from_table)
        sources.append(
            RuntimeSource(
                self._config.api_url_template.format(
                    major=self._config.minimum_major,
                    os=_API_OS_NAMES.get(self.platform.os_name, self.platform.os_name),
                    arch="aarch64" if self.platform.arch == ARCH_ARM64 else "x64",
                ),
                origin="api",
            )
        )
        return sources

    def ensure_runtime(
        self,
        on_progress: StageProgress | None = None,
        token: CancellationToken = NEVER_CANCELLED,
    ) -> TransferStatus:
        """Make the runtime usable; ``CACHED`` means nothing had to change."""

        report = on_progress or (lambda percent, message: None)
        if self.is_ready():
            _LOGGER.info("Java runtime %s already installed", self._config.required_version)
            if self.platform.is_macos:
                self._link_mac_home()
            report(100, "Java runtime ready")
            return TransferStatus.CACHED

        installed = self.installed_version()
        if installed:
            _LOGGER.warning(
                "Installed runtime %s is unusable or not %s; reinstalling",
                installed,
                self._config.required_version,
            )

        archive = self._download(report, token)
        if archive is None:
            return TransferStatus.CANCELLED

        report(70, "Extracting Java runtime")
        shutil.rmtree(self.runtime_dir, ignore_errors=True)
        try:
            extract_archive(archive, self.runtime_dir)
        except (ArchiveError, OSError) as exc:
            archive.unlink(missing_ok=True)
            raise RuntimeProvisionError(f"Unable to extract the Java runtime: {exc}") from exc
        nested = ("Contents", "Home") if self.platform.is_macos else ()
        try:
            flatten_single_directory(self.runtime_dir, nested=nested)
        except OSError as exc:
            raise RuntimeProvisionError(f"Unable to arrange the Java runtime: {exc}") from exc
        if not self.binary_path.is_file():
            raise RuntimeProvisionError(f"Java runtime archive did not contain {self.binary_path.name}")

        report(85, "Configuring Java runtime")
        try:
            if not self.platform.is_windows:
                make_executable(self.binary_path)
                self.install_shim()
            if self.platform.is_macos:
                self._link_mac_home()
                self._sign_mac_runtime()
        except OSError as exc:
            raise RuntimeProvisionError(f"Unable to configure the Java runtime: {exc}") from exc

        if not self.check_requirements(self.binary_path):
            raise RuntimeProvisionError(
                f"The downloaded Java runtime does not meet the requirements "
                f"(Java {self._config.minimum_major}+ with {self._config.gc_probe_flag})"
            )
        self.marker_path.write_text(self._config.required_version, encoding="utf-8")
        report(100, "Java runtime ready")
        _LOGGER.info("Java runtime %s installed at %s", self._config.required_version, self.runtime_dir)
        return TransferStatus.COMPLETED

    def install_shim(self) -> bool:
        """Move ``java`` aside and put a flag-filtering wrapper in its place.

        Returns ``False`` if ``java`` already is a script.
        """

        java = self.binary_path
        with java.open("rb") as handle:
            if handle.read(2) == _SHIM_MARKER:
                _LOGGER.debug("Runtime shim already present at %s", java)
                return False
        real = java.with_name(java.name + _REAL_SUFFIX)
        os.replace(java, real)
        java.write_text(render_shim(self._config.filtered_flag_prefix), encoding="utf-8")
        make_executable(java)
        make_executable(real)
        _LOGGER.info("Installed runtime shim filtering %s", self._config.filtered_flag_prefix)
        return True

    def _download(self, report: StageProgress, token: CancellationToken) -> Path | None:
        extension = "zip" if self.platform.is_windows else "tar.gz"
        archive = self._layout.cache_dir / f"jre-{self._config.required_version}.{extension}"
        errors: list[str] = []
        for source in self.download_sources():
            _LOGGER.info("Downloading Java runtime from %s (%s)", source.url, source.origin)
            report(0, "Downloading Java runtime")
            try:
                result = self._downloads.download(
                    DownloadTask(source.url, archive, token=token),
                    lambda percent, done, total: report(percent * 65 // 100, "Downloading Java runtime"),
                )
            except DownloadError as exc:
                _LOGGER.warning("Runtime download from %s failed: %s", source.origin, exc)
                errors.append(str(exc))
                continue
            if result.cancelled:
                return None
            if not matches_sha256(archive, source.sha256):
                archive.unlink(missing_ok=True)
                errors.append(f"checksum mismatch for {source.url}")
                _LOGGER.warning("Runtime archive from %s failed checksum verification", source.url)
                continue
            return archive
        raise RuntimeProvisionError("Unable to download the Java runtime: " + "; ".join(errors))

    def _link_mac_home(self) -> None:
        home = self._mac_home
        home.mkdir(parents=True, exist_ok=True)
        for name in ("bin", "lib"):
            link = home / name
            target = self.runtime_dir / name
            if link.is_symlink() or link.exists():
                if link.is_symlink() and Path(os.readlink(link)) == target:
                    continue
                if link.is_dir() and not link.is_symlink():
                    shutil.rmtree(link)
                else:
                    link.unlink()
            link.symlink_to(target, target_is_directory=True)

    def _sign_mac_runtime(self) -> None:
        for command in (
            ["xattr", "-cr", str(self.runtime_dir)],
            ["codesign", "--force", "--deep", "--sign", "-", str(self.runtime_dir)],
        ):
            completed = self._probe(command, timeout=120)
            if completed is None or completed.returncode != 0:
                _LOGGER.warning("%s did not succeed on %s", command[0], self.runtime_dir)

    def _probe(self, command: list[str], *, timeout: int | None = None) -> subprocess.CompletedProcess | None:
        try:
            return self._runner(
                command,
                capture_output=True,
                text=True,
                timeout=timeout or self._config.probe_timeout_seconds,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            _LOGGER.warning("Unable to run %s: %s", command[0], exc)
            return None


__all__ = [
    "RuntimeProvisioner",
    "RuntimeSource",
    "parse_java_major",
    "render_shim",
    "table_source",
]
