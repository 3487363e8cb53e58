"""Bounded extraction of tool and runtime archives."""

from __future__ import annotations

import logging
import os
import shutil
import stat
import tarfile
import zipfile
from pathlib import Path, PurePosixPath

from services.launcher import constants
from services.launcher.models import LauncherError

_LOGGER = logging.getLogger(__name__)


class ArchiveError(LauncherError):
    """Raised when an archive is malformed or exceeds the safety limits."""

    stage = "extract"


class _Budget:
    def __init__(self) -> None:
        self.entries = 0
        self.total_bytes = 0

    def admit(self, name: str, size: int, compressed_size: int | None) -> None:
        self.entries += 1
        if self.entries > constants.MAX_ARCHIVE_ENTRIES:
            _LOGGER.error(
                "Archive entry count %s exceeded limit %s", self.entries, constants.MAX_ARCHIVE_ENTRIES
            )
            raise ArchiveError("Archive contained too many entries")
        if size > constants.MAX_ARCHIVE_FILE_SIZE:
            _LOGGER.error(
                "Archive member %s exceeded file size limit (%s > %s)",
                name,
                size,
                constants.MAX_ARCHIVE_FILE_SIZE,
            )
            raise ArchiveError("Archive contained an oversized file")
        if compressed_size is not None:
            if compressed_size == 0 and size > 0:
                raise ArchiveError("Archive contained a suspiciously compressed file")
            if compressed_size > 0 and size > compressed_size * constants.MAX_COMPRESSION_RATIO:
                _LOGGER.error("Archive member %s exceeded compression ratio limit", name)
                raise ArchiveError("Archive exceeded safe compression ratio")
        self.total_bytes += size
        if self.total_bytes > constants.MAX_ARCHIVE_TOTAL_BYTES:
            raise ArchiveError("Archive expanded beyond safe limits")


def _safe_destination(root: Path, name: str) -> Path:
    path = PurePosixPath(name.replace("\\", "/"))
    if path.is_absolute() or (path.parts and path.parts[0].endswith(":")):
        raise ArchiveError("Archive contained an absolute path entry")
    destination = (root / Path(*path.parts)).resolve()
    try:
        destination.relative_to(root)
    except ValueError:
        raise ArchiveError("Archive contained an unsafe relative path")
    return destination


def extract_zip_safely(archive_path: Path, target_dir: Path) -> int:
    """Extract a zip into ``target_dir``; return the number of entries written."""

    root = target_dir.resolve()
    root.mkdir(parents=True, exist_ok=True)
    budget = _Budget()
    try:
        with zipfile.ZipFile(archive_path) as archive:
            for member in archive.infolist():
                if not member.filename:
                    continue
                destination = _safe_destination(root, member.filename)
                if member.is_dir():
                    destination.mkdir(parents=True, exist_ok=True)
                    continue
                budget.admit(member.filename, member.file_size, member.compress_size)
                destination.parent.mkdir(parents=True, exist_ok=True)
                with archive.open(member) as source, destination.open("wb") as target:
                    shutil.copyfileobj(source, target)
                mode = (member.external_attr >> 16) & 0o777
                if mode:
                    destination.chmod(mode | stat.S_IRUSR | stat.S_IWUSR)
    except (OSError, zipfile.BadZipFile) as exc:
        raise ArchiveError(f"Failed to extract {archive_path.name}: {exc}") from exc
    _LOGGER.info(
        "Extracted %s entries totalling %s bytes from %s", budget.entries, budget.total_bytes, archive_path
    )
    return budget.entries


def extract_tar_safely(archive_path: Path, target_dir: Path) -> int:
    """Extract a gzip tarball, refusing links that point outside ``target_dir``."""

    root = target_dir.resolve()
    root.mkdir(parents=True, exist_ok=True)
    budget = _Budget()
    try:
        with tarfile.open(archive_path, "r:*") as archive:
            for member in archive:
                destination = _safe_destination(root, member.name)
                if member.isdir():
                    destination.mkdir(parents=True, exist_ok=True)
                    continue
                if member.issym():
                    link_target = (destination.parent / member.linkname).resolve()
                    try:
                        link_target.relative_to(root)
                    except ValueError:
                        raise ArchiveError("Archive contained a link escaping the target directory")
                    destination.parent.mkdir(parents=True, exist_ok=True)
                    if destination.is_symlink() or destination.exists():
                        destination.unlink()
                    destination.symlink_to(member.linkname)
                    continue
                if not member.isfile():
                    _LOGGER.debug("Skipping special archive member %s", member.name)
                    continue
                budget.admit(member.name, member.size, None)
                source = archive.extractfile(member)
                if source is None:
                    continue
                destination.parent.mkdir(parents=True, exist_ok=True)
                with source, destination.open("wb") as target:
                    shutil.copyfileobj(source, target)
                destination.chmod((member.mode & 0o777) | stat.S_IRUSR | stat.S_IWUSR)
    except (OSError, tarfile.TarError) as exc:
        raise ArchiveError(f"Failed to extract {archive_path.name}: {exc}") from exc
    _LOGGER.info(
        "Extracted %s entries totalling %s bytes from %s", budget.entries, budget.total_bytes, archive_path
    )
    return budget.entries


def extract_archive(archive_path: Path, target_dir: Path) -> int:
    if archive_path.name.endswith(".zip") or zipfile.is_zipfile(archive_path):
        return extract_zip_safely(archive_path, target_dir)
    return extract_tar_safely(archive_path, target_dir)


def flatten_single_directory(root: Path, *, nested: tuple[str, ...] = ()) -> Path | None:
    """Hoist the contents of a lone top-level directory into ``root``.

    ``nested`` names a path inside that directory to hoist instead when it
    exists, such as ``("Contents", "Home")`` for macOS runtime bundles.
    Returns the directory whose contents were moved, or ``None``.
    """

    children = [child for child in root.iterdir() if not child.name.startswith(".")]
    if len(children) != 1 or not children[0].is_dir():
        return None
    wrapper = children[0]
    source = wrapper.joinpath(*nested) if nested and wrapper.joinpath(*nested).is_dir() else wrapper
    holding = root / f".{wrapper.name}.flatten"
    wrapper.rename(holding)
    source = holding / source.relative_to(wrapper) if source != wrapper else holding
    for entry in list(source.iterdir()):
        shutil.move(str(entry), str(root / entry.name))
    shutil.rmtree(holding, ignore_errors=True)
    _LOGGER.debug("Flattened %s into %s", wrapper.name, root)
    return wrapper


def make_executable(path: Path) -> None:
    if os.name == "nt" or not path.exists():
        return
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


__all__ = [
    "ArchiveError",
    "extract_archive",
    "extract_tar_safely",
    "extract_zip_safely",
    "flatten_single_directory",
    "make_executable",
]
