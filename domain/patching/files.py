"""File helpers shared by the patchers."""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

_LOGGER = logging.getLogger(__name__)

BACKUP_SUFFIX = ".original"


def backup_path(artifact: Path) -> Path:
    return artifact.with_name(artifact.name + BACKUP_SUFFIX)


def ensure_backup(artifact: Path) -> Path:
    """Copy ``artifact`` to ``<artifact>.original`` unless a backup already exists."""

    backup = backup_path(artifact)
    if backup.exists():
        return backup
    shutil.copy2(artifact, backup)
    _LOGGER.info("Created backup %s", backup)
    return backup


def replace_file_bytes(artifact: Path, data: bytes) -> None:
    """Write ``data`` beside ``artifact`` and swap it in, keeping the file mode."""

    staging = artifact.with_name(artifact.name + ".patching")
    staging.write_bytes(data)
    try:
        shutil.copymode(artifact, staging)
        os.replace(staging, artifact)
    except OSError:
        remove_quietly(staging)
        raise


def remove_quietly(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        return
    except OSError:
        _LOGGER.debug("Unable to remove staging file %s", path, exc_info=True)


__all__ = ["BACKUP_SUFFIX", "backup_path", "ensure_backup", "remove_quietly", "replace_file_bytes"]
