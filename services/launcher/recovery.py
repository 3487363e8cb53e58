"""Rebuilding of an installation directory that can no longer be patched."""

from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path
from typing import Iterable

from services.launcher import constants
from services.launcher.models import InstallError

_LOGGER = logging.getLogger(__name__)

PRESERVED_DIRNAMES = (constants.USER_DATA_DIRNAME, constants.CLIENT_DIRNAME)


class InstanceRecovery:
    """Wipes an instance directory while keeping user data and client assets.

    The preserved folders are copied aside first. If that copy fails the
    instance is left untouched; if restoring fails the backup is kept and its
    location is reported so nothing the user created is lost.
    """

    def __init__(
        self,
        *,
        preserved: Iterable[str] = PRESERVED_DIRNAMES,
        temp_root: Path | None = None,
    ) -> None:
        self._preserved = tuple(preserved)
        self._temp_root = temp_root

    def rebuild(self, instance_dir: Path) -> list[str]:
        """Recreate ``instance_dir`` and return the names that were restored."""

        present = [name for name in self._preserved if (instance_dir / name).exists()]
        backup_root = self._backup(instance_dir, present)
        try:
            _LOGGER.warning("Wiping installation directory %s", instance_dir)
            shutil.rmtree(instance_dir, ignore_errors=False)
            instance_dir.mkdir(parents=True, exist_ok=True)
            for name in present:
                shutil.move(str(backup_root / name), str(instance_dir / name))
        except OSError as exc:
            _LOGGER.error(
                "Recovery of %s failed; preserved data remains at %s", instance_dir, backup_root, exc_info=True
            )
            raise InstallError(
                f"Unable to rebuild {instance_dir}; your data was kept in {backup_root}"
            ) from exc
        shutil.rmtree(backup_root, ignore_errors=True)
        _LOGGER.info("Rebuilt %s, restored %s", instance_dir, ", ".join(present) or "nothing")
        return present

    def _backup(self, instance_dir: Path, names: list[str]) -> Path:
        backup_root = Path(tempfile.mkdtemp(prefix="hylaunch-recovery-", dir=self._temp_root))
        try:
            for name in names:
                source = instance_dir / name
                if source.is_dir():
                    shutil.copytree(source, backup_root / name, symlinks=True)
                else:
                    shutil.copy2(source, backup_root / name)
        except OSError as exc:
            shutil.rmtree(backup_root, ignore_errors=True)
            raise InstallError(
                f"Unable to back up user data from {instance_dir}; the installation was not modified"
            ) from exc
        _LOGGER.info("Backed up %s from %s to %s", names, instance_dir, backup_root)
        return backup_root


__all__ = ["InstanceRecovery", "PRESERVED_DIRNAMES"]
