"""On-disk layout of game instances and the per-branch latest pointer."""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterator

from app.config import BRANCH_PRE_RELEASE, BRANCH_RELEASE
from domain.patching import client_executable_path
from services.launcher import constants
from services.launcher.models import LatestPointer
from shared.platform import HostPlatform

_LOGGER = logging.getLogger(__name__)

_GAME_SUBDIR = "game"
_BUTLER_RECEIPT = Path(".itch") / "receipt.json.gz"


def normalize_branch(branch: str | None) -> str:
    """Map user-facing branch names onto the names used by the patch server."""

    value = (branch or "").strip().lower()
    if value in {"prerelease", "pre-release", "pre_release", "beta"}:
        return BRANCH_PRE_RELEASE
    if value in {"", "latest", "release", "stable"}:
        return BRANCH_RELEASE
    return value


class InstanceLayout:
    """Paths below the launcher's application directory."""

    def __init__(self, app_dir: Path, platform: HostPlatform) -> None:
        self.app_dir = Path(app_dir)
        self.platform = platform

    @property
    def instances_root(self) -> Path:
        return self.app_dir / constants.INSTANCES_DIRNAME

    @property
    def legacy_instances_root(self) -> Path:
        return self.app_dir / constants.LEGACY_INSTANCE_DIRNAME

    @property
    def cache_dir(self) -> Path:
        return self.app_dir / constants.CACHE_DIRNAME

    @property
    def game_cache_dir(self) -> Path:
        return self.cache_dir / constants.GAME_CACHE_SUBDIR

    @property
    def butler_dir(self) -> Path:
        return self.app_dir / constants.BUTLER_DIRNAME

    @property
    def runtime_dir(self) -> Path:
        return self.app_dir / constants.RUNTIME_DIRNAME

    def instance_path(self, branch: str, version: int) -> Path:
        """Canonical directory for ``(branch, version)``; ``0`` means latest."""

        name = constants.LATEST_DIRNAME if version <= 0 else str(version)
        return self.instances_root / normalize_branch(branch) / name

    def candidate_paths(self, branch: str, version: int) -> Iterator[Path]:
        """Canonical location first, then legacy naming variants."""

        branch = normalize_branch(branch)
        canonical = self.instance_path(branch, version)
        yield canonical
        yield self.legacy_instances_root / branch / canonical.name
        if version > 0:
            for root in (self.instances_root, self.legacy_instances_root):
                yield root / f"{branch}-{version}"
                yield root / f"{branch}-v{version}"

    def find_installed(self, branch: str, version: int) -> Path | None:
        for candidate in self.candidate_paths(branch, version):
            if self.is_client_present(candidate):
                if candidate != self.instance_path(branch, version):
                    _LOGGER.info("Using legacy instance directory %s", candidate)
                return candidate
        return None

    def resolve_instance(self, branch: str, version: int) -> Path:
        return self.find_installed(branch, version) or self.instance_path(branch, version)

    def game_dir(self, instance: Path) -> Path:
        """Directory holding ``Client``; some older installs nest it in ``game``."""

        nested = instance / _GAME_SUBDIR
        if not self._client_at(instance) and self._client_at(nested):
            return nested
        return instance

    def is_client_present(self, instance: Path) -> bool:
        return self._client_at(instance) or self._client_at(instance / _GAME_SUBDIR)

    def has_butler_receipt(self, game_dir: Path) -> bool:
        return (game_dir / _BUTLER_RECEIPT).is_file()

    def user_data_dir(self, instance: Path) -> Path:
        return instance / constants.USER_DATA_DIRNAME

    def client_dir(self, instance: Path) -> Path:
        return self.game_dir(instance) / constants.CLIENT_DIRNAME

    def _client_at(self, game_dir: Path) -> bool:
        return client_executable_path(game_dir, self.platform).is_file()


class LatestPointerStore:
    """Reads and writes ``instances/<branch>/latest/latest.json``."""

    def __init__(
        self,
        layout: InstanceLayout,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._layout = layout
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def path_for(self, branch: str) -> Path:
        return self._layout.instance_path(branch, 0) / constants.LATEST_POINTER_FILENAME

    def read(self, branch: str) -> LatestPointer | None:
        path = self.path_for(branch)
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError):
            _LOGGER.debug("Unable to parse latest pointer at %s", path, exc_info=True)
            return None
        if not isinstance(payload, dict):
            return None
        pointer = LatestPointer.from_json(payload)
        if pointer is None:
            _LOGGER.info("Ignoring unreadable latest pointer at %s", path)
        return pointer

    def write(self, branch: str, version: int) -> LatestPointer:
        pointer = LatestPointer(version=version, updated_at=self._clock())
        path = self.path_for(branch)
        path.parent.mkdir(parents=True, exist_ok=True)
        staging = path.with_name(path.name + ".tmp")
        staging.write_text(json.dumps(pointer.to_json(), indent=2), encoding="utf-8")
        os.replace(staging, path)
        _LOGGER.info("Latest %s pointer now at version %d", normalize_branch(branch), version)
        return pointer


__all__ = ["InstanceLayout", "LatestPointerStore", "normalize_branch"]
