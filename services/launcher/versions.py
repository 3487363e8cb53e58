"""Discovery of the game versions published for a branch."""

from __future__ import annotations

import json
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Mapping

from app.config import PatchServerConfig, VersionProbeConfig
from services.launcher import constants, net
from services.launcher.instances import InstanceLayout, LatestPointerStore, normalize_branch
from services.launcher.models import RemoteInfo

_LOGGER = logging.getLogger(__name__)

SNAPSHOT_SCHEMA_VERSION = 1

Probe = Callable[[str], RemoteInfo]


class VersionResolver:
    """Probes the patch server for the versions that exist on a branch.

    Versions ``1..ceiling`` are probed concurrently with bodiless requests.
    A failed probe counts as a missing version, so the result may have gaps
    and is always sorted newest first.
    """

    def __init__(
        self,
        layout: InstanceLayout,
        pointers: LatestPointerStore,
        *,
        patch_server: PatchServerConfig,
        probing: VersionProbeConfig,
        probe: Probe | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._layout = layout
        self._pointers = pointers
        self._patch_server = patch_server
        self._probing = probing
        self._probe = probe or net.head
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def archive_url(self, branch: str, version: int) -> str:
        platform = self._layout.platform
        return (
            f"{self._patch_server.base_url}/{platform.os_name}/{platform.arch}/"
            f"{normalize_branch(branch)}/0/{version}.{self._patch_server.archive_extension}"
        )

    def probe(self, branch: str, version: int) -> RemoteInfo:
        url = self.archive_url(branch, version)
        try:
            return self._probe(url)
        except Exception as exc:  # a probe failure only means "not there"
            _LOGGER.debug("Probe for %s raised %s", url, exc)
            return RemoteInfo(exists=False)

    def list_versions(self, branch: str, *, force_refresh: bool = False) -> list[int]:
        """Return the versions confirmed on the server, newest first."""

        branch = normalize_branch(branch)
        if not force_refresh:
            cached = self._read_snapshot(branch)
            if cached is not None:
                _LOGGER.debug("Using cached version list for %s: %s", branch, cached)
                return cached

        ceiling = self._probing.ceiling_for(branch)
        workers = max(1, min(self._probing.probe_workers, ceiling))
        _LOGGER.info("Probing %d %s versions with %d workers", ceiling, branch, workers)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="hylaunch-probe") as pool:
            found = list(pool.map(lambda version: self.probe(branch, version).exists, range(1, ceiling + 1)))

        versions = sorted((index + 1 for index, exists in enumerate(found) if exists), reverse=True)
        _LOGGER.info("Found %d %s version(s) on the server", len(versions), branch)
        if versions:
            self._write_snapshot(branch, versions)
        return versions

    def resolve_latest(self, branch: str, *, force_refresh: bool = False) -> int:
        """Newest remote version, else the last recorded install, else ``0``."""

        versions = self.list_versions(branch, force_refresh=force_refresh)
        if versions:
            return versions[0]
        pointer = self._pointers.read(branch)
        if pointer is not None:
            _LOGGER.info(
                "No remote %s versions reachable; falling back to installed version %d",
                normalize_branch(branch),
                pointer.version,
            )
            return pointer.version
        return 0

    @property
    def snapshot_path(self) -> Path:
        return self._layout.game_cache_dir / constants.VERSION_SNAPSHOT_FILENAME

    def _read_snapshot(self, branch: str) -> list[int] | None:
        payload = self._load_snapshot()
        if payload is None:
            return None
        entry = payload.get("branches", {}).get(branch)
        if not isinstance(entry, Mapping):
            return None
        try:
            fetched_at = datetime.fromisoformat(str(entry.get("fetchedAt")))
        except ValueError:
            return None
        if fetched_at.tzinfo is None:
            fetched_at = fetched_at.replace(tzinfo=timezone.utc)
        age = self._clock() - fetched_at
        if age < timedelta(0) or age > timedelta(seconds=self._probing.snapshot_ttl_seconds):
            return None
        versions = entry.get("versions")
        if not isinstance(versions, list) or not versions:
            return None
        clean = [value for value in versions if isinstance(value, int) and not isinstance(value, bool)]
        return sorted(clean, reverse=True) or None

    def _load_snapshot(self) -> Mapping[str, Any] | None:
        path = self.snapshot_path
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError):
            _LOGGER.debug("Ignoring unreadable version snapshot %s", path, exc_info=True)
            return None
        if not isinstance(payload, Mapping):
            return None
        platform = self._layout.platform
        if (
            payload.get("schemaVersion") != SNAPSHOT_SCHEMA_VERSION
            or payload.get("os") != platform.os_name
            or payload.get("arch") != platform.arch
            or not isinstance(payload.get("branches"), Mapping)
        ):
            return None
        return payload

    def _write_snapshot(self, branch: str, versions: list[int]) -> None:
        platform = self._layout.platform
        payload = dict(self._load_snapshot() or {})
        branches = dict(payload.get("branches", {}))
        branches[branch] = {"fetchedAt": self._clock().isoformat(), "versions": versions}
        payload.update(
            {
                "schemaVersion": SNAPSHOT_SCHEMA_VERSION,
                "os": platform.os_name,
                "arch": platform.arch,
                "branches": branches,
            }
        )
        path = self.snapshot_path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            staging = path.with_name(path.name + ".tmp")
            staging.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            os.replace(staging, path)
        except OSError:
            _LOGGER.warning("Unable to write version snapshot %s", path, exc_info=True)


__all__ = ["SNAPSHOT_SCHEMA_VERSION", "VersionResolver"]
