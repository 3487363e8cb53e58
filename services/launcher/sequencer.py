"""Planning of differential update chains."""

from __future__ import annotations

import logging
import re
from pathlib import Path

from services.launcher.instances import InstanceLayout, normalize_branch
from services.launcher.models import InstallError, PatchSequencePlan, PatchStep
from services.launcher.versions import VersionResolver

_LOGGER = logging.getLogger(__name__)

PATCH_KIND = "patch"
FULL_KINDS = ("latest", "version")


class DiffSequencer:
    """Computes and checks the one-version-per-step chain between two versions."""

    def __init__(
        self,
        resolver: VersionResolver,
        layout: InstanceLayout,
        *,
        max_patch_bytes: int,
        archive_extension: str = "pwr",
    ) -> None:
        self._resolver = resolver
        self._layout = layout
        self._max_patch_bytes = max_patch_bytes
        self._extension = archive_extension

    def plan(self, branch: str, installed_version: int, target_version: int) -> PatchSequencePlan:
        """Versions ``installed+1 .. target`` in ascending order."""

        steps = tuple(
            PatchStep(version=version, url=self._resolver.archive_url(branch, version))
            for version in range(installed_version + 1, target_version + 1)
        )
        return PatchSequencePlan(installed_version, target_version, steps)

    def validate(self, branch: str, plan: PatchSequencePlan) -> PatchSequencePlan:
        """Probe every step before anything is downloaded.

        Raises :class:`InstallError` if an archive is missing or larger than
        the configured guard, so a chain is either fully available or not
        attempted at all.
        """

        checked: list[PatchStep] = []
        for step in plan.steps:
            info = self._resolver.probe(branch, step.version)
            if not info.exists:
                raise InstallError(f"Patch archive for version {step.version} is not available")
            if info.content_length is not None and info.content_length > self._max_patch_bytes:
                raise InstallError(
                    f"Patch archive for version {step.version} is {info.content_length} bytes, "
                    f"above the {self._max_patch_bytes} byte limit"
                )
            checked.append(PatchStep(step.version, step.url, info.content_length))
        return PatchSequencePlan(plan.installed_version, plan.target_version, tuple(checked))

    def patch_cache_path(self, branch: str, version: int) -> Path:
        return self._layout.cache_dir / f"{normalize_branch(branch)}_{PATCH_KIND}_{version}.{self._extension}"

    def full_cache_path(self, branch: str, version: int, *, tracks_latest: bool) -> Path:
        kind = FULL_KINDS[0] if tracks_latest else FULL_KINDS[1]
        return self._layout.cache_dir / f"{normalize_branch(branch)}_{kind}_{version}.{self._extension}"

    def infer_installed_version(self, branch: str) -> int:
        """Highest version embedded in a cached archive name, or ``0``."""

        branch = normalize_branch(branch)
        cache_dir = self._layout.cache_dir
        if not cache_dir.is_dir():
            return 0
        pattern = re.compile(
            rf"^{re.escape(branch)}_(?:{PATCH_KIND}|{'|'.join(FULL_KINDS)})_(\d+)\.{re.escape(self._extension)}$"
        )
        best = 0
        for path in cache_dir.iterdir():
            match = pattern.match(path.name)
            if match is None or not path.is_file():
                continue
            best = max(best, int(match.group(1)))
        if best:
            _LOGGER.info("Inferred installed %s version %d from cached archives", branch, best)
        return best


__all__ = ["DiffSequencer"]
