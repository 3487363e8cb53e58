from __future__ import annotations

from pathlib import Path

import pytest

from app.config import PatchServerConfig, VersionProbeConfig
from services.launcher import DiffSequencer, InstallError, InstanceLayout, LatestPointerStore, VersionResolver
from services.launcher.models import RemoteInfo
from tests.unit.launcher_test_utils import LINUX

_BASE = "https://patches.test/patches"


def _sequencer(tmp_path: Path, sizes: dict[int, int | None] | None = None, *, limit: int = 1000) -> DiffSequencer:
    sizes = sizes or {}

    def probe(url: str) -> RemoteInfo:
        version = int(url.rsplit("/", 1)[-1].split(".")[0])
        if version not in sizes:
            return RemoteInfo(exists=False)
        return RemoteInfo(exists=True, content_length=sizes[version])

    layout = InstanceLayout(tmp_path, LINUX)
    resolver = VersionResolver(
        layout,
        LatestPointerStore(layout),
        patch_server=PatchServerConfig(base_url=_BASE),
        probing=VersionProbeConfig(),
        probe=probe,
    )
    return DiffSequencer(resolver, layout, max_patch_bytes=limit)


def test_plan_lists_each_intermediate_version(tmp_path: Path) -> None:
    plan = _sequencer(tmp_path).plan("release", 3, 7)

    assert plan.versions == [4, 5, 6, 7]
    assert plan.steps[0].url == f"{_BASE}/linux/amd64/release/0/4.pwr"


def test_plan_is_empty_when_up_to_date(tmp_path: Path) -> None:
    sequencer = _sequencer(tmp_path)

    assert sequencer.plan("release", 7, 7).is_empty
    assert sequencer.plan("release", 8, 7).is_empty


def test_validate_records_sizes(tmp_path: Path) -> None:
    sequencer = _sequencer(tmp_path, {4: 100, 5: None})

    plan = sequencer.validate("release", sequencer.plan("release", 3, 5))

    assert [(step.version, step.size) for step in plan.steps] == [(4, 100), (5, None)]


def test_validate_rejects_missing_step(tmp_path: Path) -> None:
    sequencer = _sequencer(tmp_path, {4: 10, 6: 10})

    with pytest.raises(InstallError, match="version 5"):
        sequencer.validate("release", sequencer.plan("release", 3, 6))


def test_validate_rejects_oversized_step(tmp_path: Path) -> None:
    sequencer = _sequencer(tmp_path, {4: 10, 5: 5000}, limit=1000)

    with pytest.raises(InstallError, match="limit"):
        sequencer.validate("release", sequencer.plan("release", 3, 5))


def test_cache_paths_encode_branch_kind_and_version(tmp_path: Path) -> None:
    sequencer = _sequencer(tmp_path)

    assert sequencer.patch_cache_path("beta", 4) == tmp_path / "Cache" / "pre-release_patch_4.pwr"
    assert sequencer.full_cache_path("release", 9, tracks_latest=True) == (
        tmp_path / "Cache" / "release_latest_9.pwr"
    )
    assert sequencer.full_cache_path("release", 9, tracks_latest=False) == (
        tmp_path / "Cache" / "release_version_9.pwr"
    )


def test_infer_installed_version_from_cached_archives(tmp_path: Path) -> None:
    cache = tmp_path / "Cache"
    cache.mkdir()
    for name in (
        "release_latest_3.pwr",
        "release_patch_5.pwr",
        "pre-release_patch_12.pwr",
        "release_patch_9.pwr.part",
    ):
        (cache / name).write_bytes(b"x")

    sequencer = _sequencer(tmp_path)

    assert sequencer.infer_installed_version("release") == 5
    assert sequencer.infer_installed_version("pre-release") == 12


def test_infer_installed_version_without_cache(tmp_path: Path) -> None:
    assert _sequencer(tmp_path).infer_installed_version("release") == 0
