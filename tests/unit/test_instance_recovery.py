from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from services.launcher import InstallError
from services.launcher.recovery import InstanceRecovery


def _instance(tmp_path: Path) -> Path:
    instance = tmp_path / "instances" / "release" / "latest"
    (instance / "UserData" / "Saves").mkdir(parents=True)
    (instance / "UserData" / "Saves" / "world.dat").write_bytes(b"world")
    (instance / "Client").mkdir()
    (instance / "Client" / "HytaleClient").write_bytes(b"client")
    (instance / "Server").mkdir()
    (instance / "Server" / "HytaleServer.jar").write_bytes(b"jar")
    (instance / "staging-temp").mkdir()
    return instance


def test_rebuild_keeps_preserved_folders_only(tmp_path: Path) -> None:
    instance = _instance(tmp_path)
    temp_root = tmp_path / "tmp"
    temp_root.mkdir()

    restored = InstanceRecovery(temp_root=temp_root).rebuild(instance)

    assert restored == ["UserData", "Client"]
    assert sorted(child.name for child in instance.iterdir()) == ["Client", "UserData"]
    assert (instance / "UserData" / "Saves" / "world.dat").read_bytes() == b"world"
    assert (instance / "Client" / "HytaleClient").read_bytes() == b"client"
    assert list(temp_root.iterdir()) == []


def test_rebuild_without_preserved_folders(tmp_path: Path) -> None:
    instance = tmp_path / "instance"
    instance.mkdir()
    (instance / "junk.bin").write_bytes(b"x")

    assert InstanceRecovery(temp_root=tmp_path).rebuild(instance) == []
    assert instance.is_dir()
    assert list(instance.iterdir()) == []


def test_failed_backup_leaves_instance_untouched(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    instance = _instance(tmp_path)
    temp_root = tmp_path / "tmp"
    temp_root.mkdir()

    def failing_copytree(*args, **kwargs):
        raise PermissionError("locked")

    monkeypatch.setattr(shutil, "copytree", failing_copytree)

    with pytest.raises(InstallError, match="not modified"):
        InstanceRecovery(temp_root=temp_root).rebuild(instance)

    assert (instance / "Server" / "HytaleServer.jar").is_file()
    assert list(temp_root.iterdir()) == []


def test_failed_restore_keeps_backup(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    instance = _instance(tmp_path)
    temp_root = tmp_path / "tmp"
    temp_root.mkdir()

    def failing_move(source, destination):
        raise OSError("disk full")

    monkeypatch.setattr(shutil, "move", failing_move)

    with pytest.raises(InstallError, match="your data was kept"):
        InstanceRecovery(temp_root=temp_root).rebuild(instance)

    backups = list(temp_root.iterdir())
    assert len(backups) == 1
    assert (backups[0] / "UserData" / "Saves" / "world.dat").read_bytes() == b"world"
