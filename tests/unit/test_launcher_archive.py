from __future__ import annotations

import io
import tarfile
import zipfile
from pathlib import Path

import pytest

from services.launcher.archive import (
    ArchiveError,
    extract_archive,
    extract_tar_safely,
    extract_zip_safely,
    flatten_single_directory,
)
from tests.unit.launcher_test_utils import build_tar_gz, build_zip


def test_extract_zip_writes_entries(tmp_path: Path) -> None:
    archive = build_zip(tmp_path / "tool.zip", {"butler": b"bin", "lib/7z.so": b"lib"}, modes={"butler": 0o755})

    count = extract_zip_safely(archive, tmp_path / "out")

    assert count == 2
    assert (tmp_path / "out" / "butler").read_bytes() == b"bin"
    assert (tmp_path / "out" / "lib" / "7z.so").read_bytes() == b"lib"


@pytest.mark.parametrize("name", ["../escape.txt", "/abs/path.txt", "C:/windows/evil.dll", "a/../../b.txt"])
def test_extract_zip_rejects_unsafe_paths(tmp_path: Path, name: str) -> None:
    archive = tmp_path / "evil.zip"
    with zipfile.ZipFile(archive, "w") as handle:
        handle.writestr(name, b"x")

    with pytest.raises(ArchiveError):
        extract_zip_safely(archive, tmp_path / "out")

    assert not (tmp_path / "escape.txt").exists()


def test_extract_zip_rejects_corrupt_archive(tmp_path: Path) -> None:
    archive = tmp_path / "broken.zip"
    archive.write_bytes(b"not a zip")

    with pytest.raises(ArchiveError, match="broken.zip"):
        extract_zip_safely(archive, tmp_path / "out")


def test_extract_tar_keeps_internal_symlinks(tmp_path: Path) -> None:
    archive = build_tar_gz(
        tmp_path / "jre.tar.gz",
        {"jre/bin/java": b"java", "jre/lib/libjvm.so": b"jvm"},
        symlinks={"jre/lib/current": "libjvm.so"},
    )

    extract_tar_safely(archive, tmp_path / "out")

    link = tmp_path / "out" / "jre" / "lib" / "current"
    assert link.is_symlink()
    assert link.read_bytes() == b"jvm"


def test_extract_tar_rejects_escaping_symlink(tmp_path: Path) -> None:
    archive = build_tar_gz(tmp_path / "jre.tar.gz", {}, symlinks={"jre/passwd": "../../../etc/passwd"})

    with pytest.raises(ArchiveError, match="link escaping"):
        extract_tar_safely(archive, tmp_path / "out")


def test_extract_tar_rejects_traversal(tmp_path: Path) -> None:
    archive = tmp_path / "evil.tar.gz"
    with tarfile.open(archive, "w:gz") as handle:
        info = tarfile.TarInfo("../outside.txt")
        info.size = 1
        handle.addfile(info, io.BytesIO(b"x"))

    with pytest.raises(ArchiveError):
        extract_tar_safely(archive, tmp_path / "out")

    assert not (tmp_path / "outside.txt").exists()


def test_extract_archive_detects_format(tmp_path: Path) -> None:
    zipped = build_zip(tmp_path / "runtime.bin", {"bin/java.exe": b"exe"})
    tarred = build_tar_gz(tmp_path / "runtime.tar.gz", {"bin/java": b"elf"})

    extract_archive(zipped, tmp_path / "zip-out")
    extract_archive(tarred, tmp_path / "tar-out")

    assert (tmp_path / "zip-out" / "bin" / "java.exe").is_file()
    assert (tmp_path / "tar-out" / "bin" / "java").is_file()


def test_flatten_single_directory(tmp_path: Path) -> None:
    root = tmp_path / "jre"
    (root / "jdk-25.0.1+8-jre" / "bin").mkdir(parents=True)
    (root / "jdk-25.0.1+8-jre" / "bin" / "java").write_bytes(b"java")

    wrapper = flatten_single_directory(root)

    assert wrapper is not None
    assert wrapper.name == "jdk-25.0.1+8-jre"
    assert sorted(child.name for child in root.iterdir()) == ["bin"]
    assert (root / "bin" / "java").read_bytes() == b"java"


def test_flatten_uses_nested_home_for_mac_bundles(tmp_path: Path) -> None:
    root = tmp_path / "jre"
    home = root / "jdk-25.jre" / "Contents" / "Home"
    (home / "bin").mkdir(parents=True)
    (home / "bin" / "java").write_bytes(b"java")

    flatten_single_directory(root, nested=("Contents", "Home"))

    assert (root / "bin" / "java").is_file()
    assert not (root / "Contents").exists()


def test_flatten_leaves_multiple_entries_alone(tmp_path: Path) -> None:
    (tmp_path / "bin").mkdir()
    (tmp_path / "lib").mkdir()

    assert flatten_single_directory(tmp_path) is None
