from __future__ import annotations

from pathlib import Path

import pytest

from services.launcher import DownloadError, DownloadManager
from services.launcher.models import DownloadTask, TransferStatus
from shared.cancellation import CancellationToken
from tests.unit.launcher_test_utils import FakePatchServer

_URL = "https://patches.test/linux/amd64/release/0/3.pwr"


def test_cached_file_of_matching_size_skips_download(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    server = FakePatchServer({_URL: b"abc"}).install(monkeypatch)
    destination = tmp_path / "release_latest_3.pwr"
    destination.write_bytes(b"xyz")

    result = DownloadManager().download(DownloadTask(_URL, destination))

    assert result.status is TransferStatus.CACHED
    assert server.count("GET") == 0
    assert server.count("HEAD") == 1
    assert destination.read_bytes() == b"xyz"


def test_expected_size_avoids_probe(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    server = FakePatchServer({_URL: b"abc"}).install(monkeypatch)
    destination = tmp_path / "patch.pwr"
    destination.write_bytes(b"xyz")

    result = DownloadManager().download(DownloadTask(_URL, destination, expected_size=3))

    assert result.status is TransferStatus.CACHED
    assert server.calls == []


def test_size_mismatch_replaces_cached_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    server = FakePatchServer({_URL: b"fresh payload"}).install(monkeypatch)
    destination = tmp_path / "release_latest_3.pwr"
    destination.write_bytes(b"stale")
    progress: list[tuple[int, int, int | None]] = []

    result = DownloadManager().download(
        DownloadTask(_URL, destination), lambda *values: progress.append(values)
    )

    assert result.status is TransferStatus.COMPLETED
    assert result.bytes_written == len(b"fresh payload")
    assert server.count("GET") == 1
    assert destination.read_bytes() == b"fresh payload"
    assert progress[-1] == (100, 13, 13)
    assert not (tmp_path / "release_latest_3.pwr.part").exists()


def test_unknown_remote_size_trusts_non_empty_cache(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    server = FakePatchServer({_URL: b"abc"}).install(monkeypatch)
    server.head_lengths[_URL] = None
    destination = tmp_path / "cached.pwr"
    destination.write_bytes(b"something")

    result = DownloadManager().download(DownloadTask(_URL, destination))

    assert result.status is TransferStatus.CACHED
    assert server.count("GET") == 0


def test_unknown_remote_size_replaces_empty_cache(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    server = FakePatchServer({_URL: b"abc"}).install(monkeypatch)
    server.head_lengths[_URL] = None
    destination = tmp_path / "cached.pwr"
    destination.write_bytes(b"")

    result = DownloadManager().download(DownloadTask(_URL, destination))

    assert result.status is TransferStatus.COMPLETED
    assert destination.read_bytes() == b"abc"


def test_cancellation_leaves_no_files(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    FakePatchServer({_URL: b"x" * 8192}).install(monkeypatch)
    destination = tmp_path / "big.pwr"
    token = CancellationToken()

    result = DownloadManager(chunk_size=1024).download(
        DownloadTask(_URL, destination, token=token), lambda *values: token.cancel()
    )

    assert result.cancelled
    assert not destination.exists()
    assert not (tmp_path / "big.pwr.part").exists()


def test_cancelled_token_returns_before_any_request(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    server = FakePatchServer({_URL: b"abc"}).install(monkeypatch)
    token = CancellationToken()
    token.cancel()

    result = DownloadManager().download(DownloadTask(_URL, tmp_path / "a.pwr", token=token))

    assert result.status is TransferStatus.CANCELLED
    assert server.calls == []


def test_http_error_raises_download_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    FakePatchServer().install(monkeypatch)
    destination = tmp_path / "missing.pwr"

    with pytest.raises(DownloadError) as excinfo:
        DownloadManager().download(DownloadTask(_URL, destination))

    assert excinfo.value.status == 404
    assert excinfo.value.url == _URL
    assert not destination.exists()
    assert not (tmp_path / "missing.pwr.part").exists()
