"""Streaming downloads with cache reuse and cooperative cancellation."""

from __future__ import annotations

import logging
import os
from http.client import HTTPException
from pathlib import Path
from typing import Callable, Optional

from services.launcher import net
from services.launcher.models import DownloadError, DownloadResult, DownloadTask, TransferStatus
from shared.cancellation import OperationCancelled

_LOGGER = logging.getLogger(__name__)

# Receives (percent, bytes_downloaded, bytes_total).
ProgressCallback = Callable[[int, int, Optional[int]], None]


class DownloadManager:
    """Streams HTTP payloads to disk through a ``.part`` staging file."""

    def __init__(self, *, chunk_size: int = 64 * 1024, timeout: float = 60) -> None:
        self._chunk_size = max(1024, int(chunk_size))
        self._timeout = timeout

    def download(self, task: DownloadTask, on_progress: ProgressCallback | None = None) -> DownloadResult:
        """Download ``task`` unless a cached copy of the right size exists.

        Returns a ``CANCELLED`` result when the task's token fires; no file is
        left at the destination or the staging path in that case.
        """

        destination = task.destination
        if task.token.cancelled:
            return DownloadResult(TransferStatus.CANCELLED, destination)

        if destination.exists() and self._reuse_cached(task):
            size = destination.stat().st_size
            if on_progress is not None:
                on_progress(100, size, size)
            return DownloadResult(TransferStatus.CACHED, destination, 0)

        destination.parent.mkdir(parents=True, exist_ok=True)
        staging = task.staging_path
        _remove_if_present(staging)
        try:
            written = self._stream(task, staging, on_progress)
        except OperationCancelled:
            _remove_if_present(staging)
            _LOGGER.info("Download of %s cancelled", task.url)
            return DownloadResult(TransferStatus.CANCELLED, destination)
        except DownloadError:
            _remove_if_present(staging)
            raise
        except (OSError, HTTPException) as exc:
            _remove_if_present(staging)
            raise DownloadError(f"Download of {task.url} failed: {exc}", url=task.url) from exc

        os.replace(staging, destination)
        _LOGGER.info("Downloaded %s (%d bytes) to %s", task.url, written, destination)
        return DownloadResult(TransferStatus.COMPLETED, destination, written)

    def _reuse_cached(self, task: DownloadTask) -> bool:
        destination = task.destination
        local_size = destination.stat().st_size
        remote_size = task.expected_size
        if remote_size is None:
            remote_size = net.head(task.url, timeout=self._timeout).content_length

        if remote_size is None:
            if local_size > 0:
                _LOGGER.info(
                    "Remote size of %s unknown; trusting cached %s (%d bytes)",
                    task.url,
                    destination,
                    local_size,
                )
                return True
            _remove_if_present(destination)
            return False

        if local_size == remote_size:
            _LOGGER.info("Reusing cached %s (%d bytes)", destination, local_size)
            return True

        _LOGGER.info(
            "Cached %s is %d bytes but the server reports %d; downloading again",
            destination,
            local_size,
            remote_size,
        )
        destination.unlink()
        return False

    def _stream(self, task: DownloadTask, staging: Path, on_progress: ProgressCallback | None) -> int:
        token = task.token
        written = 0
        last_percent = -1
        with net.open_stream(task.url, timeout=self._timeout) as response:
            total = net.content_length(response) or task.expected_size
            with staging.open("wb") as target:
                while True:
                    token.raise_if_cancelled()
                    chunk = response.read(self._chunk_size)
                    if not chunk:
                        break
                    target.write(chunk)
                    written += len(chunk)
                    if on_progress is not None and total:
                        percent = min(100, written * 100 // total)
                        if percent != last_percent:
                            last_percent = percent
                            on_progress(percent, written, total)

        if total is not None and written != total:
            raise DownloadError(
                f"Download of {task.url} ended after {written} of {total} bytes", url=task.url
            )
        return written


def _remove_if_present(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        return


__all__ = ["DownloadManager", "ProgressCallback"]
