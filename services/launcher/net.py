"""The single HTTP seam used by the launcher services."""

from __future__ import annotations

import logging
from http.client import HTTPException
from typing import IO
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from app.version import get_user_agent
from services.launcher.models import DownloadError, RemoteInfo

_LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30


def build_request(url: str, method: str = "GET") -> Request:
    return Request(url, method=method, headers={"User-Agent": get_user_agent()})


def head(url: str, *, timeout: float = DEFAULT_TIMEOUT) -> RemoteInfo:
    """Probe ``url`` without fetching the body.

    Any failure is reported as a missing resource; callers treat probes as
    best effort.
    """

    try:
        with urlopen(build_request(url, "HEAD"), timeout=timeout) as response:  # nosec - HTTPS endpoints
            status = getattr(response, "status", 200)
            if status is not None and not 200 <= status < 300:
                return RemoteInfo(exists=False)
            return RemoteInfo(exists=True, content_length=content_length(response))
    except (OSError, ValueError, HTTPException) as exc:
        _LOGGER.debug("HEAD %s failed: %s", url, exc)
        return RemoteInfo(exists=False)


def open_stream(url: str, *, timeout: float = DEFAULT_TIMEOUT) -> IO[bytes]:
    """Open ``url`` for streaming; non-success statuses raise :class:`DownloadError`."""

    try:
        response = urlopen(build_request(url), timeout=timeout)  # nosec - HTTPS endpoints
    except HTTPError as exc:
        raise DownloadError(f"Server returned HTTP {exc.code} for {url}", url=url, status=exc.code) from exc
    except (URLError, OSError, HTTPException) as exc:
        raise DownloadError(f"Unable to reach {url}: {exc}", url=url) from exc
    status = getattr(response, "status", 200)
    if status is not None and not 200 <= status < 300:
        response.close()
        raise DownloadError(f"Server returned HTTP {status} for {url}", url=url, status=status)
    return response


def read_text(url: str, *, timeout: float = DEFAULT_TIMEOUT) -> str:
    with open_stream(url, timeout=timeout) as response:
        return response.read().decode("utf-8")


def content_length(response: object) -> int | None:
    headers = getattr(response, "headers", None)
    raw = headers.get("Content-Length") if headers is not None else None
    if raw is None:
        return None
    try:
        length = int(raw)
    except (TypeError, ValueError):
        return None
    return length if length >= 0 else None


__all__ = ["build_request", "content_length", "head", "open_stream", "read_text"]
