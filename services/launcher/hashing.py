"""Digest helpers for downloaded archives."""

from __future__ import annotations

import hashlib
from pathlib import Path


def calculate_sha256(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as source:
        for chunk in iter(lambda: source.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


def matches_sha256(path: Path, expected: str | None) -> bool:
    """Return ``True`` when ``expected`` is empty or equals the file digest."""

    if not expected:
        return True
    return calculate_sha256(path) == expected.strip().lower()


__all__ = ["calculate_sha256", "matches_sha256"]
