"""Launcher version lookup."""

from __future__ import annotations

from functools import lru_cache
import os
import subprocess
from importlib import resources

from packaging.version import InvalidVersion, Version

_FALLBACK_VERSION = "0.0.0.dev0"
_VERSION_ENV = "HYLAUNCH_APP_VERSION"
_PRODUCT_NAME = "HyLaunch"


def _read_version_file() -> str | None:
    try:
        text = resources.files(__package__).joinpath("VERSION").read_text(encoding="utf-8")
    except (FileNotFoundError, ModuleNotFoundError):
        return None
    return _normalize(text)


def _version_from_env() -> str | None:
    env_version = os.environ.get(_VERSION_ENV)
    if not env_version:
        return None
    return _normalize(env_version)


def _version_from_git() -> str | None:
    try:
        output = subprocess.check_output(
            ["git", "describe", "--tags", "--abbrev=0"],
            stderr=subprocess.DEVNULL,
            text=True,
        )
    except (OSError, subprocess.CalledProcessError):
        return None
    return _normalize(output)


def _normalize(raw_version: str) -> str | None:
    """Return a PEP 440 rendering of ``raw_version`` or ``None`` if unusable."""

    candidate = raw_version.strip().lstrip("vV")
    if not candidate:
        return None
    try:
        return str(Version(candidate))
    except InvalidVersion:
        return None


@lru_cache(maxsize=1)
def get_app_version() -> str:
    """Return the launcher version.

    Precedence: ``HYLAUNCH_APP_VERSION``, the packaged ``VERSION`` file,
    the most recent git tag of a source checkout, then a development
    placeholder.
    """

    for resolver in (_version_from_env, _read_version_file, _version_from_git):
        version = resolver()
        if version:
            return version
    return _FALLBACK_VERSION


def get_user_agent() -> str:
    """User agent sent with every HTTP request the launcher makes."""

    return f"{_PRODUCT_NAME}/{get_app_version()}"


__all__ = ["get_app_version", "get_user_agent"]
