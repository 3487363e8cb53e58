"""Host platform detection mapped onto the names used by the patch server."""

from __future__ import annotations

import platform
import sys
from dataclasses import dataclass

OS_WINDOWS = "windows"
OS_DARWIN = "darwin"
OS_LINUX = "linux"

ARCH_AMD64 = "amd64"
ARCH_ARM64 = "arm64"

_ARCH_ALIASES = {
    "x86_64": ARCH_AMD64,
    "amd64": ARCH_AMD64,
    "x64": ARCH_AMD64,
    "arm64": ARCH_ARM64,
    "aarch64": ARCH_ARM64,
    "armv8": ARCH_ARM64,
}


@dataclass(frozen=True)
class HostPlatform:
    """Operating system and CPU architecture of the machine running the game."""

    os_name: str
    arch: str

    @property
    def is_windows(self) -> bool:
        return self.os_name == OS_WINDOWS

    @property
    def is_macos(self) -> bool:
        return self.os_name == OS_DARWIN

    @property
    def is_linux(self) -> bool:
        return self.os_name == OS_LINUX

    @property
    def executable_suffix(self) -> str:
        return ".exe" if self.is_windows else ""


def normalize_os(value: str) -> str:
    lowered = value.strip().lower()
    if lowered.startswith("win"):
        return OS_WINDOWS
    if lowered in {"darwin", "mac", "macos", "osx"}:
        return OS_DARWIN
    return OS_LINUX


def normalize_arch(value: str) -> str:
    return _ARCH_ALIASES.get(value.strip().lower(), ARCH_AMD64)


def detect_platform() -> HostPlatform:
    """Return the :class:`HostPlatform` for the current interpreter."""

    return HostPlatform(
        os_name=normalize_os(sys.platform),
        arch=normalize_arch(platform.machine() or ""),
    )


__all__ = [
    "ARCH_AMD64",
    "ARCH_ARM64",
    "HostPlatform",
    "OS_DARWIN",
    "OS_LINUX",
    "OS_WINDOWS",
    "detect_platform",
    "normalize_arch",
    "normalize_os",
]
