"""Result and error types shared by the domain-redirect patchers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class PatchMode(str, Enum):
    """How the replacement domain is laid over the original literals."""

    DIRECT = "direct"
    SPLIT = "split"


class PatchStatus(str, Enum):
    PATCHED = "patched"
    ALREADY_PATCHED = "already_patched"
    NOT_FOUND = "not_found"
    MISSING = "missing"


class PatchError(RuntimeError):
    """Raised when an artifact cannot be patched."""

    def __init__(self, message: str, *, artifact: Path | None = None) -> None:
        super().__init__(message)
        self.artifact = artifact

    @property
    def user_message(self) -> str:
        return f"Could not patch game files: {self}"


class UnsafePatchError(PatchError):
    """Raised before any write when a length-preserving rewrite is impossible."""

    @property
    def user_message(self) -> str:
        return f"Refused to patch the server archive: {self}"


@dataclass(frozen=True)
class PatchResult:
    """Outcome of patching one artifact.

    Every status is a success; failures raise :class:`PatchError`.
    """

    artifact: Path
    status: PatchStatus
    replacements: int = 0
    encoding: str | None = None
    warning: str | None = None

    @property
    def changed(self) -> bool:
        return self.status is PatchStatus.PATCHED


__all__ = [
    "PatchError",
    "PatchMode",
    "PatchResult",
    "PatchStatus",
    "UnsafePatchError",
]
