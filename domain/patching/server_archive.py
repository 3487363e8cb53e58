"""Length-preserving domain redirect for the bundled server archive.

Compiled classes store string constants with a length field in the constant
pool, so a replacement must occupy exactly as many bytes as the literal it
overwrites.  Mismatches are refused before anything is written.
"""

from __future__ import annotations

import io
import logging
import os
import zipfile
import zlib
from pathlib import Path
from typing import Sequence

from domain.patching.encodings import ByteReplacer
from domain.patching.files import ensure_backup, remove_quietly
from domain.patching.ledger import PatchLedger
from domain.patching.models import PatchError, PatchResult, PatchStatus, UnsafePatchError
from domain.patching.strategy import DomainStrategy

_LOGGER = logging.getLogger(__name__)

SERVER_ARCHIVE = Path("Server") / "HytaleServer.jar"
CLASS_SUFFIX = ".class"
SESSION_HOST = "sessions"


def archive_replacements(strategy: DomainStrategy) -> tuple[tuple[bytes, bytes], ...]:
    """Return the byte pairs rewritten inside class entries."""

    old_host = f"{SESSION_HOST}.{strategy.original_domain}"
    new_host = f"{SESSION_HOST}.{strategy.main_domain}"
    return (
        (f"https://{old_host}".encode("utf-8"), f"https://{new_host}".encode("utf-8")),
        (old_host.encode("utf-8"), new_host.encode("utf-8")),
    )


def validate_replacements(pairs: Sequence[tuple[bytes, bytes]]) -> None:
    for old, new in pairs:
        if len(old) != len(new):
            raise UnsafePatchError(
                f"'{new.decode('utf-8')}' is {len(new)} bytes but '{old.decode('utf-8')}' "
                f"is {len(old)} bytes; class constants cannot change length"
            )


def archive_contains(data: bytes, pattern: bytes) -> bool:
    """Return ``True`` if any class entry of the archive ``data`` holds ``pattern``."""

    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            for info in archive.infolist():
                if info.filename.endswith(CLASS_SUFFIX) and pattern in archive.read(info):
                    return True
    except (zipfile.BadZipFile, zlib.error, EOFError):
        return False
    return False


class ServerArchivePatcher:
    """Rewrites the session host inside every class file of the server archive."""

    def __init__(self, ledger: PatchLedger, *, replacer: ByteReplacer | None = None) -> None:
        self._ledger = ledger
        self._replacer = replacer or ByteReplacer()

    def patch(self, archive_path: Path, strategy: DomainStrategy) -> PatchResult:
        if not archive_path.is_file():
            _LOGGER.warning("Server archive not found at %s; skipping", archive_path)
            return PatchResult(
                archive_path,
                PatchStatus.MISSING,
                warning=f"Server archive not found: {archive_path.name}",
            )

        pairs = archive_replacements(strategy)
        validate_replacements(pairs)
        new_marker = pairs[-1][1]

        try:
            data = archive_path.read_bytes()
        except OSError as exc:
            raise PatchError(f"Unable to read {archive_path.name}: {exc}", artifact=archive_path) from exc
        if self._ledger.is_verified(
            archive_path, strategy, data, lambda current: archive_contains(current, new_marker)
        ):
            _LOGGER.info("Server archive already patched for %s", strategy.target_domain)
            return PatchResult(archive_path, PatchStatus.ALREADY_PATCHED)

        staging = archive_path.with_name(archive_path.name + ".patching")
        try:
            count = self._rewrite(data, staging, pairs)
        except UnsafePatchError:
            remove_quietly(staging)
            raise
        except (zipfile.BadZipFile, zlib.error, EOFError) as exc:
            remove_quietly(staging)
            raise PatchError(f"Server archive is not a valid zip: {exc}", artifact=archive_path) from exc
        except OSError as exc:
            remove_quietly(staging)
            raise PatchError(f"Unable to rewrite {archive_path.name}: {exc}", artifact=archive_path) from exc

        if count == 0:
            remove_quietly(staging)
            _LOGGER.warning("No session host literals found in %s", archive_path)
            return PatchResult(
                archive_path,
                PatchStatus.NOT_FOUND,
                warning="No occurrences found - the server may already be patched",
            )

        try:
            ensure_backup(archive_path)
            os.replace(staging, archive_path)
            self._ledger.record(archive_path, strategy, archive_path.read_bytes())
        except OSError as exc:
            remove_quietly(staging)
            raise PatchError(f"Unable to write {archive_path.name}: {exc}", artifact=archive_path) from exc
        _LOGGER.info("Patched %d occurrence(s) in %s", count, archive_path)
        return PatchResult(archive_path, PatchStatus.PATCHED, replacements=count, encoding="utf-8")

    def _rewrite(self, data: bytes, staging: Path, pairs: Sequence[tuple[bytes, bytes]]) -> int:
        total = 0
        with zipfile.ZipFile(io.BytesIO(data)) as source, zipfile.ZipFile(staging, "w") as target:
            for info in source.infolist():
                content = source.read(info)
                if info.filename.endswith(CLASS_SUFFIX):
                    buffer = bytearray(content)
                    entry_count = 0
                    for old, new in pairs:
                        entry_count += self._replacer.replace_exact(buffer, old, new)
                    if len(buffer) != len(content):
                        raise UnsafePatchError(f"Entry {info.filename} changed length while patching")
                    if entry_count:
                        _LOGGER.debug("Patched %d literal(s) in %s", entry_count, info.filename)
                        content = bytes(buffer)
                        total += entry_count
                target.writestr(_copy_info(info), content)
        return total


def _copy_info(info: zipfile.ZipInfo) -> zipfile.ZipInfo:
    clone = zipfile.ZipInfo(info.filename, date_time=info.date_time)
    clone.compress_type = info.compress_type
    clone.external_attr = info.external_attr
    clone.comment = info.comment
    return clone


__all__ = [
    "SERVER_ARCHIVE",
    "ServerArchivePatcher",
    "archive_contains",
    "archive_replacements",
    "validate_replacements",
]
