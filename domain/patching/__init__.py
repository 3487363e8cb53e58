"""Byte-level domain redirect for the game client and server archive."""

from __future__ import annotations

from domain.patching.encodings import (
    ByteReplacer,
    EncodingMatch,
    LengthPrefixedEncoding,
    ReplacementPass,
    Utf16LeEncoding,
    Utf8Encoding,
)
from domain.patching.ledger import LEDGER_SCHEMA_VERSION, PatchLedger, PatchLedgerEntry
from domain.patching.models import PatchError, PatchMode, PatchResult, PatchStatus, UnsafePatchError
from domain.patching.patcher import (
    BinaryPatcher,
    InstallationPatchResult,
    client_executable_path,
    server_archive_path,
)
from domain.patching.strategy import DomainStrategy

__all__ = [
    "BinaryPatcher",
    "ByteReplacer",
    "DomainStrategy",
    "EncodingMatch",
    "InstallationPatchResult",
    "LEDGER_SCHEMA_VERSION",
    "LengthPrefixedEncoding",
    "PatchError",
    "PatchLedger",
    "PatchLedgerEntry",
    "PatchMode",
    "PatchResult",
    "PatchStatus",
    "ReplacementPass",
    "UnsafePatchError",
    "Utf16LeEncoding",
    "Utf8Encoding",
    "client_executable_path",
    "server_archive_path",
]
