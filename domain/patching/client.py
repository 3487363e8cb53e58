"""Domain redirect for the native game client executable."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

from domain.patching.encodings import (
    ByteReplacer,
    EncodingMatch,
    LengthPrefixedEncoding,
    ReplacementPass,
    Utf16LeEncoding,
    Utf8Encoding,
    contains_any,
)
from domain.patching.files import ensure_backup, replace_file_bytes
from domain.patching.ledger import PatchLedger
from domain.patching.models import PatchError, PatchResult, PatchStatus
from domain.patching.strategy import DomainStrategy

_LOGGER = logging.getLogger(__name__)

TELEMETRY_DSN = "https://ca900df42fcf57d4dd8401a86ddd7da2@sentry.hytale.com/2"
SUBDOMAIN_PREFIXES = (
    "https://tools.",
    "https://sessions.",
    "https://account-data.",
    "https://telemetry.",
)
SUBDOMAIN_HOSTS = ("sessions", "tools", "account-data", "telemetry", "api")
PROTOCOL = "https://"


def build_replacement_passes(strategy: DomainStrategy) -> tuple[ReplacementPass, ...]:
    """Return the ordered passes used to redirect a client executable."""

    original = strategy.original_domain
    recorded: list[tuple[str, str]] = [
        (TELEMETRY_DSN, f"{PROTOCOL}t@{strategy.target_domain}/2"),
        (original, strategy.main_domain),
    ]
    raw: list[tuple[str, str]] = []
    if strategy.is_split:
        new_prefix = PROTOCOL + strategy.subdomain_prefix
        recorded.extend((prefix, new_prefix) for prefix in SUBDOMAIN_PREFIXES)
        raw.extend(
            (f"{PROTOCOL}{host}.{original}", f"{PROTOCOL}{strategy.target_domain}")
            for host in SUBDOMAIN_HOSTS
        )
    raw.append((original, strategy.main_domain))
    return (
        ReplacementPass(LengthPrefixedEncoding(), tuple(recorded)),
        ReplacementPass(Utf8Encoding(), tuple(raw)),
        ReplacementPass(Utf16LeEncoding(partial_literals=(original,)), tuple(raw)),
    )


def contains_redirect(data: bytes, strategy: DomainStrategy) -> bool:
    """Return ``True`` if the replacement domain is present in any layout."""

    return contains_any(
        data,
        strategy.main_domain,
        (LengthPrefixedEncoding(), Utf8Encoding(), Utf16LeEncoding()),
    )


class ExecutablePatcher:
    """Rewrites embedded endpoint literals in the client executable."""

    def __init__(
        self,
        ledger: PatchLedger,
        *,
        replacer: ByteReplacer | None = None,
        after_write: Callable[[Path], None] | None = None,
    ) -> None:
        self._ledger = ledger
        self._replacer = replacer or ByteReplacer()
        self._after_write = after_write

    def patch_bytes(self, data: bytes, strategy: DomainStrategy) -> EncodingMatch:
        return self._replacer.cascade(data, build_replacement_passes(strategy))

    def patch(self, executable: Path, strategy: DomainStrategy) -> PatchResult:
        if not executable.is_file():
            _LOGGER.warning("Client executable not found at %s", executable)
            return PatchResult(
                executable,
                PatchStatus.MISSING,
                warning=f"Client executable not found: {executable.name}",
            )

        try:
            data = executable.read_bytes()
        except OSError as exc:
            raise PatchError(f"Unable to read {executable.name}: {exc}", artifact=executable) from exc
        _LOGGER.info(
            "Patching %s (%.2f MB) for %s in %s mode",
            executable,
            len(data) / (1024 * 1024),
            strategy.target_domain,
            strategy.mode.value,
        )
        if self._ledger.is_verified(
            executable, strategy, data, lambda current: contains_redirect(current, strategy)
        ):
            _LOGGER.info("Client already patched for %s", strategy.target_domain)
            return PatchResult(executable, PatchStatus.ALREADY_PATCHED)

        match = self.patch_bytes(data, strategy)
        if not match.found:
            _LOGGER.warning(
                "No endpoint literals found in %s; it may already be patched", executable
            )
            return PatchResult(
                executable,
                PatchStatus.NOT_FOUND,
                warning="No occurrences found - the client may already be patched",
            )

        try:
            ensure_backup(executable)
            replace_file_bytes(executable, match.data)
            self._ledger.record(executable, strategy, match.data)
        except OSError as exc:
            raise PatchError(f"Unable to write {executable.name}: {exc}", artifact=executable) from exc
        if self._after_write is not None:
            self._after_write(executable)
        _LOGGER.info(
            "Patched %d occurrence(s) in %s using %s literals",
            match.count,
            executable,
            match.encoding,
        )
        return PatchResult(
            executable, PatchStatus.PATCHED, replacements=match.count, encoding=match.encoding
        )


__all__ = [
    "ExecutablePatcher",
    "SUBDOMAIN_HOSTS",
    "SUBDOMAIN_PREFIXES",
    "TELEMETRY_DSN",
    "build_replacement_passes",
    "contains_redirect",
]
