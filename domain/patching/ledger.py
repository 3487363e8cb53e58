"""Flag files recording which artifacts were patched for which domain."""

from __future__ import annotations

import hashlib
import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Mapping

from domain.patching.models import PatchMode
from domain.patching.strategy import DomainStrategy

_LOGGER = logging.getLogger(__name__)

LEDGER_SUFFIX = ".patched_custom"
LEDGER_SCHEMA_VERSION = 1


@dataclass(frozen=True)
class PatchLedgerEntry:
    """Typed form of the ``<artifact>.patched_custom`` JSON record."""

    patched_at: datetime
    original_domain: str
    target_domain: str
    mode: PatchMode
    main_domain: str
    subdomain_prefix: str
    patcher_version: str
    patched_sha256: str | None = None
    schema_version: int = LEDGER_SCHEMA_VERSION

    def to_json(self) -> dict[str, Any]:
        return {
            "schemaVersion": self.schema_version,
            "patchedAt": self.patched_at.isoformat(),
            "originalDomain": self.original_domain,
            "targetDomain": self.target_domain,
            "patchMode": self.mode.value,
            "mainDomain": self.main_domain,
            "subdomainPrefix": self.subdomain_prefix,
            "patcherVersion": self.patcher_version,
            "patchedSha256": self.patched_sha256,
        }

    @classmethod
    def from_json(cls, payload: Mapping[str, Any]) -> "PatchLedgerEntry | None":
        """Parse ``payload``; return ``None`` for records this version cannot read.

        Records written before the schema field existed are read as version 1.
        """

        schema_version = payload.get("schemaVersion", 1)
        if not isinstance(schema_version, int) or schema_version > LEDGER_SCHEMA_VERSION:
            return None
        try:
            patched_at = datetime.fromisoformat(str(payload["patchedAt"]))
            mode = PatchMode(str(payload["patchMode"]))
            target = str(payload["targetDomain"])
            original = str(payload["originalDomain"])
        except (KeyError, ValueError):
            return None
        digest = payload.get("patchedSha256")
        return cls(
            patched_at=patched_at,
            original_domain=original,
            target_domain=target,
            mode=mode,
            main_domain=str(payload.get("mainDomain") or target),
            subdomain_prefix=str(payload.get("subdomainPrefix") or ""),
            patcher_version=str(payload.get("patcherVersion") or ""),
            patched_sha256=digest if isinstance(digest, str) else None,
            schema_version=schema_version,
        )

    def matches(self, strategy: DomainStrategy) -> bool:
        return (
            self.target_domain == strategy.target_domain
            and self.original_domain == strategy.original_domain
        )


class PatchLedger:
    """Reads and writes per-artifact idempotency records."""

    def __init__(self, patcher_version: str, *, clock: Callable[[], datetime] | None = None) -> None:
        self._patcher_version = patcher_version
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @staticmethod
    def flag_path(artifact: Path) -> Path:
        return artifact.with_name(artifact.name + LEDGER_SUFFIX)

    def read(self, artifact: Path) -> PatchLedgerEntry | None:
        path = self.flag_path(artifact)
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError):
            _LOGGER.debug("Unable to read patch ledger at %s", path, exc_info=True)
            return None
        if not isinstance(payload, Mapping):
            return None
        entry = PatchLedgerEntry.from_json(payload)
        if entry is None:
            _LOGGER.info("Ignoring unreadable patch ledger record at %s", path)
        return entry

    def record(self, artifact: Path, strategy: DomainStrategy, data: bytes) -> PatchLedgerEntry:
        """Persist a record for ``artifact`` whose patched contents are ``data``."""

        entry = PatchLedgerEntry(
            patched_at=self._clock(),
            original_domain=strategy.original_domain,
            target_domain=strategy.target_domain,
            mode=strategy.mode,
            main_domain=strategy.main_domain,
            subdomain_prefix=strategy.subdomain_prefix,
            patcher_version=self._patcher_version,
            patched_sha256=hashlib.sha256(data).hexdigest(),
        )
        path = self.flag_path(artifact)
        staging = path.with_name(path.name + ".tmp")
        staging.write_text(json.dumps(entry.to_json(), indent=2), encoding="utf-8")
        os.replace(staging, path)
        _LOGGER.debug("Recorded patch ledger entry at %s", path)
        return entry

    def is_verified(
        self,
        artifact: Path,
        strategy: DomainStrategy,
        data: bytes,
        verify: Callable[[bytes], bool],
    ) -> bool:
        """Return ``True`` if a matching record exists and ``data`` backs it up.

        A record whose digest no longer matches is only trusted when
        ``verify`` finds the replacement in the current bytes.
        """

        entry = self.read(artifact)
        if entry is None or not entry.matches(strategy):
            return False
        if entry.patched_sha256 and hashlib.sha256(data).hexdigest() == entry.patched_sha256:
            return True
        if verify(data):
            return True
        _LOGGER.info("Patch ledger for %s is stale; the artifact will be patched again", artifact)
        return False


__all__ = ["LEDGER_SCHEMA_VERSION", "LEDGER_SUFFIX", "PatchLedger", "PatchLedgerEntry"]
