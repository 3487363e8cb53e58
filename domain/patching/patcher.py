"""Entry point applying the domain redirect to an installed game directory."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from domain.patching.client import ExecutablePatcher
from domain.patching.ledger import PatchLedger
from domain.patching.models import PatchResult
from domain.patching.server_archive import SERVER_ARCHIVE, ServerArchivePatcher
from domain.patching.strategy import ORIGINAL_DOMAIN, DomainStrategy
from shared.platform import HostPlatform

_LOGGER = logging.getLogger(__name__)

MAC_APP_BUNDLE = Path("Client") / "Hytale.app"


@dataclass(frozen=True)
class InstallationPatchResult:
    client: PatchResult
    server: PatchResult

    @property
    def warnings(self) -> tuple[str, ...]:
        return tuple(result.warning for result in (self.client, self.server) if result.warning)


def client_executable_path(game_dir: Path, platform: HostPlatform) -> Path:
    """Location of the game client binary inside an installation."""

    if platform.is_macos:
        return game_dir / MAC_APP_BUNDLE / "Contents" / "MacOS" / "HytaleClient"
    if platform.is_windows:
        return game_dir / "Client" / "HytaleClient.exe"
    return game_dir / "Client" / "HytaleClient"


def server_archive_path(game_dir: Path) -> Path:
    return game_dir / SERVER_ARCHIVE


def adhoc_codesign(path: Path) -> None:
    """Re-sign a modified macOS bundle so Gatekeeper will still run it."""

    bundle = next((parent for parent in path.parents if parent.suffix == ".app"), path)
    try:
        completed = subprocess.run(
            ["codesign", "--force", "--deep", "--sign", "-", str(bundle)],
            capture_output=True,
            text=True,
            timeout=120,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        _LOGGER.warning("Unable to re-sign %s: %s", bundle, exc)
        return
    if completed.returncode != 0:
        _LOGGER.warning("codesign exited with %s: %s", completed.returncode, completed.stderr.strip())
    else:
        _LOGGER.info("Re-signed %s", bundle)


class BinaryPatcher:
    """Redirects the client executable and server archive to another domain."""

    def __init__(
        self,
        platform: HostPlatform,
        *,
        patcher_version: str,
        original_domain: str = ORIGINAL_DOMAIN,
        min_domain_length: int = 4,
        max_domain_length: int = 16,
        codesign: Callable[[Path], None] | None = None,
    ) -> None:
        self._platform = platform
        self._original_domain = original_domain
        self._min_length = min_domain_length
        self._max_length = max_domain_length
        ledger = PatchLedger(patcher_version)
        if codesign is None and platform.is_macos:
            codesign = adhoc_codesign
        self._client = ExecutablePatcher(ledger, after_write=codesign)
        self._server = ServerArchivePatcher(ledger)

    def strategy_for(self, target_domain: str) -> DomainStrategy:
        return DomainStrategy.for_target(
            target_domain,
            original_domain=self._original_domain,
            min_length=self._min_length,
            max_length=self._max_length,
        )

    def patch_client(self, game_dir: Path, target_domain: str) -> PatchResult:
        strategy = self.strategy_for(target_domain)
        return self._client.patch(client_executable_path(game_dir, self._platform), strategy)

    def patch_server(self, game_dir: Path, target_domain: str) -> PatchResult:
        strategy = self.strategy_for(target_domain)
        return self._server.patch(server_archive_path(game_dir), strategy)

    def patch_installation(self, game_dir: Path, target_domain: str) -> InstallationPatchResult:
        """Patch the client, then the server archive.

        Raises :class:`~domain.patching.models.PatchError` from either step;
        the caller decides which failures are fatal.
        """

        client = self.patch_client(game_dir, target_domain)
        server = self.patch_server(game_dir, target_domain)
        return InstallationPatchResult(client=client, server=server)


__all__ = [
    "BinaryPatcher",
    "InstallationPatchResult",
    "adhoc_codesign",
    "client_executable_path",
    "server_archive_path",
]
