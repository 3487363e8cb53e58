"""Command line entry point for installing, patching and launching the game."""

from __future__ import annotations

import argparse
import logging
import sys
import threading
import uuid
from pathlib import Path
from typing import TextIO

from app.config import get_app_config
from domain.patching import PatchError, PatchStatus
from services.launcher import (
    InstallationOrchestrator,
    LauncherContext,
    LaunchOutcome,
    LaunchRequest,
    OrchestratorState,
    build_binary_patcher,
    build_orchestrator,
    build_version_resolver,
    normalize_branch,
)
from services.launcher.models import GameStateEvent, ProgressEvent
from shared.cancellation import CancellationToken
from shared.logging_config import LogVerbosity, ensure_app_logging, set_file_log_verbosity

_LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CANCELLED = 130


class _ConsoleProgressSink:
    def __init__(self, stream: TextIO) -> None:
        self._stream = stream
        self._last: tuple[str, int] | None = None

    def on_progress(self, event: ProgressEvent) -> None:
        key = (event.message, event.percent)
        if key == self._last:
            return
        self._last = key
        print(f"[{event.percent:3d}%] {event.message}", file=self._stream)

    def on_game_state(self, event: GameStateEvent) -> None:
        if event.exit_code is None:
            print(f"Game {event.state} (pid {event.pid})", file=self._stream)
        else:
            print(f"Game {event.state} with exit code {event.exit_code}", file=self._stream)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="hylaunch", description=__doc__)
    parser.add_argument(
        "--app-dir",
        type=Path,
        default=None,
        help="Launcher data directory (defaults to $HYLAUNCH_APP_DIR or ~/.hylaunch).",
    )
    parser.add_argument(
        "--log-level",
        choices=[level.value for level in LogVerbosity],
        default=None,
        help="Minimum severity written to the log file (default: info).",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    launch = commands.add_parser("launch", help="Install or update the game if needed, then start it.")
    launch.add_argument("--branch", default="release", help="Release channel (release or pre-release).")
    launch.add_argument(
        "--version", type=int, default=0, help="Version to run; 0 follows the latest release."
    )
    launch.add_argument("--name", default="Player", help="Display name passed to the client.")
    launch.add_argument("--uuid", default="", help="Player UUID; a random one is used when omitted.")
    launch.add_argument("--identity-token", default=None, help="Identity token for authenticated play.")
    launch.add_argument("--session-token", default=None, help="Session token for authenticated play.")
    launch.add_argument("--domain", default=None, help="Domain the client should be redirected to.")
    launch.add_argument("--no-patch", action="store_true", help="Start the client without redirecting it.")

    patch = commands.add_parser("patch", help="Redirect an installed game directory to another domain.")
    patch.add_argument("game_dir", type=Path, help="Directory that holds the Client folder.")
    patch.add_argument("--domain", default=None, help="Target domain (defaults to the configured one).")

    versions = commands.add_parser("versions", help="List the versions published on a branch.")
    versions.add_argument("--branch", default="release", help="Release channel (release or pre-release).")
    versions.add_argument("--refresh", action="store_true", help="Ignore the cached version list.")
    return parser.parse_args(argv)


def _exit_code(outcome: LaunchOutcome) -> int:
    if outcome.state is OrchestratorState.CANCELLED:
        return EXIT_CANCELLED
    if outcome.succeeded:
        return EXIT_OK
    return EXIT_ERROR


def run_launch(args: argparse.Namespace, context: LauncherContext, stream: TextIO) -> int:
    request = LaunchRequest(
        branch=normalize_branch(args.branch),
        version=max(0, args.version),
        player_name=args.name,
        player_uuid=args.uuid or str(uuid.uuid4()),
        identity_token=args.identity_token,
        session_token=args.session_token,
        target_domain=args.domain,
        patch_enabled=not args.no_patch,
    )
    orchestrator = build_orchestrator(context, sink=_ConsoleProgressSink(stream))
    token = CancellationToken()
    outcomes: list[LaunchOutcome] = []
    worker = threading.Thread(
        target=lambda: outcomes.append(orchestrator.run(request, token, wait=True)),
        name="hylaunch-cli-launch",
        daemon=True,
    )
    worker.start()
    while worker.is_alive():
        try:
            worker.join(0.2)
        except KeyboardInterrupt:
            interrupt(orchestrator, token, stream)
    if not outcomes:
        print("Launch failed; see the log file for details", file=stream)
        return EXIT_ERROR
    outcome = outcomes[0]
    for warning in outcome.warnings:
        print(f"warning: {warning}", file=stream)
    print(outcome.message, file=stream)
    return _exit_code(outcome)


def interrupt(orchestrator: InstallationOrchestrator, token: CancellationToken, stream: TextIO) -> None:
    """Handle Ctrl-C: cancel a pending run, or stop a game that is already running."""

    game = orchestrator.game
    if game is not None:
        print("Stopping the game...", file=stream)
        game.terminate()
        return
    print("Cancelling...", file=stream)
    token.cancel()


def run_patch(args: argparse.Namespace, context: LauncherContext, stream: TextIO) -> int:
    domain = args.domain or context.config.patching.default_target_domain
    patcher = build_binary_patcher(context)
    try:
        result = patcher.patch_installation(args.game_dir, domain)
    except PatchError as exc:
        _LOGGER.error("Patching %s failed: %s", args.game_dir, exc)
        print(f"error: {exc.user_message}", file=stream)
        return EXIT_ERROR
    for label, item in (("client", result.client), ("server", result.server)):
        detail = ""
        if item.status is PatchStatus.PATCHED:
            detail = f" ({item.replacements} replacements, {item.encoding})"
        print(f"{label}: {item.status.value}{detail}", file=stream)
    for warning in result.warnings:
        print(f"warning: {warning}", file=stream)
    return EXIT_OK


def run_versions(args: argparse.Namespace, context: LauncherContext, stream: TextIO) -> int:
    branch = normalize_branch(args.branch)
    versions = build_version_resolver(context).list_versions(branch, force_refresh=args.refresh)
    if not versions:
        print(f"No {branch} versions found", file=stream)
        return EXIT_OK
    for version in versions:
        print(version, file=stream)
    return EXIT_OK


def main(argv: list[str] | None = None, *, stream: TextIO | None = None) -> int:
    args = parse_args(argv)
    ensure_app_logging()
    if args.log_level is not None:
        set_file_log_verbosity(args.log_level)
    output = stream or sys.stdout
    context = LauncherContext.from_environment(config=get_app_config(), app_dir=args.app_dir)
    handlers = {"launch": run_launch, "patch": run_patch, "versions": run_versions}
    return handlers[args.command](args, context, output)


if __name__ == "__main__":
    raise SystemExit(main())
