from __future__ import annotations

import io
from pathlib import Path

import pytest

from app import cli
from services.launcher import LaunchOutcome, OrchestratorState
from services.launcher.models import GameStateEvent, ProgressEvent
from shared import logging_config
from shared.cancellation import CancellationToken
from shared.platform import detect_platform
from tests.unit.launcher_test_utils import FakePatchServer, write_client

_BASE = "https://game-patches.hytale.com/patches"


@pytest.fixture(autouse=True)
def _reset_logging():
    logging_config._reset_for_tests()
    yield
    logging_config._reset_for_tests()


def _archive_url(version: int, branch: str = "release") -> str:
    platform = detect_platform()
    return f"{_BASE}/{platform.os_name}/{platform.arch}/{branch}/0/{version}.pwr"


def _run(argv: list[str]) -> tuple[int, str]:
    stream = io.StringIO()
    code = cli.main(argv, stream=stream)
    return code, stream.getvalue()


def test_parse_launch_defaults() -> None:
    args = cli.parse_args(["launch"])

    assert args.command == "launch"
    assert args.branch == "release"
    assert args.version == 0
    assert args.name == "Player"
    assert args.domain is None
    assert args.no_patch is False


def test_versions_lists_newest_first(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    FakePatchServer({_archive_url(1): b"a", _archive_url(2): b"b"}).install(monkeypatch)

    code, output = _run(["--app-dir", str(tmp_path), "versions"])

    assert code == cli.EXIT_OK
    assert output.splitlines() == ["2", "1"]


def test_versions_reports_empty_branch(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    FakePatchServer().install(monkeypatch)

    code, output = _run(["--app-dir", str(tmp_path), "versions", "--branch", "beta"])

    assert code == cli.EXIT_OK
    assert output.strip() == "No pre-release versions found"


def test_patch_command_reports_each_artifact(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("domain.patching.patcher.adhoc_codesign", lambda path: None)
    game_dir = tmp_path / "game"
    write_client(game_dir, detect_platform(), payload=b"https://account-data.hytale.com")

    code, output = _run(["--app-dir", str(tmp_path), "patch", str(game_dir), "--domain", "sanasol.ws"])

    assert code == cli.EXIT_OK
    assert output.splitlines() == [
        "client: patched (1 replacements, utf-8)",
        "server: missing",
        "warning: Server archive not found: HytaleServer.jar",
    ]


def test_patch_command_rejects_bad_domain(tmp_path: Path) -> None:
    code, output = _run(["--app-dir", str(tmp_path), "patch", str(tmp_path), "--domain", "x.y"])

    assert code == cli.EXIT_ERROR
    assert output.startswith("error: Could not patch game files: Domain 'x.y'")


class _StubOrchestrator:
    def __init__(self, outcome: LaunchOutcome) -> None:
        self.outcome = outcome
        self.requests = []

    def run(self, request, token, *, wait=False):
        self.requests.append((request, wait))
        return self.outcome


def test_launch_prints_warnings_and_outcome(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    stub = _StubOrchestrator(
        LaunchOutcome(OrchestratorState.STOPPED, "Game exited with code 0", warnings=("Update failed",))
    )
    monkeypatch.setattr(cli, "build_orchestrator", lambda context, sink=None: stub)

    code, output = _run(
        ["--app-dir", str(tmp_path), "launch", "--branch", "beta", "--name", "Alex", "--no-patch"]
    )

    request, wait = stub.requests[0]
    assert code == cli.EXIT_OK
    assert output.splitlines() == ["warning: Update failed", "Game exited with code 0"]
    assert wait is True
    assert request.branch == "pre-release"
    assert request.player_name == "Alex"
    assert request.patch_enabled is False
    assert request.player_uuid


@pytest.mark.parametrize(
    ("state", "expected"),
    [
        (OrchestratorState.ERRORED, cli.EXIT_ERROR),
        (OrchestratorState.CANCELLED, cli.EXIT_CANCELLED),
        (OrchestratorState.RUNNING, cli.EXIT_OK),
    ],
)
def test_launch_exit_codes(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, state, expected) -> None:
    stub = _StubOrchestrator(LaunchOutcome(state, "done"))
    monkeypatch.setattr(cli, "build_orchestrator", lambda context, sink=None: stub)

    code, _ = _run(["--app-dir", str(tmp_path), "launch", "--uuid", "fixed"])

    assert code == expected
    assert stub.requests[0][0].player_uuid == "fixed"


def test_console_sink_prints_progress_once() -> None:
    stream = io.StringIO()
    sink = cli._ConsoleProgressSink(stream)

    sink.on_progress(ProgressEvent("download", 40, "Downloading game"))
    sink.on_progress(ProgressEvent("download", 40, "Downloading game"))
    sink.on_game_state(GameStateEvent("stopped", 10, 0))

    assert stream.getvalue().splitlines() == [
        "[ 40%] Downloading game",
        "Game stopped with exit code 0",
    ]


def test_launch_passes_session_tokens(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    stub = _StubOrchestrator(LaunchOutcome(OrchestratorState.STOPPED, "done"))
    monkeypatch.setattr(cli, "build_orchestrator", lambda context, sink=None: stub)

    _run(
        [
            "--app-dir",
            str(tmp_path),
            "launch",
            "--identity-token",
            "id-token",
            "--session-token",
            "session-token",
        ]
    )

    request = stub.requests[0][0]
    assert request.identity_token == "id-token"
    assert request.session_token == "session-token"
    assert request.authenticated is True


def test_log_level_option_sets_file_verbosity(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    FakePatchServer().install(monkeypatch)

    code, _ = _run(["--app-dir", str(tmp_path), "--log-level", "verbose", "versions"])

    assert code == cli.EXIT_OK
    assert logging_config.get_file_log_verbosity() is logging_config.LogVerbosity.VERBOSE


class _StubGame:
    def __init__(self) -> None:
        self.terminated = False

    def terminate(self) -> None:
        self.terminated = True


class _InterruptTarget:
    def __init__(self, game: _StubGame | None) -> None:
        self.game = game


def test_interrupt_cancels_before_the_game_starts() -> None:
    stream = io.StringIO()
    token = CancellationToken()

    cli.interrupt(_InterruptTarget(None), token, stream)

    assert token.cancelled is True
    assert stream.getvalue() == "Cancelling...\n"


def test_interrupt_stops_a_running_game() -> None:
    stream = io.StringIO()
    token = CancellationToken()
    game = _StubGame()

    cli.interrupt(_InterruptTarget(game), token, stream)

    assert game.terminated is True
    assert token.cancelled is False
    assert stream.getvalue() == "Stopping the game...\n"
