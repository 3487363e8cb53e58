from __future__ import annotations

from services.launcher.progress import (
    STAGE_APPLY,
    STAGE_DOWNLOAD,
    STAGE_RUNTIME,
    ProgressReporter,
    map_percent,
)
from tests.unit.launcher_test_utils import RecordingSink


def test_map_percent_projects_into_window() -> None:
    assert map_percent(0, 5, 65) == 5
    assert map_percent(50, 5, 65) == 35
    assert map_percent(100, 5, 65) == 65
    assert map_percent(150, 65, 85) == 85
    assert map_percent(-10, 65, 85) == 65


def test_stage_callbacks_use_stage_windows() -> None:
    sink = RecordingSink()
    reporter = ProgressReporter(sink)

    reporter.stage(STAGE_APPLY)(50, "Applying")
    reporter.stage(STAGE_RUNTIME)(100, "Runtime ready")

    assert sink.percents == [75, 99]
    assert sink.events[0].stage == STAGE_APPLY


def test_reported_percent_never_goes_backwards() -> None:
    sink = RecordingSink()
    reporter = ProgressReporter(sink)

    reporter.stage(STAGE_APPLY)(100, "Applied")
    reporter.stage(STAGE_DOWNLOAD)(10, "Downloading")

    assert sink.percents == [85, 85]
    assert reporter.last_percent == 85


def test_download_callback_forwards_byte_counts() -> None:
    sink = RecordingSink()

    ProgressReporter(sink).download(STAGE_DOWNLOAD, "Downloading game", window=(10, 20))(50, 512, 1024)

    event = sink.events[0]
    assert event.percent == 15
    assert event.bytes_downloaded == 512
    assert event.bytes_total == 1024
    assert event.message == "Downloading game"


def test_game_state_reaches_sink() -> None:
    sink = RecordingSink()

    ProgressReporter(sink).game_state("stopped", pid=10, exit_code=3)

    assert sink.states[0].state == "stopped"
    assert sink.states[0].exit_code == 3
