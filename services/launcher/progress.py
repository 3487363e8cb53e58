"""Progress reporting from the orchestrator to a UI-owned sink."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional, Protocol

from services.launcher.models import GameStateEvent, ProgressEvent

_LOGGER = logging.getLogger(__name__)

STAGE_BUTLER = "butler"
STAGE_DOWNLOAD = "download"
STAGE_APPLY = "apply"
STAGE_UPDATE = "update"
STAGE_PATCHING = "patching"
STAGE_RUNTIME = "runtime"
STAGE_LAUNCH = "launch"

# Global percent window occupied by each stage of a run.
STAGE_RANGES: dict[str, tuple[int, int]] = {
    STAGE_BUTLER: (0, 5),
    STAGE_DOWNLOAD: (5, 65),
    STAGE_APPLY: (65, 85),
    STAGE_UPDATE: (0, 90),
    STAGE_PATCHING: (90, 95),
    STAGE_RUNTIME: (96, 99),
    STAGE_LAUNCH: (100, 100),
}

GAME_STARTED = "started"
GAME_STOPPED = "stopped"


class ProgressSink(Protocol):
    """Receives progress and game-state notifications."""

    def on_progress(self, event: ProgressEvent) -> None:
        ...

    def on_game_state(self, event: GameStateEvent) -> None:
        ...


class LoggingProgressSink:
    """Sink that only writes events to the log."""

    def on_progress(self, event: ProgressEvent) -> None:
        _LOGGER.debug("[%s] %3d%% %s", event.stage, event.percent, event.message)

    def on_game_state(self, event: GameStateEvent) -> None:
        _LOGGER.info("Game %s (pid=%s, exit=%s)", event.state, event.pid, event.exit_code)


def map_percent(local_percent: int, start: int, end: int) -> int:
    """Project ``local_percent`` (0..100) onto the ``start..end`` window."""

    local_percent = max(0, min(100, local_percent))
    return start + (end - start) * local_percent // 100


class ProgressReporter:
    """Maps sub-stage progress into one monotonic 0..100 stream."""

    def __init__(self, sink: ProgressSink | None = None) -> None:
        self._sink = sink or LoggingProgressSink()
        self._lock = threading.Lock()
        self._last_percent = 0

    @property
    def last_percent(self) -> int:
        return self._last_percent

    def report(
        self,
        stage: str,
        percent: int,
        message: str,
        *,
        bytes_downloaded: Optional[int] = None,
        bytes_total: Optional[int] = None,
    ) -> ProgressEvent:
        with self._lock:
            percent = max(self._last_percent, max(0, min(100, percent)))
            self._last_percent = percent
        event = ProgressEvent(stage, percent, message, bytes_downloaded, bytes_total)
        self._sink.on_progress(event)
        return event

    def stage(self, stage: str, *, window: tuple[int, int] | None = None) -> Callable[[int, str], None]:
        """Return a ``(percent, message)`` callback scoped to ``stage``'s window."""

        start, end = window or STAGE_RANGES[stage]

        def _report(percent: int, message: str) -> None:
            self.report(stage, map_percent(percent, start, end), message)

        return _report

    def download(
        self, stage: str, message: str, *, window: tuple[int, int] | None = None
    ) -> Callable[[int, int, Optional[int]], None]:
        """Return a download callback that also forwards byte counts."""

        start, end = window or STAGE_RANGES[stage]

        def _report(percent: int, downloaded: int, total: Optional[int]) -> None:
            self.report(
                stage,
                map_percent(percent, start, end),
                message,
                bytes_downloaded=downloaded,
                bytes_total=total,
            )

        return _report

    def game_state(self, state: str, *, pid: int | None = None, exit_code: int | None = None) -> None:
        self._sink.on_game_state(GameStateEvent(state, pid, exit_code))


__all__ = [
    "GAME_STARTED",
    "GAME_STOPPED",
    "LoggingProgressSink",
    "ProgressReporter",
    "ProgressSink",
    "STAGE_APPLY",
    "STAGE_BUTLER",
    "STAGE_DOWNLOAD",
    "STAGE_LAUNCH",
    "STAGE_PATCHING",
    "STAGE_RUNTIME",
    "STAGE_UPDATE",
    "STAGE_RANGES",
    "map_percent",
]
