"""Starting and monitoring the game client process."""

from __future__ import annotations

import logging
import os
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping, Optional, Protocol

from app.config import LaunchConfig
from domain.patching import client_executable_path
from services.launcher.instances import InstanceLayout
from services.launcher.models import LaunchError, LaunchRequest, ProcessInvocation
from services.launcher.progress import GAME_STARTED, GAME_STOPPED

_LOGGER = logging.getLogger(__name__)

_LIBRARY_PATH_VARIABLES = {
    "linux": "LD_LIBRARY_PATH",
    "darwin": "DYLD_LIBRARY_PATH",
    "windows": "PATH",
}

PopenFactory = Callable[..., subprocess.Popen]
StateCallback = Callable[[str, Optional[int], Optional[int]], None]


@dataclass(frozen=True)
class LaunchContext:
    """What the launch hooks are told about a run."""

    request: LaunchRequest
    instance_dir: Path
    version: int


class LaunchHooks(Protocol):
    """Profile and skin bookkeeping owned by the caller."""

    def before_launch(self, context: LaunchContext) -> None:
        ...

    def after_exit(self, context: LaunchContext, exit_code: int | None) -> None:
        ...


class NullLaunchHooks:
    def before_launch(self, context: LaunchContext) -> None:
        return None

    def after_exit(self, context: LaunchContext, exit_code: int | None) -> None:
        return None


class RunningGame:
    """Handle on a started client process."""

    def __init__(self, process: subprocess.Popen, monitor: threading.Thread, ready: threading.Event) -> None:
        self._process = process
        self._monitor = monitor
        self._ready = ready

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def ready(self) -> bool:
        return self._ready.is_set()

    def wait(self, timeout: float | None = None) -> int | None:
        """Block until the monitor has seen the process exit."""

        self._monitor.join(timeout)
        return self._process.poll()

    def terminate(self) -> None:
        """Ask the client to exit; the monitor still reports ``stopped``."""

        if self._process.poll() is None:
            _LOGGER.info("Terminating game process %s", self.pid)
            self._process.terminate()


class GameProcessLauncher:
    """Builds the client command line and watches the process it starts."""

    def __init__(
        self,
        layout: InstanceLayout,
        config: LaunchConfig,
        *,
        popen: PopenFactory = subprocess.Popen,
        hooks: LaunchHooks | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._layout = layout
        self._config = config
        self._popen = popen
        self._hooks = hooks or NullLaunchHooks()
        self._environ = environ

    def build_invocation(self, request: LaunchRequest, instance_dir: Path, java_path: Path) -> ProcessInvocation:
        platform = self._layout.platform
        game_dir = self._layout.game_dir(instance_dir)
        executable = client_executable_path(game_dir, platform)
        if not executable.is_file():
            raise LaunchError(f"Game client not found at {executable}")
        user_dir = self._layout.user_data_dir(instance_dir)

        command = [
            str(executable),
            "--app-dir",
            str(game_dir),
            "--user-dir",
            str(user_dir),
            "--java-exec",
            str(java_path),
            "--name",
            request.player_name,
        ]
        if request.authenticated:
            command += ["--auth-mode", "authenticated", "--uuid", request.player_uuid]
            command += ["--identity-token", str(request.identity_token)]
            command += ["--session-token", str(request.session_token)]
        else:
            command += ["--auth-mode", "offline", "--uuid", request.player_uuid]

        environment = dict(os.environ if self._environ is None else self._environ)
        client_dir = self._layout.client_dir(instance_dir)
        variable = _LIBRARY_PATH_VARIABLES.get(platform.os_name, "LD_LIBRARY_PATH")
        existing = environment.get(variable)
        environment[variable] = os.pathsep.join(filter(None, (str(client_dir), existing)))

        return ProcessInvocation(tuple(command), executable.parent, environment)

    def start(
        self,
        invocation: ProcessInvocation,
        context: LaunchContext,
        on_state: StateCallback | None = None,
    ) -> RunningGame:
        """Start the client; raises :class:`LaunchError` if it cannot start."""

        notify = on_state or (lambda state, pid, exit_code: None)
        self._layout.user_data_dir(context.instance_dir).mkdir(parents=True, exist_ok=True)
        self._hooks.before_launch(context)
        _LOGGER.info("Launching %s in %s", " ".join(invocation.command), invocation.working_directory)
        try:
            process = self._popen(
                list(invocation.command),
                cwd=str(invocation.working_directory),
                env=dict(invocation.environment),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                bufsize=1,
            )
        except OSError as exc:
            self._hooks.after_exit(context, None)
            raise LaunchError(f"Unable to start the game: {exc}") from exc

        _LOGGER.info("Game started with pid %s", process.pid)
        notify(GAME_STARTED, process.pid, None)
        ready = threading.Event()
        monitor = threading.Thread(
            target=self._monitor,
            args=(process, context, ready, notify),
            name="hylaunch-game-monitor",
            daemon=True,
        )
        monitor.start()
        return RunningGame(process, monitor, ready)

    def _monitor(
        self,
        process: subprocess.Popen,
        context: LaunchContext,
        ready: threading.Event,
        notify: StateCallback,
    ) -> None:
        def _ready_timeout() -> None:
            if not ready.is_set() and process.poll() is None:
                _LOGGER.warning(
                    "Game did not report '%s' within %s seconds",
                    self._config.ready_marker,
                    self._config.ready_timeout_seconds,
                )

        timer = threading.Timer(self._config.ready_timeout_seconds, _ready_timeout)
        timer.daemon = True
        timer.start()
        exit_code: int | None = None
        try:
            for line in process.stdout or ():
                if not ready.is_set() and self._config.ready_marker in line:
                    ready.set()
                    _LOGGER.info("Game finished loading")
            exit_code = process.wait()
        except Exception:  # pragma: no cover - defensive guard
            _LOGGER.exception("Error while monitoring the game process")
        finally:
            timer.cancel()
            _LOGGER.info("Game exited with code %s", exit_code)
            try:
                self._hooks.after_exit(context, exit_code)
            finally:
                notify(GAME_STOPPED, process.pid, exit_code)


__all__ = [
    "GameProcessLauncher",
    "LaunchContext",
    "LaunchHooks",
    "NullLaunchHooks",
    "RunningGame",
]
