"""Central logging configuration for the launcher.

Every module logs through ``logging.getLogger(__name__)``; this module attaches
one rotating log file to the root logger so install, update and launch runs
leave a trail that can be attached to a bug report.

Environment variables:

``HYLAUNCH_LOG_FILE``
    Exact path of the log file.

``HYLAUNCH_LOG_DIR``
    Directory that receives ``launcher.log``.  Ignored when
    ``HYLAUNCH_LOG_FILE`` is set.

``HYLAUNCH_LOG_LEVEL``
    Initial file verbosity (one of :class:`LogVerbosity`).

Records are scrubbed before they reach any managed handler: the home
directory, the account name and identity or session tokens from a game
command line never end up on disk.
"""

from __future__ import annotations

import logging
import os
import re
import sys
from enum import Enum
from logging.handlers import RotatingFileHandler
from pathlib import Path

_LOG_FILE_ENV = "HYLAUNCH_LOG_FILE"
_LOG_DIR_ENV = "HYLAUNCH_LOG_DIR"
_LOG_LEVEL_ENV = "HYLAUNCH_LOG_LEVEL"
_DEFAULT_DIRNAME = ".hylaunch"
_DEFAULT_LOGNAME = "launcher.log"
_HANDLER_TAG = "_hylaunch_logging_handler"

# A single launch with verbose logging stays well below this.
MAX_LOG_BYTES = 2 * 1024 * 1024
LOG_BACKUPS = 3
LOG_FORMAT = "%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s"

USER_PLACEHOLDER = "<user>"
USER_HOME_PLACEHOLDER = "<user_home>"
TOKEN_PLACEHOLDER = "<token>"

_TOKEN_PATTERN = re.compile(r"(--(?:identity|session)-token[\s=]+)(\S+)")


class LogVerbosity(str, Enum):
    """Verbosity levels supported by the launcher log file."""

    DISABLED = "disabled"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    VERBOSE = "verbose"

    @property
    def level(self) -> int:
        return _VERBOSITY_LEVELS[self]


_VERBOSITY_LEVELS: dict[LogVerbosity, int] = {
    LogVerbosity.DISABLED: logging.CRITICAL + 1,
    LogVerbosity.ERROR: logging.ERROR,
    LogVerbosity.WARNING: logging.WARNING,
    LogVerbosity.INFO: logging.INFO,
    LogVerbosity.VERBOSE: logging.DEBUG,
}

_DEFAULT_VERBOSITY = LogVerbosity.INFO
_current_verbosity = _DEFAULT_VERBOSITY
_file_handler: RotatingFileHandler | None = None
_log_path: Path | None = None


class _Redactor:
    """Replaces personal values in formatted log lines with placeholders."""

    def __init__(self, home_paths: set[str], user_names: set[str]) -> None:
        flags = re.IGNORECASE if os.name == "nt" else 0
        self._rules: list[tuple[re.Pattern[str], str]] = []
        # Longest first so a nested path never leaves a partial match behind.
        for path in sorted(home_paths, key=len, reverse=True):
            self._rules.append((re.compile(re.escape(path), flags), USER_HOME_PLACEHOLDER))
        for name in sorted(user_names, key=len, reverse=True):
            escaped = re.escape(name)
            if any(character.isalnum() for character in name):
                escaped = rf"(?<!\w){escaped}(?!\w)"
            self._rules.append((re.compile(escaped, re.IGNORECASE), USER_PLACEHOLDER))

    @classmethod
    def from_environment(cls) -> "_Redactor":
        home = Path.home()
        raw_paths = {str(home), os.environ.get("HOME", ""), os.environ.get("USERPROFILE", "")}
        paths: set[str] = set()
        for raw in raw_paths:
            if not raw:
                continue
            normalised = os.path.normpath(os.path.expanduser(raw))
            if normalised in {os.sep, "."}:
                continue
            paths.update({normalised, normalised.replace("\\", "/"), normalised.replace("/", "\\")})

        names = {home.name}
        names.update(os.environ.get(variable, "") for variable in ("USERNAME", "USER", "LOGNAME"))
        return cls(paths, {name.strip() for name in names if name and name.strip()})

    def __call__(self, text: str) -> str:
        if not text:
            return text
        text = _TOKEN_PATTERN.sub(rf"\g<1>{TOKEN_PLACEHOLDER}", text)
        for pattern, placeholder in self._rules:
            text = pattern.sub(placeholder, text)
        return text


_redact = _Redactor.from_environment()


class _RedactingFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        return _redact(super().format(record))


def ensure_app_logging() -> Path:
    """Attach the launcher's log handlers to the root logger once.

    Later calls return the existing log path without touching the handlers.
    A console handler at INFO is added only when stderr is an interactive
    terminal that no other handler already writes to.
    """

    global _file_handler, _log_path, _current_verbosity

    if _file_handler is not None and _log_path is not None:
        return _log_path

    log_path = _resolve_log_path()
    log_path.parent.mkdir(parents=True, exist_ok=True)
    _current_verbosity = _verbosity_from_env()

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    formatter = _RedactingFormatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    handler = RotatingFileHandler(
        log_path, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8"
    )
    handler.setLevel(_current_verbosity.level)
    handler.setFormatter(formatter)
    _tag(handler)
    root.addHandler(handler)
    _file_handler = handler
    _log_path = log_path

    if _stderr_is_free_terminal(root):
        console = logging.StreamHandler()
        console.setLevel(logging.INFO)
        console.setFormatter(formatter)
        _tag(console)
        root.addHandler(console)

    logging.getLogger(__name__).info(
        "Launcher log at %s (verbosity=%s)", log_path, _current_verbosity.value
    )
    return log_path


def set_file_log_verbosity(verbosity: LogVerbosity | str) -> None:
    """Change the minimum severity written to the log file."""

    global _current_verbosity

    if not isinstance(verbosity, LogVerbosity):
        try:
            verbosity = LogVerbosity(verbosity.lower())
        except ValueError as exc:
            raise ValueError(f"Unsupported log verbosity: {verbosity}") from exc

    ensure_app_logging()
    _current_verbosity = verbosity
    if _file_handler is not None:
        _file_handler.setLevel(verbosity.level)
    logging.getLogger(__name__).info("File log verbosity set to %s", verbosity.value)


def get_file_log_verbosity() -> LogVerbosity:
    return _current_verbosity


def _tag(handler: logging.Handler) -> None:
    setattr(handler, _HANDLER_TAG, True)


def _resolve_log_path() -> Path:
    explicit = os.environ.get(_LOG_FILE_ENV)
    if explicit:
        return Path(explicit).expanduser()
    directory = os.environ.get(_LOG_DIR_ENV)
    if directory:
        return Path(directory).expanduser() / _DEFAULT_LOGNAME
    return Path.home() / _DEFAULT_DIRNAME / "logs" / _DEFAULT_LOGNAME


def _verbosity_from_env() -> LogVerbosity:
    value = os.environ.get(_LOG_LEVEL_ENV, "").strip().lower()
    if not value:
        return _DEFAULT_VERBOSITY
    try:
        return LogVerbosity(value)
    except ValueError:
        return _DEFAULT_VERBOSITY


def _stderr_is_free_terminal(root: logging.Logger) -> bool:
    stderr = getattr(sys, "stderr", None)
    isatty = getattr(stderr, "isatty", None)
    if stderr is None or not callable(isatty):
        return False
    try:
        if not isatty():
            return False
    except ValueError:
        # Closed stream.
        return False
    return not any(
        isinstance(handler, logging.StreamHandler) and handler.stream is stderr
        for handler in root.handlers
    )


def _reset_for_tests() -> None:
    """Remove handlers installed by :func:`ensure_app_logging`."""

    global _file_handler, _log_path, _current_verbosity

    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_TAG, False):
            root.removeHandler(handler)
            handler.close()

    _file_handler = None
    _log_path = None
    _current_verbosity = _DEFAULT_VERBOSITY


__all__ = [
    "LOG_BACKUPS",
    "LOG_FORMAT",
    "LogVerbosity",
    "MAX_LOG_BYTES",
    "TOKEN_PLACEHOLDER",
    "USER_HOME_PLACEHOLDER",
    "USER_PLACEHOLDER",
    "ensure_app_logging",
    "get_file_log_verbosity",
    "set_file_log_verbosity",
]
