from __future__ import annotations

import sys
from pathlib import Path

import pytest


def _ensure_project_root_on_path() -> None:
    """Guarantee the repository root is discoverable for absolute imports."""

    root = Path(__file__).resolve().parent.parent
    root_str = str(root)
    if root_str not in sys.path:
        sys.path.insert(0, root_str)

    tests_dir = root / "tests"
    tests_str = str(tests_dir)
    if tests_str not in sys.path:
        sys.path.insert(1, tests_str)


_ensure_project_root_on_path()


@pytest.fixture(autouse=True)
def _launcher_env(monkeypatch: pytest.MonkeyPatch, tmp_path_factory: pytest.TempPathFactory):
    """Keep launcher data and logs out of the real home directory."""

    app_dir = tmp_path_factory.mktemp("hylaunch")
    monkeypatch.setenv("HYLAUNCH_APP_DIR", str(app_dir))
    monkeypatch.setenv("HYLAUNCH_LOG_DIR", str(app_dir / "logs"))
    monkeypatch.delenv("HYLAUNCH_LOG_FILE", raising=False)
    monkeypatch.delenv("HYLAUNCH_LOG_LEVEL", raising=False)
    monkeypatch.delenv("HYLAUNCH_APP_VERSION", raising=False)
    yield app_dir


@pytest.fixture(autouse=True)
def _reset_app_config():
    """Drop cached configuration so tests never see each other's overrides."""

    from app.config import reset_app_config_cache

    reset_app_config_cache()
    yield
    reset_app_config_cache()
