from __future__ import annotations

from importlib import resources

import pytest

from app import version as app_version
from app.version import get_app_version, get_user_agent


@pytest.fixture(autouse=True)
def _reset_cache():
    get_app_version.cache_clear()  # type: ignore[attr-defined]
    yield
    get_app_version.cache_clear()  # type: ignore[attr-defined]


def test_get_app_version_prefers_environment(monkeypatch) -> None:
    monkeypatch.setenv("HYLAUNCH_APP_VERSION", "v1.2.3")

    assert get_app_version() == "1.2.3"


def test_get_app_version_falls_back_to_version_file(monkeypatch) -> None:
    monkeypatch.delenv("HYLAUNCH_APP_VERSION", raising=False)

    version_file = resources.files("app").joinpath("VERSION")
    expected = version_file.read_text(encoding="utf-8").strip()
    assert expected
    assert get_app_version() == expected


def test_invalid_environment_version_is_ignored(monkeypatch) -> None:
    monkeypatch.setenv("HYLAUNCH_APP_VERSION", "not a version")
    monkeypatch.setattr(app_version, "_read_version_file", lambda: None)
    monkeypatch.setattr(app_version, "_version_from_git", lambda: None)

    assert get_app_version() == "0.0.0.dev0"


def test_user_agent_names_product_and_version(monkeypatch) -> None:
    monkeypatch.setenv("HYLAUNCH_APP_VERSION", "2.0.1")

    assert get_user_agent() == "HyLaunch/2.0.1"
