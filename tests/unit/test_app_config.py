import json

from app.config import (
    LauncherConfig,
    PatchingConfig,
    get_app_config,
    load_app_config,
    load_runtime_table,
    reset_app_config_cache,
)


def test_default_config_matches_bundled_resource() -> None:
    config = load_app_config()

    assert isinstance(config, LauncherConfig)
    assert config.patch_server.base_url == "https://game-patches.hytale.com/patches"
    assert config.patch_server.archive_extension == "pwr"
    assert config.versions.ceiling_for("release") == 50
    assert config.versions.ceiling_for("pre-release") == 100
    assert config.runtime.required_version == "25.0.1_8"
    assert config.patching == PatchingConfig()
    assert config.launch.ready_marker == "Interface loaded."


def test_load_app_config_from_custom_path(tmp_path) -> None:
    custom_config = {
        "patch_server": {"base_url": "https://mirror.example/patches/", "archive_extension": ".pwr"},
        "versions": {"release_ceiling": 12, "probe_workers": "4"},
        "patching": {"default_target_domain": "play.example.net"},
    }
    config_path = tmp_path / "app.json"
    config_path.write_text(json.dumps(custom_config), encoding="utf-8")

    config = load_app_config(config_path)

    assert config.patch_server.base_url == "https://mirror.example/patches"
    assert config.patch_server.archive_extension == "pwr"
    assert config.versions.release_ceiling == 12
    assert config.versions.probe_workers == 4
    assert config.versions.prerelease_ceiling == 100
    assert config.patching.default_target_domain == "play.example.net"


def test_invalid_config_values_fall_back_to_defaults(tmp_path) -> None:
    config_path = tmp_path / "app.json"
    config_path.write_text(
        json.dumps(
            {
                "versions": {"release_ceiling": -3, "snapshot_ttl_seconds": True},
                "downloads": {"chunk_size": "lots"},
                "patching": {"min_domain_length": 20, "max_domain_length": 8},
                "launch": "not a section",
            }
        ),
        encoding="utf-8",
    )

    config = load_app_config(config_path)
    defaults = LauncherConfig()

    assert config.versions.release_ceiling == defaults.versions.release_ceiling
    assert config.versions.snapshot_ttl_seconds == defaults.versions.snapshot_ttl_seconds
    assert config.downloads.chunk_size == defaults.downloads.chunk_size
    assert config.patching.min_domain_length == 4
    assert config.patching.max_domain_length == 16
    assert config.launch == defaults.launch


def test_missing_or_corrupt_file_uses_defaults(tmp_path) -> None:
    corrupt = tmp_path / "broken.json"
    corrupt.write_text("{", encoding="utf-8")

    assert load_app_config(tmp_path / "missing.json") == LauncherConfig()
    assert load_app_config(corrupt) == LauncherConfig()


def test_get_app_config_is_cached_until_reset() -> None:
    first = get_app_config()

    assert get_app_config() is first
    reset_app_config_cache()
    assert get_app_config() is not first


def test_runtime_table_lists_platform_downloads() -> None:
    table = load_runtime_table()

    assert table["temurin"]["linux"]["amd64"].endswith("jre-25.0.1_8.tar.gz")
    assert table["temurin"]["windows"]["amd64"].endswith(".zip")
