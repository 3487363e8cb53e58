"""Launcher configuration loaded from JSON resources."""

from __future__ import annotations

import json
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any, Mapping

_CONFIG_RESOURCE = "app.json"
_RUNTIME_TABLE_RESOURCE = "runtime.json"
_APP_CONFIG_CACHE: LauncherConfig | None = None

BRANCH_RELEASE = "release"
BRANCH_PRE_RELEASE = "pre-release"


@dataclass(frozen=True)
class PatchServerConfig:
    """Where full and differential game archives are published."""

    base_url: str = "https://game-patches.hytale.com/patches"
    archive_extension: str = "pwr"
    max_patch_bytes: int = 500 * 1024 * 1024


@dataclass(frozen=True)
class VersionProbeConfig:
    """Probe ceilings per branch and snapshot caching policy."""

    release_ceiling: int = 50
    prerelease_ceiling: int = 100
    probe_workers: int = 8
    snapshot_ttl_seconds: int = 900

    def ceiling_for(self, branch: str) -> int:
        if branch == BRANCH_PRE_RELEASE:
            return self.prerelease_ceiling
        return self.release_ceiling


@dataclass(frozen=True)
class DownloadConfig:
    chunk_size: int = 64 * 1024
    timeout_seconds: int = 60


@dataclass(frozen=True)
class ButlerConfig:
    """Location and time limits of the external diff-apply tool."""

    url_template: str = "https://broth.itch.zone/butler/{os}-{arch}/LATEST/archive/default"
    verify_timeout_seconds: int = 10
    apply_timeout_seconds: int = 480


@dataclass(frozen=True)
class RuntimeConfig:
    """Java runtime requirements of the game client."""

    family: str = "temurin"
    required_version: str = "25.0.1_8"
    minimum_major: int = 25
    gc_probe_flag: str = "-XX:+UseShenandoahGC"
    filtered_flag_prefix: str = "-XX:ShenandoahGCMode="
    api_url_template: str = (
        "https://api.adoptium.net/v3/binary/latest/{major}/ga/{os}/{arch}/jre/hotspot/normal/eclipse"
    )
    probe_timeout_seconds: int = 15


@dataclass(frozen=True)
class PatchingConfig:
    original_domain: str = "hytale.com"
    default_target_domain: str = "sanasol.ws"
    min_domain_length: int = 4
    max_domain_length: int = 16


@dataclass(frozen=True)
class LaunchConfig:
    ready_marker: str = "Interface loaded."
    ready_timeout_seconds: int = 60


@dataclass(frozen=True)
class LauncherConfig:
    """Structured configuration values for the launcher."""

    patch_server: PatchServerConfig = PatchServerConfig()
    versions: VersionProbeConfig = VersionProbeConfig()
    downloads: DownloadConfig = DownloadConfig()
    butler: ButlerConfig = ButlerConfig()
    runtime: RuntimeConfig = RuntimeConfig()
    patching: PatchingConfig = PatchingConfig()
    launch: LaunchConfig = LaunchConfig()


def get_app_config() -> LauncherConfig:
    """Return the cached launcher configuration."""

    global _APP_CONFIG_CACHE
    if _APP_CONFIG_CACHE is None:
        _APP_CONFIG_CACHE = load_app_config()
    return _APP_CONFIG_CACHE


def reset_app_config_cache() -> None:
    """Reset the cached configuration for subsequent reloads."""

    global _APP_CONFIG_CACHE
    _APP_CONFIG_CACHE = None


def load_app_config(path: str | Path | None = None) -> LauncherConfig:
    """Load configuration from ``path`` or the bundled JSON resource."""

    data = _read_config_data(path, _CONFIG_RESOURCE)
    return LauncherConfig(
        patch_server=_parse_patch_server(_section(data, "patch_server")),
        versions=_parse_versions(_section(data, "versions")),
        downloads=_parse_downloads(_section(data, "downloads")),
        butler=_parse_butler(_section(data, "butler")),
        runtime=_parse_runtime(_section(data, "runtime")),
        patching=_parse_patching(_section(data, "patching")),
        launch=_parse_launch(_section(data, "launch")),
    )


def load_runtime_table(path: str | Path | None = None) -> Mapping[str, Any]:
    """Return the bundled ``{family: {os: {arch: url}}}`` runtime download table."""

    return _read_config_data(path, _RUNTIME_TABLE_RESOURCE)


def _read_config_data(path: str | Path | None, resource_name: str) -> Mapping[str, Any]:
    if path is not None:
        return _load_json_from_path(Path(path).expanduser())
    return _load_resource_data(resource_name)


def _load_json_from_path(path: Path) -> Mapping[str, Any]:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError:
        return {}
    return _parse_json(raw)


def _load_resource_data(resource_name: str) -> Mapping[str, Any]:
    try:
        resource = resources.files(__package__).joinpath(resource_name)
        raw = resource.read_text(encoding="utf-8")
    except (FileNotFoundError, OSError):
        return {}
    return _parse_json(raw)


def _parse_json(raw: str) -> Mapping[str, Any]:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    if isinstance(parsed, Mapping):
        return parsed
    return {}


def _section(data: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = data.get(name)
    if isinstance(section, Mapping):
        return section
    return {}


def _parse_patch_server(section: Mapping[str, Any]) -> PatchServerConfig:
    defaults = PatchServerConfig()
    return PatchServerConfig(
        base_url=_coerce_text(section.get("base_url"), default=defaults.base_url).rstrip("/"),
        archive_extension=_coerce_text(
            section.get("archive_extension"), default=defaults.archive_extension
        ).lstrip("."),
        max_patch_bytes=_coerce_positive_int(
            section.get("max_patch_bytes"), default=defaults.max_patch_bytes
        ),
    )


def _parse_versions(section: Mapping[str, Any]) -> VersionProbeConfig:
    defaults = VersionProbeConfig()
    return VersionProbeConfig(
        release_ceiling=_coerce_positive_int(
            section.get("release_ceiling"), default=defaults.release_ceiling
        ),
        prerelease_ceiling=_coerce_positive_int(
            section.get("prerelease_ceiling"), default=defaults.prerelease_ceiling
        ),
        probe_workers=_coerce_positive_int(section.get("probe_workers"), default=defaults.probe_workers),
        snapshot_ttl_seconds=_coerce_positive_int(
            section.get("snapshot_ttl_seconds"), default=defaults.snapshot_ttl_seconds
        ),
    )


def _parse_downloads(section: Mapping[str, Any]) -> DownloadConfig:
    defaults = DownloadConfig()
    return DownloadConfig(
        chunk_size=_coerce_positive_int(section.get("chunk_size"), default=defaults.chunk_size),
        timeout_seconds=_coerce_positive_int(
            section.get("timeout_seconds"), default=defaults.timeout_seconds
        ),
    )


def _parse_butler(section: Mapping[str, Any]) -> ButlerConfig:
    defaults = ButlerConfig()
    return ButlerConfig(
        url_template=_coerce_text(section.get("url_template"), default=defaults.url_template),
        verify_timeout_seconds=_coerce_positive_int(
            section.get("verify_timeout_seconds"), default=defaults.verify_timeout_seconds
        ),
        apply_timeout_seconds=_coerce_positive_int(
            section.get("apply_timeout_seconds"), default=defaults.apply_timeout_seconds
        ),
    )


def _parse_runtime(section: Mapping[str, Any]) -> RuntimeConfig:
    defaults = RuntimeConfig()
    return RuntimeConfig(
        family=_coerce_text(section.get("family"), default=defaults.family),
        required_version=_coerce_text(
            section.get("required_version"), default=defaults.required_version
        ),
        minimum_major=_coerce_positive_int(section.get("minimum_major"), default=defaults.minimum_major),
        gc_probe_flag=_coerce_text(section.get("gc_probe_flag"), default=defaults.gc_probe_flag),
        filtered_flag_prefix=_coerce_text(
            section.get("filtered_flag_prefix"), default=defaults.filtered_flag_prefix
        ),
        api_url_template=_coerce_text(
            section.get("api_url_template"), default=defaults.api_url_template
        ),
        probe_timeout_seconds=_coerce_positive_int(
            section.get("probe_timeout_seconds"), default=defaults.probe_timeout_seconds
        ),
    )


def _parse_patching(section: Mapping[str, Any]) -> PatchingConfig:
    defaults = PatchingConfig()
    minimum = _coerce_positive_int(section.get("min_domain_length"), default=defaults.min_domain_length)
    maximum = _coerce_positive_int(section.get("max_domain_length"), default=defaults.max_domain_length)
    if minimum > maximum:
        minimum, maximum = defaults.min_domain_length, defaults.max_domain_length
    return PatchingConfig(
        original_domain=_coerce_text(section.get("original_domain"), default=defaults.original_domain),
        default_target_domain=_coerce_text(
            section.get("default_target_domain"), default=defaults.default_target_domain
        ),
        min_domain_length=minimum,
        max_domain_length=maximum,
    )


def _parse_launch(section: Mapping[str, Any]) -> LaunchConfig:
    defaults = LaunchConfig()
    return LaunchConfig(
        ready_marker=_coerce_text(section.get("ready_marker"), default=defaults.ready_marker),
        ready_timeout_seconds=_coerce_positive_int(
            section.get("ready_timeout_seconds"), default=defaults.ready_timeout_seconds
        ),
    )


def _coerce_positive_int(value: Any, *, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        candidate = int(value)
    elif isinstance(value, str):
        try:
            candidate = int(float(value))
        except ValueError:
            return default
    else:
        return default
    if candidate <= 0:
        return default
    return candidate


def _coerce_text(value: Any, *, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


__all__ = [
    "BRANCH_PRE_RELEASE",
    "BRANCH_RELEASE",
    "ButlerConfig",
    "DownloadConfig",
    "LaunchConfig",
    "LauncherConfig",
    "PatchServerConfig",
    "PatchingConfig",
    "RuntimeConfig",
    "VersionProbeConfig",
    "get_app_config",
    "load_app_config",
    "load_runtime_table",
    "reset_app_config_cache",
]
