"""Constants shared across the launcher service modules."""

from __future__ import annotations

APP_DIR_ENV = "HYLAUNCH_APP_DIR"
DEFAULT_APP_DIRNAME = ".hylaunch"

INSTANCES_DIRNAME = "instances"
LEGACY_INSTANCE_DIRNAME = "instance"
LATEST_DIRNAME = "latest"
LATEST_POINTER_FILENAME = "latest.json"
USER_DATA_DIRNAME = "UserData"
CLIENT_DIRNAME = "Client"
CACHE_DIRNAME = "Cache"
GAME_CACHE_SUBDIR = "Game"
VERSION_SNAPSHOT_FILENAME = "versions.json"

BUTLER_DIRNAME = "butler"
BUTLER_CACHE_DIRNAME = "cache"
BUTLER_ARCHIVE_NAME = "butler.zip"
BUTLER_STAGING_DIRNAME = "staging-temp"

RUNTIME_DIRNAME = "jre"
RUNTIME_MARKER_FILENAME = ".jre_version"
MAC_RUNTIME_LINK_DIRNAME = "java"

PART_SUFFIX = ".part"

MAX_ARCHIVE_TOTAL_BYTES = 2 * 1024 * 1024 * 1024  # 2 GiB, a full runtime unpacked
MAX_ARCHIVE_FILE_SIZE = 512 * 1024 * 1024  # 512 MiB per file
MAX_ARCHIVE_ENTRIES = 20000
MAX_COMPRESSION_RATIO = 100  # Uncompressed vs compressed bytes
