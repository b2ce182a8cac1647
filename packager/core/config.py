"""
Packager configuration.

Configuration is resolved in this order (later wins):
1. Field defaults defined on PackagerConfig
2. An optional YAML file named by PACKAGER_CONFIG_FILE
3. Environment variables PACKAGER_<FIELD_NAME> (lists are comma-separated)

The resulting PackagerConfig value is passed explicitly to every component.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from packager.domain.errors import ConfigurationError

ENV_PREFIX = "PACKAGER_"
CONFIG_FILE_ENV_VAR = "PACKAGER_CONFIG_FILE"

DEFAULT_VERSION_FILE = (
    "LinuxNoEditor/UnrealTournament/Binaries/Linux/"
    "UE4-Linux-Shippingx86_64-unknown-linux-gnu.modules"
)


class PackagerConfig(BaseModel):
    """
    Top-level configuration for the update packager.
    """

    # Release discovery
    release_feed_url: Optional[str] = Field(
        default=None,
        description="RSS feed where new releases are announced. Required for the feed release source.",
    )
    release_title_keyword: str = Field(
        default="release",
        description="Feed items whose title contains this keyword (case-insensitive) are release posts.",
    )
    download_link_keywords: List[str] = Field(
        default_factory=lambda: ["client-xan", "linux"],
        description="A link in a release post is the download link if it contains all of these keywords.",
    )
    download_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Timeout for feed and release download requests.",
    )

    # Directories
    release_dir: Path = Field(
        default=Path("./data/releases"),
        description="Where extracted releases are stored, one sub-directory per version.",
    )
    working_dir: Path = Field(
        default=Path("./data/working"),
        description="Scratch directory for downloads, extraction and package staging. Cleared after a successful run.",
    )
    package_dir: Path = Field(
        default=Path("./data/packages"),
        description="Durable location for finished upgrade packages.",
    )
    database_path: Path = Field(
        default=Path("./data/packager.db"),
        description="SQLite database holding upgrade paths and processed release posts.",
    )
    package_base_url: Optional[str] = Field(
        default=None,
        description="Public base URL for packages. When unset the local artifact path is recorded.",
    )

    # Packaging policy
    deferred_extensions: List[str] = Field(
        default_factory=lambda: [".pak"],
        description="Extensions of large opaque files that are never copied into a package payload.",
    )
    descriptor_name: str = Field(
        default="operations.json",
        description="File name of the delta descriptor inside every package.",
    )

    # Version resolution
    version_file: str = Field(
        default=DEFAULT_VERSION_FILE,
        description="Path, relative to the release root, of the JSON metadata file holding the version.",
    )
    version_field: str = Field(
        default="Changelist",
        description="Key in the version metadata file that holds the version number.",
    )

    # Process
    schedule_interval_seconds: int = Field(
        default=3600,
        ge=60,
        description="How often the scheduled loop runs a check-and-package cycle. Minimum: 60 seconds.",
    )
    log_level: str = Field(
        default="INFO",
        description="Root log level (DEBUG, INFO, WARNING, ERROR).",
    )

    @field_validator("deferred_extensions")
    @classmethod
    def _normalize_extensions(cls, value: List[str]) -> List[str]:
        normalized = []
        for ext in value:
            ext = ext.strip().lower()
            if not ext:
                continue
            if not ext.startswith("."):
                ext = "." + ext
            normalized.append(ext)
        return normalized

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level: {value}")
        return level

    def ensure_directories(self) -> None:
        """Create the release, working and package directories if missing."""
        for d in (self.release_dir, self.working_dir, self.package_dir):
            d.mkdir(parents=True, exist_ok=True)
        self.database_path.parent.mkdir(parents=True, exist_ok=True)


def _read_config_file(path: Path) -> Dict[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to read config file {path}: {e}") from e
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    return raw


def _read_environment(environ: Mapping[str, str]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for name, field in PackagerConfig.model_fields.items():
        raw = environ.get(ENV_PREFIX + name.upper())
        if raw is None:
            continue
        if field.annotation == List[str]:
            values[name] = [part.strip() for part in raw.split(",") if part.strip()]
        else:
            values[name] = raw
    return values


def load_config(environ: Optional[Mapping[str, str]] = None) -> PackagerConfig:
    """
    Build the packager configuration from the config file and environment.

    Raises:
        ConfigurationError: if the file is unreadable or a value is invalid.
    """
    env = os.environ if environ is None else environ
    values: Dict[str, Any] = {}

    config_file = env.get(CONFIG_FILE_ENV_VAR)
    if config_file:
        values.update(_read_config_file(Path(config_file).expanduser()))

    values.update(_read_environment(env))

    try:
        return PackagerConfig(**values)
    except ValidationError as e:
        raise ConfigurationError(str(e)) from e
