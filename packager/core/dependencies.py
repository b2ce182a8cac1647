from __future__ import annotations

import logging
from typing import Iterator, Optional

from packager.core.config import PackagerConfig, load_config
from packager.services.assembler import PackageAssembler
from packager.services.manifest import ManifestBuilder
from packager.services.orchestrator import UpgradePathOrchestrator
from packager.storage.artifact_sink import LocalArtifactSink
from packager.storage.db_manager import DatabaseManager
from packager.storage.manifest_cache import SideFileManifestCache
from packager.storage.sqlite_db_manager import SqliteDatabaseManager
from packager.storage.version_store import ReleaseDirectoryVersionStore

# Cached for FastAPI request wiring only; the core receives config explicitly.
_config: Optional[PackagerConfig] = None


def get_config() -> PackagerConfig:
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: Optional[PackagerConfig]) -> None:
    global _config
    _config = config


def create_db_manager(config: PackagerConfig) -> DatabaseManager:
    return SqliteDatabaseManager(config.database_path)


def create_version_store(config: PackagerConfig) -> ReleaseDirectoryVersionStore:
    return ReleaseDirectoryVersionStore(config.release_dir, SideFileManifestCache(config.release_dir))


def create_orchestrator(
    config: PackagerConfig,
    db: DatabaseManager,
    version_store: Optional[ReleaseDirectoryVersionStore] = None,
    log: Optional[logging.Logger] = None,
) -> UpgradePathOrchestrator:
    version_store = version_store or create_version_store(config)
    return UpgradePathOrchestrator(
        config=config,
        version_store=version_store,
        manifests=ManifestBuilder(SideFileManifestCache(config.release_dir), log),
        assembler=PackageAssembler(config, log),
        store=db,
        sink=LocalArtifactSink(config.package_dir, config.package_base_url),
        log=log,
    )


def get_db_manager() -> Iterator[DatabaseManager]:
    """FastAPI dependency: one connection per request."""
    db = create_db_manager(get_config())
    with db:
        yield db


def get_version_store() -> ReleaseDirectoryVersionStore:
    return create_version_store(get_config())
