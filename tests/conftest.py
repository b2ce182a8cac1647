from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest

from packager.core.config import PackagerConfig
from packager.core.dependencies import set_config
from packager.storage.sqlite_db_manager import SqliteDatabaseManager


@pytest.fixture
def config(tmp_path: Path) -> PackagerConfig:
    return PackagerConfig(
        release_dir=tmp_path / "releases",
        working_dir=tmp_path / "working",
        package_dir=tmp_path / "packages",
        database_path=tmp_path / "packager.db",
        version_file="build.json",
        version_field="Changelist",
    )


@pytest.fixture
def db(config: PackagerConfig) -> Iterator[SqliteDatabaseManager]:
    manager = SqliteDatabaseManager(config.database_path)
    with manager:
        yield manager


@pytest.fixture(autouse=True)
def _reset_app_config() -> Iterator[None]:
    yield
    set_config(None)
