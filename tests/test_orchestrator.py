from __future__ import annotations

import os
import sqlite3
from pathlib import Path

import pytest

from packager.core.config import PackagerConfig
from packager.core.dependencies import create_orchestrator, create_version_store
from packager.services.assembler import apply_package, read_descriptor
from packager.storage.sqlite_db_manager import SqliteDatabaseManager
from tests.helpers import write_tree


def _store_release(config: PackagerConfig, version: str, files: dict) -> Path:
    return write_tree(config.release_dir / version, files)


def test_packages_every_older_version(config: PackagerConfig, db: SqliteDatabaseManager) -> None:
    _store_release(config, "1", {"a.txt": "one"})
    _store_release(config, "2", {"a.txt": "two"})
    new_root = _store_release(config, "3", {"a.txt": "three", "b.txt": "new"})
    orchestrator = create_orchestrator(config, db)

    created = orchestrator.generate_upgrades("3", new_root, ["1", "2", "3"])

    assert [p.pair for p in created] == [("1", "3"), ("2", "3")]
    assert db.exists("1", "3") and db.exists("2", "3")
    assert not orchestrator.failed_pairs
    artifact = config.package_dir / "1-3.tar.gz"
    assert created[0].update_url == str(artifact.resolve())
    assert read_descriptor(artifact) == {"a.txt": "modified", "b.txt": "added"}


def test_repeated_call_creates_nothing_new(config: PackagerConfig, db: SqliteDatabaseManager) -> None:
    _store_release(config, "1", {"a.txt": "one"})
    new_root = _store_release(config, "2", {"a.txt": "two"})
    orchestrator = create_orchestrator(config, db)

    first = orchestrator.generate_upgrades("2", new_root, ["1"])
    second = orchestrator.generate_upgrades("2", new_root, ["1"])

    assert len(first) == 1
    assert second == []
    assert len(db.list_packages()) == 1


def test_newer_and_equal_versions_are_skipped_numerically(config: PackagerConfig, db: SqliteDatabaseManager) -> None:
    _store_release(config, "9", {"a.txt": "nine"})
    _store_release(config, "11", {"a.txt": "eleven"})
    new_root = _store_release(config, "10", {"a.txt": "ten"})
    orchestrator = create_orchestrator(config, db)

    created = orchestrator.generate_upgrades("10", new_root, ["11", "10", "9"])

    assert [p.pair for p in created] == [("9", "10")]


def test_failed_pair_does_not_stop_other_pairs(config: PackagerConfig, db: SqliteDatabaseManager) -> None:
    _store_release(config, "1", {"a.txt": "one"})
    _store_release(config, "3", {"a.txt": "three"})
    new_root = _store_release(config, "4", {"a.txt": "four"})
    orchestrator = create_orchestrator(config, db)

    # version 2 is known but its tree is missing
    created = orchestrator.generate_upgrades("4", new_root, ["1", "2", "3"])

    assert [p.pair for p in created] == [("1", "4"), ("3", "4")]
    assert orchestrator.failed_pairs == [("2", "4")]
    assert not db.exists("2", "4")

    _store_release(config, "2", {"a.txt": "two"})
    retried = orchestrator.generate_upgrades("4", new_root, ["1", "2", "3"])

    assert [p.pair for p in retried] == [("2", "4")]
    assert orchestrator.failed_pairs == []


class _BrokenStore(SqliteDatabaseManager):
    def exists(self, from_version: str, to_version: str) -> bool:
        raise sqlite3.OperationalError("database is locked")


def test_store_failure_aborts_the_call(config: PackagerConfig) -> None:
    _store_release(config, "1", {"a.txt": "one"})
    new_root = _store_release(config, "2", {"a.txt": "two"})

    with _BrokenStore(config.database_path) as store:
        orchestrator = create_orchestrator(config, store)
        with pytest.raises(sqlite3.OperationalError):
            orchestrator.generate_upgrades("2", new_root, ["1"])

    assert not (config.package_dir / "1-2.tar.gz").exists()


def test_manifests_are_cached_beside_release_trees(config: PackagerConfig, db: SqliteDatabaseManager) -> None:
    _store_release(config, "1", {"a.txt": "one"})
    new_root = _store_release(config, "2", {"a.txt": "two"})
    orchestrator = create_orchestrator(config, db, create_version_store(config))

    orchestrator.generate_upgrades("2", new_root, ["1"])

    assert (config.release_dir / "1.hashes").is_file()
    assert (config.release_dir / "2.hashes").is_file()


def test_base_url_is_recorded_as_update_url(config: PackagerConfig, db: SqliteDatabaseManager) -> None:
    config = config.model_copy(update={"package_base_url": "https://cdn.example.com/up"})
    _store_release(config, "1", {"a.txt": "one"})
    new_root = _store_release(config, "2", {"a.txt": "two"})

    created = create_orchestrator(config, db).generate_upgrades("2", new_root, ["1"])

    assert created[0].update_url == "https://cdn.example.com/up/1-2.tar.gz"
    assert db.get_package("1", "2").update_url == "https://cdn.example.com/up/1-2.tar.gz"


def _write_undecodable(directory: Path, content: bytes) -> str:
    name = os.fsdecode(b"bad\xff.txt")
    try:
        (directory / name).write_bytes(content)
    except (OSError, UnicodeError):
        pytest.skip("filesystem rejects non-UTF-8 file names")
    return name


@pytest.mark.skipif(os.name != "posix", reason="byte file names are POSIX only")
def test_undecodable_file_name_is_packaged(config: PackagerConfig, db: SqliteDatabaseManager, tmp_path: Path) -> None:
    _store_release(config, "1", {"a.txt": "one"})
    v2 = _store_release(config, "2", {"a.txt": "one"})
    name = _write_undecodable(v2, b"old")
    new_root = _store_release(config, "3", {"a.txt": "three"})
    _write_undecodable(new_root, b"new")
    client = write_tree(tmp_path / "client", {"a.txt": "one"})

    created = create_orchestrator(config, db).generate_upgrades("3", new_root, ["1", "2"])

    assert [p.pair for p in created] == [("1", "3"), ("2", "3")]
    assert read_descriptor(config.package_dir / "2-3.tar.gz") == {"a.txt": "modified", name: "modified"}

    apply_package(config.package_dir / "1-3.tar.gz", client)
    assert (client / name).read_bytes() == b"new"
