from __future__ import annotations

import asyncio
import io
import zipfile
from pathlib import Path

import httpx
import pytest

from packager.core.config import PackagerConfig
from packager.domain.errors import VersionResolutionError
from packager.domain.models import RunState
from packager.services.assembler import PackageAssembler, read_descriptor
from packager.services.release.feed import FeedReleaseSource
from packager.services.release.local import LocalReleaseSource
from packager.services.runner import PackagerRunner
from packager.storage.sqlite_db_manager import SqliteDatabaseManager
from tests.helpers import release_files, write_tree


def _run_local(config: PackagerConfig, path: Path, version_override=None):
    runner = PackagerRunner(config, LocalReleaseSource(path))
    return asyncio.run(runner.run_once(version_override=version_override))


def test_first_release_is_stored_without_packages(config: PackagerConfig, tmp_path: Path) -> None:
    src = write_tree(tmp_path / "src100", release_files(100, {"a.txt": "one"}))

    report = _run_local(config, src)

    assert report.state == RunState.WORKING_DIR_CLEARED
    assert report.new_version == "100"
    assert report.created == []
    assert (config.release_dir / "100" / "a.txt").is_file()
    assert not config.working_dir.exists()


def test_second_release_gets_upgrade_package(config: PackagerConfig, tmp_path: Path) -> None:
    _run_local(config, write_tree(tmp_path / "src100", release_files(100, {"a.txt": "one", "old.txt": "x"})))
    src101 = write_tree(tmp_path / "src101", release_files(101, {"a.txt": "two", "b.pak": b"pak"}))

    report = _run_local(config, src101)

    assert [p.pair for p in report.created] == [("100", "101")]
    assert report.known_versions == ["100", "101"]
    assert read_descriptor(config.package_dir / "100-101.tar.gz") == {
        "a.txt": "modified",
        "b.pak": "modified-deferred",
        "build.json": "modified",
        "old.txt": "removed",
    }
    assert report.state == RunState.WORKING_DIR_CLEARED

    again = _run_local(config, src101)
    assert again.created == []
    with SqliteDatabaseManager(config.database_path) as db:
        assert len(db.list_packages()) == 1


def test_version_override_skips_metadata_lookup(config: PackagerConfig, tmp_path: Path) -> None:
    src = write_tree(tmp_path / "src", {"a.txt": "one"})

    report = _run_local(config, src, version_override="42")

    assert report.new_version == "42"
    assert (config.release_dir / "42").is_dir()


def test_missing_version_metadata_aborts_run(config: PackagerConfig, tmp_path: Path) -> None:
    src = write_tree(tmp_path / "src", {"a.txt": "one"})

    with pytest.raises(VersionResolutionError):
        _run_local(config, src)
    assert config.release_dir.is_dir() and list(config.release_dir.iterdir()) == []


def test_failed_pair_keeps_working_dir_and_is_retried(
    config: PackagerConfig, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _run_local(config, write_tree(tmp_path / "src1", release_files(1, {"a.txt": "one"})))
    _run_local(config, write_tree(tmp_path / "src2", release_files(2, {"a.txt": "two"})))
    src3 = write_tree(tmp_path / "src3", release_files(3, {"a.txt": "three"}))

    original_compress = PackageAssembler._compress

    def flaky_compress(self, staging_dir: Path, artifact_path: Path) -> None:
        if artifact_path.name.startswith("1-"):
            raise OSError("disk full")
        original_compress(self, staging_dir, artifact_path)

    monkeypatch.setattr(PackageAssembler, "_compress", flaky_compress)
    report = _run_local(config, src3)

    assert [p.pair for p in report.created] == [("2", "3")]
    assert report.failed_pairs == [("1", "3")]
    assert not report.succeeded
    assert report.state == RunState.PACKAGED
    assert config.working_dir.exists()

    monkeypatch.undo()
    retry = _run_local(config, src3)

    assert [p.pair for p in retry.created] == [("1", "3")]
    assert retry.state == RunState.WORKING_DIR_CLEARED



FEED_URL = "https://blog.example.com/feed"


def _feed(items: str) -> str:
    return f'<rss version="2.0"><channel>{items}</channel></rss>'


def _item(guid: str, url: str) -> str:
    return f"<item><title>Build {guid} release</title><guid>{guid}</guid><description>{url}</description></item>"


def _zip_release(changelist: int, files: dict) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, content in release_files(changelist, files).items():
            zf.writestr(name, content)
    return buffer.getvalue()


def test_feed_run_records_post_and_ignores_it_next_time(config: PackagerConfig) -> None:
    url = "https://cdn.example.com/client-xan-7-linux.zip"
    payload = _zip_release(7, {"a.txt": "seven"})
    feed = _feed(_item("7", url))

    def handler(request: httpx.Request) -> httpx.Response:
        if str(request.url) == FEED_URL:
            return httpx.Response(200, text=feed)
        if str(request.url) == url:
            return httpx.Response(200, content=payload)
        return httpx.Response(404)

    config = config.model_copy(update={"release_feed_url": FEED_URL})
    runner = PackagerRunner(config, FeedReleaseSource(config, transport=httpx.MockTransport(handler)))

    first = asyncio.run(runner.run_once())
    assert first.announcement is not None and first.announcement.guid == "7"
    assert first.new_version == "7"
    with SqliteDatabaseManager(config.database_path) as db:
        assert db.is_post_processed("7")

    second = asyncio.run(runner.run_once())
    assert second.announcement is None
    assert second.new_version == "7"
    assert second.created == []
    assert second.state == RunState.WORKING_DIR_CLEARED


@pytest.mark.parametrize("override", ["../outside", "a/b", ".."])
def test_unsafe_version_override_is_rejected(config: PackagerConfig, tmp_path: Path, override: str) -> None:
    src = write_tree(tmp_path / "src", {"a.txt": "one"})

    with pytest.raises(VersionResolutionError):
        _run_local(config, src, version_override=override)
    assert list(config.release_dir.iterdir()) == []
    assert not (tmp_path / "outside").exists()
