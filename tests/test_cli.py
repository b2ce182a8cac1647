from __future__ import annotations

from pathlib import Path

import pytest

from packager.__main__ import main
from tests.helpers import release_files, write_tree


@pytest.fixture
def packager_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("PACKAGER_RELEASE_DIR", str(tmp_path / "releases"))
    monkeypatch.setenv("PACKAGER_WORKING_DIR", str(tmp_path / "working"))
    monkeypatch.setenv("PACKAGER_PACKAGE_DIR", str(tmp_path / "packages"))
    monkeypatch.setenv("PACKAGER_DATABASE_PATH", str(tmp_path / "packager.db"))
    monkeypatch.setenv("PACKAGER_VERSION_FILE", "build.json")
    monkeypatch.delenv("PACKAGER_CONFIG_FILE", raising=False)
    return tmp_path


def test_package_command_builds_upgrade(packager_env: Path, capsys: pytest.CaptureFixture) -> None:
    v1 = write_tree(packager_env / "v1", release_files(1, {"a.txt": "one"}))
    v2 = write_tree(packager_env / "v2", release_files(2, {"a.txt": "two"}))

    assert main(["package", str(v1)]) == 0
    assert main(["package", str(v2)]) == 0

    out = capsys.readouterr().out
    assert "created: 1 -> 2" in out
    assert (packager_env / "packages" / "1-2.tar.gz").is_file()


def test_invalid_configuration_exits_with_2(packager_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PACKAGER_SCHEDULE_INTERVAL_SECONDS", "1")

    assert main(["package", str(packager_env)]) == 2


def test_unresolvable_release_exits_with_1(packager_env: Path) -> None:
    src = write_tree(packager_env / "src", {"a.txt": "no metadata"})

    assert main(["package", str(src)]) == 1


def test_run_once_without_feed_url_exits_with_1(packager_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("PACKAGER_RELEASE_FEED_URL", raising=False)

    assert main(["run-once"]) == 1
