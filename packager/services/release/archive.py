"""
Extraction of downloaded release archives.
"""
from __future__ import annotations

import logging
import shutil
import zipfile
from pathlib import Path, PurePosixPath

from packager.domain.errors import ReleaseSourceError

logger = logging.getLogger(__name__)


def _member_target(extract_path: Path, name: str) -> Path:
    arcpath = PurePosixPath(name.replace("\\", "/"))
    if arcpath.is_absolute() or ".." in arcpath.parts:
        raise ReleaseSourceError(f"Path traversal in archive member: {name}")
    return extract_path.joinpath(*arcpath.parts)


def extract_zip(zip_path: Path, extract_path: Path) -> Path:
    """
    Extract a release ZIP into extract_path, replacing anything already there.

    Unix permission bits recorded in the archive are restored on files.

    Returns:
        The extraction root.
    """
    zip_path = Path(zip_path)
    extract_path = Path(extract_path)
    if extract_path.exists():
        shutil.rmtree(extract_path)
    extract_path.mkdir(parents=True)

    try:
        with zipfile.ZipFile(zip_path, "r") as zip_ref:
            for info in zip_ref.infolist():
                target = _member_target(extract_path, info.filename)
                if info.is_dir():
                    target.mkdir(parents=True, exist_ok=True)
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                with zip_ref.open(info, "r") as src, open(target, "wb") as dst:
                    shutil.copyfileobj(src, dst, 262144)
                mode = (info.external_attr >> 16) & 0o7777
                if mode:
                    target.chmod(mode)
    except zipfile.BadZipFile as e:
        raise ReleaseSourceError(f"Release archive {zip_path} is not a valid ZIP file: {e}") from e

    logger.info(f"Extracted {zip_path} to {extract_path}")
    return extract_path


def copy_release_tree(source: Path, destination: Path) -> Path:
    """Copy a local release directory into the working directory."""
    destination = Path(destination)
    if destination.exists():
        shutil.rmtree(destination)
    shutil.copytree(source, destination, symlinks=True)
    return destination
