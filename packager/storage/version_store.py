from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import List, Optional

from packager.domain.versions import sort_versions
from packager.storage.manifest_cache import ManifestCache

logger = logging.getLogger(__name__)


class ReleaseDirectoryVersionStore:
    """
    Known versions are the sub-directories of the release directory.

    Layout: <release_dir>/<version>/... (the extracted release tree).
    """

    def __init__(self, release_dir: Path, manifest_cache: Optional[ManifestCache] = None):
        self.release_dir = Path(release_dir)
        self.manifest_cache = manifest_cache

    def list_known_versions(self) -> List[str]:
        """Return all stored versions, oldest first (numeric order)."""
        if not self.release_dir.is_dir():
            return []
        names = [entry.name for entry in self.release_dir.iterdir() if entry.is_dir()]
        return sort_versions(names)

    def path_for(self, version: str) -> Path:
        return self.release_dir / version

    def latest_version(self) -> Optional[str]:
        versions = self.list_known_versions()
        return versions[-1] if versions else None

    def install(self, version: str, tree: Path) -> Path:
        """
        Move an extracted release tree into the store under its version.

        An existing tree for the same version is replaced and its cached
        manifest invalidated.
        """
        target = self.path_for(version)
        self.release_dir.mkdir(parents=True, exist_ok=True)
        if target.exists():
            logger.warning(f"Replacing existing release tree for version {version}")
            shutil.rmtree(target)
        if self.manifest_cache is not None:
            self.manifest_cache.invalidate(version)
        try:
            os.replace(tree, target)
        except OSError:
            # working dir and release dir on different filesystems
            shutil.move(str(tree), str(target))
        logger.info(f"Installed release {version} at {target}")
        return target
