from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class LocalArtifactSink:
    """
    Relocates finished packages into the durable package directory.

    The returned locator is `<package_base_url>/<artifact name>` when a base URL
    is configured, otherwise the absolute path of the stored artifact.
    """

    def __init__(self, package_dir: Path, package_base_url: Optional[str] = None):
        self.package_dir = Path(package_dir)
        self.package_base_url = package_base_url.rstrip("/") if package_base_url else None

    def path_for(self, artifact_name: str) -> Path:
        return self.package_dir / artifact_name

    def relocate(self, artifact_path: Path, from_version: str, to_version: str) -> str:
        artifact_path = Path(artifact_path)
        self.package_dir.mkdir(parents=True, exist_ok=True)
        target = self.path_for(artifact_path.name)
        try:
            os.replace(artifact_path, target)
        except OSError:
            shutil.move(str(artifact_path), str(target))
        logger.info(f"Stored package {from_version} -> {to_version} at {target}")

        if self.package_base_url:
            return f"{self.package_base_url}/{target.name}"
        return str(target.resolve())
