from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from packager.domain.models import FileManifest
from packager.storage.files import write_text_atomic

logger = logging.getLogger(__name__)


class ManifestCache(ABC):
    """
    Side-channel store for per-version manifests.
    """

    @abstractmethod
    def load(self, version: str) -> Optional[FileManifest]:
        """Return the cached manifest for a version, or None on a miss."""
        pass

    @abstractmethod
    def save(self, version: str, manifest: FileManifest) -> None:
        """Persist a manifest. Callers treat failures as non-fatal."""
        pass

    @abstractmethod
    def invalidate(self, version: str) -> None:
        """Drop the cached manifest for a version (e.g. its tree was replaced)."""
        pass


class SideFileManifestCache(ManifestCache):
    """
    Stores each manifest as `<cache_dir>/<version>.hashes` (JSON, sorted keys).

    The cache directory is normally the release directory itself, so the
    cache file sits next to the version's tree.
    """

    def __init__(self, cache_dir: Path):
        self._cache_dir = Path(cache_dir)

    def path_for(self, version: str) -> Path:
        return self._cache_dir / f"{version}.hashes"

    def load(self, version: str) -> Optional[FileManifest]:
        path = self.path_for(version)
        if not path.exists():
            return None
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable manifest cache {path}: {e}")
            return None
        if not isinstance(raw, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in raw.items()
        ):
            logger.warning(f"Ignoring malformed manifest cache {path}")
            return None
        return raw

    def save(self, version: str, manifest: FileManifest) -> None:
        self._cache_dir.mkdir(parents=True, exist_ok=True)
        write_text_atomic(self.path_for(version), json.dumps(manifest, sort_keys=True, indent=None))

    def invalidate(self, version: str) -> None:
        self.path_for(version).unlink(missing_ok=True)
