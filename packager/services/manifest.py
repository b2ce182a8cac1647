"""
Content-addressed manifests of release trees.

A manifest maps every regular file below a release root (as a normalized,
forward-slash relative path) to the hex SHA-256 of its content.
"""
from __future__ import annotations

import hashlib
import logging
import os
from pathlib import Path
from typing import Optional

from packager.domain.models import FileManifest
from packager.storage.manifest_cache import ManifestCache

logger = logging.getLogger(__name__)

_HASH_CHUNK_SIZE = 65536


def sha256_file(path: Path) -> str:
    """
    Hash a file's full byte stream.

    An empty file feeds no bytes to the hasher and therefore yields the
    digest of empty input.
    """
    buffer = bytearray(_HASH_CHUNK_SIZE)
    view = memoryview(buffer)
    h = hashlib.sha256()
    with open(path, "rb") as f:
        while True:
            chunk_len = f.readinto(buffer)
            if not chunk_len:
                return h.hexdigest()
            h.update(view[:chunk_len])


def relative_key(root: Path, path: Path) -> str:
    """Strip the root prefix from path and normalize separators to '/'."""
    rel = os.path.relpath(path, root)
    return rel.replace(os.sep, "/")


def _raise_walk_error(error: OSError) -> None:
    raise error


def build_manifest(root: Path) -> FileManifest:
    """
    Walk a release tree and hash every regular file below it.

    Directories are not represented. Symlinked directories are not followed.

    Raises:
        OSError: if root is not a directory, the tree cannot be walked or a
            file cannot be read.
    """
    root = Path(root)
    if not root.is_dir():
        raise NotADirectoryError(f"Release tree not found or not a directory: {root}")

    manifest: FileManifest = {}
    for dirpath, dirnames, filenames in os.walk(root, onerror=_raise_walk_error):
        dirnames.sort()
        for name in sorted(filenames):
            full_path = Path(dirpath) / name
            if not full_path.is_file():
                # sockets, fifos, dangling links
                continue
            manifest[relative_key(root, full_path)] = sha256_file(full_path)
    return manifest


class ManifestBuilder:
    """
    Builds manifests on demand and keeps them in a manifest cache.
    """

    def __init__(self, cache: ManifestCache, log: Optional[logging.Logger] = None):
        self.cache = cache
        self.log = log or logger

    def get_or_build(self, version: str, root: Path) -> FileManifest:
        """
        Return the manifest for a version, building it from root on cache miss.

        A cached manifest is trusted without re-hashing. Failing to write the
        freshly built manifest back to the cache is logged and ignored.
        """
        cached = self.cache.load(version)
        if cached is not None:
            self.log.debug(f"Using cached manifest for version {version} ({len(cached)} files)")
            return cached

        self.log.info(f"No cached manifest for version {version}, hashing {root}")
        manifest = build_manifest(root)
        self.log.info(f"Hashed {len(manifest)} files for version {version}")

        try:
            self.cache.save(version, manifest)
        except Exception as e:
            self.log.warning(f"Failed to cache manifest for version {version}: {e}")
        return manifest
