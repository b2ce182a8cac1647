"""
Generate upgrade packages from every known prior version to a new version.
"""
from __future__ import annotations

import logging
import tarfile
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from packager.core.config import PackagerConfig
from packager.domain.models import UpgradePackage
from packager.domain.versions import is_older, sort_versions
from packager.services.assembler import PackageAssembler
from packager.services.delta import compute_delta, summarize
from packager.services.manifest import ManifestBuilder
from packager.storage.artifact_sink import LocalArtifactSink
from packager.storage.db_manager import DatabaseManager
from packager.storage.version_store import ReleaseDirectoryVersionStore

logger = logging.getLogger(__name__)


class UpgradePathOrchestrator:
    """
    Drives manifest building, delta calculation and package assembly for
    each (known version, new version) pair.

    Each pair is an independent unit of work: an I/O or path failure while
    processing one pair is logged and the remaining pairs still run. The
    failed pair has no record and is retried on the next invocation.
    """

    def __init__(
        self,
        config: PackagerConfig,
        version_store: ReleaseDirectoryVersionStore,
        manifests: ManifestBuilder,
        assembler: PackageAssembler,
        store: DatabaseManager,
        sink: LocalArtifactSink,
        log: Optional[logging.Logger] = None,
    ):
        self.working_dir = Path(config.working_dir)
        self.version_store = version_store
        self.manifests = manifests
        self.assembler = assembler
        self.store = store
        self.sink = sink
        self.log = log or logger
        self.failed_pairs: List[Tuple[str, str]] = []

    def generate_upgrades(
        self,
        new_version: str,
        new_tree_root: Path,
        known_versions: Iterable[str],
    ) -> List[UpgradePackage]:
        """
        Create packages from every known version older than new_version.

        Pairs that already have a record are skipped, so repeated calls with
        the same arguments create each record at most once.

        Returns:
            The records created by this call.

        Raises:
            sqlite3.Error (or any other store error): aborts the whole call.
        """
        self.failed_pairs = []
        created: List[UpgradePackage] = []

        for version in sort_versions(known_versions):
            if not is_older(version, new_version):
                self.log.debug(f"Skipping version {version}: not older than {new_version}")
                continue

            if self.store.exists(version, new_version):
                self.log.warning(f"Upgrade {version} -> {new_version} already processed")
                continue

            try:
                package = self._process_pair(version, new_version, Path(new_tree_root))
            except (OSError, tarfile.TarError, ValueError) as e:
                self.log.error(f"Failed to generate upgrade {version} -> {new_version}: {e}")
                self.failed_pairs.append((version, new_version))
                continue

            self.store.save(package)
            created.append(package)
            self.log.info(f"Upgrade package created: {version} -> {new_version} at {package.update_url}")

        return created

    def _process_pair(self, from_version: str, to_version: str, to_root: Path) -> UpgradePackage:
        self.log.info(f"Generating upgrade path {from_version} -> {to_version}")
        from_manifest = self.manifests.get_or_build(from_version, self.version_store.path_for(from_version))
        to_manifest = self.manifests.get_or_build(to_version, to_root)

        delta = compute_delta(from_manifest, to_manifest)
        self.log.info(f"Delta {from_version} -> {to_version}: {summarize(delta) or 'no changes'}")

        self.working_dir.mkdir(parents=True, exist_ok=True)
        assembled = self.assembler.assemble(delta, to_root, self.working_dir, from_version, to_version)
        locator = self.sink.relocate(assembled.artifact_path, from_version, to_version)

        return UpgradePackage(
            from_version=from_version,
            to_version=to_version,
            update_url=locator,
            fingerprint=assembled.fingerprint,
            file_count=assembled.file_count,
            byte_count=assembled.byte_count,
        )
