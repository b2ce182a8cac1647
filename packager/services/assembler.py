"""
Assemble upgrade packages from a delta operation set.

A package is a gzip-compressed tar containing every added or modified file
of the target release (except deferred opaque files) at its relative path,
plus a descriptor listing all operations so a client can:

* copy in the files present in the payload,
* delete the files marked "removed",
* fetch any "modified-deferred" file in full.
"""
from __future__ import annotations

import json
import logging
import os
import shutil
import tarfile
from pathlib import Path, PurePosixPath
from typing import Mapping, Optional

from packager.core.config import PackagerConfig
from packager.domain.models import (
    OPERATION_ADDED,
    OPERATION_DEFERRED,
    OPERATION_MODIFIED,
    OPERATION_REMOVED,
    AssembledPackage,
    DeltaOperationSet,
    Descriptor,
)
from packager.services.delta import delta_fingerprint
from packager.storage.files import format_size, safe_output_filename

logger = logging.getLogger(__name__)

ARTIFACT_SUFFIX = ".tar.gz"


def artifact_name(from_version: str, to_version: str) -> str:
    return f"{from_version}-{to_version}{ARTIFACT_SUFFIX}"


def _safe_relative(path: str) -> PurePosixPath:
    rel = PurePosixPath(path)
    if rel.is_absolute() or ".." in rel.parts or not rel.parts:
        raise ValueError(f"Refusing unsafe package path: {path!r}")
    return rel


class PackageAssembler:
    """
    Materializes a staging directory with the changed payload and descriptor,
    then compresses it into a single artifact.
    """

    def __init__(self, config: PackagerConfig, log: Optional[logging.Logger] = None):
        self.deferred_extensions = tuple(config.deferred_extensions)
        self.descriptor_name = config.descriptor_name
        self.log = log or logger

    def is_deferred(self, path: str) -> bool:
        """True if the path names a large opaque file that is never copied."""
        return PurePosixPath(path).suffix.lower() in self.deferred_extensions

    def build_descriptor(self, delta: Mapping[str, str]) -> Descriptor:
        """Rewrite deferred added/modified entries as "modified-deferred"."""
        descriptor: Descriptor = {}
        for path in sorted(delta):
            operation = delta[path]
            if operation in (OPERATION_ADDED, OPERATION_MODIFIED) and self.is_deferred(path):
                descriptor[path] = OPERATION_DEFERRED
            else:
                descriptor[path] = operation
        return descriptor

    def assemble(
        self,
        delta: DeltaOperationSet,
        source_root: Path,
        working_dir: Path,
        from_version: str,
        to_version: str,
    ) -> AssembledPackage:
        """
        Stage and compress the package for one (from_version, to_version) pair.

        Args:
            delta: Operations between the two versions' manifests.
            source_root: Root of the to_version release tree.
            working_dir: Scratch directory owned by the current run.

        Returns:
            The artifact location plus payload counts and the delta fingerprint.

        Raises:
            OSError, tarfile.TarError: if copying, writing or compression fails.
        """
        source_root = Path(source_root)
        working_dir = Path(working_dir)
        staging_dir = working_dir / f"{from_version}-{to_version}-package"
        if staging_dir.exists():
            shutil.rmtree(staging_dir)
        staging_dir.mkdir(parents=True)

        descriptor = self.build_descriptor(delta)
        fingerprint = delta_fingerprint(delta)

        file_count = 0
        byte_count = 0
        deferred_count = 0
        for path, operation in descriptor.items():
            if operation == OPERATION_REMOVED:
                self.log.debug(f"File removed: {path}")
                continue
            if operation == OPERATION_DEFERRED:
                self.log.debug(f"Deferred opaque file: {path}")
                deferred_count += 1
                continue

            rel = _safe_relative(path)
            source_path = source_root.joinpath(*rel.parts)
            destination_path = staging_dir.joinpath(*rel.parts)
            destination_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source_path, destination_path)
            file_count += 1
            byte_count += destination_path.stat().st_size

        (staging_dir / self.descriptor_name).write_text(
            json.dumps(descriptor, sort_keys=True, indent=None),
            encoding="utf-8",
        )

        artifact_path = working_dir / artifact_name(from_version, to_version)
        self._compress(staging_dir, artifact_path)
        shutil.rmtree(staging_dir, ignore_errors=True)

        self.log.info(
            f"Package {from_version} -> {to_version}: {file_count} files, "
            f"{format_size(byte_count)}, {deferred_count} deferred, fingerprint {fingerprint}"
        )
        return AssembledPackage(
            from_version=from_version,
            to_version=to_version,
            artifact_path=artifact_path,
            file_count=file_count,
            byte_count=byte_count,
            deferred_count=deferred_count,
            fingerprint=fingerprint,
            descriptor=descriptor,
        )

    def _compress(self, staging_dir: Path, artifact_path: Path) -> None:
        members = []
        for dirpath, dirnames, filenames in os.walk(staging_dir):
            dirnames.sort()
            for name in filenames:
                full_path = Path(dirpath) / name
                members.append((full_path.relative_to(staging_dir).as_posix(), full_path))
        members.sort()

        with safe_output_filename(artifact_path) as tmpfile:
            with tarfile.open(tmpfile, mode="w:gz", format=tarfile.PAX_FORMAT) as tf:
                for arcname, full_path in members:
                    tf.add(full_path, arcname=arcname, recursive=False)


def read_descriptor(artifact_path: Path, descriptor_name: str = "operations.json") -> Descriptor:
    """Read the descriptor back out of a package artifact."""
    with tarfile.open(artifact_path, mode="r:gz") as tf:
        member = tf.extractfile(descriptor_name)
        if member is None:
            raise KeyError(descriptor_name)
        with member:
            return json.loads(member.read().decode("utf-8"))


def apply_package(
    artifact_path: Path,
    target_root: Path,
    descriptor_name: str = "operations.json",
) -> Descriptor:
    """
    Apply a package to a tree holding the package's from_version.

    "removed" paths are deleted first, together with any directories they
    leave empty, so a path may change between file and directory. Payload
    files are then copied in. Deferred files are left untouched (they must
    be fetched in full separately). Returns the descriptor that was applied.
    """
    target_root = Path(target_root)
    descriptor = read_descriptor(artifact_path, descriptor_name)

    for path, operation in descriptor.items():
        if operation != OPERATION_REMOVED:
            continue
        rel = _safe_relative(path)
        removed = target_root.joinpath(*rel.parts)
        removed.unlink(missing_ok=True)
        _prune_empty_parents(removed.parent, target_root)

    with tarfile.open(artifact_path, mode="r:gz") as tf:
        for member in tf.getmembers():
            if member.name == descriptor_name or not member.isfile():
                continue
            rel = _safe_relative(member.name)
            destination = target_root.joinpath(*rel.parts)
            destination.parent.mkdir(parents=True, exist_ok=True)
            source = tf.extractfile(member)
            with source, open(destination, "wb") as dst:
                shutil.copyfileobj(source, dst)
            os.chmod(destination, member.mode)
    return descriptor


def _prune_empty_parents(directory: Path, root: Path) -> None:
    while directory != root and directory.is_dir() and not any(directory.iterdir()):
        directory.rmdir()
        directory = directory.parent
