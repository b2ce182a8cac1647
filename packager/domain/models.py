"""
Pydantic models and type aliases for the update packager.

This module defines the data shared across the packager, including:
- File manifests and delta operation sets
- Upgrade package records persisted in the upgrade-path store
- Release announcements produced by release sources
- Results returned by the package assembler and the run cycle

Manifests and operation sets are plain dictionaries (path -> value); anything
that is persisted or returned over the API is a Pydantic model.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Manifest / Delta Types
# ---------------------------------------------------------------------------

# Normalized relative path ("dir/file.txt") -> hex SHA-256 of the file content.
FileManifest = Dict[str, str]

DeltaOperation = Literal["added", "modified", "removed"]
DescriptorOperation = Literal["added", "modified", "removed", "modified-deferred"]

# Path -> operation. Paths that are identical in both manifests are absent.
DeltaOperationSet = Dict[str, DeltaOperation]
Descriptor = Dict[str, DescriptorOperation]

OPERATION_ADDED: DeltaOperation = "added"
OPERATION_MODIFIED: DeltaOperation = "modified"
OPERATION_REMOVED: DeltaOperation = "removed"
OPERATION_DEFERRED: DescriptorOperation = "modified-deferred"


# ---------------------------------------------------------------------------
# Persisted Records
# ---------------------------------------------------------------------------


class UpgradePackage(BaseModel):
    """
    An upgrade path that has been packaged and stored.

    One record exists per (from_version, to_version) pair. Records are never
    updated; a retracted package is soft-deleted in the store.

    Persisted in: the ``upgrade_packages`` table of the packager database.
    """

    from_version: str = Field(
        description="Version the client currently has installed.",
    )
    to_version: str = Field(
        description="Version the package upgrades the client to.",
    )
    update_url: str = Field(
        description="Locator of the compressed artifact (URL or local path).",
    )
    fingerprint: Optional[str] = Field(
        default=None,
        description="SHA-256 fingerprint of the delta operation set used to build the package.",
    )
    file_count: int = Field(
        default=0,
        ge=0,
        description="Number of payload files copied into the package.",
    )
    byte_count: int = Field(
        default=0,
        ge=0,
        description="Total size in bytes of the payload files.",
    )
    date_created: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the package record was created.",
    )

    @property
    def pair(self) -> Tuple[str, str]:
        return (self.from_version, self.to_version)


class ReleaseAnnouncement(BaseModel):
    """
    A newly announced release, as reported by a release source.

    For the feed source this is one release blog post; for a local release
    the GUID is the resolved path of the archive or directory.
    """

    guid: str = Field(
        description="Stable identifier of the announcement (feed item GUID or local path).",
    )
    title: str = Field(
        default="",
        description="Human readable title of the announcement.",
    )
    download_url: Optional[str] = Field(
        default=None,
        description="Where the release archive can be fetched from.",
    )
    published: Optional[datetime] = Field(
        default=None,
        description="Publication time reported by the source, if any.",
    )


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class AssembledPackage(BaseModel):
    """Outcome of assembling one upgrade package."""

    from_version: str
    to_version: str
    artifact_path: Path
    file_count: int = 0
    byte_count: int = 0
    deferred_count: int = 0
    fingerprint: str
    descriptor: Descriptor = Field(default_factory=dict)


class RunState(str, Enum):
    """States of a single check-and-package cycle."""

    IDLE = "idle"
    FEED_CHECKED = "feed_checked"
    RELEASE_FETCHED = "release_fetched"
    VERSION_RESOLVED = "version_resolved"
    PACKAGED = "packaged"
    WORKING_DIR_CLEARED = "working_dir_cleared"


class RunReport(BaseModel):
    """Summary of one run, returned by the runner and printed by the CLI."""

    state: RunState = RunState.IDLE
    announcement: Optional[ReleaseAnnouncement] = None
    new_version: Optional[str] = None
    known_versions: List[str] = Field(default_factory=list)
    created: List[UpgradePackage] = Field(default_factory=list)
    failed_pairs: List[Tuple[str, str]] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.failed_pairs
