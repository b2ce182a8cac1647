"""
Client API endpoints for discovering upgrade packages.

A client that has version X installed asks for the upgrade paths from X,
downloads the package to the newest version, applies its payload, deletes
the files marked "removed" and fetches any "modified-deferred" file in full.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import FileResponse
from pydantic import BaseModel, Field

from packager.core.config import PackagerConfig
from packager.core.dependencies import get_config, get_db_manager, get_version_store
from packager.domain.models import Descriptor, UpgradePackage
from packager.domain.versions import version_key
from packager.services.assembler import artifact_name, read_descriptor
from packager.storage.db_manager import DatabaseManager
from packager.storage.version_store import ReleaseDirectoryVersionStore


router = APIRouter()


class VersionList(BaseModel):
    versions: List[str] = Field(
        default_factory=list,
        description="Known versions, oldest first.",
    )
    latest: Optional[str] = Field(
        default=None,
        description="The newest known version.",
    )


class UpgradeList(BaseModel):
    from_version: str
    upgrades: List[UpgradePackage] = Field(default_factory=list)


def _artifact_path(config: PackagerConfig, from_version: str, to_version: str) -> Path:
    return config.package_dir / artifact_name(from_version, to_version)


def _require_package(db: DatabaseManager, from_version: str, to_version: str) -> UpgradePackage:
    package = db.get_package(from_version, to_version)
    if package is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No upgrade package from {from_version} to {to_version}",
        )
    return package


@router.get("/versions", response_model=VersionList)
async def list_versions(
    store: ReleaseDirectoryVersionStore = Depends(get_version_store),
) -> VersionList:
    versions = store.list_known_versions()
    return VersionList(versions=versions, latest=versions[-1] if versions else None)


@router.get("/upgrades/{from_version}", response_model=UpgradeList)
async def list_upgrades(
    from_version: str,
    db: DatabaseManager = Depends(get_db_manager),
) -> UpgradeList:
    """
    All upgrade packages available from the given version, ordered by target version.
    """
    upgrades = sorted(db.list_packages(from_version=from_version), key=lambda p: version_key(p.to_version))
    return UpgradeList(from_version=from_version, upgrades=upgrades)


@router.get("/upgrades/{from_version}/latest", response_model=UpgradePackage)
async def latest_upgrade(
    from_version: str,
    db: DatabaseManager = Depends(get_db_manager),
) -> UpgradePackage:
    """
    The package that takes a client from `from_version` to the newest version
    for which a package exists.
    """
    upgrades = db.list_packages(from_version=from_version)
    if not upgrades:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No upgrade packages from {from_version}",
        )
    return max(upgrades, key=lambda p: version_key(p.to_version))


@router.get("/packages/{from_version}/{to_version}")
async def download_package(
    from_version: str,
    to_version: str,
    db: DatabaseManager = Depends(get_db_manager),
    config: PackagerConfig = Depends(get_config),
) -> FileResponse:
    _require_package(db, from_version, to_version)
    path = _artifact_path(config, from_version, to_version)
    if not path.is_file():
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Package file for {from_version} -> {to_version} is missing",
        )
    return FileResponse(path, media_type="application/gzip", filename=path.name)


@router.get("/packages/{from_version}/{to_version}/operations", response_model=Descriptor)
async def package_operations(
    from_version: str,
    to_version: str,
    db: DatabaseManager = Depends(get_db_manager),
    config: PackagerConfig = Depends(get_config),
) -> Descriptor:
    """
    The delta descriptor stored inside the package.
    """
    _require_package(db, from_version, to_version)
    path = _artifact_path(config, from_version, to_version)
    if not path.is_file():
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Package file for {from_version} -> {to_version} is missing",
        )
    return read_descriptor(path, config.descriptor_name)
