from __future__ import annotations

from pathlib import Path
from typing import List

from packager.domain.errors import ReleaseSourceError
from packager.domain.models import ReleaseAnnouncement
from packager.services.release.archive import copy_release_tree, extract_zip


class LocalReleaseSource:
    """
    A single release given as a local ZIP archive or an extracted directory.

    Local releases are always processed; the upgrade-path store still keeps
    repeated runs from regenerating existing packages.
    """

    track_processed = False

    def __init__(self, path: Path):
        self.path = Path(path).expanduser().resolve()

    async def announcements(self) -> List[ReleaseAnnouncement]:
        if not self.path.exists():
            raise ReleaseSourceError(f"Local release not found: {self.path}")
        return [ReleaseAnnouncement(guid=str(self.path), title=self.path.name)]

    async def fetch(self, announcement: ReleaseAnnouncement, working_dir: Path) -> Path:
        destination = Path(working_dir) / "newrelease"
        if self.path.is_dir():
            return copy_release_tree(self.path, destination)
        return extract_zip(self.path, destination)
