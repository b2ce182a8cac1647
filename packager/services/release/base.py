from pathlib import Path
from typing import List, Protocol

from packager.domain.models import ReleaseAnnouncement


class ReleaseSource(Protocol):
    """
    Where new releases come from.

    `announcements()` lists candidate releases oldest first; the run cycle
    picks the first one that has not been processed yet (when
    `track_processed` is true) and asks the source to `fetch()` it into the
    working directory as an extracted tree.
    """

    track_processed: bool

    async def announcements(self) -> List[ReleaseAnnouncement]:
        ...

    async def fetch(self, announcement: ReleaseAnnouncement, working_dir: Path) -> Path:
        ...
