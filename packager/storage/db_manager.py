from abc import ABC, abstractmethod
from typing import List, Optional

from packager.domain.models import ReleaseAnnouncement, UpgradePackage


class DatabaseManager(ABC):
    """
    Abstract base class for the packager's persistent store.

    The store holds the upgrade-path lineage and the release announcements that
    have already been processed. Implementations hold one connection, which
    is opened by connect() and released by close(); the manager can also be
    used as a context manager around a single run or request.
    """

    @abstractmethod
    def connect(self) -> None:
        """Open the underlying connection and create the schema if needed."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the underlying connection."""
        pass

    def __enter__(self) -> "DatabaseManager":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Upgrade paths
    # ------------------------------------------------------------------

    @abstractmethod
    def exists(self, from_version: str, to_version: str) -> bool:
        """
        True if a non-deleted upgrade package exists for the pair.

        Not finding a record is the normal "not yet processed" answer; a
        genuine store failure raises.
        """
        pass

    @abstractmethod
    def save(self, package: UpgradePackage) -> None:
        """Persist a new upgrade package record."""
        pass

    @abstractmethod
    def get_package(self, from_version: str, to_version: str) -> Optional[UpgradePackage]:
        """Get the non-deleted record for a pair."""
        pass

    @abstractmethod
    def list_packages(
        self,
        from_version: Optional[str] = None,
        to_version: Optional[str] = None,
    ) -> List[UpgradePackage]:
        """List non-deleted records, optionally filtered by endpoint."""
        pass

    @abstractmethod
    def retract(self, from_version: str, to_version: str) -> bool:
        """Soft-delete the record for a pair. Returns False if none existed."""
        pass

    # ------------------------------------------------------------------
    # Release announcements
    # ------------------------------------------------------------------

    @abstractmethod
    def is_post_processed(self, guid: str) -> bool:
        """True if the release announcement has already been packaged."""
        pass

    @abstractmethod
    def record_post(self, announcement: ReleaseAnnouncement) -> None:
        """Remember a release announcement as processed."""
        pass
