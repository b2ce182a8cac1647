import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from packager.domain.models import ReleaseAnnouncement, UpgradePackage
from packager.storage.db_manager import DatabaseManager

logger = logging.getLogger(__name__)

create_tables_sql = """
CREATE TABLE IF NOT EXISTS "upgrade_packages" (
    "id" INTEGER PRIMARY KEY AUTOINCREMENT,
    "from_version" TEXT NOT NULL,
    "to_version" TEXT NOT NULL,
    "update_url" TEXT NOT NULL,
    "fingerprint" TEXT,
    "file_count" INTEGER NOT NULL DEFAULT 0,
    "byte_count" INTEGER NOT NULL DEFAULT 0,
    "date_created" TEXT NOT NULL,
    "is_deleted" INTEGER NOT NULL DEFAULT 0
);
CREATE UNIQUE INDEX IF NOT EXISTS "upgrade_packages_pair" ON "upgrade_packages" (
    "from_version",
    "to_version"
) WHERE "is_deleted" = 0;
CREATE TABLE IF NOT EXISTS "release_posts" (
    "id" INTEGER PRIMARY KEY AUTOINCREMENT,
    "guid" TEXT NOT NULL,
    "title" TEXT,
    "date_published" TEXT,
    "date_created" TEXT NOT NULL,
    "is_deleted" INTEGER NOT NULL DEFAULT 0
);
CREATE INDEX IF NOT EXISTS "release_posts_guid" ON "release_posts" ("guid");
"""

_PACKAGE_COLUMNS = "from_version, to_version, update_url, fingerprint, file_count, byte_count, date_created"


class SqliteDatabaseManager(DatabaseManager):
    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.conn: Optional[sqlite3.Connection] = None

    def connect(self) -> None:
        if self.conn is not None:
            return
        if str(self.db_path) != ":memory:":
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Connecting to packager database: {self.db_path}")
        # the run cycle hands packaging to a worker thread; a connection is
        # still only ever used by one run at a time
        self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        with self.conn:
            self.conn.executescript(create_tables_sql)

    def close(self) -> None:
        if self.conn:
            self.conn.close()
            self.conn = None

    def _connection(self) -> sqlite3.Connection:
        if self.conn is None:
            self.connect()
        return self.conn

    @staticmethod
    def _row_to_package(row: sqlite3.Row) -> UpgradePackage:
        return UpgradePackage(
            from_version=row["from_version"],
            to_version=row["to_version"],
            update_url=row["update_url"],
            fingerprint=row["fingerprint"],
            file_count=row["file_count"],
            byte_count=row["byte_count"],
            date_created=datetime.fromisoformat(row["date_created"]),
        )

    # ------------------------------------------------------------------
    # Upgrade paths
    # ------------------------------------------------------------------

    def exists(self, from_version: str, to_version: str) -> bool:
        cursor = self._connection().execute(
            "SELECT 1 FROM upgrade_packages WHERE from_version = ? AND to_version = ? AND is_deleted = 0 LIMIT 1;",
            (from_version, to_version),
        )
        return cursor.fetchone() is not None

    def save(self, package: UpgradePackage) -> None:
        conn = self._connection()
        with conn:
            conn.execute(
                f"INSERT INTO upgrade_packages ({_PACKAGE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?);",
                (
                    package.from_version,
                    package.to_version,
                    package.update_url,
                    package.fingerprint,
                    package.file_count,
                    package.byte_count,
                    package.date_created.isoformat(),
                ),
            )

    def get_package(self, from_version: str, to_version: str) -> Optional[UpgradePackage]:
        cursor = self._connection().execute(
            f"SELECT {_PACKAGE_COLUMNS} FROM upgrade_packages "
            "WHERE from_version = ? AND to_version = ? AND is_deleted = 0 LIMIT 1;",
            (from_version, to_version),
        )
        row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_package(row)

    def list_packages(
        self,
        from_version: Optional[str] = None,
        to_version: Optional[str] = None,
    ) -> List[UpgradePackage]:
        query = f"SELECT {_PACKAGE_COLUMNS} FROM upgrade_packages WHERE is_deleted = 0"
        params: list = []
        if from_version is not None:
            query += " AND from_version = ?"
            params.append(from_version)
        if to_version is not None:
            query += " AND to_version = ?"
            params.append(to_version)
        query += " ORDER BY id;"
        cursor = self._connection().execute(query, params)
        return [self._row_to_package(row) for row in cursor.fetchall()]

    def retract(self, from_version: str, to_version: str) -> bool:
        conn = self._connection()
        with conn:
            cursor = conn.execute(
                "UPDATE upgrade_packages SET is_deleted = 1 WHERE from_version = ? AND to_version = ? AND is_deleted = 0;",
                (from_version, to_version),
            )
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Release announcements
    # ------------------------------------------------------------------

    def is_post_processed(self, guid: str) -> bool:
        cursor = self._connection().execute(
            "SELECT 1 FROM release_posts WHERE guid = ? AND is_deleted = 0 LIMIT 1;",
            (guid,),
        )
        return cursor.fetchone() is not None

    def record_post(self, announcement: ReleaseAnnouncement) -> None:
        if self.is_post_processed(announcement.guid):
            return
        conn = self._connection()
        with conn:
            conn.execute(
                "INSERT INTO release_posts (guid, title, date_published, date_created) VALUES (?, ?, ?, ?);",
                (
                    announcement.guid,
                    announcement.title,
                    announcement.published.isoformat() if announcement.published else None,
                    datetime.now(timezone.utc).isoformat(),
                ),
            )
