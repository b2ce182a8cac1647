"""
One check-and-package cycle, and a loop that repeats it on a schedule.

A cycle walks these states:

    Idle -> FeedChecked -> ReleaseFetched -> VersionResolved
         -> (per pair: manifests, delta, package, persist) -> WorkingDirCleared -> Idle

When the release source has nothing new, the cycle reconciles the newest
known version instead: pairs that failed on an earlier run have no record
and are generated now.
"""
from __future__ import annotations

import asyncio
import logging
import shutil
from typing import Callable, List, Optional

from packager.core.config import PackagerConfig
from packager.core.dependencies import create_db_manager, create_orchestrator, create_version_store
from packager.domain.models import ReleaseAnnouncement, RunReport, RunState
from packager.domain.versions import validate_version
from packager.services.release.base import ReleaseSource
from packager.services.release.version_reader import read_release_version
from packager.storage.db_manager import DatabaseManager

logger = logging.getLogger(__name__)


class PackagerRunner:
    def __init__(
        self,
        config: PackagerConfig,
        source: ReleaseSource,
        db_factory: Optional[Callable[[PackagerConfig], DatabaseManager]] = None,
        log: Optional[logging.Logger] = None,
    ):
        self.config = config
        self.source = source
        self.db_factory = db_factory or create_db_manager
        self.log = log or logger

    def _select_announcement(
        self,
        announcements: List[ReleaseAnnouncement],
        db: DatabaseManager,
    ) -> Optional[ReleaseAnnouncement]:
        for announcement in announcements:
            if self.source.track_processed and db.is_post_processed(announcement.guid):
                continue
            return announcement
        return None

    async def run_once(self, version_override: Optional[str] = None) -> RunReport:
        """
        Run one cycle to completion.

        Args:
            version_override: Use this version instead of reading it from the
                release's metadata file.

        Raises:
            ReleaseSourceError, VersionResolutionError: the release could not
                be obtained; nothing was packaged.
            sqlite3.Error: the upgrade-path store failed.
        """
        config = self.config
        config.ensure_directories()
        report = RunReport()
        version_store = create_version_store(config)

        db = self.db_factory(config)
        with db:
            orchestrator = create_orchestrator(config, db, version_store, self.log)

            announcement = self._select_announcement(await self.source.announcements(), db)
            report.state = RunState.FEED_CHECKED

            if announcement is None:
                latest = version_store.latest_version()
                self.log.info(f"No new release available, reconciling latest version {latest}")
                if latest is not None:
                    report.new_version = latest
                    report.known_versions = version_store.list_known_versions()
                    report.created = await asyncio.to_thread(
                        orchestrator.generate_upgrades,
                        latest,
                        version_store.path_for(latest),
                        report.known_versions,
                    )
                    report.failed_pairs = list(orchestrator.failed_pairs)
            else:
                self.log.info(f"New release available: '{announcement.title}' ({announcement.guid})")
                report.announcement = announcement

                tree = await self.source.fetch(announcement, config.working_dir)
                report.state = RunState.RELEASE_FETCHED
                self.log.info(f"Release fetched to {tree}")

                if version_override:
                    new_version = validate_version(version_override)
                else:
                    new_version = read_release_version(tree, config)
                report.state = RunState.VERSION_RESOLVED
                report.new_version = new_version
                self.log.info(f"Version info found: {new_version}")

                release_path = version_store.install(new_version, tree)
                report.known_versions = version_store.list_known_versions()
                self.log.info(f"Currently available versions: {report.known_versions}")

                report.created = await asyncio.to_thread(
                    orchestrator.generate_upgrades,
                    new_version,
                    release_path,
                    report.known_versions,
                )
                report.failed_pairs = list(orchestrator.failed_pairs)

                if report.succeeded and self.source.track_processed:
                    db.record_post(announcement)

            report.state = RunState.PACKAGED

        if not report.succeeded:
            self.log.warning(
                f"{len(report.failed_pairs)} upgrade path(s) failed and will be retried: {report.failed_pairs}"
            )
            return report

        shutil.rmtree(config.working_dir, ignore_errors=True)
        report.state = RunState.WORKING_DIR_CLEARED
        self.log.info(f"Run complete: {len(report.created)} package(s) created")
        return report

    async def run_forever(self, interval_seconds: Optional[int] = None) -> None:
        """
        Run a cycle, sleep, repeat. A failed cycle is logged and retried on
        the next tick.
        """
        interval = interval_seconds or self.config.schedule_interval_seconds
        while True:
            try:
                await self.run_once()
            except Exception as e:
                self.log.error(f"Error in packager run: {e}", exc_info=True)
            await asyncio.sleep(interval)
