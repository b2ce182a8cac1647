"""
Release discovery from an RSS announcement feed.

Release posts are feed items whose title contains a keyword; the download
link is a URL in the post body that contains all configured link keywords.
"""
from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from datetime import datetime
from email.utils import parsedate_to_datetime
from pathlib import Path
from typing import List, Optional

import httpx

from packager.core.config import PackagerConfig
from packager.domain.errors import ReleaseSourceError
from packager.domain.models import ReleaseAnnouncement
from packager.services.release.archive import extract_zip
from packager.services.release.downloader import download_file, get_download_size
from packager.storage.files import format_size

logger = logging.getLogger(__name__)

CONTENT_NS = "{http://purl.org/rss/1.0/modules/content/}encoded"
_URL_RE = re.compile(r"https?://[^\s\"'<>]+")


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return parsedate_to_datetime(value.strip())
    except (TypeError, ValueError):
        return None


def find_download_link(body: str, keywords: List[str]) -> Optional[str]:
    """
    Return the last URL in body whose lowercase form contains every keyword.
    """
    link = None
    for url in _URL_RE.findall(body or ""):
        lowered = url.lower()
        if all(k.lower() in lowered for k in keywords):
            link = url
    return link


def parse_release_posts(
    feed_xml: str,
    title_keyword: str,
    link_keywords: List[str],
) -> List[ReleaseAnnouncement]:
    """
    Extract release announcements from an RSS document, oldest first.

    Items without a matching download link are skipped.
    """
    try:
        root = ET.fromstring(feed_xml)
    except ET.ParseError as e:
        raise ReleaseSourceError(f"Release feed is not valid XML: {e}") from e

    posts: List[ReleaseAnnouncement] = []
    for item in root.iter("item"):
        title = (item.findtext("title") or "").strip()
        if title_keyword.lower() not in title.lower():
            continue

        body = item.findtext(CONTENT_NS) or item.findtext("description") or ""
        download_url = find_download_link(body, link_keywords)
        if download_url is None:
            logger.debug(f"No download link found in release post '{title}'")
            continue

        guid = (item.findtext("guid") or item.findtext("link") or title).strip()
        posts.append(
            ReleaseAnnouncement(
                guid=guid,
                title=title,
                download_url=download_url,
                published=_parse_date(item.findtext("pubDate")),
            )
        )

    # feeds list newest first
    posts.reverse()
    return posts


class FeedReleaseSource:
    """Release source backed by an RSS feed and HTTP downloads."""

    track_processed = True

    def __init__(self, config: PackagerConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        if not config.release_feed_url:
            raise ReleaseSourceError("release_feed_url is not configured")
        self.feed_url = config.release_feed_url
        self.title_keyword = config.release_title_keyword
        self.link_keywords = list(config.download_link_keywords)
        self.timeout = config.download_timeout_seconds
        self.transport = transport

    async def announcements(self) -> List[ReleaseAnnouncement]:
        logger.info(f"Fetching release feed {self.feed_url}")
        try:
            async with httpx.AsyncClient(follow_redirects=True, timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(self.feed_url)
                response.raise_for_status()
                content = response.text
        except httpx.HTTPError as e:
            raise ReleaseSourceError(f"Failed to fetch release feed: {e}") from e
        return parse_release_posts(content, self.title_keyword, self.link_keywords)

    async def fetch(self, announcement: ReleaseAnnouncement, working_dir: Path) -> Path:
        if not announcement.download_url:
            raise ReleaseSourceError(f"Release '{announcement.title}' has no download link")

        working_dir = Path(working_dir)
        try:
            size = await get_download_size(announcement.download_url, self.timeout, self.transport)
            if size is not None:
                logger.info(f"Release download {announcement.download_url} is {format_size(size)}")
            archive = await download_file(
                announcement.download_url,
                working_dir / "newrelease.zip",
                self.timeout,
                self.transport,
            )
        except httpx.HTTPError as e:
            raise ReleaseSourceError(f"Failed to download release: {e}") from e
        return extract_zip(archive, working_dir / "newrelease")
