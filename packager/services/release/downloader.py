"""
Download release archives over HTTP.
"""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import aiofiles
import httpx

from packager.storage.files import format_size

logger = logging.getLogger(__name__)

DOWNLOAD_ATTEMPTS = 3


async def get_download_size(
    url: str,
    timeout: float = 60.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Optional[int]:
    """
    Ask the server for the size of a download via HEAD.

    Returns None when the server does not report a usable Content-Length.
    """
    async with httpx.AsyncClient(follow_redirects=True, timeout=timeout, transport=transport) as client:
        response = await client.head(url)
        response.raise_for_status()
    try:
        return int(response.headers.get("content-length", ""))
    except ValueError:
        return None


async def download_file(
    url: str,
    output_path: Path,
    timeout: float = 60.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Path:
    """
    Stream url to output_path.

    The download goes to a temporary sibling first so a partial file is
    never left at output_path. Failed attempts are retried with a linear
    back-off.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = output_path.with_name(output_path.name + ".tmp")

    for attempt in range(1, DOWNLOAD_ATTEMPTS + 1):
        try:
            tmp_path.unlink(missing_ok=True)
            async with httpx.AsyncClient(follow_redirects=True, timeout=timeout, transport=transport) as client:
                async with client.stream("GET", url) as response:
                    response.raise_for_status()

                    total_size = int(response.headers.get("content-length", 0) or 0)
                    downloaded = 0

                    async with aiofiles.open(tmp_path, "wb") as f:
                        async for chunk in response.aiter_bytes():
                            await f.write(chunk)
                            downloaded += len(chunk)
                            if total_size > 0:
                                percent = (downloaded / total_size) * 100
                                logger.debug(f"Progress: {percent:.1f}%")
            break
        except (httpx.HTTPError, OSError) as e:
            tmp_path.unlink(missing_ok=True)
            if attempt < DOWNLOAD_ATTEMPTS:
                logger.warning(f"Download failed (attempt {attempt}/{DOWNLOAD_ATTEMPTS}): {e}. Retrying...")
                await asyncio.sleep(1.0 * attempt)
            else:
                raise

    tmp_path.replace(output_path)
    logger.info(f"Downloaded {url} to {output_path} ({format_size(output_path.stat().st_size)})")
    return output_path
