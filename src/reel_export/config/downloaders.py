"""
Downloader configuration - URL matching and media fetch implementations.

This is "code as configuration" - modify this file to customize how remote
media is fetched into a local file usable as an export source.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from ..errors import BadRequest, MediaFetchError
from .settings import get_downloader_config

logger = logging.getLogger(__name__)

_SAFE_ID = re.compile(r"[^A-Za-z0-9_-]+")


def match_downloader(url: str) -> str | None:
    """
    Match URL to a downloader name.

    Modify this function to add custom URL matching logic.

    Args:
        url: Media URL

    Returns:
        Downloader name ("yt-dlp"), or None if the URL cannot be fetched
    """
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None

    # yt-dlp covers YouTube, Vimeo, Twitter/X, Bilibili and plain file URLs
    return "yt-dlp"


async def fetch_media(url: str, output_dir: Path) -> dict[str, Any]:
    """
    Fetch remote media into ``output_dir`` using the matched downloader.

    Args:
        url: Media URL
        output_dir: Directory receiving the file

    Returns:
        dict with success, file_path, file_name

    Raises:
        BadRequest: URL is not fetchable
        MediaFetchError: The downloader failed or produced no file
    """
    downloader = match_downloader(url)

    if downloader == "yt-dlp":
        return await _fetch_with_ytdlp(url, output_dir)
    raise BadRequest(f"Unsupported media URL: {url}")


def _ytdlp_base_args(config: dict[str, Any]) -> list[str]:
    return [
        *config["command"][1:],
        "--no-playlist",
        "--no-progress",
        "--no-warnings",
        "-f", config["format"],
    ]


async def _fetch_with_ytdlp(url: str, output_dir: Path) -> dict[str, Any]:
    """
    Two-phase yt-dlp fetch.

    Phase one resolves the media id, which fixes the final file name
    ``<id>.mp4`` before anything is downloaded. Phase two downloads and
    remuxes into exactly that name. A phase-one failure aborts the fetch.
    """
    # Import here to avoid circular imports
    from ..core.runner import run_subprocess

    config = get_downloader_config()
    executable = config["command"][0]
    base_args = _ytdlp_base_args(config)

    # Phase 1: resolve the target filename
    printed: list[str] = []
    resolve = await run_subprocess(
        executable,
        [*base_args, "--skip-download", "--print", "id", url],
        on_stdout_line=printed.append,
    )
    if not resolve.succeeded:
        raise MediaFetchError("Could not resolve media filename", resolve.diagnostic_tail())

    media_id = next((line.strip() for line in printed if line.strip()), "")
    if not media_id:
        raise MediaFetchError("Downloader did not report a media id", resolve.diagnostic_tail())

    file_stem = _SAFE_ID.sub("_", media_id)
    output_dir.mkdir(parents=True, exist_ok=True)
    target = output_dir / f"{file_stem}.mp4"
    logger.info(f"Fetching {url} -> {target}")

    # Phase 2: download into the resolved name
    fetch = await run_subprocess(
        executable,
        [
            *base_args,
            "--merge-output-format", "mp4",
            "--remux-video", "mp4",
            "-o", str(output_dir / f"{file_stem}.%(ext)s"),
            url,
        ],
    )
    if not fetch.succeeded:
        raise MediaFetchError(f"Downloader failed with exit code {fetch.exit_code}", fetch.diagnostic_tail())

    if not target.is_file() or target.stat().st_size == 0:
        raise MediaFetchError(
            f"Downloader reported success but {target.name} is missing or empty",
            fetch.diagnostic_tail(),
        )

    return {
        "success": True,
        "file_path": str(target),
        "file_name": target.name,
    }
