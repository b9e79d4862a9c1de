"""MCP server for reel-export using FastMCP."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Any

from mcp.server.fastmcp import FastMCP
from mcp.server.transport_security import TransportSecuritySettings
from pydantic import TypeAdapter, ValidationError

from .config import ensure_dirs, fetch_media, get_download_dir, get_export_dir
from .core import ExportPipeline, LoggingProgressObserver, adjust_cues_to_window
from .errors import ExportError
from .models import Cue, ExportJob, ExportWindow, PathReference, SubtitleStyle

logger = logging.getLogger(__name__)

# Disable DNS rebinding protection to allow any Host header (for Docker/reverse proxy)
mcp = FastMCP(
    "reel-export",
    transport_security=TransportSecuritySettings(enable_dns_rebinding_protection=False),
)

_cue_list = TypeAdapter(list[Cue])

# =============================================================================
# TOOL USAGE GUIDANCE FOR AI ASSISTANTS:
#
# To turn an online video into a vertical reel:
#   1. fetch_media  → Downloads the source, returns a local file_path
#   2. export_reel  → Cuts [start_time, start_time + duration), crops to 9:16,
#                     burns in subtitles, returns the path of the MP4
#
# Exports are CPU heavy. Pick the window first; do not export a whole video
# to look for a segment.
# =============================================================================


def _error_result(error: ExportError) -> dict[str, Any]:
    return {"success": False, **error.to_dict()}


@mcp.tool(name="reel_export_fetch_media")
async def tool_fetch_media(url: str) -> dict:
    """
    Download a video from a URL so it can be exported.

    Uses yt-dlp, so most video sites work (YouTube, Vimeo, X, ...). The
    result is an MP4 in the download directory.

    Args:
        url: Video page URL

    Returns:
        Dictionary with success, file_path and file_name, or error/details
    """
    ensure_dirs()
    try:
        return await fetch_media(url, get_download_dir())
    except ExportError as e:
        return _error_result(e)


@mcp.tool(name="reel_export_export_reel")
async def tool_export_reel(
    input_path: str,
    start_time: float,
    duration: float,
    subtitles: list[dict[str, Any]] | None = None,
    style: dict[str, Any] | None = None,
    subtitles_relative_to_source: bool = False,
) -> dict:
    """
    Export a 9:16 vertical reel from a local video.

    Args:
        input_path: Local video path (e.g. file_path from fetch_media)
        start_time: Window start in seconds
        duration: Window length in seconds (> 0)
        subtitles: Cues as [{"start": 0.5, "end": 2.0, "text": "..."}]
        style: Subtitle style, e.g. {"fontSize": 50, "color": "#FFFFFF",
            "strokeColor": "#000000", "position": "bottom"}
        subtitles_relative_to_source: Set when cue times are offsets in the
            source video rather than in the exported window; cues outside
            the window are dropped and the rest re-timed

    Returns:
        Dictionary with success, file_path and size_bytes, or error/details
    """
    try:
        window = ExportWindow(start=start_time, duration=duration)
        cues = _cue_list.validate_python(subtitles or [])
        subtitle_style = SubtitleStyle.model_validate(style) if style else None
    except ValidationError as e:
        return {"success": False, "error": "Invalid export parameters", "details": str(e)}

    if subtitles_relative_to_source:
        cues = adjust_cues_to_window(cues, window.start, window.duration)

    job = ExportJob(
        input_ref=PathReference(path=Path(input_path)),
        window=window,
        cues=cues,
        style=subtitle_style,
    )

    ensure_dirs()
    target = get_export_dir() / f"reel-{job.job_id}.mp4"

    async def handoff(artifact: Path) -> Path:
        shutil.move(str(artifact), target)
        return target

    pipeline = ExportPipeline(job, observer=LoggingProgressObserver())
    try:
        output = await pipeline.run(handoff)
    except ExportError as e:
        return _error_result(e)

    return {
        "success": True,
        "job_id": job.job_id,
        "file_path": str(output),
        "size_bytes": output.stat().st_size,
    }
