"""File cleanup for uploads, fetched media, exports and orphaned workspaces."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any

from ..config import WORKSPACE_PREFIX, get_download_dir, get_export_dir, get_upload_dir, get_work_dir
from .workspace import delete_folder_safe

logger = logging.getLogger(__name__)


def get_path_age_days(path: Path) -> float | None:
    """
    Get the age of a file or folder in days.

    Folders use their newest file's mtime, so a workspace still being
    written to is never considered old.

    Returns:
        Age in days, or None if the path is empty or inaccessible
    """
    try:
        if path.is_file():
            newest_mtime = path.stat().st_mtime
        else:
            mtimes = [f.stat().st_mtime for f in path.rglob("*") if f.is_file()]
            # An empty workspace still has its own creation time
            newest_mtime = max(mtimes) if mtimes else path.stat().st_mtime
        return (time.time() - newest_mtime) / 86400.0
    except (OSError, ValueError) as e:
        logger.warning(f"Failed to get age for {path}: {e}")
        return None


def delete_file_safe(file_path: Path) -> tuple[bool, str | None, int]:
    """
    Safely delete a single file.

    Returns:
        Tuple of (success, error_message, bytes_freed)
    """
    try:
        size = file_path.stat().st_size
        file_path.unlink()
        return True, None, size
    except FileNotFoundError:
        return True, None, 0
    except OSError as e:
        error_msg = f"Failed to delete: {e}"
        logger.warning(f"Skipped {file_path}: {error_msg}")
        return False, error_msg, 0


def _sweep(candidates: list[Path], retention_days: float, stats: dict[str, Any]) -> None:
    for path in candidates:
        age_days = get_path_age_days(path)
        if age_days is None:
            continue
        if age_days <= retention_days:
            logger.debug(f"Skipped {path.name}: age {age_days:.2f} days <= retention {retention_days} days")
            continue

        logger.info(f"Deleting {path}: age {age_days:.2f} days")
        if path.is_dir():
            success, error_msg, size = delete_folder_safe(path)
        else:
            success, error_msg, size = delete_file_safe(path)

        if success:
            stats["deleted_count"] += 1
            stats["freed_bytes"] += size
            stats["details"].append({
                "path": str(path),
                "age_days": round(age_days, 2),
                "size_bytes": size,
            })
        else:
            stats["errors"].append({"path": str(path), "error": error_msg})


def cleanup_expired_files(retention_days: float, workspace_retention_days: float | None = None) -> dict[str, Any]:
    """
    Delete expired media and orphaned workspaces.

    Process:
    1. Files in the upload, download and export dirs older than retention_days
    2. ``reel-export-*`` workspaces in the work dir older than
       workspace_retention_days (left behind only if the process died
       mid-job or a delete failed)

    Args:
        retention_days: Days to keep uploaded, fetched and exported media
        workspace_retention_days: Days before a workspace counts as orphaned
            (defaults to retention_days)

    Returns:
        Dictionary with cleanup statistics:
        {
            "success": True,
            "deleted_count": 5,
            "freed_bytes": 1234567890,
            "errors": [],
            "details": [...]
        }
    """
    if workspace_retention_days is None:
        workspace_retention_days = retention_days

    stats: dict[str, Any] = {
        "success": True,
        "deleted_count": 0,
        "freed_bytes": 0,
        "errors": [],
        "details": [],
    }

    for media_dir in (get_upload_dir(), get_download_dir(), get_export_dir()):
        if not media_dir.exists():
            logger.debug(f"Directory does not exist: {media_dir}")
            continue
        _sweep([p for p in media_dir.iterdir() if p.is_file()], retention_days, stats)

    work_dir = get_work_dir()
    if work_dir.exists():
        workspaces = [p for p in work_dir.glob(f"{WORKSPACE_PREFIX}*") if p.is_dir()]
        _sweep(workspaces, workspace_retention_days, stats)

    return stats
