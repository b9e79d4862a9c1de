"""Per-job scoped temporary directories."""

from __future__ import annotations

import logging
import shutil
import tempfile
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from ..config import WORKSPACE_PREFIX, get_work_dir

logger = logging.getLogger(__name__)


def folder_size(folder_path: Path) -> int:
    """Total size in bytes of all files under a folder."""
    return sum(f.stat().st_size for f in folder_path.rglob("*") if f.is_file())


def delete_folder_safe(folder_path: Path) -> tuple[bool, str | None, int]:
    """
    Safely delete a folder with error handling.

    Args:
        folder_path: Path to the folder to delete

    Returns:
        Tuple of (success, error_message, bytes_freed)
    """
    try:
        size = folder_size(folder_path)
        shutil.rmtree(folder_path)
        return True, None, size

    except FileNotFoundError:
        return True, None, 0

    except PermissionError as e:
        error_msg = f"Permission denied: {e}"
        logger.warning(f"Skipped {folder_path}: {error_msg}")
        return False, error_msg, 0

    except OSError as e:
        # A file may still be held open by an exiting process; retry once
        logger.debug(f"Retrying delete for {folder_path} after error: {e}")
        time.sleep(0.1)

        try:
            size = folder_size(folder_path)
            shutil.rmtree(folder_path)
            return True, None, size
        except OSError as retry_error:
            error_msg = f"Failed after retry: {retry_error}"
            logger.error(f"Failed to delete {folder_path}: {error_msg}")
            return False, error_msg, 0


@contextmanager
def workspace(job_id: str | None = None) -> Iterator[Path]:
    """
    Create an exclusively-owned temporary directory for one job.

    The directory is removed when the block exits, whether it returns,
    raises or is cancelled.
    """
    work_dir = get_work_dir()
    work_dir.mkdir(parents=True, exist_ok=True)
    prefix = f"{WORKSPACE_PREFIX}{job_id}-" if job_id else WORKSPACE_PREFIX
    path = Path(tempfile.mkdtemp(prefix=prefix, dir=work_dir))
    logger.debug(f"Created workspace {path}")

    try:
        yield path
    finally:
        success, error, freed = delete_folder_safe(path)
        if success:
            logger.debug(f"Removed workspace {path} ({freed} bytes)")
        else:
            # Left for the scheduled sweep
            logger.error(f"Could not remove workspace {path}: {error}")
