"""Tests for cleanup functionality."""

from __future__ import annotations

import os
import tempfile
import time
from pathlib import Path
from unittest.mock import patch

import pytest

from reel_export.core.cleanup import cleanup_expired_files, delete_file_safe, get_path_age_days
from reel_export.core.workspace import delete_folder_safe, workspace


def _age(path: Path, days: float) -> None:
    stamp = time.time() - days * 86400
    os.utime(path, (stamp, stamp))


@pytest.fixture
def media_dirs(isolated_dirs):
    """Data dirs with the export dir created."""
    export_dir = isolated_dirs["data_dir"] / "exports"
    export_dir.mkdir()
    return {**isolated_dirs, "export_dir": export_dir}


def test_get_path_age_days_file():
    """Test file age comes from its mtime."""
    with tempfile.TemporaryDirectory() as tmpdir:
        video = Path(tmpdir) / "video.mp4"
        video.write_text("video")
        _age(video, 2)

        age = get_path_age_days(video)
        assert age is not None
        assert 1.9 < age < 2.1, f"Expected age ~2 days, got {age}"


def test_get_path_age_days_folder_uses_newest_file():
    """Test a folder is as young as its newest file."""
    with tempfile.TemporaryDirectory() as tmpdir:
        folder = Path(tmpdir) / "reel-export-abc"
        folder.mkdir()

        old_file = folder / "input.mp4"
        old_file.write_text("old input")
        _age(old_file, 3)

        new_file = folder / "output.mp4"
        new_file.write_text("partial output")
        _age(new_file, 1 / 24)

        age = get_path_age_days(folder)
        assert age is not None
        assert age < 0.1


def test_get_path_age_days_nonexistent():
    """Test nonexistent path handling."""
    assert get_path_age_days(Path("/nonexistent/folder")) is None


def test_delete_file_safe():
    with tempfile.TemporaryDirectory() as tmpdir:
        video = Path(tmpdir) / "video.mp4"
        video.write_bytes(b"x" * 100)

        assert delete_file_safe(video) == (True, None, 100)
        assert not video.exists()
        # Already gone counts as deleted
        assert delete_file_safe(video) == (True, None, 0)


def test_delete_folder_safe_success():
    """Test successful folder deletion."""
    with tempfile.TemporaryDirectory() as tmpdir:
        folder = Path(tmpdir) / "test"
        folder.mkdir()
        (folder / "output.mp4").write_text("video content" * 100)
        (folder / "subtitles.ass").write_text("subtitle content")

        success, error, bytes_freed = delete_folder_safe(folder)

        assert success is True
        assert error is None
        assert bytes_freed > 0
        assert not folder.exists()


def test_workspace_removed_on_exit(isolated_dirs):
    with workspace("job1") as ws:
        assert ws.is_dir()
        assert ws.parent == isolated_dirs["work_dir"]
        assert ws.name.startswith("reel-export-job1-")
        (ws / "output.mp4").write_bytes(b"data")

    assert not ws.exists()


def test_workspace_removed_on_error(isolated_dirs):
    with pytest.raises(RuntimeError):
        with workspace("job2") as ws:
            (ws / "input.mp4").write_bytes(b"data")
            raise RuntimeError("boom")

    assert not ws.exists()


def test_workspaces_are_distinct(isolated_dirs):
    with workspace("same") as first, workspace("same") as second:
        assert first != second


def test_cleanup_expired_files_respects_retention(media_dirs):
    """Test retention period is respected for each media dir."""
    old_upload = media_dirs["upload_dir"] / "old.mp4"
    old_upload.write_text("old upload")
    _age(old_upload, 3)

    fresh_upload = media_dirs["upload_dir"] / "fresh.mp4"
    fresh_upload.write_text("fresh upload")
    _age(fresh_upload, 0.5)

    old_download = media_dirs["download_dir"] / "abc123.mp4"
    old_download.write_text("old download")
    _age(old_download, 2)

    old_export = media_dirs["export_dir"] / "reel-1.mp4"
    old_export.write_text("old export")
    _age(old_export, 5)

    result = cleanup_expired_files(retention_days=1)

    assert result["success"] is True
    assert result["deleted_count"] == 3
    assert result["errors"] == []
    assert not old_upload.exists()
    assert fresh_upload.exists()
    assert not old_download.exists()
    assert not old_export.exists()


def test_cleanup_orphaned_workspaces(media_dirs):
    """Test stale workspaces are swept and unrelated dirs are left alone."""
    work_dir = media_dirs["work_dir"]

    orphan = work_dir / "reel-export-dead-x1"
    orphan.mkdir()
    leftover = orphan / "output.mp4"
    leftover.write_bytes(b"x" * 64)
    _age(leftover, 1)

    active = work_dir / "reel-export-live-x2"
    active.mkdir()
    (active / "output.mp4").write_bytes(b"x" * 64)

    unrelated = work_dir / "someone-else"
    unrelated.mkdir()
    other = unrelated / "file"
    other.write_text("keep me")
    _age(other, 10)

    result = cleanup_expired_files(retention_days=1, workspace_retention_days=2 / 24)

    assert result["deleted_count"] == 1
    assert result["freed_bytes"] == 64
    assert not orphan.exists()
    assert active.exists()
    assert unrelated.exists()


def test_cleanup_expired_files_missing_dirs():
    """Test cleanup with nonexistent directories."""
    with tempfile.TemporaryDirectory() as tmpdir:
        nonexistent = Path(tmpdir) / "nonexistent"

        with patch("reel_export.core.cleanup.get_upload_dir", return_value=nonexistent), patch(
            "reel_export.core.cleanup.get_download_dir", return_value=nonexistent
        ), patch("reel_export.core.cleanup.get_export_dir", return_value=nonexistent), patch(
            "reel_export.core.cleanup.get_work_dir", return_value=nonexistent
        ):
            result = cleanup_expired_files(retention_days=1)

        assert result["success"] is True
        assert result["deleted_count"] == 0
        assert result["errors"] == []


def test_cleanup_reports_delete_errors(media_dirs):
    old_upload = media_dirs["upload_dir"] / "stuck.mp4"
    old_upload.write_text("stuck")
    _age(old_upload, 3)

    with patch(
        "reel_export.core.cleanup.delete_file_safe",
        return_value=(False, "Failed to delete: busy", 0),
    ):
        result = cleanup_expired_files(retention_days=1)

    assert result["deleted_count"] == 0
    assert result["errors"] == [{"path": str(old_upload), "error": "Failed to delete: busy"}]
