"""Tests for the MCP tools."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
from conftest import workspaces

from reel_export.errors import MediaFetchError
from reel_export.server import tool_export_reel, tool_fetch_media


@pytest.mark.asyncio
async def test_export_reel_keeps_artifact(fake_engine, fixed_resolution, source_video, isolated_dirs):
    result = await tool_export_reel(
        input_path=str(source_video),
        start_time=10,
        duration=5,
        subtitles=[{"start": 1, "end": 3, "text": "hi"}],
        style={"position": "center"},
    )

    assert result["success"] is True
    output = Path(result["file_path"])
    assert output.parent == isolated_dirs["data_dir"] / "exports"
    assert output.read_bytes().startswith(b"\x00\x00\x00\x18ftypmp42")
    assert result["size_bytes"] == output.stat().st_size
    assert ",5,90,90,150,1" in fake_engine.recorded()["track"]
    assert workspaces(isolated_dirs["work_dir"]) == []


@pytest.mark.asyncio
async def test_export_reel_retimes_source_cues(fake_engine, fixed_resolution, source_video):
    result = await tool_export_reel(
        input_path=str(source_video),
        start_time=10,
        duration=5,
        subtitles=[
            {"start": 2, "end": 4, "text": "before the window"},
            {"start": 11, "end": 12.5, "text": "inside"},
        ],
        subtitles_relative_to_source=True,
    )

    assert result["success"] is True
    track = fake_engine.recorded()["track"]
    assert "before the window" not in track
    assert "Dialogue: 0,0:00:01.00,0:00:02.50,Default,,0,0,0,,inside" in track


@pytest.mark.asyncio
async def test_export_reel_invalid_window(fake_engine, source_video):
    result = await tool_export_reel(input_path=str(source_video), start_time=0, duration=0)

    assert result["success"] is False
    assert result["error"] == "Invalid export parameters"
    assert not fake_engine.was_called()


@pytest.mark.asyncio
async def test_export_reel_engine_failure(fake_engine, fixed_resolution, source_video):
    fake_engine.set_mode("crash")

    result = await tool_export_reel(input_path=str(source_video), start_time=0, duration=3)

    assert result["success"] is False
    assert result["error"] == "Transcoding engine failed with exit code 183"
    assert "Invalid data found" in result["details"]


@pytest.mark.asyncio
async def test_fetch_media_tool(isolated_dirs):
    fetched = {"success": True, "file_path": "/data/abc.mp4", "file_name": "abc.mp4"}
    with patch("reel_export.server.fetch_media", AsyncMock(return_value=fetched)) as mock_fetch:
        result = await tool_fetch_media("https://youtu.be/abc")

    assert result == fetched
    mock_fetch.assert_awaited_once_with("https://youtu.be/abc", isolated_dirs["download_dir"])


@pytest.mark.asyncio
async def test_fetch_media_tool_error(isolated_dirs):
    error = MediaFetchError("Could not resolve media filename", "ERROR: Unsupported URL")
    with patch("reel_export.server.fetch_media", AsyncMock(side_effect=error)):
        result = await tool_fetch_media("https://example.com")

    assert result == {
        "success": False,
        "error": "Could not resolve media filename",
        "details": "ERROR: Unsupported URL",
    }
