"""Tests for configuration loading."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from unittest.mock import patch

from reel_export.config.settings import (
    ensure_dirs,
    get_cleanup_config,
    get_downloader_config,
    get_engine_config,
    get_export_dir,
    get_store_config,
    get_upload_dir,
    get_work_dir,
    load_config,
    save_config,
)


def test_cleanup_config_defaults():
    with patch("reel_export.config.settings.load_config", return_value={}):
        config = get_cleanup_config()

    assert config["enabled"] is True
    assert config["retention_days"] == 1
    assert config["workspace_retention_days"] == 2 / 24
    assert config["schedule"] == "0 * * * *"


def test_cleanup_config_partial_override():
    with patch("reel_export.config.settings.load_config", return_value={"cleanup": {"retention_days": 0.5}}):
        config = get_cleanup_config()

    assert config["retention_days"] == 0.5
    assert config["schedule"] == "0 * * * *"


def test_engine_config_defaults(monkeypatch):
    monkeypatch.delenv("REEL_EXPORT_FFMPEG_PATH", raising=False)
    with patch("reel_export.config.settings.load_config", return_value={}):
        config = get_engine_config()

    assert config["ffmpeg_path"] == "/usr/bin/ffmpeg"
    assert config["video_codec"] == "libx264"
    assert config["video_bitrate"] == "6000k"
    assert config["audio_bitrate"] == "192k"
    assert config["subtitle_format"] == "ass"


def test_engine_path_env_override_is_absolute(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("REEL_EXPORT_FFMPEG_PATH", "bin/ffmpeg")

    with patch("reel_export.config.settings.load_config", return_value={"engine": {"ffmpeg_path": "/opt/ffmpeg"}}):
        config = get_engine_config()

    assert config["ffmpeg_path"] == str(tmp_path / "bin" / "ffmpeg")
    assert Path(config["ffmpeg_path"]).is_absolute()


def test_engine_config_from_file(isolated_dirs):
    save_config({"engine": {"video_bitrate": "8000k", "job_timeout_seconds": 30}})

    config = get_engine_config()

    assert config["video_bitrate"] == "8000k"
    assert config["job_timeout_seconds"] == 30
    assert config["audio_codec"] == "aac"


def test_save_and_load_roundtrip(isolated_dirs):
    save_config({"store": {"folder_id": "abc"}})

    assert load_config() == {"store": {"folder_id": "abc"}}
    assert json.loads((isolated_dirs["config_dir"] / "config.json").read_text())["store"]["folder_id"] == "abc"


def test_store_token_env_override(isolated_dirs, monkeypatch):
    save_config({"store": {"token": "file-token"}})
    assert get_store_config()["token"] == "file-token"

    monkeypatch.setenv("REEL_EXPORT_STORE_TOKEN", "env-token")
    assert get_store_config()["token"] == "env-token"


def test_downloader_runs_yt_dlp_module():
    with patch("reel_export.config.settings.load_config", return_value={}):
        config = get_downloader_config()

    assert config["command"] == [sys.executable, "-m", "yt_dlp"]


def test_directories_follow_environment(isolated_dirs):
    ensure_dirs()

    assert get_upload_dir() == isolated_dirs["upload_dir"]
    assert get_work_dir() == isolated_dirs["work_dir"]
    assert get_export_dir() == isolated_dirs["data_dir"] / "exports"
    assert get_export_dir().is_dir()
