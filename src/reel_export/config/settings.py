"""Basic settings and directory management."""

from __future__ import annotations

import json
import os
import sys
import tempfile
from pathlib import Path
from typing import Any

from platformdirs import user_config_dir, user_data_dir

APP_NAME = "reel-export"

# Prefix of per-job workspace directories inside the work dir
WORKSPACE_PREFIX = "reel-export-"


def get_config_dir() -> Path:
    """Get the configuration directory."""
    return Path(os.environ.get("REEL_EXPORT_CONFIG_DIR", user_config_dir(APP_NAME)))


def get_data_dir() -> Path:
    """Get the data directory for uploads, downloads and exports."""
    return Path(os.environ.get("REEL_EXPORT_DATA_DIR", user_data_dir(APP_NAME)))


def get_upload_dir() -> Path:
    """Get the directory holding uploaded source videos."""
    default = get_data_dir() / "uploads"
    return Path(os.environ.get("REEL_EXPORT_UPLOAD_DIR", str(default)))


def get_download_dir() -> Path:
    """Get the directory holding media fetched from remote URLs."""
    default = get_data_dir() / "downloads"
    return Path(os.environ.get("REEL_EXPORT_DOWNLOAD_DIR", str(default)))


def get_export_dir() -> Path:
    """Get the directory where MCP exports are handed off."""
    return get_data_dir() / "exports"


def get_work_dir() -> Path:
    """Get the parent directory of per-job workspaces."""
    return Path(os.environ.get("REEL_EXPORT_WORK_DIR", tempfile.gettempdir()))


def get_config_file() -> Path:
    """Get the config file path."""
    return get_config_dir() / "config.json"


def load_config() -> dict[str, Any]:
    """Load configuration from file."""
    config: dict[str, Any] = {}
    config_file = get_config_file()
    if config_file.exists():
        with open(config_file) as f:
            config = json.load(f)
    return config


def save_config(config: dict[str, Any]) -> None:
    """Save configuration to file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    with open(config_file, "w") as f:
        json.dump(config, f, indent=2)


def ensure_dirs() -> None:
    """Ensure all required directories exist."""
    get_config_dir().mkdir(parents=True, exist_ok=True)
    get_data_dir().mkdir(parents=True, exist_ok=True)
    get_upload_dir().mkdir(parents=True, exist_ok=True)
    get_download_dir().mkdir(parents=True, exist_ok=True)
    get_export_dir().mkdir(parents=True, exist_ok=True)
    get_work_dir().mkdir(parents=True, exist_ok=True)


# Transcoding engine configuration
DEFAULT_ENGINE_CONFIG = {
    "ffmpeg_path": "/usr/bin/ffmpeg",
    "video_codec": "libx264",
    "video_bitrate": "6000k",
    "audio_codec": "aac",
    "audio_bitrate": "192k",
    "subtitle_format": "ass",  # "ass" or "srt"
    "job_timeout_seconds": 600,
}


def get_engine_config() -> dict[str, Any]:
    """
    Get transcoding engine configuration with defaults.

    The engine is always invoked through an absolute path. The
    REEL_EXPORT_FFMPEG_PATH environment variable wins over config.json.
    """
    config = load_config()
    engine = {**DEFAULT_ENGINE_CONFIG, **config.get("engine", {})}
    env_path = os.environ.get("REEL_EXPORT_FFMPEG_PATH")
    if env_path:
        engine["ffmpeg_path"] = env_path
    engine["ffmpeg_path"] = str(Path(engine["ffmpeg_path"]).expanduser().absolute())
    return engine


# Remote store configuration (Drive-style multipart upload endpoint)
DEFAULT_STORE_CONFIG = {
    "upload_url": "https://www.googleapis.com/upload/drive/v3/files?uploadType=multipart",
    "token": None,
    "folder_id": None,
    "timeout_seconds": 300,
}


def get_store_config() -> dict[str, Any]:
    """Get remote store configuration with defaults."""
    config = load_config()
    store = {**DEFAULT_STORE_CONFIG, **config.get("store", {})}
    env_token = os.environ.get("REEL_EXPORT_STORE_TOKEN")
    if env_token:
        store["token"] = env_token
    return store


# Media downloader configuration
DEFAULT_DOWNLOADER_CONFIG = {
    "command": [sys.executable, "-m", "yt_dlp"],
    "format": "bv*[ext=mp4]+ba[ext=m4a]/b[ext=mp4]/bv*+ba/b",
}


def get_downloader_config() -> dict[str, Any]:
    """Get media downloader configuration with defaults."""
    config = load_config()
    return {**DEFAULT_DOWNLOADER_CONFIG, **config.get("downloader", {})}


# Cleanup configuration
DEFAULT_CLEANUP_CONFIG = {
    "enabled": True,
    "retention_days": 1,
    "workspace_retention_days": 2 / 24,  # 2 hours, well past any job timeout
    "schedule": "0 * * * *",  # Every hour
}


def get_cleanup_config() -> dict[str, Any]:
    """Get cleanup configuration with defaults."""
    config = load_config()
    cleanup = config.get("cleanup", {})
    return {**DEFAULT_CLEANUP_CONFIG, **cleanup}
