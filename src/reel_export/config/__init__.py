"""Configuration module for reel-export."""

from .settings import (
    WORKSPACE_PREFIX,
    ensure_dirs,
    get_cleanup_config,
    get_config_dir,
    get_config_file,
    get_data_dir,
    get_download_dir,
    get_downloader_config,
    get_engine_config,
    get_export_dir,
    get_store_config,
    get_upload_dir,
    get_work_dir,
    load_config,
    save_config,
)
from .downloaders import fetch_media, match_downloader

__all__ = [
    "WORKSPACE_PREFIX",
    "ensure_dirs",
    "get_cleanup_config",
    "get_config_dir",
    "get_config_file",
    "get_data_dir",
    "get_download_dir",
    "get_downloader_config",
    "get_engine_config",
    "get_export_dir",
    "get_store_config",
    "get_upload_dir",
    "get_work_dir",
    "load_config",
    "save_config",
    "fetch_media",
    "match_downloader",
]
