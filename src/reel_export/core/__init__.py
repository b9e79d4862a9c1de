"""Core functionality for reel-export."""

from .audio import extract_audio
from .cleanup import cleanup_expired_files
from .pipeline import ExportPipeline, LoggingProgressObserver, ProgressObserver
from .runner import run_subprocess
from .scheduler import CleanupScheduler
from .store import sanitize_remote_name, upload_artifact
from .subtitles import adjust_cues_to_window, format_timestamp, generate_track
from .workspace import workspace

__all__ = [
    "extract_audio",
    "cleanup_expired_files",
    "ExportPipeline",
    "LoggingProgressObserver",
    "ProgressObserver",
    "run_subprocess",
    "CleanupScheduler",
    "sanitize_remote_name",
    "upload_artifact",
    "adjust_cues_to_window",
    "format_timestamp",
    "generate_track",
    "workspace",
]
