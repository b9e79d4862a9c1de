"""Audio-only extraction for the transcription API."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from ..config import get_engine_config
from ..errors import AudioTooLarge, InputNotFound
from .pipeline import verify_artifact
from .runner import run_subprocess
from .workspace import workspace

logger = logging.getLogger(__name__)

# Upstream transcription API rejects uploads above this size
MAX_AUDIO_BYTES = 25 * 1024 * 1024

SAMPLE_RATE = 16000
AUDIO_BITRATE = "32k"
AUDIO_MEDIA_TYPE = "audio/mpeg"


def build_audio_args(input_path: Path, output_path: Path) -> list[str]:
    """Mono, 16 kHz, fixed-bitrate MP3; ~4 MB per 17 minutes of speech."""
    return [
        "-hide_banner",
        "-nostdin",
        "-y",
        "-i", str(input_path),
        "-vn",
        "-ac", "1",
        "-ar", str(SAMPLE_RATE),
        "-c:a", "libmp3lame",
        "-b:a", AUDIO_BITRATE,
        str(output_path),
    ]


async def extract_audio(video_path: str | Path) -> bytes:
    """
    Extract a compressed mono audio track from a local video.

    Raises:
        InputNotFound: video_path does not exist
        LaunchError / EngineError / EngineReportedSuccessButNoOutput: engine failure
        AudioTooLarge: result exceeds MAX_AUDIO_BYTES
    """
    source = Path(video_path).expanduser()
    if not source.is_file():
        raise InputNotFound(f"Video not found: {source}")

    engine_path = get_engine_config()["ffmpeg_path"]

    with workspace() as ws:
        output_path = ws / "audio.mp3"
        result = await run_subprocess(engine_path, build_audio_args(source, output_path))
        verify_artifact(result, output_path)

        size = output_path.stat().st_size
        if size > MAX_AUDIO_BYTES:
            raise AudioTooLarge(
                f"Extracted audio is {size / 1024 / 1024:.1f} MB, "
                f"above the {MAX_AUDIO_BYTES // 1024 // 1024} MB limit"
            )

        logger.info(f"Extracted {size} bytes of audio from {source.name}")
        return await asyncio.to_thread(output_path.read_bytes)
