"""Source video probing using PyAV."""

from __future__ import annotations

import logging
from pathlib import Path

import av

logger = logging.getLogger(__name__)


def display_size(width: int, height: int, rotation: float) -> tuple[int, int]:
    """Swap stored dimensions when the display matrix turns the frame sideways."""
    if int(round(rotation)) % 180 == 90:
        return height, width
    return width, height


def get_video_resolution(video_path: str | Path) -> tuple[int | None, int | None]:
    """
    Read the displayed frame size of the first video stream.

    ffmpeg applies the display rotation before user filters run, so crop
    geometry has to be computed in display orientation. Phone footage is
    commonly stored landscape with a 90 or 270 degree display matrix.

    Returns:
        (width, height), or (None, None) if the file cannot be opened or has
        no video stream
    """
    video_path = Path(video_path)
    if not video_path.exists():
        return None, None

    try:
        with av.open(str(video_path)) as container:
            if not container.streams.video:
                return None, None
            stream = container.streams.video[0]
            if not stream.width or not stream.height:
                return None, None
            frame = next(container.decode(stream), None)
            rotation = frame.rotation if frame is not None else 0
            return display_size(stream.width, stream.height, rotation)
    except (av.FFmpegError, OSError, ValueError) as e:
        logger.warning(f"Could not probe {video_path}: {e}")
        return None, None
