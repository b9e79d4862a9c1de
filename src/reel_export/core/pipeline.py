"""Export pipeline: one ExportJob in, one verified MP4 out.

State machine::

    created -> materializing -> generating_subtitle_track -> transcoding
            -> verifying -> succeeded | failed

Each job gets a fresh ExportPipeline and its own workspace; nothing is shared
between jobs.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Protocol, TypeVar

from ..config import get_engine_config
from ..errors import (
    BadRequest,
    EngineError,
    EngineReportedSuccessButNoOutput,
    ExportError,
    InputNotFound,
    JobCancelled,
    LaunchError,
    UpstreamStoreError,
)
from ..models import (
    ExportJob,
    FailureReason,
    JobState,
    PathReference,
    SubprocessResult,
    SubtitleStyle,
    UploadedStream,
)
from .probe import get_video_resolution
from .runner import run_subprocess
from .subtitles import build_force_style, count_emittable, generate_track, parse_timestamp
from .workspace import workspace

logger = logging.getLogger(__name__)

T = TypeVar("T")

OUTPUT_NAME = "output.mp4"

# Target aspect ratio of the exported reel (width:height)
ASPECT_W, ASPECT_H = 9, 16


class ProgressObserver(Protocol):
    """Receives state transitions and transcoding progress of one job."""

    def on_state(self, job_id: str, state: JobState) -> None: ...

    def on_progress(self, job_id: str, percent: float) -> None: ...


class LoggingProgressObserver:
    """Logs transitions, and progress in 10% steps."""

    def __init__(self, step: float = 10.0):
        self.step = step
        self._last_logged = -step

    def on_state(self, job_id: str, state: JobState) -> None:
        logger.info(f"[{job_id}] {state.value}")

    def on_progress(self, job_id: str, percent: float) -> None:
        if percent >= 100 or percent - self._last_logged >= self.step:
            self._last_logged = percent
            logger.info(f"[{job_id}] transcoding {percent:.0f}%")


@dataclass(frozen=True)
class CropBox:
    """Crop rectangle in source pixels."""

    width: int
    height: int
    x: int
    y: int = 0

    def to_filter(self) -> str:
        return f"crop={self.width}:{self.height}:{self.x}:{self.y}"


# Used when the source cannot be probed. ffmpeg evaluates it on the rotated
# frame and centres the box by default.
CROP_EXPRESSION = r"crop=w=trunc(min(iw\,ih*9/16)/2)*2:h=trunc(ih/2)*2"


def _even(value: int) -> int:
    return value - (value % 2)


def compute_crop(width: int, height: int) -> CropBox:
    """
    Centre-crop geometry for a 9:16 frame.

    crop width = height * 9/16, full height, horizontally centred. Both
    dimensions are even (yuv420p) and the width never exceeds the source.
    """
    crop_h = _even(height)
    crop_w = _even(min(width, height * ASPECT_W // ASPECT_H))
    x = (width - crop_w) // 2
    return CropBox(width=crop_w, height=crop_h, x=x)


def escape_filter_path(path: Path) -> str:
    """Escape a path for use inside a quoted filtergraph option value."""
    value = str(path).replace("\\", "/")
    value = value.replace(":", "\\:")
    return value.replace("'", "'\\''")


def build_filter_graph(
    crop: CropBox | None,
    track_path: Path | None,
    track_format: str = "ass",
    style: SubtitleStyle | None = None,
) -> str:
    """Compose the single-pass filter graph: crop, then optional burn-in."""
    filters = [crop.to_filter() if crop else CROP_EXPRESSION]
    if track_path is not None:
        subtitle_filter = f"subtitles=filename='{escape_filter_path(track_path)}'"
        if track_format == "srt":
            force_style = build_force_style(style or SubtitleStyle())
            subtitle_filter += f":force_style='{force_style}'"
        filters.append(subtitle_filter)
    return ",".join(filters)


def build_transcode_args(
    input_path: Path,
    output_path: Path,
    start: float,
    duration: float,
    filter_graph: str,
    engine_config: dict[str, Any],
) -> list[str]:
    """Argument vector for the one-pass trim/crop/burn-in transcode."""
    return [
        "-hide_banner",
        "-nostdin",
        "-y",
        "-ss", f"{start:g}",
        "-i", str(input_path),
        "-t", f"{duration:g}",
        "-vf", filter_graph,
        "-c:v", engine_config["video_codec"],
        "-b:v", engine_config["video_bitrate"],
        "-c:a", engine_config["audio_codec"],
        "-b:a", engine_config["audio_bitrate"],
        "-movflags", "+faststart",
        "-progress", "pipe:1",
        "-nostats",
        str(output_path),
    ]


def verify_artifact(result: SubprocessResult, output_path: Path) -> Path:
    """
    Check the engine outcome and the produced file.

    Raises:
        EngineError: exit code is nonzero
        EngineReportedSuccessButNoOutput: exit code 0 but the file is
            missing or empty
    """
    if not result.succeeded:
        raise EngineError(result.exit_code, result.diagnostic_tail())

    if not output_path.is_file():
        raise EngineReportedSuccessButNoOutput(
            "Transcoding engine exited successfully but produced no output file",
            result.diagnostic_tail() or None,
        )
    if output_path.stat().st_size == 0:
        raise EngineReportedSuccessButNoOutput(
            "Transcoding engine exited successfully but the output file is empty",
            result.diagnostic_tail() or None,
        )
    return output_path


_FAILURE_REASONS: list[tuple[type[ExportError], FailureReason]] = [
    (BadRequest, FailureReason.BAD_REQUEST),
    (InputNotFound, FailureReason.INPUT_NOT_FOUND),
    (LaunchError, FailureReason.LAUNCH_ERROR),
    (EngineError, FailureReason.ENGINE_ERROR),
    (EngineReportedSuccessButNoOutput, FailureReason.NO_OUTPUT),
    (JobCancelled, FailureReason.CANCELLED),
    (UpstreamStoreError, FailureReason.UPSTREAM_STORE_ERROR),
]


def failure_reason_for(error: BaseException) -> FailureReason:
    if isinstance(error, asyncio.CancelledError):
        return FailureReason.CANCELLED
    for error_type, reason in _FAILURE_REASONS:
        if isinstance(error, error_type):
            return reason
    return FailureReason.INTERNAL_ERROR


class ExportPipeline:
    """
    Runs one ExportJob through the export state machine.

    Args:
        job: The export request
        engine_config: Engine settings (defaults to get_engine_config())
        observer: Optional progress observer
        timeout: Seconds allowed for transcoding; defaults to the
            configured job_timeout_seconds; 0 disables it
    """

    def __init__(
        self,
        job: ExportJob,
        engine_config: dict[str, Any] | None = None,
        observer: ProgressObserver | None = None,
        timeout: float | None = None,
    ):
        self.job = job
        self.engine_config = engine_config or get_engine_config()
        self.observer = observer
        if timeout is None:
            timeout = self.engine_config.get("job_timeout_seconds")
        self.timeout = timeout or None
        self.state = JobState.CREATED
        self.history: list[JobState] = [JobState.CREATED]
        self.failure: FailureReason | None = None
        self.error: BaseException | None = None
        self.workspace_path: Path | None = None

        if self.observer:
            self.observer.on_state(self.job.job_id, JobState.CREATED)

    @property
    def engine_path(self) -> Path:
        return Path(self.engine_config["ffmpeg_path"])

    def _transition(self, state: JobState) -> None:
        self.state = state
        self.history.append(state)
        if self.observer:
            self.observer.on_state(self.job.job_id, state)

    def _fail(self, error: BaseException) -> None:
        self.error = error
        self.failure = failure_reason_for(error)
        logger.warning(f"[{self.job.job_id}] failed in {self.state.value}: {self.failure.value} ({error})")
        self._transition(JobState.FAILED)

    async def run(self, handoff: Callable[[Path], Awaitable[T]]) -> T:
        """
        Execute the job.

        Args:
            handoff: Receives the verified artifact path while the workspace
                still exists; its return value is returned from run()

        Raises:
            ExportError: The job failed; ``self.failure`` holds the reason
            asyncio.CancelledError: The calling task was cancelled
        """
        if self.state is not JobState.CREATED:
            raise RuntimeError("ExportPipeline instances run once")

        with workspace(self.job.job_id) as ws:
            self.workspace_path = ws
            try:
                self._transition(JobState.MATERIALIZING)
                source = await self._materialize(ws)

                self._transition(JobState.GENERATING_SUBTITLE_TRACK)
                track = self._generate_subtitle_track(ws)

                self._transition(JobState.TRANSCODING)
                output_path = ws / OUTPUT_NAME
                result = await self._transcode(source, track, output_path)

                self._transition(JobState.VERIFYING)
                artifact = verify_artifact(result, output_path)
                logger.info(f"[{self.job.job_id}] artifact ready: {artifact.stat().st_size} bytes")

                value = await handoff(artifact)
                self._transition(JobState.SUCCEEDED)
                return value

            except (ExportError, asyncio.CancelledError) as e:
                self._fail(e)
                raise
            except Exception as e:
                logger.error(f"[{self.job.job_id}] unexpected error: {e}", exc_info=True)
                self._fail(e)
                raise

    async def _materialize(self, ws: Path) -> Path:
        """Make the source available as a readable local file."""
        ref = self.job.input_ref

        if isinstance(ref, UploadedStream):
            suffix = Path(ref.filename or "").suffix or ".mp4"
            target = ws / f"input{suffix}"

            def copy_stream() -> int:
                ref.stream.seek(0)
                with open(target, "wb") as f:
                    shutil.copyfileobj(ref.stream, f, length=1024 * 1024)
                return target.stat().st_size

            size = await asyncio.to_thread(copy_stream)
            if size == 0:
                raise InputNotFound("Uploaded video is empty")
            logger.info(f"[{self.job.job_id}] stored upload {ref.filename!r} ({size} bytes)")
            return target

        if isinstance(ref, PathReference):
            path = Path(ref.path).expanduser()
            if not path.is_file():
                raise InputNotFound(f"Input video not found: {path}")
            if not os.access(path, os.R_OK):
                raise InputNotFound(f"Input video is not readable: {path}")
            return path

        raise BadRequest("Export job has no input")

    def _generate_subtitle_track(self, ws: Path) -> Path | None:
        """Write the subtitle track, or return None when there is nothing to burn in."""
        if count_emittable(self.job.cues) == 0:
            if self.job.cues:
                logger.warning(f"[{self.job.job_id}] all {len(self.job.cues)} cues have non-positive duration")
            return None

        fmt = self.engine_config.get("subtitle_format", "ass")
        track_path = ws / f"subtitles.{fmt}"
        track_path.write_text(generate_track(self.job.cues, self.job.style, fmt), encoding="utf-8")
        return track_path

    def _progress_handler(self) -> Callable[[str], None]:
        duration = self.job.window.duration

        def handle(line: str) -> None:
            if self.observer is None:
                return
            key, _, value = line.partition("=")
            if key == "out_time":
                try:
                    seconds = parse_timestamp(value)
                except ValueError:
                    # ffmpeg reports N/A before the first frame
                    return
                self.observer.on_progress(self.job.job_id, min(100.0, max(0.0, seconds / duration * 100)))
            elif key == "progress" and value == "end":
                self.observer.on_progress(self.job.job_id, 100.0)

        return handle

    async def _transcode(self, source: Path, track: Path | None, output_path: Path) -> SubprocessResult:
        width, height = await asyncio.to_thread(get_video_resolution, source)
        if width and height:
            crop = compute_crop(width, height)
        else:
            logger.warning(f"[{self.job.job_id}] could not probe {source.name}, using crop expression")
            crop = None

        fmt = self.engine_config.get("subtitle_format", "ass")
        filter_graph = build_filter_graph(crop, track, fmt, self.job.style)
        args = build_transcode_args(
            source,
            output_path,
            self.job.window.start,
            self.job.window.duration,
            filter_graph,
            self.engine_config,
        )

        invocation = run_subprocess(self.engine_path, args, on_stdout_line=self._progress_handler())
        try:
            if self.timeout:
                return await asyncio.wait_for(invocation, timeout=self.timeout)
            return await invocation
        except asyncio.TimeoutError as e:
            raise JobCancelled(f"Export timed out after {self.timeout:g}s") from e
