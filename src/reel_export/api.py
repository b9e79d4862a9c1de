"""REST API routes for reel-export."""

from __future__ import annotations

import asyncio
import json
import logging
import shutil
import uuid
from pathlib import Path
from typing import Any, Awaitable, Callable, Mapping, TypeVar

from fastapi import APIRouter, File, HTTPException, Request, UploadFile
from fastapi.responses import FileResponse, Response
from pydantic import TypeAdapter, ValidationError
from starlette.datastructures import UploadFile as FormUploadFile

from .config import ensure_dirs, fetch_media, get_download_dir, get_upload_dir
from .core import (
    ExportPipeline,
    LoggingProgressObserver,
    extract_audio,
    sanitize_remote_name,
    upload_artifact,
)
from .core.audio import AUDIO_MEDIA_TYPE
from .errors import BadRequest, JobCancelled
from .models import (
    Cue,
    Destination,
    ExportJob,
    ExportWindow,
    InputRef,
    PathReference,
    RemoteUpload,
    ReturnArtifact,
    SubtitleStyle,
    UploadedStream,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

router = APIRouter()
export_router = APIRouter()

# How often a running export checks whether the client went away
DISCONNECT_POLL_SECONDS = 1.0

_cue_list = TypeAdapter(list[Cue])


# Request parsing


async def read_fields(request: Request) -> dict[str, Any]:
    """Read request fields from a multipart/urlencoded form or a JSON object."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(("multipart/form-data", "application/x-www-form-urlencoded")):
        form = await request.form()
        return {key: form.get(key) for key in form.keys()}

    try:
        body = await request.json()
    except ValueError as e:
        raise BadRequest("Request body must be multipart form data or a JSON object", str(e)) from e
    if not isinstance(body, dict):
        raise BadRequest("Request body must be a JSON object")
    return body


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    return True


def _parse_float(fields: Mapping[str, Any], name: str, default: float | None = None) -> float:
    value = fields.get(name)
    if not _present(value):
        if default is None:
            raise BadRequest(f"Missing required field '{name}'")
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise BadRequest(f"Field '{name}' must be a number", f"got {value!r}") from e


def _parse_json(fields: Mapping[str, Any], name: str) -> Any:
    """Fields may arrive JSON-encoded (multipart) or already decoded (JSON body)."""
    value = fields.get(name)
    if not _present(value):
        return None
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        raise BadRequest(f"Field '{name}' is not valid JSON", str(e)) from e


def parse_input_ref(fields: Mapping[str, Any]) -> InputRef:
    """Exactly one of a ``video`` file part or an ``inputPath`` must be given."""
    upload = fields.get("video")
    input_path = fields.get("inputPath")
    has_upload = isinstance(upload, FormUploadFile)
    has_path = isinstance(input_path, str) and input_path.strip() != ""

    if has_upload and has_path:
        raise BadRequest("Provide either a 'video' file or an 'inputPath', not both")
    if has_upload:
        return UploadedStream(stream=upload.file, filename=upload.filename)
    if has_path:
        return PathReference(path=Path(input_path.strip()))
    raise BadRequest("Missing input: provide a 'video' file or an 'inputPath'")


def build_export_job(fields: Mapping[str, Any], destination: Destination | None = None) -> ExportJob:
    """
    Translate wire fields into an ExportJob.

    Everything is validated here, before any workspace exists.
    """
    start = _parse_float(fields, "startTime", default=0.0)
    duration = _parse_float(fields, "duration")
    try:
        window = ExportWindow(start=start, duration=duration)
    except ValidationError as e:
        raise BadRequest("Invalid time window: startTime must be >= 0 and duration > 0", str(e)) from e

    raw_cues = _parse_json(fields, "subtitles")
    try:
        cues = _cue_list.validate_python(raw_cues if raw_cues is not None else [])
    except ValidationError as e:
        raise BadRequest("Field 'subtitles' must be an array of {start, end, text}", str(e)) from e

    raw_style = _parse_json(fields, "style")
    style = None
    if raw_style is not None:
        try:
            style = SubtitleStyle.model_validate(raw_style)
        except ValidationError as e:
            raise BadRequest("Field 'style' is invalid", str(e)) from e

    return ExportJob(
        input_ref=parse_input_ref(fields),
        window=window,
        cues=cues,
        style=style,
        destination=destination or ReturnArtifact(),
    )


# Export execution


async def _read_artifact(path: Path) -> bytes:
    return await asyncio.to_thread(path.read_bytes)


def handoff_for(job: ExportJob) -> Callable[[Path], Awaitable[Any]]:
    """Pick what happens to the verified artifact before the workspace goes away."""
    destination = job.destination
    if isinstance(destination, RemoteUpload):
        async def upload(path: Path) -> str:
            return await upload_artifact(path, destination.remote_name)

        return upload
    return _read_artifact


async def run_until_disconnect(request: Request, job: Awaitable[T]) -> T:
    """Await ``job``, cancelling it if the client disconnects first."""
    task = asyncio.ensure_future(job)
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=DISCONNECT_POLL_SECONDS)
            if done:
                return task.result()
            if await request.is_disconnected():
                logger.info("Client disconnected, cancelling export")
                task.cancel()
                await asyncio.wait({task})
                raise JobCancelled("Client disconnected")
    finally:
        if not task.done():
            task.cancel()


async def run_export(request: Request, job: ExportJob) -> Any:
    pipeline = ExportPipeline(job, observer=LoggingProgressObserver())
    logger.info(
        f"[{job.job_id}] export {job.window.start:g}s +{job.window.duration:g}s, "
        f"{len(job.cues)} cues, destination {job.destination.kind}"
    )
    return await run_until_disconnect(request, pipeline.run(handoff_for(job)))


@export_router.post("/export")
async def api_export(request: Request):
    """
    Export a vertical reel.

    Multipart or JSON body with ``startTime``, ``duration``, ``subtitles``
    (array of {start, end, text}), optional ``style``, and either a
    ``video`` file part or an ``inputPath``. Returns the MP4.
    """
    fields = await read_fields(request)
    job = build_export_job(fields)
    content = await run_export(request, job)
    return Response(
        content=content,
        media_type="video/mp4",
        headers={"Content-Disposition": 'attachment; filename="export.mp4"'},
    )


@router.post("/export-to-drive")
async def api_export_to_drive(request: Request):
    """Export a reel and upload it to the remote store under a name derived from ``title``."""
    fields = await read_fields(request)
    title = fields.get("title")
    if not isinstance(title, str) or not title.strip():
        raise BadRequest("Missing required field 'title'")
    job = build_export_job(fields, RemoteUpload(remote_name=sanitize_remote_name(title)))
    file_id = await run_export(request, job)
    return {"success": True, "fileId": file_id}


# Collaborator endpoints


@router.get("/health")
async def health():
    """Health check and service info."""
    return {
        "name": "reel-export",
        "version": "0.1.0",
        "status": "healthy",
        "endpoints": {
            "export": "/export",
            "api": "/api",
            "mcp": "/mcp",
            "docs": "/docs",
        },
    }


@router.post("/upload")
async def api_upload(video: UploadFile = File(...)):
    """Store a source video for later exports by ``inputPath``."""
    ensure_dirs()
    suffix = Path(video.filename or "").suffix.lower() or ".mp4"
    target = get_upload_dir() / f"{uuid.uuid4().hex}{suffix}"

    def save() -> None:
        with open(target, "wb") as f:
            shutil.copyfileobj(video.file, f, length=1024 * 1024)

    await asyncio.to_thread(save)
    logger.info(f"Stored upload {video.filename!r} as {target.name}")
    return {"filePath": str(target), "filename": target.name}


@router.post("/extract-audio")
async def api_extract_audio(request: Request):
    """Extract mono 16 kHz audio from ``videoPath`` for transcription."""
    fields = await read_fields(request)
    video_path = fields.get("videoPath")
    if not isinstance(video_path, str) or not video_path.strip():
        raise BadRequest("Missing required field 'videoPath'")

    audio = await extract_audio(video_path.strip())
    return Response(content=audio, media_type=AUDIO_MEDIA_TYPE)


@router.post("/download-yt")
async def api_download(request: Request):
    """Fetch remote media into the download directory."""
    fields = await read_fields(request)
    url = fields.get("url")
    if not isinstance(url, str) or not url.strip():
        raise BadRequest("Missing required field 'url'")

    ensure_dirs()
    result = await fetch_media(url.strip(), get_download_dir())
    return {
        "success": True,
        "filePath": result["file_path"],
        "fileName": result["file_name"],
        "url": str(request.url_for("api_media", file_name=result["file_name"])),
    }


@router.get("/media/{file_name}", name="api_media")
async def api_media(file_name: str):
    """Serve a fetched or uploaded source video."""
    if Path(file_name).name != file_name or file_name.startswith("."):
        raise HTTPException(status_code=400, detail="Invalid file name")

    for directory in (get_download_dir(), get_upload_dir()):
        candidate = directory / file_name
        if candidate.is_file():
            return FileResponse(candidate, media_type="video/mp4", filename=file_name)

    raise HTTPException(status_code=404, detail=f"Media not found: {file_name}")
