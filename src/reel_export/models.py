"""Data models for reel-export."""

from __future__ import annotations

import re
import uuid
from enum import Enum
from pathlib import Path
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class JobState(str, Enum):
    """Export pipeline state."""

    CREATED = "created"
    MATERIALIZING = "materializing"
    GENERATING_SUBTITLE_TRACK = "generating_subtitle_track"
    TRANSCODING = "transcoding"
    VERIFYING = "verifying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class FailureReason(str, Enum):
    """Why a job ended in the failed state."""

    BAD_REQUEST = "bad_request"
    INPUT_NOT_FOUND = "input_not_found"
    LAUNCH_ERROR = "launch_error"
    ENGINE_ERROR = "engine_error"
    NO_OUTPUT = "engine_reported_success_but_no_output"
    CANCELLED = "cancelled"
    UPSTREAM_STORE_ERROR = "upstream_store_error"
    INTERNAL_ERROR = "internal_error"


class Cue(BaseModel):
    """A timed subtitle entry, offsets in seconds."""

    model_config = ConfigDict(allow_inf_nan=False)

    start: float = Field(ge=0)
    end: float = Field(ge=0)
    text: str


class ExportWindow(BaseModel):
    """Time window cut from the source."""

    model_config = ConfigDict(allow_inf_nan=False)

    start: float = Field(default=0.0, ge=0)
    duration: float = Field(gt=0)


# Commas and newlines split ASS style fields; quotes, colons, equals signs and
# backslashes break the force_style filter option
_FONT_NAME_UNSAFE = re.compile(r"[\x00-\x1f\x7f,:;='\"\\\[\]{}]")

# ASS numpad alignment for the web client's position names
POSITION_ALIGNMENT = {"top": 8, "center": 5, "bottom": 2}


class SubtitleStyle(BaseModel):
    """Burned-in subtitle style.

    Field aliases match the names the web client sends (``fontFamily``,
    ``strokeColor`` ...). Colors are web hex strings.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", allow_inf_nan=False)

    font_family: str = Field(default="Eurostile", alias="fontFamily")
    font_size: int = Field(default=50, gt=0, alias="fontSize")
    color: str = "#FFFFFF"
    outline_color: str = Field(default="#000000", alias="strokeColor")
    outline_width: float = Field(default=24, ge=0, alias="strokeWidth")
    background_color: str = Field(default="#000000", alias="backgroundColor")
    background_opacity: float = Field(default=0.3, ge=0, le=1, alias="backgroundOpacity")
    bold: bool = True
    # 3 = opaque box behind the text, 1 = outline + shadow
    border_style: Literal[1, 3] = Field(default=3, alias="borderStyle")
    alignment: int = Field(default=2, ge=1, le=9, alias="position")
    margin_l: int = Field(default=90, ge=0, alias="marginL")
    margin_r: int = Field(default=90, ge=0, alias="marginR")
    margin_v: int = Field(default=150, ge=0, alias="marginV")

    @field_validator("alignment", mode="before")
    @classmethod
    def _position_to_alignment(cls, value: Any) -> Any:
        if isinstance(value, str) and value.lower() in POSITION_ALIGNMENT:
            return POSITION_ALIGNMENT[value.lower()]
        return value

    @field_validator("font_family")
    @classmethod
    def _clean_font_family(cls, value: str) -> str:
        cleaned = " ".join(_FONT_NAME_UNSAFE.sub(" ", value).split())
        if not cleaned:
            raise ValueError("fontFamily must contain a font name")
        return cleaned

    @field_validator("color", "outline_color", "background_color")
    @classmethod
    def _check_hex(cls, value: str) -> str:
        # Deferred: core.subtitles imports this module
        from .core.subtitles import hex_to_ass_color

        hex_to_ass_color(value)
        return value


class PathReference(BaseModel):
    """Source already on disk (uploaded earlier or fetched from a URL)."""

    kind: Literal["path"] = "path"
    path: Path


class UploadedStream(BaseModel):
    """Source embedded in the request as an upload stream."""

    kind: Literal["upload"] = "upload"
    # Any readable binary file object (UploadFile.file, open(..., "rb"))
    stream: Any
    filename: str | None = None


InputRef = Union[PathReference, UploadedStream]


class ReturnArtifact(BaseModel):
    """Stream the artifact back as the response body."""

    kind: Literal["return"] = "return"


class RemoteUpload(BaseModel):
    """Upload the artifact to the remote store under ``remote_name``."""

    kind: Literal["remote"] = "remote"
    remote_name: str


Destination = Union[ReturnArtifact, RemoteUpload]


class ExportJob(BaseModel):
    """A single export request. Lives for one request, never persisted."""

    job_id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    input_ref: InputRef
    window: ExportWindow
    cues: list[Cue] = Field(default_factory=list)
    style: SubtitleStyle | None = None
    destination: Destination = Field(default_factory=ReturnArtifact)


class SubprocessResult(BaseModel):
    """Outcome of one subprocess invocation."""

    exit_code: int
    diagnostic_text: str = ""

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0

    def diagnostic_tail(self, lines: int = 20) -> str:
        """Return the last ``lines`` lines of diagnostic output."""
        return "\n".join(self.diagnostic_text.splitlines()[-lines:])
