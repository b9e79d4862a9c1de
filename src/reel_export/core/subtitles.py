"""Subtitle track generation - ASS (styled) and SRT documents from cue lists."""

from __future__ import annotations

import logging
import math
import re
from typing import Iterable, Literal

from ..models import Cue, SubtitleStyle

logger = logging.getLogger(__name__)

TrackFormat = Literal["ass", "srt"]

# Canvas the ASS styles are authored against (1080x1920 vertical reel)
PLAY_RES_X = 1080
PLAY_RES_Y = 1920

ASS_STYLE_FORMAT = (
    "Format: Name, Fontname, Fontsize, PrimaryColour, SecondaryColour, OutlineColour, "
    "BackColour, Bold, Italic, Underline, StrikeOut, ScaleX, ScaleY, Spacing, Angle, "
    "BorderStyle, Outline, Shadow, Alignment, MarginL, MarginR, MarginV, Encoding"
)
ASS_EVENT_FORMAT = "Format: Layer, Start, End, Style, Name, MarginL, MarginR, MarginV, Effect, Text"

_HEX_DIGITS = re.compile(r"^[0-9A-Fa-f]+$")
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b-\x1f\x7f]")


def format_timestamp(seconds: float, fmt: TrackFormat = "ass") -> str:
    """
    Format an offset in seconds as a subtitle timestamp.

    - ass: ``H:MM:SS.cc`` (centiseconds)
    - srt: ``HH:MM:SS,mmm`` (milliseconds)

    Whole seconds are truncated and the fraction is floored to the target
    precision, so the result never carries into the next second. Hours are
    not clamped.
    """
    if seconds < 0:
        raise ValueError(f"Timestamp must be >= 0, got {seconds}")

    whole = int(seconds)
    hours, remainder = divmod(whole, 3600)
    minutes, secs = divmod(remainder, 60)
    fraction = seconds - whole

    if fmt == "ass":
        # round() first strips float noise such as 0.29 * 100 == 28.999999999999996
        centis = min(math.floor(round(fraction * 100, 6)), 99)
        return f"{hours}:{minutes:02d}:{secs:02d}.{centis:02d}"
    if fmt == "srt":
        millis = min(math.floor(round(fraction * 1000, 6)), 999)
        return f"{hours:02d}:{minutes:02d}:{secs:02d},{millis:03d}"
    raise ValueError(f"Unknown track format: {fmt}")


def parse_timestamp(timestamp: str) -> float:
    """
    Parse timestamp string to seconds.

    Supported formats:
    - "123.45" (seconds)
    - "1:23.45" (minutes:seconds)
    - "1:23:45.67" (hours:minutes:seconds)
    - "01:23:45,670" (SRT format)
    - "00:00:01.234567" (ffmpeg progress out_time)

    Returns:
        float: Timestamp in seconds
    """
    timestamp = timestamp.strip()

    try:
        return float(timestamp)
    except ValueError:
        pass

    timestamp = timestamp.replace(",", ".")

    match = re.match(r"(?:(\d+):)?(\d+):(\d+(?:\.\d+)?)$", timestamp)
    if match:
        hours = int(match.group(1) or 0)
        minutes = int(match.group(2))
        seconds = float(match.group(3))
        return hours * 3600 + minutes * 60 + seconds

    raise ValueError(f"Invalid timestamp format: {timestamp}")


def hex_to_ass_color(hex_color: str, alpha: int = 0) -> str:
    """
    Convert a web hex color to ASS ``&HAABBGGRR``.

    ASS stores channels in reverse order (blue first) and its alpha is
    inverted: 00 is opaque, FF is transparent.

    Accepts ``#RGB``, ``#RRGGBB`` and ``#RRGGBBAA`` (CSS alpha, FF = opaque).
    ``alpha`` applies to the 3 and 6 digit forms.
    """
    value = hex_color.strip().lstrip("#")
    if not _HEX_DIGITS.match(value) or len(value) not in (3, 6, 8):
        raise ValueError(f"Invalid hex color {hex_color!r}: expected #RGB, #RRGGBB or #RRGGBBAA")
    if not 0 <= alpha <= 255:
        raise ValueError(f"Alpha must be within 0..255, got {alpha}")

    if len(value) == 3:
        value = "".join(ch * 2 for ch in value)
    if len(value) == 8:
        alpha = 255 - int(value[6:8], 16)
        value = value[:6]

    red, green, blue = value[0:2], value[2:4], value[4:6]
    return f"&H{alpha:02X}{blue.upper()}{green.upper()}{red.upper()}"


def opacity_to_ass_alpha(opacity: float) -> int:
    """Map CSS-style opacity (1.0 = opaque) to ASS alpha (0 = opaque)."""
    return round((1 - opacity) * 255)


def sanitize_text(text: str, fmt: TrackFormat = "ass") -> str:
    """Make cue text safe for a single event line."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _CONTROL_CHARS.sub(" ", text).replace("\t", " ")
    if fmt == "ass":
        # Backslash starts override codes (\N, \h ...) and braces open override blocks
        text = text.replace("\\", "＼").replace("{", "").replace("}", "")
        return text.strip().replace("\n", "\\N")
    # SRT ends a cue at the first blank line
    lines = [line.strip() for line in text.split("\n")]
    return "\n".join(line for line in lines if line)


def _emittable(cues: Iterable[Cue]) -> list[Cue]:
    """Drop cues with a zero or negative duration."""
    kept = []
    for position, cue in enumerate(cues):
        if cue.end <= cue.start:
            logger.warning(
                f"Skipping cue #{position} ({cue.start:.3f}s -> {cue.end:.3f}s): "
                "end must be after start"
            )
            continue
        kept.append(cue)
    return kept


def build_style_line(style: SubtitleStyle, name: str = "Default") -> str:
    """Build the ``Style:`` line for the ``[V4+ Styles]`` section."""
    primary = hex_to_ass_color(style.color)
    outline = hex_to_ass_color(style.outline_color)
    back = hex_to_ass_color(style.background_color, opacity_to_ass_alpha(style.background_opacity))
    bold = -1 if style.bold else 0
    outline_width = f"{style.outline_width:g}"

    fields = [
        name,
        style.font_family,
        str(style.font_size),
        primary,
        primary,
        outline,
        back,
        str(bold),
        "0", "0", "0",  # Italic, Underline, StrikeOut
        "100", "100",  # ScaleX, ScaleY
        "0", "0",  # Spacing, Angle
        str(style.border_style),
        outline_width,
        "0",  # Shadow
        str(style.alignment),
        str(style.margin_l),
        str(style.margin_r),
        str(style.margin_v),
        "1",  # Encoding
    ]
    return "Style: " + ",".join(fields)


def build_force_style(style: SubtitleStyle) -> str:
    """Build the ``force_style`` value used when burning SRT tracks."""
    back = hex_to_ass_color(style.background_color, opacity_to_ass_alpha(style.background_opacity))
    parts = [
        f"FontName={style.font_family}",
        f"FontSize={style.font_size}",
        f"PrimaryColour={hex_to_ass_color(style.color)}",
        f"OutlineColour={hex_to_ass_color(style.outline_color)}",
        f"BackColour={back}",
        f"Bold={-1 if style.bold else 0}",
        f"BorderStyle={style.border_style}",
        f"Outline={style.outline_width:g}",
        f"Alignment={style.alignment}",
        f"MarginL={style.margin_l}",
        f"MarginR={style.margin_r}",
        f"MarginV={style.margin_v}",
    ]
    return ",".join(parts)


def generate_ass(cues: Iterable[Cue], style: SubtitleStyle | None = None) -> str:
    """
    Generate an ASS document for the given cues.

    Events are emitted in input order. An empty cue list yields a valid
    header-only document.
    """
    style = style or SubtitleStyle()

    header = "\n".join([
        "[Script Info]",
        "ScriptType: v4.00+",
        f"PlayResX: {PLAY_RES_X}",
        f"PlayResY: {PLAY_RES_Y}",
        "WrapStyle: 0",
        "ScaledBorderAndShadow: yes",
        "",
        "[V4+ Styles]",
        ASS_STYLE_FORMAT,
        build_style_line(style),
        "",
        "[Events]",
        ASS_EVENT_FORMAT,
    ])

    events = []
    for cue in _emittable(cues):
        start = format_timestamp(cue.start, "ass")
        end = format_timestamp(cue.end, "ass")
        events.append(f"Dialogue: 0,{start},{end},Default,,0,0,0,,{sanitize_text(cue.text, 'ass')}")

    return "\n".join([header, *events]) + "\n"


def generate_srt(cues: Iterable[Cue]) -> str:
    """Generate an SRT document; indices are sequential in input order."""
    blocks = []
    for index, cue in enumerate(_emittable(cues), start=1):
        start = format_timestamp(cue.start, "srt")
        end = format_timestamp(cue.end, "srt")
        blocks.append(f"{index}\n{start} --> {end}\n{sanitize_text(cue.text, 'srt')}\n")
    return "\n".join(blocks)


def generate_track(
    cues: Iterable[Cue],
    style: SubtitleStyle | None = None,
    fmt: TrackFormat = "ass",
) -> str:
    """Generate a subtitle track document in the requested format."""
    if fmt == "ass":
        return generate_ass(cues, style)
    if fmt == "srt":
        return generate_srt(cues)
    raise ValueError(f"Unknown track format: {fmt}")


def count_emittable(cues: Iterable[Cue]) -> int:
    """Number of cues that would produce an event line."""
    return sum(1 for cue in cues if cue.end > cue.start)


def adjust_cues_to_window(cues: Iterable[Cue], start: float, duration: float) -> list[Cue]:
    """
    Re-time source-relative cues to a trimmed window.

    Keeps cues overlapping ``[start, start + duration)``, shifts them by
    ``-start`` and clamps to ``[0, duration]``.
    """
    window_end = start + duration
    adjusted = []
    for cue in cues:
        if cue.end <= start or cue.start >= window_end:
            continue
        adjusted.append(Cue(
            start=max(0.0, cue.start - start),
            end=min(duration, cue.end - start),
            text=cue.text,
        ))
    return adjusted
