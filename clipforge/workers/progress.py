"""FFmpeg progress parsing.

FFmpeg reports encoding stats on stderr, redrawing one line with carriage
returns:

    frame= 1234 fps= 30 q=28.0 size= 1024kB time=00:00:41.40 bitrate= 202.3kbits/s speed=1.2x

The format is not a stable interface, so parsing is best-effort: anything
without a frame counter is plain diagnostic output.
"""

import asyncio
import math
import re
from typing import AsyncIterator, Optional

from clipforge.models.export import ExportProgress

FRAME_PATTERN = re.compile(r"frame=\s*(\d+)")
FPS_PATTERN = re.compile(r"fps=\s*(\d+(?:\.\d+)?)")
TIME_PATTERN = re.compile(r"time=\s*(\d+):(\d+):(\d+(?:\.\d+)?)")

DEFAULT_FPS = 30.0
LINE_SEPARATORS = re.compile(rb"[\r\n]")


def parse_ffmpeg_time(line: str) -> Optional[float]:
    """Get the time=HH:MM:SS.ss value of a line in seconds."""
    match = TIME_PATTERN.search(line)
    if not match:
        return None
    hours, minutes, seconds = match.groups()
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


def parse_progress(line: str, total_duration: float) -> Optional[ExportProgress]:
    """Parse one line of ffmpeg stderr into a progress sample.

    Args:
        line: A line of ffmpeg diagnostic output
        total_duration: Timeline duration in seconds

    Returns:
        ExportProgress, or None if the line carries no frame counter
    """
    frame_match = FRAME_PATTERN.search(line)
    if not frame_match:
        return None
    current_frame = int(frame_match.group(1))

    fps_match = FPS_PATTERN.search(line)
    fps = float(fps_match.group(1)) if fps_match else DEFAULT_FPS

    elapsed = parse_ffmpeg_time(line) or 0.0

    # Unvalidated clips can yield a NaN or infinite duration
    if not math.isfinite(total_duration):
        total_duration = 0.0
    if not math.isfinite(fps):
        fps = 0.0

    if total_duration > 0:
        progress = min(max(elapsed / total_duration, 0.0), 1.0)
    else:
        progress = 0.0

    frames = max(total_duration, 0.0) * fps
    total_frames = int(frames) if math.isfinite(frames) else 0

    if fps > 0 and current_frame > 0:
        eta_seconds = int(max(total_frames - current_frame, 0) / fps)
    else:
        eta_seconds = 0

    return ExportProgress(
        current_frame=current_frame,
        total_frames=total_frames,
        fps=fps,
        progress=progress,
        eta_seconds=eta_seconds,
    )


async def iter_ffmpeg_lines(
    stream: asyncio.StreamReader,
    chunk_size: int = 4096,
) -> AsyncIterator[str]:
    """Yield non-empty lines from an ffmpeg output stream.

    Splits on both newlines and carriage returns so every stats redraw is
    seen as its own line.
    """
    buffer = b""
    while True:
        chunk = await stream.read(chunk_size)
        if not chunk:
            break
        buffer += chunk
        parts = LINE_SEPARATORS.split(buffer)
        buffer = parts.pop()
        for part in parts:
            line = part.decode("utf-8", errors="replace").strip()
            if line:
                yield line

    tail = buffer.decode("utf-8", errors="replace").strip()
    if tail:
        yield tail
