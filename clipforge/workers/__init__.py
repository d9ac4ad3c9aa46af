"""Worker modules for the export pipeline."""

from .ffmpeg_command import FFmpegCommand, build_export_command
from .manifest import (
    ExportValidationError,
    MediaNotFoundError,
    NoMainTrackError,
    InvalidOutputPathError,
    OutputDirectoryNotFoundError,
    calculate_timeline_duration,
    generate_concat_file,
)
from .progress import iter_ffmpeg_lines, parse_progress

__all__ = [
    "FFmpegCommand",
    "build_export_command",
    "ExportValidationError",
    "MediaNotFoundError",
    "NoMainTrackError",
    "InvalidOutputPathError",
    "OutputDirectoryNotFoundError",
    "calculate_timeline_duration",
    "generate_concat_file",
    "iter_ffmpeg_lines",
    "parse_progress",
]
