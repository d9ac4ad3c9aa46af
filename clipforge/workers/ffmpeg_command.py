"""Encode command builder: export settings to an ffmpeg invocation."""

import asyncio
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from clipforge.config import settings as app_settings
from clipforge.models.export import ExportSettings, VideoCodec

# Hardware H.264 encoders by sys.platform; other platforms fall back to software
HARDWARE_H264_ENCODERS = {
    "darwin": "h264_videotoolbox",
    "win32": "h264_nvenc",
}


@dataclass
class FFmpegCommand:
    """A fully specified ffmpeg process invocation."""

    executable: str
    args: List[str] = field(default_factory=list)
    stdout: int = asyncio.subprocess.PIPE
    stderr: int = asyncio.subprocess.PIPE

    @property
    def argv(self) -> List[str]:
        return [self.executable, *self.args]

    def value_of(self, flag: str) -> Optional[str]:
        """Get the argument following flag, or None if the flag is absent."""
        try:
            index = self.args.index(flag)
        except ValueError:
            return None
        if index + 1 >= len(self.args):
            return None
        return self.args[index + 1]

    def __str__(self) -> str:
        return " ".join(self.argv)


def hardware_encoder_for(platform: Optional[str] = None) -> Optional[str]:
    """Get the hardware H.264 encoder for a platform, None if it has none."""
    if app_settings.ffmpeg_hw_encoder:
        return app_settings.ffmpeg_hw_encoder
    return HARDWARE_H264_ENCODERS.get(platform or sys.platform)


def select_video_encoder(settings: ExportSettings, platform: Optional[str] = None) -> str:
    """Choose the -c:v encoder name for the settings."""
    if settings.hardware_acceleration and settings.codec == VideoCodec.H264:
        return hardware_encoder_for(platform) or settings.codec.ffmpeg_codec
    return settings.codec.ffmpeg_codec


def uses_hardware_rate_control(settings: ExportSettings) -> bool:
    """Hardware H.264 gets a target bitrate instead of CRF."""
    return settings.hardware_acceleration and settings.codec == VideoCodec.H264


def build_export_command(
    concat_file: Path,
    output_path: Path,
    settings: ExportSettings,
    platform: Optional[str] = None,
    ffmpeg_path: Optional[str] = None,
) -> FFmpegCommand:
    """Build the ffmpeg command that renders a concat manifest.

    Args:
        concat_file: ffconcat manifest (absolute paths, hence -safe 0)
        output_path: Destination file, overwritten if present
        settings: User export settings
        platform: sys.platform value to pick the hardware encoder for
        ffmpeg_path: ffmpeg executable, defaults to the configured one

    Returns:
        FFmpegCommand with stdout and stderr piped for progress parsing
    """
    args = ["-f", "concat", "-safe", "0", "-i", str(concat_file)]

    encoder = select_video_encoder(settings, platform)
    args.extend(["-c:v", encoder])

    if uses_hardware_rate_control(settings):
        args.extend(["-b:v", app_settings.hardware_bitrate])
    else:
        args.extend(["-crf", str(settings.quality.crf_value)])

    if not settings.hardware_acceleration:
        args.extend(["-preset", app_settings.software_preset])

    dimensions = settings.resolution.dimensions()
    if dimensions:
        width, height = dimensions
        args.extend(["-vf", f"scale={width}:{height}:force_original_aspect_ratio=decrease"])

    if settings.fps is not None:
        args.extend(["-r", str(settings.fps)])

    args.extend(["-c:a", settings.audio_codec.ffmpeg_codec])
    args.extend(["-b:a", f"{settings.audio_bitrate}k"])

    args.extend(["-y", str(output_path)])

    return FFmpegCommand(
        executable=ffmpeg_path or app_settings.ffmpeg_path,
        args=args,
    )
