"""Export data models: settings, jobs, progress and event payloads."""

from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple
from pydantic import BaseModel, Field


class ExportResolution(str, Enum):
    """Output resolution target."""

    SOURCE = "source"
    UHD_4K = "2160p"
    QHD = "1440p"
    FULL_HD = "1080p"
    HD = "720p"
    SD = "480p"

    def dimensions(self) -> Optional[Tuple[int, int]]:
        """Get (width, height), or None to keep the source size."""
        return _RESOLUTION_DIMENSIONS.get(self)


_RESOLUTION_DIMENSIONS: Dict[ExportResolution, Tuple[int, int]] = {
    ExportResolution.UHD_4K: (3840, 2160),
    ExportResolution.QHD: (2560, 1440),
    ExportResolution.FULL_HD: (1920, 1080),
    ExportResolution.HD: (1280, 720),
    ExportResolution.SD: (854, 480),
}


class VideoCodec(str, Enum):
    """Video codec."""

    H264 = "h264"
    HEVC = "hevc"
    VP9 = "vp9"

    @property
    def ffmpeg_codec(self) -> str:
        """Software encoder name."""
        return {
            VideoCodec.H264: "libx264",
            VideoCodec.HEVC: "libx265",
            VideoCodec.VP9: "libvpx-vp9",
        }[self]

    @property
    def extension(self) -> str:
        """Conventional container extension."""
        return "webm" if self == VideoCodec.VP9 else "mp4"


class ExportQuality(str, Enum):
    """Encoding quality tier."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def crf_value(self) -> int:
        """CRF for the tier (lower = better quality)."""
        return {
            ExportQuality.HIGH: 18,
            ExportQuality.MEDIUM: 23,
            ExportQuality.LOW: 28,
        }[self]


class AudioCodec(str, Enum):
    """Audio codec."""

    AAC = "aac"
    MP3 = "mp3"
    OPUS = "opus"

    @property
    def ffmpeg_codec(self) -> str:
        return {
            AudioCodec.AAC: "aac",
            AudioCodec.MP3: "libmp3lame",
            AudioCodec.OPUS: "libopus",
        }[self]


class ExportSettings(BaseModel):
    """User settings for rendering a timeline."""

    resolution: ExportResolution = ExportResolution.FULL_HD
    codec: VideoCodec = VideoCodec.H264
    quality: ExportQuality = ExportQuality.HIGH
    fps: Optional[int] = Field(default=None, gt=0, description="Frame rate override (None = source fps)")
    audio_codec: AudioCodec = AudioCodec.AAC
    audio_bitrate: int = Field(default=192, gt=0, description="Audio bitrate in kbps")
    hardware_acceleration: bool = True


class ExportStatus(str, Enum):
    """Export job status.

    preparing -> rendering -> complete | failed | cancelled
    A job that never spawns goes straight from preparing to failed or cancelled.
    """

    PREPARING = "preparing"
    RENDERING = "rendering"
    COMPLETE = "complete"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_EXPORT_STATES


TERMINAL_EXPORT_STATES: FrozenSet[ExportStatus] = frozenset({
    ExportStatus.COMPLETE,
    ExportStatus.CANCELLED,
    ExportStatus.FAILED,
})

EXPORT_TRANSITIONS: FrozenSet[Tuple[ExportStatus, ExportStatus]] = frozenset({
    (ExportStatus.PREPARING, ExportStatus.RENDERING),
    (ExportStatus.PREPARING, ExportStatus.FAILED),
    (ExportStatus.PREPARING, ExportStatus.CANCELLED),
    (ExportStatus.RENDERING, ExportStatus.COMPLETE),
    (ExportStatus.RENDERING, ExportStatus.FAILED),
    (ExportStatus.RENDERING, ExportStatus.CANCELLED),
})


def can_transition(current: ExportStatus, target: ExportStatus) -> bool:
    """Check whether an export job may move from current to target."""
    return (current, target) in EXPORT_TRANSITIONS


class ExportJob(BaseModel):
    """Export job record."""

    id: str
    output_path: str
    status: ExportStatus = ExportStatus.PREPARING
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class ExportProgress(BaseModel):
    """Point-in-time render estimate parsed from ffmpeg output."""

    current_frame: int
    total_frames: int
    fps: float
    progress: float = Field(..., ge=0.0, le=1.0)
    eta_seconds: int


class ExportRequest(BaseModel):
    """Request model for exporting the current project."""

    output_path: str = Field(..., description="Destination video file")
    settings: ExportSettings = Field(default_factory=ExportSettings)


class ExportJobResponse(BaseModel):
    """Response for an accepted export request."""

    job_id: str


# ========== Event payloads ==========

EXPORT_PROGRESS = "export_progress"
EXPORT_COMPLETE = "export_complete"
EXPORT_ERROR = "export_error"
EXPORT_CANCELLED = "export_cancelled"


class ExportProgressEvent(BaseModel):
    job_id: str
    progress: float
    current_frame: int
    total_frames: int
    fps: float
    eta_seconds: int

    @classmethod
    def from_progress(cls, job_id: str, sample: ExportProgress) -> "ExportProgressEvent":
        return cls(job_id=job_id, **sample.model_dump())


class ExportCompleteEvent(BaseModel):
    job_id: str
    output_path: str


class ExportErrorEvent(BaseModel):
    job_id: str
    error: str


class ExportCancelledEvent(BaseModel):
    job_id: str
