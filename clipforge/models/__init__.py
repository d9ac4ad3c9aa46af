"""Data models for Clipforge export."""

from .export import (
    AudioCodec,
    ExportCancelledEvent,
    ExportCompleteEvent,
    ExportErrorEvent,
    ExportJob,
    ExportJobResponse,
    ExportProgress,
    ExportProgressEvent,
    ExportQuality,
    ExportRequest,
    ExportResolution,
    ExportSettings,
    ExportStatus,
    VideoCodec,
)
from .timeline import (
    MediaClip,
    Project,
    TimelineClip,
    Track,
    TrackType,
    Transform,
)

__all__ = [
    # Export
    "AudioCodec",
    "ExportCancelledEvent",
    "ExportCompleteEvent",
    "ExportErrorEvent",
    "ExportJob",
    "ExportJobResponse",
    "ExportProgress",
    "ExportProgressEvent",
    "ExportQuality",
    "ExportRequest",
    "ExportResolution",
    "ExportSettings",
    "ExportStatus",
    "VideoCodec",
    # Timeline
    "MediaClip",
    "Project",
    "TimelineClip",
    "Track",
    "TrackType",
    "Transform",
]
