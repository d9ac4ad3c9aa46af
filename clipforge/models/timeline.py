"""Timeline data models: tracks, clips and the media they reference."""

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field
import uuid

from clipforge.models.export import ExportSettings


class TrackType(str, Enum):
    """Track type.

    Only the main track is linearized into an export; overlay tracks are
    carried in the project but ignored by the export pipeline.
    """

    MAIN = "main"
    OVERLAY = "overlay"


class Transform(BaseModel):
    """Placement of a clip inside the frame."""

    x: int = 0
    y: int = 0
    width: int
    height: int
    rotation: float = 0.0


class TimelineClip(BaseModel):
    """A trimmed reference to a media clip placed on a track."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    media_clip_id: str
    track_id: str
    start_time: float = Field(..., description="Position on the timeline (seconds)")
    in_point: float = Field(..., description="Trim-in into the source media (seconds)")
    out_point: float = Field(..., description="Trim-out into the source media (seconds)")
    layer_order: int = 0
    transform: Optional[Transform] = None

    @property
    def duration(self) -> float:
        """Length of the trim window."""
        return self.out_point - self.in_point

    @property
    def end_time(self) -> float:
        """Timeline position where the clip ends."""
        return self.start_time + self.duration


class Track(BaseModel):
    """An ordered collection of clips."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    track_type: TrackType = Field(default=TrackType.MAIN, alias="type")
    order: int = 0
    clips: List[TimelineClip] = Field(default_factory=list)
    visible: bool = True
    locked: bool = False
    volume: float = 1.0

    @property
    def clip_count(self) -> int:
        return len(self.clips)

    def duration(self) -> float:
        """Get the track duration: the latest clip end, 0 when empty."""
        return max((clip.end_time for clip in self.clips), default=0.0)


class MediaClip(BaseModel):
    """Imported media item as described by the probing layer."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""
    source_path: str
    proxy_path: Optional[str] = None
    thumbnail_path: Optional[str] = None
    duration: float = 0.0
    width: int = 0
    height: int = 0
    fps: float = 0.0
    codec: str = ""
    audio_codec: Optional[str] = None
    file_size: int = 0
    bitrate: Optional[int] = None
    has_audio: bool = False
    imported_at: datetime = Field(default_factory=datetime.now)

    @property
    def resolution(self) -> str:
        return f"{self.width}x{self.height}"

    @property
    def playable_path(self) -> str:
        """Prefer the transcoded proxy over the original source."""
        return self.proxy_path or self.source_path

    @classmethod
    def from_path(cls, source_path: str, **kwargs) -> "MediaClip":
        """Create a descriptor named after the file."""
        name = Path(source_path).name or "Unknown"
        return cls(source_path=source_path, name=name, **kwargs)


class Project(BaseModel):
    """An editable project: tracks plus the media library they draw from."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = "Untitled Project"
    version: str = "1.0.0"
    tracks: List[Track] = Field(default_factory=list)
    media_library: List[MediaClip] = Field(default_factory=list)
    export_settings: ExportSettings = Field(default_factory=ExportSettings)
    created_at: datetime = Field(default_factory=datetime.now)
    modified_at: datetime = Field(default_factory=datetime.now)

    def get_media_clip(self, media_clip_id: str) -> Optional[MediaClip]:
        """Get a media clip by ID."""
        for media in self.media_library:
            if media.id == media_clip_id:
                return media
        return None

    def get_track(self, track_id: str) -> Optional[Track]:
        """Get a track by ID."""
        for track in self.tracks:
            if track.id == track_id:
                return track
        return None
