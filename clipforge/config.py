"""Configuration settings for the Clipforge export service.

Renders editable timelines into a single video through ffmpeg.
"""

import json
import tempfile
from pathlib import Path
from typing import List, Union
from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # Paths
    data_dir: Path = Path("data")
    scratch_dir: Path = Path(tempfile.gettempdir())  # Per-export manifest dirs live here

    @property
    def projects_dir(self) -> Path:
        """Path to saved project files."""
        return self.data_dir / "projects"

    # FFmpeg settings
    ffmpeg_path: str = "ffmpeg"
    ffmpeg_hw_encoder: str = ""  # Empty = platform default (videotoolbox / nvenc)
    hardware_bitrate: str = "5M"  # Hardware encoders get a fixed bitrate, not CRF
    software_preset: str = "medium"

    # Export supervision
    terminate_grace_seconds: float = 3.0  # SIGTERM -> SIGKILL delay on cancel
    error_tail_lines: int = 10  # Lines of ffmpeg output attached to failures

    # Server settings
    host: str = "127.0.0.1"
    port: int = 8000
    debug: bool = False

    # Frontend settings
    cors_origins: List[str] = ["http://localhost:1420", "tauri://localhost"]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        """Parse CORS origins from JSON string or list."""
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                # If not valid JSON, treat as comma-separated list
                return [origin.strip() for origin in v.split(",")]
        return v

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
