"""Clipforge export service: timeline rendering through ffmpeg."""

__version__ = "0.1.0"
