"""Services for Clipforge export."""

from .export_manager import ExportManager
from .export_registry import (
    ExportRegistry,
    JobAlreadyFinishedError,
    JobNotFoundError,
)
from .project_manager import NoProjectLoadedError, ProjectManager

__all__ = [
    "ExportManager",
    "ExportRegistry",
    "JobAlreadyFinishedError",
    "JobNotFoundError",
    "NoProjectLoadedError",
    "ProjectManager",
]
