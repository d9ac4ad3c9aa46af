"""Project manager: the currently open project and its JSON files."""

import json
from datetime import datetime
from pathlib import Path
from typing import List, Optional
from loguru import logger

from clipforge.config import settings
from clipforge.models.timeline import Project


class NoProjectLoadedError(Exception):
    """Raised when an operation needs an open project and there is none."""

    def __init__(self):
        super().__init__("No project loaded")


class ProjectManager:
    """Holds the open project; exports read tracks and media from it."""

    def __init__(self, projects_dir: Optional[Path] = None):
        """Initialize project manager.

        Args:
            projects_dir: Directory for saved projects.
                          Defaults to data_dir/projects.
        """
        self.projects_dir = projects_dir or settings.projects_dir
        self.projects_dir.mkdir(parents=True, exist_ok=True)
        self._current: Optional[Project] = None

    def set_current(self, project: Project) -> Project:
        """Make a project the open one."""
        self._current = project
        logger.info(
            f"Opened project {project.id} '{project.name}': "
            f"{len(project.tracks)} tracks, {len(project.media_library)} media clips"
        )
        return project

    def get_current(self) -> Project:
        """Get a copy of the open project.

        Raises:
            NoProjectLoadedError: No project has been opened
        """
        if self._current is None:
            raise NoProjectLoadedError()
        return self._current.model_copy(deep=True)

    def close(self) -> None:
        self._current = None

    def _project_path(self, project_id: str) -> Path:
        return self.projects_dir / f"{project_id}.json"

    def save_project(self, project: Optional[Project] = None) -> Path:
        """Save a project (the open one by default) to disk."""
        project = project or self.get_current()
        project.modified_at = datetime.now()
        file_path = self._project_path(project.id)
        with open(file_path, "w", encoding="utf-8") as f:
            json.dump(project.model_dump(mode="json", by_alias=True), f, ensure_ascii=False, indent=2)
        logger.info(f"Saved project {project.id} to {file_path}")
        return file_path

    def load_project(self, project_id: str) -> Project:
        """Load a saved project and make it the open one.

        Raises:
            FileNotFoundError: No saved project with that ID
        """
        file_path = self._project_path(project_id)
        with open(file_path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return self.set_current(Project.model_validate(data))

    def list_projects(self) -> List[str]:
        """List IDs of saved projects."""
        return sorted(p.stem for p in self.projects_dir.glob("*.json"))
