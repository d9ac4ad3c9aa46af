"""Project API endpoints: open, inspect and save the current project."""

from typing import List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from clipforge.models.timeline import Project
from clipforge.services.project_manager import NoProjectLoadedError, ProjectManager
from clipforge.workers.manifest import calculate_timeline_duration

router = APIRouter(prefix="/project", tags=["project"])

# Module-level manager (set at startup)
_project_manager: Optional[ProjectManager] = None


def set_project_manager(manager: ProjectManager) -> None:
    """Set the project manager instance."""
    global _project_manager
    _project_manager = manager


def _get_project_manager() -> ProjectManager:
    """Get the project manager instance."""
    if _project_manager is None:
        raise RuntimeError("ProjectManager not initialized")
    return _project_manager


class ProjectSummary(BaseModel):
    """Summary of the open project."""
    id: str
    name: str
    track_count: int
    clip_count: int
    media_count: int
    duration: float


def _summarize(project: Project) -> ProjectSummary:
    return ProjectSummary(
        id=project.id,
        name=project.name,
        track_count=len(project.tracks),
        clip_count=sum(t.clip_count for t in project.tracks),
        media_count=len(project.media_library),
        duration=calculate_timeline_duration(project.tracks),
    )


@router.put("", response_model=ProjectSummary)
async def open_project(project: Project):
    """Open a project, replacing the current one."""
    manager = _get_project_manager()
    return _summarize(manager.set_current(project))


@router.get("", response_model=Project)
async def get_project():
    """Get the open project."""
    try:
        return _get_project_manager().get_current()
    except NoProjectLoadedError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/summary", response_model=ProjectSummary)
async def get_project_summary():
    """Get counts and total duration of the open project."""
    try:
        return _summarize(_get_project_manager().get_current())
    except NoProjectLoadedError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/save")
async def save_project():
    """Save the open project to disk."""
    try:
        path = _get_project_manager().save_project()
    except NoProjectLoadedError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"path": str(path)}


@router.get("/saved", response_model=List[str])
async def list_saved_projects():
    """List IDs of saved projects."""
    return _get_project_manager().list_projects()


@router.post("/load/{project_id}", response_model=ProjectSummary)
async def load_project(project_id: str):
    """Open a saved project."""
    try:
        project = _get_project_manager().load_project(project_id)
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail="Project not found")
    return _summarize(project)
