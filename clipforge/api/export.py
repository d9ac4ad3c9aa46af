"""Export API endpoints for timeline rendering."""

from typing import List, Optional

from fastapi import APIRouter, HTTPException
from loguru import logger
from pydantic import BaseModel

from clipforge.models.export import (
    ExportJob,
    ExportJobResponse,
    ExportRequest,
    ExportStatus,
)
from clipforge.services.export_manager import ExportManager
from clipforge.services.export_registry import JobAlreadyFinishedError, JobNotFoundError
from clipforge.services.project_manager import NoProjectLoadedError
from clipforge.workers.manifest import (
    ExportValidationError,
    MediaNotFoundError,
    OutputDirectoryNotFoundError,
)
from clipforge.api.projects import _get_project_manager

router = APIRouter(prefix="/export", tags=["export"])

# Module-level manager (set at startup)
_export_manager: Optional[ExportManager] = None


def set_export_manager(manager: ExportManager) -> None:
    """Set the export manager instance."""
    global _export_manager
    _export_manager = manager


def _get_export_manager() -> ExportManager:
    """Get the export manager instance."""
    if _export_manager is None:
        raise RuntimeError("ExportManager not initialized")
    return _export_manager


class CancelResponse(BaseModel):
    """Response for a cancel request."""
    job_id: str
    status: ExportStatus
    message: str


@router.post("", response_model=ExportJobResponse)
async def export_timeline(request: ExportRequest):
    """Export the open project's timeline to a video file.

    Returns the job ID immediately; progress arrives over /ws.
    """
    try:
        project = _get_project_manager().get_current()
    except NoProjectLoadedError as e:
        raise HTTPException(status_code=409, detail=str(e))

    try:
        return await _get_export_manager().create_export(project, request)
    except (MediaNotFoundError, OutputDirectoryNotFoundError) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ExportValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except OSError as e:
        logger.error(f"Failed to prepare export: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to prepare export: {e}")


@router.get("", response_model=List[ExportJob])
async def list_exports(status: Optional[ExportStatus] = None, limit: int = 100):
    """List export jobs, newest first."""
    return await _get_export_manager().list_jobs(status=status, limit=limit)


@router.get("/stats")
async def get_export_stats():
    """Get export statistics."""
    return await _get_export_manager().get_stats()


@router.get("/{job_id}", response_model=ExportJob)
async def get_export(job_id: str):
    """Get an export job's status."""
    job = await _get_export_manager().get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Export job not found")
    return job


@router.post("/{job_id}/cancel", response_model=CancelResponse)
async def cancel_export(job_id: str):
    """Cancel an export, killing ffmpeg and deleting the partial output."""
    try:
        await _get_export_manager().cancel_export(job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except JobAlreadyFinishedError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return CancelResponse(
        job_id=job_id,
        status=ExportStatus.CANCELLED,
        message=f"Export {job_id} cancelled",
    )
