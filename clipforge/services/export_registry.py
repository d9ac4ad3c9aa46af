"""Registry of in-flight export jobs.

The registry is the only owner of a job's status and process handle. Every
read-modify-write happens under one asyncio lock, and every status change
goes through transition(), which enforces the export state machine:

    preparing -> rendering | failed | cancelled
    rendering -> complete | failed | cancelled

Terminal states never change, so a cancelled job cannot be resurrected as
failed or complete by its supervisor.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Tuple
from loguru import logger

from clipforge.models.export import ExportJob, ExportStatus, can_transition


class JobNotFoundError(Exception):
    """Raised when an export job is not in the registry."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Export job not found: {job_id}")


class JobAlreadyFinishedError(Exception):
    """Raised when cancelling a job that already completed or failed."""

    def __init__(self, job_id: str, status: ExportStatus):
        self.job_id = job_id
        self.status = status
        super().__init__(f"Export job {job_id} already {status.value}")


@dataclass
class ExportJobHandle:
    """A job record plus its live ffmpeg process, if spawned."""

    job: ExportJob
    process: Optional[asyncio.subprocess.Process] = None


class ExportRegistry:
    """Lock-guarded map of export jobs."""

    def __init__(self):
        self._jobs: Dict[str, ExportJobHandle] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, job_id: str) -> bool:
        return job_id in self._jobs

    async def add(self, job: ExportJob) -> None:
        """Register a new job."""
        async with self._lock:
            self._jobs[job.id] = ExportJobHandle(job=job)

    async def get(self, job_id: str) -> Optional[ExportJob]:
        """Get a snapshot of a job."""
        async with self._lock:
            handle = self._jobs.get(job_id)
            return handle.job.model_copy() if handle else None

    async def list(self, status: Optional[ExportStatus] = None) -> List[ExportJob]:
        """List job snapshots, newest first."""
        async with self._lock:
            jobs = [h.job.model_copy() for h in self._jobs.values()]

        if status:
            jobs = [j for j in jobs if j.status == status]
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs

    async def remove(self, job_id: str) -> Optional[ExportJob]:
        """Drop a job from the registry."""
        async with self._lock:
            handle = self._jobs.pop(job_id, None)
            return handle.job if handle else None

    def _apply(
        self,
        handle: ExportJobHandle,
        status: ExportStatus,
        error: Optional[str] = None,
    ) -> bool:
        """Apply a transition to a handle. Caller must hold the lock."""
        job = handle.job
        if not can_transition(job.status, status):
            logger.debug(
                f"Ignoring export {job.id} transition {job.status.value} -> {status.value}"
            )
            return False

        job.status = status
        if error is not None:
            job.error = error
        job.updated_at = datetime.now()
        if status.is_terminal:
            handle.process = None
        return True

    async def transition(
        self,
        job_id: str,
        status: ExportStatus,
        error: Optional[str] = None,
    ) -> bool:
        """Move a job to a new status.

        Returns:
            True if the transition happened, False if the job is gone or the
            state machine refused it (e.g. the job was already cancelled)
        """
        async with self._lock:
            handle = self._jobs.get(job_id)
            if handle is None:
                return False
            return self._apply(handle, status, error)

    async def start_rendering(
        self,
        job_id: str,
        process: asyncio.subprocess.Process,
    ) -> bool:
        """Attach a freshly spawned process and move the job to rendering.

        Returns:
            False if the job was cancelled (or removed) while spawning; the
            caller then owns the orphan process and must stop it
        """
        async with self._lock:
            handle = self._jobs.get(job_id)
            if handle is None or not self._apply(handle, ExportStatus.RENDERING):
                return False
            handle.process = process
            return True

    async def cancel(
        self,
        job_id: str,
    ) -> Tuple[bool, ExportJob, Optional[asyncio.subprocess.Process]]:
        """Mark a job cancelled and hand back its process.

        Returns:
            (cancelled, job, process): cancelled is False when the job had
            already reached a terminal state; job is a snapshot taken under
            the lock; process is None when nothing was spawned yet

        Raises:
            JobNotFoundError: Unknown job ID
        """
        async with self._lock:
            handle = self._jobs.get(job_id)
            if handle is None:
                raise JobNotFoundError(job_id)

            process = handle.process
            if not self._apply(handle, ExportStatus.CANCELLED):
                return False, handle.job.model_copy(), None
            return True, handle.job.model_copy(), process

    async def live_job_ids(self) -> List[str]:
        """IDs of jobs that have not reached a terminal state."""
        async with self._lock:
            return [
                job_id for job_id, h in self._jobs.items()
                if not h.job.status.is_terminal
            ]

    async def get_stats(self) -> Dict:
        """Get job counts by status."""
        async with self._lock:
            statuses = [h.job.status for h in self._jobs.values()]

        stats = {"total": len(statuses), "by_status": {}}
        for status in ExportStatus:
            count = sum(1 for s in statuses if s == status)
            if count > 0:
                stats["by_status"][status.value] = count
        return stats
