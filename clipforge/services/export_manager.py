"""Export manager: creates export jobs and supervises their ffmpeg processes."""

import asyncio
import shutil
import uuid
from collections import deque
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Tuple
from loguru import logger
from pydantic import BaseModel

from clipforge.config import settings
from clipforge.models.export import (
    EXPORT_CANCELLED,
    EXPORT_COMPLETE,
    EXPORT_ERROR,
    EXPORT_PROGRESS,
    ExportCancelledEvent,
    ExportCompleteEvent,
    ExportErrorEvent,
    ExportJob,
    ExportJobResponse,
    ExportProgressEvent,
    ExportRequest,
    ExportStatus,
)
from clipforge.models.timeline import Project
from clipforge.services.export_registry import (
    ExportRegistry,
    JobAlreadyFinishedError,
    JobNotFoundError,
)
from clipforge.workers.ffmpeg_command import FFmpegCommand, build_export_command
from clipforge.workers.ffmpeg_process import spawn_ffmpeg, terminate_process
from clipforge.workers.manifest import (
    InvalidOutputPathError,
    OutputDirectoryNotFoundError,
    calculate_timeline_duration,
    generate_concat_file,
)
from clipforge.workers.progress import iter_ffmpeg_lines, parse_progress

EventCallback = Callable[[str, dict], Awaitable[None]]


class ExportManager:
    """Owns the export registry and one supervising task per export.

    create_export() returns as soon as the manifest and command are built;
    rendering happens in a background task that reports through the event
    callback (export_progress, export_complete, export_error,
    export_cancelled).
    """

    def __init__(
        self,
        registry: Optional[ExportRegistry] = None,
        event_callback: Optional[EventCallback] = None,
        scratch_dir: Optional[Path] = None,
        ffmpeg_path: Optional[str] = None,
        terminate_grace_seconds: Optional[float] = None,
        error_tail_lines: Optional[int] = None,
    ):
        self.registry = registry or ExportRegistry()
        self.event_callback = event_callback
        self.scratch_dir = Path(scratch_dir or settings.scratch_dir)
        self.ffmpeg_path = ffmpeg_path or settings.ffmpeg_path
        self.terminate_grace_seconds = (
            terminate_grace_seconds
            if terminate_grace_seconds is not None
            else settings.terminate_grace_seconds
        )
        self.error_tail_lines = (
            error_tail_lines
            if error_tail_lines is not None
            else settings.error_tail_lines
        )
        self._tasks: Dict[str, asyncio.Task] = {}

    def set_event_callback(self, callback: EventCallback) -> None:
        """Set the callback that receives export events."""
        self.event_callback = callback

    # ========== Job creation ==========

    async def create_export(
        self,
        project: Project,
        request: ExportRequest,
        command_factory: Callable[..., FFmpegCommand] = build_export_command,
    ) -> ExportJobResponse:
        """Validate the request, build manifest and command, start rendering.

        Raises:
            InvalidOutputPathError: Output path contains a NUL byte
            OutputDirectoryNotFoundError: Output path's directory is missing
            NoMainTrackError: Project has no main track
            MediaNotFoundError: A clip references missing media
        """
        if "\x00" in request.output_path:
            raise InvalidOutputPathError(request.output_path)
        output_path = Path(request.output_path)
        if not output_path.parent.exists():
            raise OutputDirectoryNotFoundError(output_path.parent)

        job_id = str(uuid.uuid4())
        temp_dir = self.scratch_dir / f"clipforge_export_{job_id}"
        temp_dir.mkdir(parents=True, exist_ok=True)

        try:
            concat_file = generate_concat_file(
                project.tracks, project.media_library, temp_dir
            )
            command = command_factory(
                concat_file,
                output_path,
                request.settings,
                ffmpeg_path=self.ffmpeg_path,
            )
        except Exception:
            self._remove_dir(temp_dir)
            raise

        total_duration = calculate_timeline_duration(project.tracks)

        job = ExportJob(id=job_id, output_path=str(output_path))
        await self.registry.add(job)
        logger.info(
            f"Created export {job_id}: {len(project.tracks)} tracks, "
            f"{total_duration:.2f}s -> {output_path} (encoder {command.value_of('-c:v')})"
        )

        task = asyncio.create_task(
            self._run_export(job_id, command, total_duration, temp_dir, output_path)
        )
        self._tasks[job_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(job_id, None))

        return ExportJobResponse(job_id=job_id)

    # ========== Supervision ==========

    async def _run_export(
        self,
        job_id: str,
        command: FFmpegCommand,
        total_duration: float,
        temp_dir: Path,
        output_path: Path,
    ) -> None:
        """Supervise one export, then delete its scratch directory."""
        try:
            await self._supervise(job_id, command, total_duration, output_path)
        finally:
            self._remove_dir(temp_dir)

    async def _supervise(
        self,
        job_id: str,
        command: FFmpegCommand,
        total_duration: float,
        output_path: Path,
    ) -> None:
        job = await self.registry.get(job_id)
        if job is None or job.status == ExportStatus.CANCELLED:
            logger.info(f"Export {job_id} cancelled before spawning")
            await self.registry.remove(job_id)
            return

        try:
            proc = await spawn_ffmpeg(command)
        except (OSError, ValueError) as e:
            await self._fail(job_id, f"Failed to spawn FFmpeg process: {e}")
            return

        if not await self.registry.start_rendering(job_id, proc):
            logger.info(f"Export {job_id} cancelled while spawning, stopping pid {proc.pid}")
            await terminate_process(proc, self.terminate_grace_seconds)
            self._remove_file(output_path)
            await self.registry.remove(job_id)
            return

        logger.info(f"Export {job_id} rendering (pid {proc.pid})")

        try:
            returncode, tail = await self._stream_output(job_id, proc, total_duration)
        except asyncio.CancelledError:
            await terminate_process(proc, self.terminate_grace_seconds)
            raise
        except Exception as e:
            logger.exception(f"Export {job_id} supervision error")
            await terminate_process(proc, self.terminate_grace_seconds)
            await self._fail(job_id, f"FFmpeg export failed: {e}", output_path)
            return

        if returncode == 0:
            if await self.registry.transition(job_id, ExportStatus.COMPLETE):
                logger.info(f"Export {job_id} complete: {output_path}")
                await self._publish(
                    EXPORT_COMPLETE,
                    ExportCompleteEvent(job_id=job_id, output_path=str(output_path)),
                )
            else:
                await self._drop_cancelled(job_id)
            return

        await self._fail(job_id, self._format_failure(returncode, tail), output_path)

    async def _stream_output(
        self,
        job_id: str,
        proc: asyncio.subprocess.Process,
        total_duration: float,
    ) -> Tuple[int, List[str]]:
        """Read ffmpeg stderr to the end, publishing progress, then wait for exit.

        Returns:
            (returncode, last error_tail_lines lines of output)
        """
        tail: deque = deque(maxlen=self.error_tail_lines)

        # FFmpeg writes nothing to stdout for file output, but drain it anyway
        stdout_task = None
        if proc.stdout is not None:
            stdout_task = asyncio.create_task(proc.stdout.read())

        try:
            if proc.stderr is not None:
                async for line in iter_ffmpeg_lines(proc.stderr):
                    tail.append(line)
                    logger.debug(f"[FFmpeg {job_id[:8]}] {line}")

                    sample = parse_progress(line, total_duration)
                    if sample is None:
                        continue
                    job = await self.registry.get(job_id)
                    if job is None or job.status != ExportStatus.RENDERING:
                        continue
                    await self._publish(
                        EXPORT_PROGRESS,
                        ExportProgressEvent.from_progress(job_id, sample),
                    )
        finally:
            if stdout_task is not None:
                await stdout_task

        returncode = await proc.wait()
        return returncode, list(tail)

    def _format_failure(self, returncode: int, tail: List[str]) -> str:
        """Build the error message for a non-zero ffmpeg exit."""
        message = f"FFmpeg export failed with status: {returncode}"
        if not tail:
            return message
        return f"{message}\n\nRecent output:\n" + "\n".join(tail)

    async def _fail(
        self,
        job_id: str,
        error: str,
        output_path: Optional[Path] = None,
    ) -> None:
        """Mark a job failed and publish the error, unless it was cancelled."""
        if not await self.registry.transition(job_id, ExportStatus.FAILED, error=error):
            await self._drop_cancelled(job_id)
            return

        logger.error(f"Export {job_id} failed: {error}")
        if output_path is not None:
            self._remove_file(output_path)
        await self._publish(EXPORT_ERROR, ExportErrorEvent(job_id=job_id, error=error))

    async def _drop_cancelled(self, job_id: str) -> None:
        """Remove a job the canceller already finished."""
        job = await self.registry.get(job_id)
        if job is not None and job.status == ExportStatus.CANCELLED:
            await self.registry.remove(job_id)
            logger.debug(f"Dropped cancelled export {job_id}")

    # ========== Cancellation ==========

    async def cancel_export(self, job_id: str) -> None:
        """Cancel an export: stop ffmpeg, delete the partial output.

        Cancelling an already cancelled job is a no-op.

        Raises:
            JobNotFoundError: Unknown job ID
            JobAlreadyFinishedError: The job already completed or failed
        """
        cancelled, job, process = await self.registry.cancel(job_id)
        if not cancelled:
            if job.status == ExportStatus.CANCELLED:
                return
            raise JobAlreadyFinishedError(job_id, job.status)

        logger.info(f"Cancelling export {job_id}")
        if process is not None:
            logger.info(f"Stopping ffmpeg pid {process.pid} for export {job_id}")
            await terminate_process(process, self.terminate_grace_seconds)

        self._remove_file(Path(job.output_path))
        await self._publish(EXPORT_CANCELLED, ExportCancelledEvent(job_id=job_id))

    async def shutdown(self) -> None:
        """Cancel every live export and wait for the supervisors to finish."""
        for job_id in await self.registry.live_job_ids():
            try:
                await self.cancel_export(job_id)
            except (JobNotFoundError, JobAlreadyFinishedError):
                pass

        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ========== Queries ==========

    async def get_job(self, job_id: str) -> Optional[ExportJob]:
        """Get an export job by ID."""
        return await self.registry.get(job_id)

    async def list_jobs(
        self,
        status: Optional[ExportStatus] = None,
        limit: int = 100,
    ) -> List[ExportJob]:
        """List export jobs, newest first."""
        jobs = await self.registry.list(status=status)
        return jobs[:limit]

    async def get_stats(self) -> Dict:
        """Get export statistics."""
        stats = await self.registry.get_stats()
        stats["active_tasks"] = len(self._tasks)
        return stats

    async def wait_for_export(self, job_id: str) -> None:
        """Wait until the supervising task of an export has finished."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.shield(task)

    # ========== Events and cleanup ==========

    async def _publish(self, event: str, payload: BaseModel) -> None:
        """Send an event to the callback; failures are logged, not raised."""
        if not self.event_callback:
            return
        try:
            await self.event_callback(event, payload.model_dump())
        except Exception as e:
            logger.error(f"Event callback failed for {event}: {e}")

    @staticmethod
    def _remove_dir(path: Path) -> None:
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove scratch directory {path}: {e}")

    @staticmethod
    def _remove_file(path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove {path}: {e}")
