"""FFmpeg process layer: spawning and stopping encoder processes."""

import asyncio
import sys
from loguru import logger

from clipforge.workers.ffmpeg_command import FFmpegCommand


async def spawn_ffmpeg(command: FFmpegCommand) -> asyncio.subprocess.Process:
    """Start an ffmpeg process with its output streams piped.

    Raises:
        OSError: The executable is missing or cannot be started
    """
    kwargs = {}
    if sys.platform == "win32":
        import subprocess
        kwargs["creationflags"] = subprocess.CREATE_NO_WINDOW

    logger.debug(f"FFmpeg command: {command}")
    return await asyncio.create_subprocess_exec(
        *command.argv,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=command.stdout,
        stderr=command.stderr,
        **kwargs,
    )


async def terminate_process(
    proc: asyncio.subprocess.Process,
    grace_seconds: float = 3.0,
) -> None:
    """Stop a process: terminate, then kill if it outlives the grace period."""
    if proc.returncode is not None:
        return

    try:
        proc.terminate()
    except ProcessLookupError:
        return

    try:
        await asyncio.wait_for(proc.wait(), timeout=grace_seconds)
    except asyncio.TimeoutError:
        logger.warning(f"Process {proc.pid} did not terminate, sending SIGKILL")
        try:
            proc.kill()
        except ProcessLookupError:
            return
        await proc.wait()
